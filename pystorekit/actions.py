"""
基於 PyStoreKit 的 Action 定義模組。

此模組提供 Action 類別、創建 Action 的工廠函數，以及 Store 核心用來
檢查 Action 是否為「純資料」的驗證函數。
Actions 是描述狀態變更意圖的不可變對象，不得是函數或不透明物件，
這樣重播與日誌記錄才有意義。
"""
import inspect
from collections.abc import Mapping
from typing import Any, Callable, Dict, Generic, Optional, Union

from immutables import Map
from pydantic import BaseModel

from .errors import ActionError
from .types import ActionCreator, P


class Action(Generic[P]):
    """
    表示一個有類型和可選負載的動作。

    泛型參數:
        P: 負載的類型

    屬性:
        type: 動作的類型字符串
        payload: 動作的負載數據（可選）
    """
    __slots__ = ('type', 'payload')

    def __init__(self, type: str, payload: Optional[P] = None):
        if not isinstance(type, str) or not type:
            raise ActionError("Action type must be a non-empty string", action_type=repr(type))
        super().__setattr__('type', type)
        super().__setattr__('payload', payload)

    def __setattr__(self, name, value):
        raise AttributeError(f"Cannot modify immutable instance attribute '{name}'")

    def __delattr__(self, name):
        raise AttributeError(f"Cannot delete immutable instance attribute '{name}'")

    def __eq__(self, other):
        if not isinstance(other, Action):
            return NotImplemented
        return self.type == other.type and self.payload == other.payload

    def __hash__(self):
        return hash((self.type, self.payload))

    def __repr__(self):
        return f"Action(type='{self.type}', payload={repr(self.payload)})"


def _process_payload(payload: Any) -> Any:
    """
    處理 payload，將字典轉換為不可變的 Map。

    Args:
        payload: 原始 payload

    Returns:
        處理後的 payload
    """
    if isinstance(payload, dict):
        return Map(payload)
    return payload


def create_action(action_type: str, prepare_fn: Optional[Callable[..., Any]] = None) -> ActionCreator:
    """
    創建一個 Action 生成器函數。

    Args:
        action_type: Action 的類型標識符
        prepare_fn: 可選的預處理函數，用於在創建 Action 前處理輸入參數

    Returns:
        一個可調用的函數，用於生成指定類型的 Action，並帶有 type 屬性

    範例:
        >>> increment = create_action("INC")
        >>> increment()  # 返回 Action(type="INC", payload=None)
        >>>
        >>> add = create_action("ADD", lambda amount: amount)
        >>> add(5)  # 返回 Action(type="ADD", payload=5)
    """
    def action_creator(*args: Any, **kwargs: Any) -> Action[Any]:
        if prepare_fn:
            return Action(action_type, _process_payload(prepare_fn(*args, **kwargs)))
        if len(args) == 1 and not kwargs:
            return Action(action_type, _process_payload(args[0]))
        if args or kwargs:
            payload: Dict[Union[int, str], Any] = dict(zip(range(len(args)), args))
            payload.update(kwargs)
            return Action(action_type, _process_payload(payload))
        # 無參數，無負載
        return Action(action_type)

    action_creator.type = action_type  # type: ignore[attr-defined]
    action_creator.__name__ = f"create_{action_type}"
    return action_creator


def action_type(action: Any) -> Optional[str]:
    """
    取得任何被接受形式的 Action 的類型標籤。

    Args:
        action: Action 實例、帶 type 欄位的 pydantic 模型，或帶 "type" 鍵的映射

    Returns:
        類型字符串；若無法辨識則返回 None
    """
    if isinstance(action, Action):
        return action.type
    if isinstance(action, BaseModel):
        tag = getattr(action, "type", None)
        return tag if isinstance(tag, str) else None
    if isinstance(action, Mapping):
        tag = action.get("type")
        return tag if isinstance(tag, str) else None
    return None


def payload_of(action: Any) -> Any:
    """
    取得任何被接受形式的 Action 的負載。

    pydantic 模型讀取 payload 欄位，映射讀取 "payload" 鍵；缺少時返回 None。
    """
    if isinstance(action, Action):
        return action.payload
    if isinstance(action, Mapping):
        return action.get("payload")
    return getattr(action, "payload", None)


def is_action(obj: Any) -> bool:
    """檢查 obj 是否為 Store 核心可以接受的純資料 Action。"""
    if callable(obj) and not isinstance(obj, (BaseModel, Mapping)):
        return False
    if inspect.isawaitable(obj) or inspect.isclass(obj):
        return False
    return action_type(obj) is not None


def validate_action(obj: Any) -> Any:
    """
    驗證 obj 是純資料 Action，否則拋出 ActionError。

    Args:
        obj: 要驗證的對象

    Returns:
        原封不動的 obj
    """
    if not is_action(obj):
        raise ActionError(
            "Actions must be plain tagged data (Action, pydantic model or mapping with a string 'type'). "
            "Use custom middleware for functions or awaitables.",
            action_type=type(obj).__name__,
        )
    return obj


# 保留 Actions
init_store = create_action("@@pystorekit/INIT")
replace_reducer_action = create_action("@@pystorekit/REPLACE")
