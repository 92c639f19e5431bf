from collections.abc import Mapping
from typing import Any, Dict, Optional

from immutables import Map

from .actions import action_type as get_action_type
from .errors import ConfigurationError, ReducerError
from .immutable_utils import to_immutable
from .types import Reducer, S


def create_reducer(initial_state: S, *handlers) -> Reducer[S]:
    """
    創建一個 reducer 函式，用於處理狀態變更。

    產生的 reducer 是全函數：state 為 None 時使用初始狀態，
    遇到未註冊的 action 類型（包括保留的 init/replace action）時原樣返回 state。

    Args:
        initial_state: 初始狀態。
        *handlers: 一系列 (action_type, handler_fn) 元組或使用 on 函式創建的處理器。

    Returns:
        一個 reducer 函式，根據 action 的類型執行對應的處理邏輯。
    """
    action_handlers = {}  # 儲存 action 類型與處理函式的對應關係

    for handler in handlers:
        if isinstance(handler, tuple) and len(handler) == 2:
            action_type, handler_fn = handler
            action_handlers[action_type] = handler_fn
        elif isinstance(handler, dict):
            action_handlers.update(handler)
        else:
            raise ConfigurationError(
                "Reducer handlers must be (action_type, fn) tuples or mappings created by on()",
                component="create_reducer",
            )

    def reducer(state: Optional[S] = None, action: Any = None) -> S:
        if state is None:
            state = initial_state
        if action is None:
            return state

        handler = action_handlers.get(get_action_type(action))
        if handler:
            return handler(state, action)
        return state

    reducer.initial_state = initial_state
    reducer.handlers = action_handlers

    return reducer


def on(action_creator_or_type, handler):
    """
    創建一個 action 類型與處理函式的映射。

    Args:
        action_creator_or_type: Action 創建器函式或 Action 類型字串。
        handler: 處理該 Action 的函式，接收 (state, action) 並返回新狀態。

    Returns:
        一個包含 {action_type: handler} 的字典。
    """
    if callable(action_creator_or_type) and hasattr(action_creator_or_type, 'type'):
        action_type = action_creator_or_type.type
    else:
        action_type = str(action_creator_or_type)

    return {action_type: handler}


def combine_reducers(reducers: Mapping) -> Reducer[Map]:
    """
    將多個分支 reducer 組合成一個作用於 Map 狀態樹的 reducer。

    每個鍵的子狀態只交給對應的 reducer 處理。沒有任何分支變化時返回原本的
    state 對象；不屬於任何 reducer 的鍵會被丟棄，因此在 replace_reducer 之後
    新舊 reducer 共有的分支得以保留。

    Args:
        reducers: 分支鍵到 reducer 的映射。

    Returns:
        根 reducer。
    """
    if not reducers:
        raise ConfigurationError("combine_reducers requires at least one reducer", component="combine_reducers")
    for key, branch in reducers.items():
        if not callable(branch):
            raise ConfigurationError(f"Reducer for key '{key}' is not callable",
                                     component="combine_reducers", config_key=key)

    final_reducers: Dict[str, Reducer] = dict(reducers)

    def combination(state: Optional[Map] = None, action: Any = None) -> Map:
        if state is None:
            state = Map()
        elif not isinstance(state, Map):
            state = to_immutable(dict(state))

        has_changed = len(state) != len(final_reducers)
        mutation = Map().mutate()
        for key, branch in final_reducers.items():
            prev_substate = state.get(key)
            next_substate = branch(prev_substate, action)
            if next_substate is None:
                raise ReducerError(
                    f"Reducer for key '{key}' returned None. "
                    "Return the previous state for unknown actions instead.",
                    reducer_name=key,
                    action_type=get_action_type(action),
                )
            mutation[key] = next_substate
            has_changed = has_changed or next_substate is not prev_substate or key not in state

        return mutation.finish() if has_changed else state

    combination.reducers = final_reducers
    return combination
