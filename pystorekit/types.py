"""
PyStoreKit 共用類型定義。

集中定義 reducer、listener、dispatch、middleware 與 enhancer 的函數簽名，
讓其他模組與使用者程式碼共享同一套類型提示。
"""
from typing import TYPE_CHECKING, Any, Callable, Dict, Optional, Type, TypeVar, Union

from typing_extensions import Protocol, TypedDict, runtime_checkable

if TYPE_CHECKING:
    from .actions import Action
    from .middleware import BaseMiddleware, MiddlewareAPI
    from .store import Store

S = TypeVar("S")  # 狀態類型
P = TypeVar("P")  # 負載類型
T = TypeVar("T")  # 選擇器輸出類型

# ———— Store Core ————
Reducer = Callable[[Optional[S], Any], S]
Listener = Callable[[], None]
Unsubscribe = Callable[[], None]
GetState = Callable[[], Any]
DispatchFunction = Callable[[Any], Any]
StateSelector = Callable[[Any], Any]

# ———— Middleware ————
NextDispatch = Callable[[Any], Any]
MiddlewareFunction = Callable[[NextDispatch], DispatchFunction]
MiddlewareFactory = Callable[["MiddlewareAPI"], MiddlewareFunction]
ThunkFunction = Callable[[DispatchFunction, GetState], Any]

# ———— Enhancer ————
StoreCreator = Callable[..., "Store[Any]"]
StoreEnhancer = Callable[[StoreCreator], StoreCreator]

# ———— Action Creators ————
ActionCreator = Callable[..., "Action[Any]"]


@runtime_checkable
class Middleware(Protocol):
    """中介軟體協議：接收 MiddlewareAPI，返回包裹 next_dispatch 的配置函數。"""

    def __call__(self, api: "MiddlewareAPI") -> MiddlewareFunction: ...


class ActionContext(TypedDict, total=False):
    """BaseMiddleware.action_context 在 dispatch 前後傳遞的上下文數據。"""

    action: Any
    prev_state: Any
    next_state: Any
    result: Any
    error: Optional[Exception]
    completed: bool
    extra: Dict[str, Any]


# apply_middleware 接受的形式：中介軟體工廠、實作協議的物件、待實例化的類別或鉤子物件
MiddlewareLike = Union[Middleware, MiddlewareFactory, Type[Middleware], "BaseMiddleware"]
