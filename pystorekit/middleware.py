"""
基於 PyStoreKit 的中介軟體定義模組。

中介軟體包裹 Store 核心的 dispatch，可以檢查、轉換、延遲、攔截或重新
dispatch 動作。apply_middleware 依設定順序建立呼叫鏈：第一個中介軟體在最外層，
外部 dispatch 依序經過 m1 → m2 → ... → mn → Store 核心。

中介軟體可以不呼叫 next_dispatch 而直接吞掉一個 action，這是刻意支援的短路行為
（例如只觸發副作用、不應到達 reducer 的 action），由中介軟體作者自行負責。
非同步工作完成後若要改變狀態，必須透過 api.dispatch 發出新的頂層 dispatch。
"""

import contextlib
import datetime
import inspect
import logging
from typing import Any, Callable, Generator, List, Optional, Tuple, cast

from .actions import Action, action_type, create_action
from .enhancers import compose
from .errors import MiddlewareError, PyStoreKitError, global_error_handler
from .immutable_utils import to_dict
from .types import (
    ActionContext, DispatchFunction, GetState, MiddlewareFactory, MiddlewareFunction, MiddlewareLike,
    NextDispatch, StoreCreator, StoreEnhancer, ThunkFunction,
)

logger = logging.getLogger(__name__)


class MiddlewareAPI:
    """
    提供給中介軟體的 Store 存取介面。

    dispatch 永遠指向最終包裹完成的 dispatch，因此重新 dispatch 的 action
    會再次經過整條中介軟體鏈。
    """

    def __init__(self, dispatch: DispatchFunction, get_state: GetState) -> None:
        self._dispatch = dispatch
        self._get_state = get_state

    def dispatch(self, action: Any) -> Any:
        return self._dispatch(action)

    def get_state(self) -> Any:
        return self._get_state()

    @property
    def state(self) -> Any:
        return self._get_state()


# ———— Base Middleware ————
class BaseMiddleware:
    """
    基礎中介類，定義所有中介可能實現的鉤子。

    只覆寫鉤子、不實作 __call__ 的子類，會被 apply_middleware 自動包裹在
    next_dispatch 前後；實作 __call__ 的子類則直接作為中介軟體工廠使用。
    """

    def on_next(self, action: Any, prev_state: Any) -> None:
        """
        在 action 發送給下一層之前調用。

        Args:
            action: 正在 dispatch 的 Action
            prev_state: dispatch 之前的狀態
        """
        pass

    def on_complete(self, next_state: Any, action: Any) -> None:
        """
        在下一層處理完 action 之後調用。

        Args:
            next_state: dispatch 之後的最新狀態
            action: 剛剛 dispatch 的 Action
        """
        pass

    def on_error(self, error: Exception, action: Any) -> None:
        """
        如果 dispatch 過程中拋出異常，則調用此鉤子。

        Args:
            error: 拋出的異常
            action: 導致異常的 Action
        """
        pass

    def teardown(self) -> None:
        """當 Store 清理資源時調用，用於清理中介軟體持有的資源。"""
        pass

    @contextlib.contextmanager
    def action_context(self, action: Any, prev_state: Any) -> Generator[ActionContext, None, None]:
        """
        以上下文管理器處理 action 分發的生命週期。

        子類可以覆蓋此方法，但應負責呼叫適當的鉤子，
        或使用 super().action_context() 來確保鉤子被呼叫。

        Args:
            action: 要分發的 Action
            prev_state: 分發前的狀態

        Yields:
            包含上下文數據的字典，可用於在上下文內部與外部之間傳遞數據
        """
        context: ActionContext = {
            'action': action,
            'prev_state': prev_state,
            'next_state': None,
            'result': None,
            'error': None,
            'completed': False,
            'extra': {},
        }
        self.on_next(action, prev_state)
        try:
            yield context
            # 以 'completed' 標記下一層已返回；狀態本身可以是 None
            if context.get('completed'):
                self.on_complete(context['next_state'], action)
        except Exception as err:
            context['error'] = err
            self.on_error(err, action)
            raise


def _wrap_hook_middleware(mw: BaseMiddleware) -> MiddlewareFactory:
    """將只實作鉤子的中介物件包裹成標準的中介軟體工廠。"""
    def factory(api: MiddlewareAPI) -> MiddlewareFunction:
        def middleware(next_dispatch: NextDispatch) -> DispatchFunction:
            def dispatch(action: Any) -> Any:
                with mw.action_context(action, api.get_state()) as context:
                    result = next_dispatch(action)
                    context['result'] = result
                    context['next_state'] = api.get_state()
                    context['completed'] = True
                    return result
            return dispatch
        return middleware
    return factory


def _middleware_name(mw: Any) -> str:
    return getattr(mw, "__name__", None) or type(mw).__name__


def _resolve_middleware(mw: MiddlewareLike) -> Tuple[Any, MiddlewareFactory]:
    """
    將使用者提供的中介軟體轉換為 (實例, 工廠)。

    接受函數工廠、實作 __call__ 的物件、類別（會被實例化），或只實作鉤子的 BaseMiddleware。
    """
    inst = mw() if inspect.isclass(mw) else mw
    if callable(inst):
        return inst, cast(MiddlewareFactory, inst)
    if hasattr(inst, "on_next"):
        return inst, _wrap_hook_middleware(inst)
    raise MiddlewareError("Middleware must be a callable factory or expose on_next hooks",
                          middleware_name=_middleware_name(inst))


class _SharedTeardown:
    """同一個中介軟體實例被多個 Store 共用時，只在最後一個 Store 清理時才呼叫 teardown。"""

    def __init__(self, inst: Any) -> None:
        self.inst = inst
        self.bound = 0

    def bind(self) -> Callable[[], None]:
        self.bound += 1

        def release() -> None:
            self.bound -= 1
            if self.bound == 0:
                self.inst.teardown()
        return release


def apply_middleware(*middlewares: MiddlewareLike) -> StoreEnhancer:
    """
    建立一個安裝中介軟體鏈的 store enhancer。

    每個中介軟體以 MiddlewareAPI 呼叫，得到接收 next_dispatch 的配置函數；
    從 Store 核心的 dispatch 開始由右至左包裹，使第一個中介軟體位於最外層。
    建構中介軟體鏈期間呼叫 api.dispatch 會拋出 MiddlewareError。

    enhancer 可以重複使用：以類別傳入的中介軟體會為每個 Store 各自實例化；
    以實例傳入的中介軟體則由所有 Store 共用，其 teardown 在最後一個 Store 清理時才執行。

    Args:
        *middlewares: 要安裝的中介軟體，順序即為 action 經過的順序。

    Returns:
        StoreEnhancer，可直接傳給 create_store 或 combine_enhancers。

    範例:
        >>> store = create_store(reducer, enhancer=apply_middleware(ThunkMiddleware, LoggerMiddleware()))
    """
    for mw in middlewares:
        if not (callable(mw) or hasattr(mw, "on_next")):
            raise MiddlewareError("Middleware must be a callable factory or expose on_next hooks",
                                  middleware_name=_middleware_name(mw))
    shared = {
        id(mw): _SharedTeardown(mw)
        for mw in middlewares
        if not inspect.isclass(mw) and callable(getattr(mw, "teardown", None))
    }

    def enhancer(create: StoreCreator) -> StoreCreator:
        def store_creator(reducer, preloaded_state=None):
            store = create(reducer, preloaded_state)
            resolved = [_resolve_middleware(mw) for mw in middlewares]

            def dispatch_while_constructing(action: Any) -> Any:
                raise MiddlewareError(
                    "Dispatching while constructing your middleware is not allowed. "
                    "Other middleware would not be applied to this dispatch.",
                    middleware_name="apply_middleware",
                    action_type=action_type(action),
                )

            api = MiddlewareAPI(dispatch_while_constructing, store.get_state)
            chain: List[MiddlewareFunction] = []
            for inst, factory in resolved:
                configured = factory(api)
                if not callable(configured):
                    raise MiddlewareError("Middleware factory must return a function accepting next_dispatch",
                                          middleware_name=_middleware_name(inst))
                chain.append(configured)

            dispatch = compose(*chain)(store.dispatch)
            if not callable(dispatch):
                raise MiddlewareError("Middleware must return a dispatch function",
                                      middleware_name=_middleware_name(resolved[0][0]))
            api._dispatch = dispatch

            for mw, (inst, _) in zip(middlewares, resolved):
                if id(mw) in shared:
                    store.add_teardown(shared[id(mw)].bind())
                elif callable(getattr(inst, "teardown", None)):
                    store.add_teardown(inst.teardown)

            return store.with_dispatch(dispatch)
        return store_creator
    return enhancer


def create_middleware(fn: Callable[[MiddlewareAPI, NextDispatch, Any], Any]) -> MiddlewareFactory:
    """
    將 fn(api, next_dispatch, action) 形式的函數轉換為中介軟體工廠。

    範例:
        >>> @create_middleware
        ... def tagger(api, next_dispatch, action):
        ...     seen.append(action_type(action))
        ...     return next_dispatch(action)
    """
    def factory(api: MiddlewareAPI) -> MiddlewareFunction:
        def middleware(next_dispatch: NextDispatch) -> DispatchFunction:
            def dispatch(action: Any) -> Any:
                return fn(api, next_dispatch, action)
            return dispatch
        return middleware
    factory.__name__ = getattr(fn, "__name__", "middleware")
    return factory


# ———— LoggerMiddleware ————
class LoggerMiddleware(BaseMiddleware):
    """
    日誌中介，記錄每個 action 發送前和發送後的 state。

    使用場景:
    - 偵錯時需要觀察每次 state 的變化。
    - 確保 action 的執行順序正確。
    """
    def __init__(self, level: int = logging.DEBUG, log: Optional[logging.Logger] = None):
        """
        初始化 LoggerMiddleware。

        Args:
            level: 日誌等級，預設為 DEBUG
            log: 使用的 logger，預設為本模組的 logger
        """
        self.level = level
        self.log = log or logger

    def on_next(self, action: Any, prev_state: Any) -> None:
        self.log.log(self.level, "dispatching %s", action_type(action))
        self.log.log(self.level, "state before %s: %s", action_type(action), to_dict(prev_state))

    def on_complete(self, next_state: Any, action: Any) -> None:
        self.log.log(self.level, "state after %s: %s", action_type(action), to_dict(next_state))

    def on_error(self, error: Exception, action: Any) -> None:
        self.log.error("error in %s: %s", action_type(action), error)


# ———— ThunkMiddleware ————
class ThunkMiddleware(BaseMiddleware):
    """
    支援 dispatch 函數 (thunk)，可以在 thunk 內執行非同步邏輯或多次 dispatch。
    thunk 本身永遠不會到達 Store 核心。

    範例:
        ```python
        def fetch_user(user_id):
            def thunk(dispatch, get_state):
                dispatch(request_user(user_id))
                try:
                    dispatch(request_user_success(api.fetch_user(user_id)))
                except ApiError as e:
                    dispatch(request_user_failure(str(e)))
            return thunk

        store.dispatch(fetch_user("user123"))
        ```
    """
    def __call__(self, api: MiddlewareAPI) -> MiddlewareFunction:
        def middleware(next_dispatch: NextDispatch) -> DispatchFunction:
            def dispatch(action: Any) -> Any:
                if callable(action) and not isinstance(action, Action):
                    return cast(ThunkFunction, action)(api.dispatch, api.get_state)
                return next_dispatch(action)
            return dispatch
        return middleware


# ———— ErrorMiddleware ————
global_error = create_action("[Error] GlobalError", lambda info: info)


class ErrorMiddleware(BaseMiddleware):
    """
    捕獲下游 dispatch 過程中的異常，交給全域錯誤處理器並 dispatch 全域錯誤 Action，
    之後原樣重新拋出，讓呼叫端仍能處理該錯誤。
    """
    def __init__(self, error_handler=None):
        self.error_handler = error_handler or global_error_handler
        self._reporting = False

    def __call__(self, api: MiddlewareAPI) -> MiddlewareFunction:
        def middleware(next_dispatch: NextDispatch) -> DispatchFunction:
            def dispatch(action: Any) -> Any:
                try:
                    return next_dispatch(action)
                except Exception as err:
                    self._report(api, err, action)
                    raise
            return dispatch
        return middleware

    def _report(self, api: MiddlewareAPI, error: Exception, action: Any) -> None:
        # 錯誤 action 本身失敗時不再遞迴回報
        if self._reporting:
            return
        self._reporting = True
        try:
            self.error_handler.handle(error)
            info = {
                "error": str(error),
                "error_type": error.__class__.__name__,
                "action": action_type(action),
                "timestamp": datetime.datetime.now().timestamp(),
            }
            if isinstance(error, PyStoreKitError):
                info["details"] = error.details
            try:
                api.dispatch(global_error(info))
            except Exception:
                logger.exception("failed to dispatch %s", global_error.type)
        finally:
            self._reporting = False


# ———— DevToolsMiddleware ————
class DevToolsMiddleware(BaseMiddleware):
    """
    記錄每次 action 與 state 快照，支援時間旅行調試。

    狀態是不可變的，因此歷史中保存的快照之後不會被改動。
    """
    def __init__(self) -> None:
        self.history: List[Tuple[Any, Any, Any]] = []

    def __call__(self, api: MiddlewareAPI) -> MiddlewareFunction:
        def middleware(next_dispatch: NextDispatch) -> DispatchFunction:
            def dispatch(action: Any) -> Any:
                prev_state = api.get_state()
                result = next_dispatch(action)
                self.history.append((prev_state, action, api.get_state()))
                return result
            return dispatch
        return middleware

    def get_history(self) -> List[Tuple[Any, Any, Any]]:
        """
        返回整個歷史快照列表。

        Returns:
            歷史快照列表，每項為 (prev_state, action, next_state)
        """
        return list(self.history)

    def state_at(self, index: int) -> Any:
        """返回第 index 次記錄的 action 之後的狀態。"""
        return self.history[index][2]

    def teardown(self) -> None:
        self.history.clear()
