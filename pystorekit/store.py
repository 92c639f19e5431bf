"""
PyStoreKit Store 核心模組。

Store 持有唯一的不可變狀態樹，透過純函數 reducer 計算下一個狀態並通知訂閱者。
Store 本身不加鎖：所有 dispatch、subscribe、get_state、replace_reducer 呼叫
必須由宿主程式序列化到同一個執行緒或任務佇列上，Store 只依靠 dispatch 進行中
旗標來防止重入。
"""
import logging
from typing import Any, Callable, Generic, List, Optional, Tuple

from reactivex import Observable, create
from reactivex import operators as ops
from reactivex.disposable import Disposable

from .actions import init_store, replace_reducer_action, validate_action
from .errors import ConfigurationError, StoreError
from .types import DispatchFunction, Listener, Reducer, S, StateSelector, StoreEnhancer, Unsubscribe

logger = logging.getLogger(__name__)


class Store(Generic[S]):
    """
    狀態容器，管理應用狀態並通知訂閱者狀態變更。

    每個應用工作階段只應有一個 Store，由建立者顯式傳遞給需要它的子系統。
    Store 不可複製；enhancer 透過 with_dispatch 取得共享同一份狀態與訂閱者的新外觀。
    """

    def __init__(self, reducer: Reducer[S], preloaded_state: Optional[S] = None):
        """
        建立 Store 並立即 dispatch 保留的 init action，讓 reducer 建立預設狀態。

        Args:
            reducer: 計算下一個狀態的純函數。
            preloaded_state: 可選的初始狀態。
        """
        if not callable(reducer):
            raise ConfigurationError("Expected the reducer to be a function", component="Store")
        self._reducer = reducer
        self._state = preloaded_state
        # 寫入時複製：dispatch 通知時使用 _current_listeners 的快照
        self._current_listeners: List[Tuple[object, Listener]] = []
        self._next_listeners = self._current_listeners
        self._is_dispatching = False
        self._teardown_callbacks: List[Callable[[], None]] = []

        self._dispatch_core(init_store())
        logger.debug("store initialised with %r", type(self._state).__name__)

    def _ensure_can_mutate_next_listeners(self) -> None:
        """在 dispatch 通知期間修改訂閱者列表前，先複製一份，避免影響進行中的快照。"""
        if self._next_listeners is self._current_listeners:
            self._next_listeners = list(self._current_listeners)

    def get_state(self) -> S:
        """
        讀取當前狀態樹。

        Returns:
            當前狀態。

        Raises:
            StoreError: reducer 正在執行時呼叫。
        """
        if self._is_dispatching:
            raise StoreError(
                "You may not call get_state() while the reducer is executing. "
                "The reducer has already received the state as an argument.",
                operation="get_state",
            )
        return self._state

    @property
    def state(self) -> S:
        """當前狀態的快照，等同 get_state()。"""
        return self.get_state()

    def subscribe(self, listener: Listener) -> Unsubscribe:
        """
        註冊一個狀態變更監聽器。

        每次 dispatch 開始通知前都會對監聽器列表取快照，因此在通知期間訂閱
        或取消訂閱，只會從下一次 dispatch 起生效。

        Args:
            listener: 無參數的回調，需自行呼叫 get_state() 讀取新狀態。

        Returns:
            取消訂閱的函數，重複呼叫不會出錯。
        """
        if not callable(listener):
            raise TypeError("Expected the listener to be a function")
        if self._is_dispatching:
            raise StoreError(
                "You may not call subscribe() while the reducer is executing. "
                "Subscribe from outside the reducer and call get_state() in the listener.",
                operation="subscribe",
            )

        token = object()
        is_subscribed = True
        self._ensure_can_mutate_next_listeners()
        self._next_listeners.append((token, listener))

        def unsubscribe() -> None:
            nonlocal is_subscribed
            if not is_subscribed:
                return
            if self._is_dispatching:
                raise StoreError(
                    "You may not unsubscribe from a store listener while the reducer is executing.",
                    operation="unsubscribe",
                )
            is_subscribed = False
            self._next_listeners = [entry for entry in self._next_listeners if entry[0] is not token]

        return unsubscribe

    def _dispatch_core(self, action: Any) -> Any:
        validate_action(action)
        if self._is_dispatching:
            raise StoreError("Reducers may not dispatch actions.", operation="dispatch")

        try:
            self._is_dispatching = True
            next_state = self._reducer(self._state, action)
        finally:
            self._is_dispatching = False
        self._state = next_state

        listeners = self._current_listeners = self._next_listeners
        for _, listener in listeners:
            listener()

        return action

    def dispatch(self, action: Any) -> Any:
        """
        分發一個動作，這是改變狀態的唯一方式。

        Args:
            action: 純資料 Action。

        Returns:
            傳入的 Action。

        Raises:
            ActionError: action 不是純資料。
            StoreError: 在 reducer 內部呼叫。
        """
        return self._dispatch_core(action)

    def replace_reducer(self, next_reducer: Reducer[S]) -> None:
        """
        替換 Store 使用的 reducer，並 dispatch 保留的 replace action，
        讓新舊 reducer 共有的狀態分支得以保留。

        Args:
            next_reducer: 新的 reducer。
        """
        if not callable(next_reducer):
            raise TypeError("Expected the next reducer to be a function")
        self._reducer = next_reducer
        self._dispatch_core(replace_reducer_action())
        logger.debug("reducer replaced with %r", getattr(next_reducer, "__name__", next_reducer))

    def select(self, selector: Optional[StateSelector] = None) -> Observable:
        """
        選擇狀態的一部分進行觀察。

        訂閱時立即發出當前值，之後每次 dispatch 後只在選取的值改變時發出。
        釋放訂閱即取消對 Store 的監聽。

        Args:
            selector: 一個函數，接收整個狀態並返回希望觀察的部分；省略時觀察整個狀態。

        Returns:
            一個可觀察對象，發送選定的狀態部分。
        """
        project = selector or (lambda state: state)

        def subscribe(observer, scheduler=None):
            def emit() -> bool:
                try:
                    value = project(self.get_state())
                except Exception as err:
                    observer.on_error(err)
                    return False
                observer.on_next(value)
                return True

            # 首次選取失敗時序列已經終止，不再註冊監聽器
            if not emit():
                return Disposable()
            unsubscribe = self.subscribe(lambda: emit() or unsubscribe())
            return Disposable(unsubscribe)

        return create(subscribe).pipe(ops.distinct_until_changed())

    def with_dispatch(self, dispatch: DispatchFunction) -> "Store[S]":
        """
        返回一個以 dispatch 取代原本分發函數的 Store 外觀，其餘操作仍委派給本 Store。

        Args:
            dispatch: 包裹後的 dispatch 函數。
        """
        return EnhancedStore(self, dispatch)

    def add_teardown(self, callback: Callable[[], None]) -> None:
        """註冊一個在 teardown() 時呼叫的清理回調，例如中介軟體持有的排程器。"""
        self._teardown_callbacks.append(callback)

    def teardown(self) -> None:
        """清理所有訂閱者與已註冊的資源。"""
        callbacks, self._teardown_callbacks = self._teardown_callbacks, []
        for callback in reversed(callbacks):
            callback()
        self._next_listeners = []
        self._current_listeners = self._next_listeners

    def __enter__(self) -> "Store[S]":
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.teardown()

    def __copy__(self):
        raise StoreError("A store owns the current state and cannot be copied", operation="copy")

    def __deepcopy__(self, memo):
        raise StoreError("A store owns the current state and cannot be copied", operation="deepcopy")


class EnhancedStore(Store[S]):
    """由 enhancer 產生的 Store 外觀：只替換 dispatch，其餘操作委派給底層 Store。"""

    def __init__(self, base: Store[S], dispatch: DispatchFunction):
        self._base = base
        self._dispatch = dispatch

    def dispatch(self, action: Any) -> Any:
        return self._dispatch(action)

    def get_state(self) -> S:
        return self._base.get_state()

    def subscribe(self, listener: Listener) -> Unsubscribe:
        return self._base.subscribe(listener)

    def replace_reducer(self, next_reducer: Reducer[S]) -> None:
        self._base.replace_reducer(next_reducer)

    def add_teardown(self, callback: Callable[[], None]) -> None:
        self._base.add_teardown(callback)

    def teardown(self) -> None:
        self._base.teardown()


def create_store(
    reducer: Reducer[S],
    preloaded_state: Optional[S] = None,
    enhancer: Optional[StoreEnhancer] = None,
) -> Store[S]:
    """
    創建一個新的 Store 實例。

    Args:
        reducer: 計算下一個狀態的純函數。
        preloaded_state: 可選的初始狀態。
        enhancer: 可選的 store enhancer，例如 apply_middleware(...) 或 combine_enhancers(...) 的結果。

    Returns:
        Store: 新創建的 Store 實例。
    """
    if not callable(reducer):
        raise ConfigurationError("Expected the reducer to be a function", component="create_store",
                                 config_key="reducer")

    if enhancer is not None:
        if not callable(enhancer):
            raise ConfigurationError("Expected the enhancer to be a function", component="create_store",
                                     config_key="enhancer")
        store = enhancer(create_store)(reducer, preloaded_state)
        if not isinstance(store, Store):
            raise ConfigurationError(
                f"Enhancer returned {type(store).__name__} instead of a Store",
                component="create_store",
                config_key="enhancer",
            )
        return store

    return Store(reducer, preloaded_state)
