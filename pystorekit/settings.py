"""
使用者設定持久化範例：以中介軟體處理副作用的標準寫法。

設定變更的 action 會立即交給下一層，讓 reducer 與畫面不必等待 I/O；
寫入儲存庫的工作則排程到背景執行緒。載入全部設定時，讀取同樣在背景進行，
完成後再以全新的頂層 dispatch 發出 settings_loaded，絕不在原本的 dispatch 內巢狀呼叫。
儲存庫錯誤只會以 settings_failed action 回報，不會跨執行緒拋出。
"""

import asyncio
import inspect
import logging
import threading
from typing import Any, Dict, Optional

from pydantic import BaseModel, ConfigDict
from reactivex import from_callable
from reactivex import operators as ops
from reactivex.abc import SchedulerBase
from reactivex.scheduler import ThreadPoolScheduler
from typing_extensions import Protocol, runtime_checkable

from .actions import action_type, create_action, payload_of
from .errors import PyStoreKitError, global_error_handler
from .immutable_utils import to_dict
from .middleware import BaseMiddleware, MiddlewareAPI
from .reducers import create_reducer, on
from .types import DispatchFunction, MiddlewareFunction, NextDispatch

logger = logging.getLogger(__name__)


class UserSettings(BaseModel):
    """使用者設定的不可變快照。"""
    model_config = ConfigDict(frozen=True)

    num_rounds: int = 10
    category_id: int = 0
    microphone_mode: bool = False


@runtime_checkable
class SettingsRepository(Protocol):
    """
    設定儲存庫介面，以設定欄位名稱存取。

    get/set 可以是同步函數，也可以返回 awaitable；awaitable 會在背景執行緒中執行完成。
    """

    def get(self, field: str) -> Any: ...

    def set(self, field: str, value: Any) -> None: ...


class InMemorySettingsRepository:
    """執行緒安全的記憶體設定儲存庫，供測試與範例使用。"""

    def __init__(self, initial: Optional[Dict[str, Any]] = None) -> None:
        self._values: Dict[str, Any] = dict(initial or {})
        self._lock = threading.Lock()

    def get(self, field: str) -> Any:
        with self._lock:
            return self._values.get(field)

    def set(self, field: str, value: Any) -> None:
        with self._lock:
            self._values[field] = value

    def snapshot(self) -> Dict[str, Any]:
        with self._lock:
            return dict(self._values)


# ====== Actions ======
change_num_rounds = create_action("CHANGE_NUM_ROUNDS", lambda num: num)
change_category = create_action("CHANGE_CATEGORY", lambda category_id: category_id)
change_microphone_mode = create_action("CHANGE_MICROPHONE_MODE", lambda enabled: enabled)
load_all_settings = create_action("LOAD_ALL")
settings_loaded = create_action("LOADED", lambda settings: settings)
settings_failed = create_action("SETTINGS_FAILED", lambda info: info)

# 設定變更 action 類型到儲存庫欄位的對應
SETTING_FIELDS = {
    change_num_rounds.type: "num_rounds",
    change_category.type: "category_id",
    change_microphone_mode.type: "microphone_mode",
}


def _resolve(value: Any) -> Any:
    if inspect.isawaitable(value):
        return asyncio.run(_await(value))
    return value


async def _await(awaitable: Any) -> Any:
    return await awaitable


# ====== Middleware ======
class SettingsMiddleware(BaseMiddleware):
    """
    將設定變更寫入儲存庫、並在收到 LOAD_ALL 時載入全部設定的中介軟體。

    背景工作在 scheduler 上執行（預設為自有的 ThreadPoolScheduler）。
    若提供 result_scheduler，載入結果與錯誤回報會先切換到該排程器再 dispatch，
    宿主程式可藉此把所有 dispatch 序列化到自己的 dispatch 執行緒上。
    """

    def __init__(
        self,
        repository: SettingsRepository,
        scheduler: Optional[SchedulerBase] = None,
        result_scheduler: Optional[SchedulerBase] = None,
    ) -> None:
        self.repository = repository
        self._owns_scheduler = scheduler is None
        self.scheduler = scheduler or ThreadPoolScheduler(max_workers=1)
        self.result_scheduler = result_scheduler

    def __call__(self, api: MiddlewareAPI) -> MiddlewareFunction:
        def middleware(next_dispatch: NextDispatch) -> DispatchFunction:
            def dispatch(action: Any) -> Any:
                # 先讓 reducer 更新狀態，再排程背景工作
                result = next_dispatch(action)
                tag = action_type(action)
                if tag in SETTING_FIELDS:
                    self._write(api, SETTING_FIELDS[tag], payload_of(action))
                elif tag == load_all_settings.type:
                    self._load_all(api)
                return result
            return dispatch
        return middleware

    def _run(self, work, on_next, on_error) -> None:
        source = from_callable(work, scheduler=self.scheduler)
        if self.result_scheduler is not None:
            source = source.pipe(ops.observe_on(self.result_scheduler))
        source.subscribe(on_next=on_next, on_error=on_error)

    def _write(self, api: MiddlewareAPI, field: str, value: Any) -> None:
        def work() -> None:
            return _resolve(self.repository.set(field, value))

        self._run(
            work,
            on_next=lambda _: logger.debug("persisted setting %s=%r", field, value),
            on_error=lambda err: self._report_failure(api, "write", field, err),
        )

    def _load_all(self, api: MiddlewareAPI) -> None:
        def work() -> UserSettings:
            values = {}
            for field in UserSettings.model_fields:
                value = _resolve(self.repository.get(field))
                if value is not None:
                    values[field] = value
            return UserSettings(**values)

        self._run(
            work,
            on_next=lambda settings: api.dispatch(settings_loaded(settings)),
            on_error=lambda err: self._report_failure(api, "read", None, err),
        )

    def _report_failure(self, api: MiddlewareAPI, operation: str, field: Optional[str], error: Exception) -> None:
        logger.warning("settings %s failed for %s: %s", operation, field or "all fields", error)
        global_error_handler.handle(
            PyStoreKitError(f"settings {operation} failed", {"field": field, "error": str(error)})
        )
        try:
            api.dispatch(settings_failed({"operation": operation, "field": field, "error": str(error)}))
        except Exception:
            logger.exception("failed to dispatch %s", settings_failed.type)

    def teardown(self) -> None:
        if self._owns_scheduler:
            self.scheduler.executor.shutdown(wait=False)


def settings_middleware(
    repository: SettingsRepository,
    scheduler: Optional[SchedulerBase] = None,
    result_scheduler: Optional[SchedulerBase] = None,
) -> SettingsMiddleware:
    """
    建立設定持久化中介軟體。

    Args:
        repository: 設定儲存庫
        scheduler: 執行儲存庫 I/O 的背景排程器，預設為 ThreadPoolScheduler
        result_scheduler: 可選，發出結果 action 時使用的排程器

    Returns:
        可傳給 apply_middleware 的中介軟體實例
    """
    return SettingsMiddleware(repository, scheduler=scheduler, result_scheduler=result_scheduler)


# ====== Reducer ======
def _as_settings(payload: Any) -> UserSettings:
    # 映射形式的 LOADED action 帶的是普通字典或 Map
    if isinstance(payload, UserSettings):
        return payload
    return UserSettings.model_validate(to_dict(payload))


settings_reducer = create_reducer(
    UserSettings(),
    on(change_num_rounds, lambda state, action: state.model_copy(update={"num_rounds": payload_of(action)})),
    on(change_category, lambda state, action: state.model_copy(update={"category_id": payload_of(action)})),
    on(change_microphone_mode, lambda state, action: state.model_copy(update={"microphone_mode": payload_of(action)})),
    on(settings_loaded, lambda state, action: _as_settings(payload_of(action))),
)
