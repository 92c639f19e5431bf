"""
PyStoreKit 錯誤處理模組。

定義所有 PyStoreKit 異常，以及用於日誌記錄與錯誤回報的集中式錯誤處理器。
使用錯誤（例如在 reducer 執行中 dispatch）一律立即拋給呼叫端；
副作用錯誤則由中介軟體在本地處理並回報。
"""

import logging
import traceback
from typing import Any, Callable, Dict, List, Optional, Union

logger = logging.getLogger(__name__)


class PyStoreKitError(Exception):
    """所有 PyStoreKit 異常的基礎類。"""

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None) -> None:
        super().__init__(message)
        self.message = message
        self.details = details or {}
        self.traceback = traceback.format_exc()

    def to_dict(self) -> Dict[str, Any]:
        """
        將錯誤轉換為可序列化的字典。

        Returns:
            包含錯誤類型、訊息與細節的字典
        """
        return {
            "error_type": self.__class__.__name__,
            "message": self.message,
            "details": dict(self.details),
        }

    def __str__(self) -> str:
        if not self.details:
            return self.message
        detail_text = ", ".join(f"{k}={v!r}" for k, v in self.details.items())
        return f"{self.message} ({detail_text})"


class ActionError(PyStoreKitError):
    """與 Action 相關的錯誤，例如 dispatch 了非資料型的 Action。"""

    def __init__(self, message: str, action_type: Optional[str] = None, payload: Any = None, **kwargs: Any) -> None:
        details = {"action_type": action_type, **kwargs}
        if payload is not None:
            details["payload"] = payload
        super().__init__(message, details)
        self.action_type = action_type


class ReducerError(PyStoreKitError):
    """與 Reducer 相關的錯誤。"""

    def __init__(self, message: str, reducer_name: str, action_type: Optional[str] = None, **kwargs: Any) -> None:
        super().__init__(message, {"reducer_name": reducer_name, "action_type": action_type, **kwargs})
        self.reducer_name = reducer_name
        self.action_type = action_type


class StoreError(PyStoreKitError):
    """Store 的使用錯誤，例如在 reducer 執行期間呼叫 get_state。"""

    def __init__(self, message: str, operation: str, **kwargs: Any) -> None:
        super().__init__(message, {"operation": operation, **kwargs})
        self.operation = operation


class MiddlewareError(PyStoreKitError):
    """與 Middleware 相關的錯誤。"""

    def __init__(self, message: str, middleware_name: str, action_type: Optional[str] = None, **kwargs: Any) -> None:
        super().__init__(message, {"middleware_name": middleware_name, "action_type": action_type, **kwargs})
        self.middleware_name = middleware_name


class ConfigurationError(PyStoreKitError):
    """配置相關的錯誤，例如 enhancer 組合不正確。"""

    def __init__(self, message: str, component: str, config_key: Optional[str] = None, **kwargs: Any) -> None:
        super().__init__(message, {"component": component, "config_key": config_key, **kwargs})
        self.component = component


class ErrorHandler:
    """集中式錯誤處理器，用於捕獲、日誌記錄和錯誤報告。"""

    def __init__(self, log_to_console: bool = True, log_to_file: bool = False, log_file: Optional[str] = None) -> None:
        """
        初始化錯誤處理器。

        Args:
            log_to_console: 是否透過 logging 輸出錯誤，預設為 True
            log_to_file: 是否額外寫入日誌檔案，預設為 False
            log_file: 日誌檔案路徑，log_to_file 為 True 時必須提供
        """
        if log_to_file and not log_file:
            raise ConfigurationError("log_file is required when log_to_file is enabled",
                                     component="ErrorHandler", config_key="log_file")
        self.log_to_console = log_to_console
        self.log_to_file = log_to_file
        self.log_file = log_file
        self.handlers: List[Callable[[PyStoreKitError], None]] = []
        self._file_logger: Optional[logging.Logger] = None

        if log_to_file:
            self._file_logger = logging.getLogger(f"{__name__}.file")
            file_handler = logging.FileHandler(log_file, encoding="utf-8")
            file_handler.setFormatter(logging.Formatter("%(asctime)s %(levelname)s %(message)s"))
            self._file_logger.addHandler(file_handler)
            self._file_logger.propagate = False

    def register_handler(self, handler: Callable[[PyStoreKitError], None]) -> None:
        """
        註冊一個錯誤回調，每次 handle 時都會被呼叫。

        Args:
            handler: 接收 PyStoreKitError 的回調函數
        """
        self.handlers.append(handler)

    def unregister_handler(self, handler: Callable[[PyStoreKitError], None]) -> None:
        if handler in self.handlers:
            self.handlers.remove(handler)

    def handle(self, error: Union[PyStoreKitError, Exception]) -> None:
        """
        處理一個錯誤：記錄日誌並通知所有已註冊的回調。

        一般異常會先包裝成 PyStoreKitError，回調本身拋出的錯誤只記錄不傳播。

        Args:
            error: 要處理的錯誤
        """
        if not isinstance(error, PyStoreKitError):
            wrapped = PyStoreKitError(str(error), {"original_type": error.__class__.__name__})
            wrapped.__cause__ = error
            error = wrapped

        if self.log_to_console:
            logger.error("%s: %s", error.__class__.__name__, error)
        if self._file_logger is not None:
            self._file_logger.error("%s: %s", error.__class__.__name__, error)

        for handler in list(self.handlers):
            try:
                handler(error)
            except Exception:
                logger.exception("error handler %r failed", handler)


# 單例錯誤處理器
global_error_handler = ErrorHandler()
