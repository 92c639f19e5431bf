"""
PyStoreKit：單向資料流的狀態管理核心。

提供持有不可變狀態樹的 Store、可組合的中介軟體鏈，以及包裹 Store 建立函數的 enhancer。
"""

from .errors import (
    PyStoreKitError, ActionError, ReducerError, StoreError, MiddlewareError,
    ConfigurationError, ErrorHandler, global_error_handler,
)
from .actions import (
    Action, create_action, action_type, payload_of, is_action, validate_action,
    init_store, replace_reducer_action,
)
from .reducers import create_reducer, on, combine_reducers
from .store import Store, EnhancedStore, create_store
from .middleware import (
    MiddlewareAPI, BaseMiddleware, apply_middleware, create_middleware,
    LoggerMiddleware, ThunkMiddleware, ErrorMiddleware, DevToolsMiddleware, global_error,
)
from .enhancers import compose, combine_enhancers
from .immutable_utils import to_immutable, to_dict, to_pydantic

__version__ = "0.1.0"

# 匯出所有公開 API
__all__ = [
    # Errors
    "PyStoreKitError", "ActionError", "ReducerError", "StoreError", "MiddlewareError",
    "ConfigurationError", "ErrorHandler", "global_error_handler",

    # Actions
    "Action", "create_action", "action_type", "payload_of", "is_action", "validate_action",
    "init_store", "replace_reducer_action",

    # Reducers
    "create_reducer", "on", "combine_reducers",

    # Store
    "Store", "EnhancedStore", "create_store",

    # Middleware
    "MiddlewareAPI", "BaseMiddleware", "apply_middleware", "create_middleware",
    "LoggerMiddleware", "ThunkMiddleware", "ErrorMiddleware", "DevToolsMiddleware", "global_error",

    # Enhancers
    "compose", "combine_enhancers",

    # Immutable Utils
    "to_immutable", "to_dict", "to_pydantic",
]
