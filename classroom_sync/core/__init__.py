"""Core modules for Classroom Sync."""

from .cache import CacheCategory, CacheEntry, CacheStats, TTLCache, cache_from_settings
from .config import (
    AppConfig,
    NotificationSettings,
    config,
    env,
    ensure_directories,
    get_config,
    DATA_DIR,
    PROJECT_ROOT,
)
from .errors import (
    ApiError,
    AuthExpired,
    ClassroomError,
    ConfigurationError,
    Forbidden,
    InvalidResponse,
    TransientError,
    Unauthenticated,
    ValidationError,
    get_error_message,
    user_message,
)
from .logger import setup_logging
from .storage import KeyValueStore, MemoryKeyValueStore, SQLiteKeyValueStore

__all__ = [
    "AppConfig",
    "ApiError",
    "AuthExpired",
    "CacheCategory",
    "CacheEntry",
    "CacheStats",
    "ClassroomError",
    "ConfigurationError",
    "DATA_DIR",
    "Forbidden",
    "InvalidResponse",
    "KeyValueStore",
    "MemoryKeyValueStore",
    "NotificationSettings",
    "PROJECT_ROOT",
    "SQLiteKeyValueStore",
    "TTLCache",
    "TransientError",
    "Unauthenticated",
    "ValidationError",
    "cache_from_settings",
    "config",
    "ensure_directories",
    "env",
    "get_config",
    "get_error_message",
    "setup_logging",
    "user_message",
]
