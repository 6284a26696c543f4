"""Core configuration and exceptions."""

from .config import Config, LedgerConfig, AccountConfig, SyncConfig, MetricsConfig, load_config
from .exceptions import (
    FolioSyncError,
    AuthorizationError,
    RequestError,
    TransientError,
    UnsupportedTransactionError,
    ValidationError,
)

__all__ = [
    "Config",
    "LedgerConfig",
    "AccountConfig",
    "SyncConfig",
    "MetricsConfig",
    "load_config",
    "FolioSyncError",
    "AuthorizationError",
    "RequestError",
    "TransientError",
    "UnsupportedTransactionError",
    "ValidationError",
]
