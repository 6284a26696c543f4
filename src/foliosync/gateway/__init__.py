"""Remote ledger gateway module."""

from .client import LedgerGateway, AuthToken
from .policies import (
    LedgerResponse,
    RetryPolicy,
    CircuitBreaker,
    CircuitState,
    is_retryable,
)

__all__ = [
    "LedgerGateway",
    "AuthToken",
    "LedgerResponse",
    "RetryPolicy",
    "CircuitBreaker",
    "CircuitState",
    "is_retryable",
]
