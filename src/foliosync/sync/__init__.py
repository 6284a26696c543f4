"""Synchronization engine module."""

from .collision import resolve_collisions, resolve_sequence
from .mapping import ActivityMapper
from .symbols import SymbolResolver
from .reconciler import (
    LedgerReconciler,
    SyncPlan,
    SyncOperation,
    SyncReport,
    OperationType,
    OperationResult,
    Outcome,
    TransactionFailure,
    compute_plan,
)
from .sources import TransactionSource, JsonlTransactionSource
from .service import SyncService

__all__ = [
    "resolve_collisions",
    "resolve_sequence",
    "ActivityMapper",
    "SymbolResolver",
    "LedgerReconciler",
    "SyncPlan",
    "SyncOperation",
    "SyncReport",
    "OperationType",
    "OperationResult",
    "Outcome",
    "TransactionFailure",
    "compute_plan",
    "TransactionSource",
    "JsonlTransactionSource",
    "SyncService",
]
