"""Canonical and remote data model."""

from .transaction import (
    TransactionKind,
    SymbolIdentifier,
    InstrumentRef,
    NO_INSTRUMENT,
    CanonicalTransaction,
    instrument_ref,
    make_source_key,
)
from .asset import (
    AssetClass,
    AssetSubClass,
    RemoteInstrument,
    MANUAL_DATA_SOURCE,
    parse_asset_class,
    parse_asset_sub_class,
)
from .activity import LedgerActivityType, ActivityDraft, RemoteActivity

__all__ = [
    "TransactionKind",
    "SymbolIdentifier",
    "InstrumentRef",
    "NO_INSTRUMENT",
    "CanonicalTransaction",
    "instrument_ref",
    "make_source_key",
    "AssetClass",
    "AssetSubClass",
    "RemoteInstrument",
    "MANUAL_DATA_SOURCE",
    "parse_asset_class",
    "parse_asset_sub_class",
    "LedgerActivityType",
    "ActivityDraft",
    "RemoteActivity",
]
