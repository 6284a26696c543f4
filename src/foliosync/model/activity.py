"""
远端账本活动模型

- ActivityDraft: 本地交易投影到远端表示后的结果 (待创建/更新)
- RemoteActivity: 远端已存在的活动 (只读快照)

两者共享同一组语义字段，对比时使用 semantic_fields()。
"""

from dataclasses import dataclass, replace
from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Optional, Tuple

from .asset import RemoteInstrument
from .transaction import CanonicalTransaction

# 远端以浮点数存储金额，对比前统一到该精度
COMPARE_PRECISION = Decimal("0.00000001")


class LedgerActivityType(Enum):
    """远端活动类型"""
    BUY = "BUY"
    SELL = "SELL"
    DIVIDEND = "DIVIDEND"
    INTEREST = "INTEREST"
    FEE = "FEE"


def _decimal_key(value: Optional[Decimal]) -> Optional[Decimal]:
    if value is None:
        return None
    return value.quantize(COMPARE_PRECISION).normalize()


def _instrument_key(instrument: Optional[RemoteInstrument]) -> Optional[Tuple[str, str]]:
    return instrument.identity if instrument else None


@dataclass(frozen=True)
class ActivityDraft:
    """本地交易的远端投影"""
    source_key: str
    account_id: str
    activity_type: LedgerActivityType
    timestamp: datetime
    currency: str
    instrument: Optional[RemoteInstrument]
    quantity: Decimal
    unit_price: Decimal
    fee: Decimal
    transaction: Optional[CanonicalTransaction] = None

    def semantic_fields(self) -> Tuple:
        return (
            self.activity_type,
            self.timestamp,
            self.currency,
            _instrument_key(self.instrument),
            _decimal_key(self.quantity),
            _decimal_key(self.unit_price),
            _decimal_key(self.fee),
        )

    def with_timestamp(self, timestamp: datetime) -> "ActivityDraft":
        """返回替换时间戳后的副本 (关联的本地交易同步更新)"""
        transaction = self.transaction.with_timestamp(timestamp) if self.transaction else None
        return replace(self, timestamp=timestamp, transaction=transaction)


@dataclass(frozen=True)
class RemoteActivity:
    """远端已存储的活动"""
    remote_id: str
    account_id: str
    activity_type: LedgerActivityType
    timestamp: datetime
    currency: str
    instrument: Optional[RemoteInstrument]
    quantity: Decimal
    unit_price: Decimal
    fee: Decimal
    source_key: Optional[str] = None

    def semantic_fields(self) -> Tuple:
        return (
            self.activity_type,
            self.timestamp,
            self.currency,
            _instrument_key(self.instrument),
            _decimal_key(self.quantity),
            _decimal_key(self.unit_price),
            _decimal_key(self.fee),
        )
