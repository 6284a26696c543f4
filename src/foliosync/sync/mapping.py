"""
活动映射器

职责:
1. 将 CanonicalTransaction 映射为远端活动 (ActivityDraft)
2. 将 ActivityDraft 转换为远端 order 请求格式
3. 解析远端 order 响应为 RemoteActivity

类型映射:
    BUY      <- buy, receive, staking_reward, gift (有标的)
    SELL     <- sell, send
    DIVIDEND <- dividend
    INTEREST <- interest, gift (无标的)
    FEE      <- fee, tax
    cash_deposit / cash_withdrawal / currency_convert 无对应远端活动
"""

from decimal import Decimal
from typing import Any, Dict, Optional

from ..core.exceptions import UnsupportedTransactionError, ValidationError
from ..core.time import format_timestamp, parse_timestamp
from ..model.activity import ActivityDraft, LedgerActivityType, RemoteActivity
from ..model.asset import MANUAL_DATA_SOURCE, RemoteInstrument
from ..model.transaction import CanonicalTransaction, TransactionKind, to_decimal

ZERO = Decimal("0")
ONE = Decimal("1")

KIND_TO_ACTIVITY = {
    TransactionKind.BUY: LedgerActivityType.BUY,
    TransactionKind.RECEIVE: LedgerActivityType.BUY,
    TransactionKind.STAKING_REWARD: LedgerActivityType.BUY,
    TransactionKind.SELL: LedgerActivityType.SELL,
    TransactionKind.SEND: LedgerActivityType.SELL,
    TransactionKind.DIVIDEND: LedgerActivityType.DIVIDEND,
    TransactionKind.INTEREST: LedgerActivityType.INTEREST,
    TransactionKind.FEE: LedgerActivityType.FEE,
    TransactionKind.TAX: LedgerActivityType.FEE,
}

# 必须关联标的的远端类型
INSTRUMENT_SCOPED = frozenset({
    LedgerActivityType.BUY,
    LedgerActivityType.SELL,
    LedgerActivityType.DIVIDEND,
})


class ActivityMapper:
    """规范化交易 <-> 远端活动"""

    def activity_type(self, tx: CanonicalTransaction) -> LedgerActivityType:
        """获取交易对应的远端类型，无法映射时抛出 UnsupportedTransactionError"""
        if tx.kind == TransactionKind.GIFT:
            activity_type = LedgerActivityType.BUY if tx.has_instrument else LedgerActivityType.INTEREST
        else:
            activity_type = KIND_TO_ACTIVITY.get(tx.kind)

        if activity_type is None:
            raise UnsupportedTransactionError(
                f"No ledger activity for kind {tx.kind.value} ({tx.source_key})",
                source_key=tx.source_key,
                kind=tx.kind.value,
            )

        if activity_type in INSTRUMENT_SCOPED and not tx.has_instrument:
            raise UnsupportedTransactionError(
                f"{tx.kind.value} without instrument ({tx.source_key})",
                source_key=tx.source_key,
                kind=tx.kind.value,
            )

        return activity_type

    def to_draft(
        self,
        tx: CanonicalTransaction,
        instrument: Optional[RemoteInstrument] = None,
    ) -> ActivityDraft:
        """投影为远端活动"""
        activity_type = self.activity_type(tx)

        if activity_type in INSTRUMENT_SCOPED and instrument is None:
            raise UnsupportedTransactionError(
                f"Instrument not resolved for {tx.source_key}",
                source_key=tx.source_key,
                kind=tx.kind.value,
            )

        quantity, unit_price, fee = self._amounts(tx, activity_type)

        return ActivityDraft(
            source_key=tx.source_key,
            account_id=tx.account_id,
            activity_type=activity_type,
            timestamp=tx.timestamp,
            currency=tx.currency,
            instrument=instrument if tx.has_instrument else None,
            quantity=quantity,
            unit_price=unit_price,
            fee=fee,
            transaction=tx,
        )

    def _amounts(self, tx: CanonicalTransaction, activity_type: LedgerActivityType):
        """(quantity, unit_price, fee)，金额一律取绝对值"""
        quantity = abs(tx.quantity) if tx.quantity is not None else None
        unit_price = abs(tx.unit_price) if tx.unit_price is not None else None
        total = abs(tx.total_amount) if tx.total_amount is not None else None

        if activity_type in (LedgerActivityType.BUY, LedgerActivityType.SELL):
            if quantity is None:
                raise UnsupportedTransactionError(
                    f"{tx.kind.value} without quantity ({tx.source_key})",
                    source_key=tx.source_key,
                    kind=tx.kind.value,
                )
            if unit_price is None:
                if tx.kind in (TransactionKind.BUY, TransactionKind.SELL) and total is None:
                    raise UnsupportedTransactionError(
                        f"{tx.kind.value} without price ({tx.source_key})",
                        source_key=tx.source_key,
                        kind=tx.kind.value,
                    )
                unit_price = total / quantity if total is not None and quantity else ZERO
            return quantity, unit_price, ZERO

        if activity_type == LedgerActivityType.FEE:
            if total is None:
                raise UnsupportedTransactionError(
                    f"{tx.kind.value} without amount ({tx.source_key})",
                    source_key=tx.source_key,
                    kind=tx.kind.value,
                )
            return ONE, ZERO, total

        # DIVIDEND / INTEREST
        if total is None and quantity is not None and unit_price is not None:
            total = quantity * unit_price
        if total is None:
            raise UnsupportedTransactionError(
                f"{tx.kind.value} without amount ({tx.source_key})",
                source_key=tx.source_key,
                kind=tx.kind.value,
            )
        return ONE, total, ZERO

    def to_payload(self, draft: ActivityDraft) -> Dict[str, Any]:
        """
        转换为远端 order 请求体

        Endpoint: POST api/v1/order / PUT api/v1/order/{id}
        """
        if draft.instrument is not None:
            data_source = draft.instrument.data_source
            symbol = draft.instrument.symbol
        else:
            # 纯现金流水挂在以币种命名的 MANUAL 标的上
            data_source = MANUAL_DATA_SOURCE
            symbol = draft.currency

        return {
            "accountId": draft.account_id,
            "comment": draft.source_key,
            "currency": draft.currency,
            "dataSource": data_source,
            "date": format_timestamp(draft.timestamp),
            "fee": draft.fee,
            "quantity": draft.quantity,
            "symbol": symbol,
            "type": draft.activity_type.value,
            "unitPrice": draft.unit_price,
        }

    def from_payload(self, data: Dict[str, Any]) -> RemoteActivity:
        """解析远端 order 记录"""
        profile = data.get("SymbolProfile") or {}

        try:
            activity_type = LedgerActivityType(str(data.get("type", "")).upper())
        except ValueError:
            raise ValidationError(f"Unknown activity type: {data.get('type')!r}", field="type")

        if not data.get("id"):
            raise ValidationError("Remote activity without id", field="id")

        try:
            timestamp = parse_timestamp(data["date"])
        except (KeyError, TypeError, ValueError):
            raise ValidationError(f"Invalid activity date: {data.get('date')!r}", field="date")

        currency = str(data.get("currency") or profile.get("currency") or "").upper()

        instrument = None
        if profile.get("symbol"):
            instrument = RemoteInstrument.from_payload(profile)
            if instrument.data_source == MANUAL_DATA_SOURCE and instrument.symbol.upper() == currency:
                instrument = None

        comment = str(data.get("comment") or "").strip()

        return RemoteActivity(
            remote_id=str(data["id"]),
            account_id=str(data.get("accountId") or ""),
            activity_type=activity_type,
            timestamp=timestamp,
            currency=currency,
            instrument=instrument,
            quantity=to_decimal(data.get("quantity"), "quantity") or ZERO,
            unit_price=to_decimal(data.get("unitPrice"), "unitPrice") or ZERO,
            fee=to_decimal(data.get("fee"), "fee") or ZERO,
            source_key=comment or None,
        )
