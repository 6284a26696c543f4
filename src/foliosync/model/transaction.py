"""
规范化交易模型

所有券商解析器输出的统一交易记录 (CanonicalTransaction)。

核心字段说明:
- source_key: 幂等键，同一原始行重复解析结果不变，
  任一语义字段 (金额、日期、币种、标的、类型) 变化时随之改变
- instrument: 标的标识集合，纯现金流水为空集
"""

from dataclasses import dataclass, replace
from datetime import datetime
from decimal import Decimal, InvalidOperation
from enum import Enum
from typing import Any, Dict, FrozenSet, Iterable, Optional

from ..core.exceptions import ValidationError
from ..core.time import format_timestamp, parse_timestamp, to_utc_seconds


class TransactionKind(Enum):
    """交易类型"""
    BUY = "buy"
    SELL = "sell"
    DIVIDEND = "dividend"
    INTEREST = "interest"
    FEE = "fee"
    TAX = "tax"
    CASH_DEPOSIT = "cash_deposit"
    CASH_WITHDRAWAL = "cash_withdrawal"
    SEND = "send"
    RECEIVE = "receive"
    STAKING_REWARD = "staking_reward"
    GIFT = "gift"
    CURRENCY_CONVERT = "currency_convert"


@dataclass(frozen=True)
class SymbolIdentifier:
    """标的标识 (scheme, identifier)，例如 ("isin", "US0378331005")"""
    scheme: str
    identifier: str

    def __post_init__(self):
        object.__setattr__(self, "scheme", self.scheme.strip().lower())
        object.__setattr__(self, "identifier", self.identifier.strip())

    def __str__(self) -> str:
        return f"{self.scheme}:{self.identifier}"


InstrumentRef = FrozenSet[SymbolIdentifier]

NO_INSTRUMENT: InstrumentRef = frozenset()


def instrument_ref(*identifiers: Any) -> InstrumentRef:
    """
    构造 InstrumentRef

    支持 SymbolIdentifier、(scheme, identifier) 元组或 "scheme:identifier" 字符串。
    """
    result = set()
    for item in identifiers:
        if isinstance(item, SymbolIdentifier):
            result.add(item)
        elif isinstance(item, str):
            scheme, sep, ident = item.partition(":")
            if not sep or not ident:
                raise ValidationError(f"Invalid instrument identifier: {item!r}", field="instrument")
            result.add(SymbolIdentifier(scheme, ident))
        else:
            scheme, ident = item
            result.add(SymbolIdentifier(scheme, ident))
    return frozenset(result)


def describe_instrument(instrument: InstrumentRef) -> str:
    """稳定的标的描述 (排序后以 | 连接)"""
    return "|".join(sorted(str(s) for s in instrument))


def to_decimal(value: Any, field_name: str = "") -> Optional[Decimal]:
    """转换为 Decimal，None/空字符串返回 None"""
    if value is None or value == "":
        return None
    if isinstance(value, Decimal):
        return value
    try:
        return Decimal(str(value))
    except InvalidOperation:
        raise ValidationError(f"Invalid decimal value for {field_name}: {value!r}", field=field_name)


def format_decimal(value: Optional[Decimal]) -> str:
    """规范化的十进制字符串，例如 Decimal("100.50") -> "100.5" """
    if value is None:
        return ""
    normalized = value.normalize()
    return format(normalized, "f")


@dataclass(frozen=True)
class CanonicalTransaction:
    """
    规范化交易记录 (一次同步过程内有效，创建后不可变)

    timestamp 统一为 UTC、秒级精度。
    """
    kind: TransactionKind
    timestamp: datetime
    currency: str
    source_key: str
    account_id: str
    instrument: InstrumentRef = NO_INSTRUMENT
    quantity: Optional[Decimal] = None
    unit_price: Optional[Decimal] = None
    total_amount: Optional[Decimal] = None
    description: str = ""

    def __post_init__(self):
        if not self.source_key:
            raise ValidationError("source_key must not be empty", field="source_key")
        if not self.account_id:
            raise ValidationError("account_id must not be empty", field="account_id")
        if not isinstance(self.kind, TransactionKind):
            object.__setattr__(self, "kind", TransactionKind(self.kind))

        object.__setattr__(self, "timestamp", to_utc_seconds(self.timestamp))
        object.__setattr__(self, "currency", self.currency.strip().upper())
        object.__setattr__(self, "instrument", frozenset(self.instrument))

    @property
    def has_instrument(self) -> bool:
        return bool(self.instrument)

    def with_timestamp(self, timestamp: datetime) -> "CanonicalTransaction":
        """返回替换时间戳后的副本"""
        return replace(self, timestamp=timestamp)

    def to_dict(self) -> Dict[str, Any]:
        """转换为字典 (JSON lines 格式)"""
        data: Dict[str, Any] = {
            "kind": self.kind.value,
            "timestamp": format_timestamp(self.timestamp),
            "currency": self.currency,
            "source_key": self.source_key,
            "account_id": self.account_id,
            "instrument": sorted(str(s) for s in self.instrument),
        }
        for name in ("quantity", "unit_price", "total_amount"):
            value = getattr(self, name)
            if value is not None:
                data[name] = format_decimal(value)
        if self.description:
            data["description"] = self.description
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any], account_id: str = "") -> "CanonicalTransaction":
        """从字典创建 (缺少 account_id 时使用传入的默认账户)"""
        try:
            kind = TransactionKind(data["kind"])
        except KeyError:
            raise ValidationError("Missing field: kind", field="kind")
        except ValueError:
            raise ValidationError(f"Unknown transaction kind: {data['kind']!r}", field="kind")

        for required in ("timestamp", "currency", "source_key"):
            if not data.get(required):
                raise ValidationError(f"Missing field: {required}", field=required)

        try:
            timestamp = parse_timestamp(data["timestamp"])
        except (TypeError, ValueError):
            raise ValidationError(f"Invalid timestamp: {data['timestamp']!r}", field="timestamp")

        return cls(
            kind=kind,
            timestamp=timestamp,
            currency=str(data["currency"]),
            source_key=str(data["source_key"]),
            account_id=str(data.get("account_id") or account_id),
            instrument=instrument_ref(*(data.get("instrument") or [])),
            quantity=to_decimal(data.get("quantity"), "quantity"),
            unit_price=to_decimal(data.get("unit_price"), "unit_price"),
            total_amount=to_decimal(data.get("total_amount"), "total_amount"),
            description=str(data.get("description") or ""),
        )


def make_source_key(
    kind: TransactionKind,
    timestamp: datetime,
    currency: str,
    total_amount: Optional[Decimal],
    instrument: Iterable[SymbolIdentifier] = NO_INSTRUMENT,
    native_id: Optional[str] = None,
) -> str:
    """
    生成幂等键

    - 券商提供原生交易 ID: "{kind}_{native_id}"
    - 否则使用组合键: "{kind}_{instrument}_{date}_{amount}_{currency}"

    类型前缀保证同一原始行拆出的手续费/税费与主交易的键不同。
    """
    if native_id and native_id.strip():
        return f"{kind.value}_{native_id.strip()}"

    identifier = describe_instrument(frozenset(instrument))
    date = to_utc_seconds(timestamp).date().isoformat()
    amount = format_decimal(total_amount)
    return f"{kind.value}_{identifier}_{date}_{amount}_{currency.strip().upper()}"
