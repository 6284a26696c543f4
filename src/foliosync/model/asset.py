"""
远端标的 (SymbolProfile) 模型
"""

from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, Optional, Tuple

from ..core.exceptions import ValidationError


class AssetClass(Enum):
    CASH = "CASH"
    COMMODITY = "COMMODITY"
    EQUITY = "EQUITY"
    FIXED_INCOME = "FIXED_INCOME"
    REAL_ESTATE = "REAL_ESTATE"
    UNDEFINED = "UNDEFINED"


class AssetSubClass(Enum):
    CRYPTOCURRENCY = "CRYPTOCURRENCY"
    ETF = "ETF"
    STOCK = "STOCK"
    MUTUALFUND = "MUTUALFUND"
    BOND = "BOND"
    COMMODITY = "COMMODITY"
    PRECIOUS_METAL = "PRECIOUS_METAL"
    PRIVATE_EQUITY = "PRIVATE_EQUITY"


def parse_asset_class(value: Optional[str]) -> AssetClass:
    """None/空字符串 -> AssetClass.UNDEFINED"""
    if not value:
        return AssetClass.UNDEFINED
    try:
        return AssetClass(value.strip().upper())
    except ValueError:
        raise ValidationError(f"Unknown asset class: {value!r}", field="assetClass")


def parse_asset_sub_class(value: Optional[str]) -> Optional[AssetSubClass]:
    """None/空字符串 -> None"""
    if not value:
        return None
    try:
        return AssetSubClass(value.strip().upper())
    except ValueError:
        raise ValidationError(f"Unknown asset sub class: {value!r}", field="assetSubClass")


# 纯现金流水使用的数据源
MANUAL_DATA_SOURCE = "MANUAL"


@dataclass(frozen=True)
class RemoteInstrument:
    """
    远端标的

    身份由 (data_source, symbol) 决定，其余字段仅作描述。
    """
    data_source: str
    symbol: str
    currency: str = ""
    asset_class: AssetClass = AssetClass.UNDEFINED
    asset_sub_class: Optional[AssetSubClass] = None
    name: str = ""

    @property
    def identity(self) -> Tuple[str, str]:
        return (self.data_source, self.symbol)

    @classmethod
    def from_payload(cls, data: Dict[str, Any]) -> "RemoteInstrument":
        """
        从 symbol lookup 结果或 SymbolProfile 创建

        远端新增的资产分类不影响标的身份，无法识别时按未分类处理。
        """
        try:
            asset_class = parse_asset_class(data.get("assetClass"))
        except ValidationError:
            asset_class = AssetClass.UNDEFINED
        try:
            asset_sub_class = parse_asset_sub_class(data.get("assetSubClass"))
        except ValidationError:
            asset_sub_class = None

        return cls(
            data_source=str(data.get("dataSource") or ""),
            symbol=str(data.get("symbol") or ""),
            currency=str(data.get("currency") or ""),
            asset_class=asset_class,
            asset_sub_class=asset_sub_class,
            name=str(data.get("name") or ""),
        )
