"""
标的解析器

将本地 InstrumentRef 解析为远端标的 (data_source, symbol)。

Endpoint: GET api/v1/symbol/lookup?query=...
"""

import logging
from typing import Dict, List, Optional
from urllib.parse import quote

from ..core.exceptions import TransientError
from ..model.asset import AssetSubClass, RemoteInstrument
from ..model.transaction import InstrumentRef, SymbolIdentifier, describe_instrument

logger = logging.getLogger(__name__)

# 标识优先级
SCHEME_PRIORITY = ("isin", "symbol", "crypto")


class SymbolResolver:
    """
    标的解析器

    结果 (含未命中) 在实例生命周期内缓存。
    """

    LOOKUP_PATH = "api/v1/symbol/lookup"

    def __init__(self, gateway):
        self.gateway = gateway
        self._cache: Dict[InstrumentRef, Optional[RemoteInstrument]] = {}

    async def resolve(self, instrument: InstrumentRef) -> Optional[RemoteInstrument]:
        """解析标的，无标的或未找到返回 None，熔断时抛出 TransientError"""
        if not instrument:
            return None

        if instrument in self._cache:
            return self._cache[instrument]

        result = None
        for identifier in self._ordered(instrument):
            result = await self._lookup(identifier)
            if result is not None:
                break

        if result is None:
            logger.warning(f"No remote instrument found for {describe_instrument(instrument)}")
        else:
            logger.debug(
                f"Resolved {describe_instrument(instrument)} -> {result.data_source}:{result.symbol}"
            )

        self._cache[instrument] = result
        return result

    def clear(self) -> None:
        self._cache.clear()

    @staticmethod
    def _ordered(instrument: InstrumentRef) -> List[SymbolIdentifier]:
        def rank(item: SymbolIdentifier):
            try:
                return (SCHEME_PRIORITY.index(item.scheme), item.identifier)
            except ValueError:
                return (len(SCHEME_PRIORITY), item.identifier)

        return sorted(instrument, key=rank)

    async def _lookup(self, identifier: SymbolIdentifier) -> Optional[RemoteInstrument]:
        path = f"{self.LOOKUP_PATH}?query={quote(identifier.identifier)}"
        payload = await self.gateway.fetch(path)

        if payload is None:
            raise TransientError(f"Symbol lookup deferred (circuit open): {identifier}")

        items = payload.get("items", []) if isinstance(payload, dict) else []
        candidates = [RemoteInstrument.from_payload(item) for item in items if isinstance(item, dict)]
        candidates = [c for c in candidates if c.symbol]

        if identifier.scheme == "crypto":
            candidates = [c for c in candidates if c.asset_sub_class == AssetSubClass.CRYPTOCURRENCY]

        return self._best_match(identifier, candidates)

    @staticmethod
    def _best_match(
        identifier: SymbolIdentifier,
        candidates: List[RemoteInstrument],
    ) -> Optional[RemoteInstrument]:
        if not candidates:
            return None

        wanted = identifier.identifier.upper()
        exact = [
            c for c in candidates
            if c.symbol.upper() in (wanted, f"{wanted}USD", f"{wanted}-USD")
        ]
        return exact[0] if exact else candidates[0]
