"""
测试标的解析
"""

from unittest.mock import AsyncMock

import pytest

from foliosync.core.exceptions import TransientError
from foliosync.model import instrument_ref
from foliosync.sync.symbols import SymbolResolver


def lookup_gateway(results):
    """按 query 返回候选列表的伪造网关"""
    gateway = AsyncMock()

    async def fetch(path):
        query = path.split("query=", 1)[1]
        return {"items": results.get(query, [])}

    gateway.fetch.side_effect = fetch
    return gateway


def item(symbol, data_source="YAHOO", sub_class="STOCK"):
    return {"symbol": symbol, "dataSource": data_source, "assetSubClass": sub_class, "currency": "USD"}


@pytest.mark.asyncio
async def test_isin_preferred_over_symbol():
    gateway = lookup_gateway({
        "US0378331005": [item("AAPL")],
        "AAPL": [item("AAPL.DE")],
    })
    resolver = SymbolResolver(gateway)

    result = await resolver.resolve(instrument_ref("symbol:AAPL", "isin:US0378331005"))

    assert result.identity == ("YAHOO", "AAPL")
    assert gateway.fetch.await_count == 1


@pytest.mark.asyncio
async def test_falls_back_to_next_identifier():
    gateway = lookup_gateway({"AAPL": [item("AAPL")]})
    resolver = SymbolResolver(gateway)

    result = await resolver.resolve(instrument_ref("symbol:AAPL", "isin:US0378331005"))

    assert result.symbol == "AAPL"
    assert gateway.fetch.await_count == 2


@pytest.mark.asyncio
async def test_exact_symbol_match_wins():
    gateway = lookup_gateway({"BTC": [item("BTCB-USD", sub_class="CRYPTOCURRENCY"),
                                      item("BTCUSD", "COINGECKO", "CRYPTOCURRENCY")]})
    resolver = SymbolResolver(gateway)

    result = await resolver.resolve(instrument_ref("crypto:BTC"))

    assert result.identity == ("COINGECKO", "BTCUSD")


@pytest.mark.asyncio
async def test_crypto_scheme_filters_non_crypto():
    gateway = lookup_gateway({"ETH": [item("ETH"), item("ETH-USD", sub_class="CRYPTOCURRENCY")]})
    resolver = SymbolResolver(gateway)

    result = await resolver.resolve(instrument_ref("crypto:ETH"))

    assert result.symbol == "ETH-USD"


@pytest.mark.asyncio
async def test_results_are_cached_including_misses():
    gateway = lookup_gateway({"AAPL": [item("AAPL")]})
    resolver = SymbolResolver(gateway)
    hit = instrument_ref("symbol:AAPL")
    miss = instrument_ref("symbol:NOPE")

    await resolver.resolve(hit)
    await resolver.resolve(hit)
    assert await resolver.resolve(miss) is None
    assert await resolver.resolve(miss) is None

    assert gateway.fetch.await_count == 2

    resolver.clear()
    await resolver.resolve(hit)
    assert gateway.fetch.await_count == 3


@pytest.mark.asyncio
async def test_empty_instrument():
    gateway = AsyncMock()
    assert await SymbolResolver(gateway).resolve(frozenset()) is None
    gateway.fetch.assert_not_awaited()


@pytest.mark.asyncio
async def test_circuit_open_raises_transient():
    gateway = AsyncMock()
    gateway.fetch.return_value = None
    resolver = SymbolResolver(gateway)
    ref = instrument_ref("isin:US0378331005")

    with pytest.raises(TransientError):
        await resolver.resolve(ref)

    # 熔断不缓存
    gateway.fetch.return_value = {"items": [item("AAPL")]}
    assert (await resolver.resolve(ref)).symbol == "AAPL"
