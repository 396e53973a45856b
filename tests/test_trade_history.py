"""Tests for chunked trade-history fetching."""

import pytest

from backend.services.errors import AccountNotFound, ExchangeError, UnsupportedOperation
from backend.services.trade_history import TradeHistoryService, history_chunks
from backend.store import SnapshotKind
from fakes import AdapterBook, FakeAdapter, FakeRegistry, make_account

DAY_MS = 24 * 60 * 60 * 1000


def _service(stores, clock, adapter: FakeAdapter) -> TradeHistoryService:
    return TradeHistoryService(
        stores, FakeRegistry([adapter.account]), AdapterBook({adapter.account.id: adapter}), clock=clock
    )


def test_history_chunks_cover_range_without_gaps():
    chunks = history_chunks(0, 15 * DAY_MS, 7 * DAY_MS)
    assert chunks == [(0, 7 * DAY_MS), (7 * DAY_MS, 14 * DAY_MS), (14 * DAY_MS, 15 * DAY_MS)]


def test_history_chunks_empty_range():
    assert history_chunks(10, 10) == []


@pytest.mark.asyncio
async def test_fetch_defaults_to_last_seven_days(stores, clock):
    adapter = FakeAdapter(make_account("a1"), positions=[{"symbol": "BTCUSDT", "positionAmt": "1"}])

    result = await _service(stores, clock, adapter).fetch("a1")

    assert adapter.trade_calls == [(clock.now - 7 * DAY_MS, clock.now)]
    assert result["startTime"] == clock.now - 7 * DAY_MS
    assert result["endTime"] == clock.now
    assert result["symbol"] == "BTCUSDT"
    assert len(result["trades"]) == 1
    assert result["income"][0]["incomeType"] == "REALIZED_PNL"
    assert result["positions"][0]["contracts"] == 1


@pytest.mark.asyncio
async def test_long_range_is_chunked_and_stored(stores, clock):
    adapter = FakeAdapter(make_account("a1"))
    start = clock.now - 15 * DAY_MS

    result = await _service(stores, clock, adapter).fetch("a1", start_time=start, end_time=clock.now)

    assert len(adapter.trade_calls) == 3
    assert len(result["trades"]) == 3
    stored = await stores.snapshots.get_latest(SnapshotKind.TRADE_HISTORY, "a1")
    assert stored.data["startTime"] == start
    assert len(stored.data["trades"]) == 3


@pytest.mark.asyncio
async def test_failed_chunk_is_skipped(stores, clock):
    adapter = FakeAdapter(make_account("a1"))
    calls = []
    original = adapter.get_user_trades

    async def flaky(symbol, start_time=None, end_time=None, limit=1000):
        calls.append(start_time)
        if len(calls) == 2:
            raise ExchangeError("asterdex", "Too many requests", code="-1003")
        return await original(symbol, start_time, end_time, limit)

    adapter.get_user_trades = flaky
    result = await _service(stores, clock, adapter).fetch("a1", start_time=clock.now - 15 * DAY_MS, end_time=clock.now)

    assert len(calls) == 3
    assert len(result["trades"]) == 2
    assert len(result["income"]) == 2


@pytest.mark.asyncio
async def test_exchange_without_history_is_unsupported(stores, clock):
    adapter = FakeAdapter(make_account("o1", exchange="okx"))
    adapter.supports_trade_history = False

    with pytest.raises(UnsupportedOperation):
        await _service(stores, clock, adapter).fetch("o1")


@pytest.mark.asyncio
async def test_cached_history(stores, clock):
    adapter = FakeAdapter(make_account("a1"))
    service = _service(stores, clock, adapter)

    assert await service.cached("a1") is None
    await service.fetch("a1")
    cached = await service.cached("a1")
    assert cached["accountId"] == "a1"
    assert cached["timestamp"] == clock.now
    assert len(cached["trades"]) == 1

    with pytest.raises(AccountNotFound):
        await service.cached("missing")
