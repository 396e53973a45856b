"""Tests for snapshot persistence: latest pointer, range queries and retention."""

import pytest

from backend.schemas.normalized import Position
from backend.schemas.snapshot import PositionsPayload
from backend.store import SnapshotKind
from backend.utils.constants import DAY_SECONDS

DAY_MS = DAY_SECONDS * 1000


def _payload(contracts: float = 1.327) -> PositionsPayload:
    return PositionsPayload(
        exchange="asterdex",
        symbol="BTCUSDT",
        positions=[Position(side="LONG", contracts=contracts, instrument_id="BTCUSDT", avg_price=50000)],
    )


# ---------------------------------------------------------------------------
# 1. Latest pointer
# ---------------------------------------------------------------------------

@pytest.mark.asyncio
async def test_store_then_latest_returns_same_payload(stores, clock):
    assert await stores.snapshots.store_snapshot(SnapshotKind.POSITIONS, "a1", _payload())

    latest = await stores.snapshots.get_latest(SnapshotKind.POSITIONS, "a1")
    assert latest.timestamp == clock.now
    assert latest.data["positions"][0]["side"] == "LONG"
    assert latest.data["positions"][0]["contracts"] == 1.327
    assert latest.data["positions"][0]["instrumentId"] == "BTCUSDT"


@pytest.mark.asyncio
async def test_latest_pointer_follows_most_recent_write(stores, clock):
    await stores.snapshots.store_snapshot(SnapshotKind.POSITIONS, "a1", _payload(1))
    clock.advance(5_000)
    await stores.snapshots.store_snapshot(SnapshotKind.POSITIONS, "a1", _payload(2))

    latest = await stores.snapshots.get_latest(SnapshotKind.POSITIONS, "a1")
    assert latest.timestamp == clock.now
    assert latest.data["positions"][0]["contracts"] == 2


@pytest.mark.asyncio
async def test_latest_for_unknown_account_is_none(stores):
    assert await stores.snapshots.get_latest(SnapshotKind.ORDERS, "nobody") is None


@pytest.mark.asyncio
async def test_kinds_are_kept_apart(stores):
    await stores.snapshots.store_snapshot(SnapshotKind.POSITIONS, "a1", {"positions": []})
    assert await stores.snapshots.get_latest(SnapshotKind.ORDERS, "a1") is None


# ---------------------------------------------------------------------------
# 2. History ranges
# ---------------------------------------------------------------------------

@pytest.mark.asyncio
async def test_history_bounds_are_inclusive_and_sorted(stores, clock):
    start = clock.now
    for i in range(3):
        await stores.snapshots.store_snapshot(SnapshotKind.ORDERS, "a1", {"n": i})
        clock.advance(1_000)

    history = await stores.snapshots.get_history(SnapshotKind.ORDERS, "a1", start, start + 1_000)
    assert [s.timestamp for s in history] == [start, start + 1_000]
    assert [s.data["n"] for s in history] == [0, 1]


@pytest.mark.asyncio
async def test_history_does_not_include_latest_pointer(stores, clock):
    await stores.snapshots.store_snapshot(SnapshotKind.ORDERS, "a1", {"n": 0})

    history = await stores.snapshots.get_history(SnapshotKind.ORDERS, "a1", 0, clock.now + DAY_MS)
    assert len(history) == 1


@pytest.mark.asyncio
async def test_history_outside_range_is_empty(stores, clock):
    await stores.snapshots.store_snapshot(SnapshotKind.ORDERS, "a1", {"n": 0})
    assert await stores.snapshots.get_history(SnapshotKind.ORDERS, "a1", clock.now + 1, clock.now + 10) == []


@pytest.mark.asyncio
async def test_history_skips_corrupt_entries(stores, kv, clock):
    await stores.snapshots.store_snapshot(SnapshotKind.ORDERS, "a1", {"n": 0})
    kv.values[f"test:orders:a1:{clock.now + 1}"] = ("not json", None)

    history = await stores.snapshots.get_history(SnapshotKind.ORDERS, "a1", 0, clock.now + 10)
    assert [s.data for s in history] == [{"n": 0}]


# ---------------------------------------------------------------------------
# 3. Retention
# ---------------------------------------------------------------------------

@pytest.mark.asyncio
async def test_positions_expire_after_thirty_days_but_trade_history_does_not(stores, clock):
    start = clock.now
    await stores.snapshots.store_snapshot(SnapshotKind.POSITIONS, "a1", _payload())
    await stores.snapshots.store_snapshot(SnapshotKind.TRADE_HISTORY, "a1", {"trades": []})

    clock.advance(31 * DAY_MS)

    assert await stores.snapshots.get_latest(SnapshotKind.POSITIONS, "a1") is None
    assert await stores.snapshots.get_history(SnapshotKind.POSITIONS, "a1", start, clock.now) == []
    kept = await stores.snapshots.get_latest(SnapshotKind.TRADE_HISTORY, "a1")
    assert kept is not None
    assert kept.timestamp == start
    history = await stores.snapshots.get_history(
        SnapshotKind.TRADE_HISTORY, "a1", clock.now - 35 * DAY_MS, clock.now
    )
    assert [s.timestamp for s in history] == [start]


@pytest.mark.asyncio
async def test_snapshot_still_present_before_expiry(stores, clock):
    await stores.snapshots.store_snapshot(SnapshotKind.POSITIONS, "a1", _payload())
    clock.advance(29 * DAY_MS)
    assert await stores.snapshots.get_latest(SnapshotKind.POSITIONS, "a1") is not None


# ---------------------------------------------------------------------------
# 4. Store failures
# ---------------------------------------------------------------------------

@pytest.mark.asyncio
async def test_store_failure_returns_false(stores, kv):
    kv.fail = True
    assert await stores.snapshots.store_snapshot(SnapshotKind.POSITIONS, "a1", _payload()) is False


@pytest.mark.asyncio
async def test_reads_degrade_to_empty_when_store_is_down(stores, kv):
    kv.fail = True
    assert await stores.snapshots.get_latest(SnapshotKind.POSITIONS, "a1") is None
    assert await stores.snapshots.get_history(SnapshotKind.POSITIONS, "a1", 0, 1) == []


@pytest.mark.asyncio
async def test_unserializable_payload_returns_false(stores):
    assert await stores.snapshots.store_snapshot(SnapshotKind.POSITIONS, "a1", {"raw": {1, 2}}) is False
    assert await stores.snapshots.get_latest(SnapshotKind.POSITIONS, "a1") is None
