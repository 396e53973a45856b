"""Tests for the grid-level overlay store."""

import pytest

from backend.schemas.normalized import GridLevel
from backend.store.grid_levels import level_field, normalize_side


def _level(price: float, size: float = 0.01) -> GridLevel:
    return GridLevel(price=price, size=size, value=price * size)


# ---------------------------------------------------------------------------
# 1. Helpers
# ---------------------------------------------------------------------------

def test_normalize_side_accepts_any_case():
    assert normalize_side("BUY") == "buy"
    assert normalize_side(" sell ") == "sell"


def test_normalize_side_rejects_unknown():
    with pytest.raises(ValueError):
        normalize_side("long")


def test_level_field_rejects_negative_index():
    assert level_field(3) == "level_3"
    with pytest.raises(ValueError):
        level_field(-1)


# ---------------------------------------------------------------------------
# 2. Read/write
# ---------------------------------------------------------------------------

@pytest.mark.asyncio
async def test_levels_come_back_sorted_by_index(stores):
    grid = stores.grid_levels
    for index, price in [(2, 48000), (0, 50000), (1, 49000)]:
        assert await grid.set_level("a1", "BTCUSDT", "buy", index, _level(price))

    levels = await grid.get_levels("a1", "BTCUSDT", "buy")
    assert [lvl.level_index for lvl in levels] == [0, 1, 2]
    assert [lvl.price for lvl in levels] == [50000, 49000, 48000]


@pytest.mark.asyncio
async def test_set_level_stamps_updated_at(stores, clock):
    await stores.grid_levels.set_level("a1", "BTCUSDT", "sell", 0, _level(51000))
    (level,) = await stores.grid_levels.get_levels("a1", "BTCUSDT", "sell")
    assert level.updated_at == clock.now


@pytest.mark.asyncio
async def test_rewriting_an_index_overwrites_it(stores):
    grid = stores.grid_levels
    await grid.set_level("a1", "BTCUSDT", "buy", 0, _level(50000))
    await grid.set_level("a1", "BTCUSDT", "buy", 0, _level(49500))

    levels = await grid.get_levels("a1", "BTCUSDT", "buy")
    assert len(levels) == 1
    assert levels[0].price == 49500


@pytest.mark.asyncio
async def test_key_uses_exchange_from_symbol_and_upper_side(stores, kv):
    await stores.grid_levels.set_level("a1", "BTC-USDT-SWAP", "buy", 0, _level(50000))
    await stores.grid_levels.set_level("a2", "ETHUSDT", "sell", 0, _level(3000))

    assert "test:grid:okx:a1:BTC-USDT-SWAP:BUY" in kv.hashes
    assert "test:grid:asterdex:a2:ETHUSDT:SELL" in kv.hashes


@pytest.mark.asyncio
async def test_corrupt_level_is_skipped(stores, kv):
    await stores.grid_levels.set_level("a1", "BTCUSDT", "buy", 0, _level(50000))
    kv.hashes["test:grid:asterdex:a1:BTCUSDT:BUY"]["level_1"] = "{broken"

    levels = await stores.grid_levels.get_levels("a1", "BTCUSDT", "buy")
    assert [lvl.level_index for lvl in levels] == [0]


@pytest.mark.asyncio
async def test_both_sides_are_independent(stores):
    grid = stores.grid_levels
    await grid.set_level("a1", "BTCUSDT", "buy", 0, _level(49000))
    await grid.set_level("a1", "BTCUSDT", "sell", 0, _level(51000))

    both = await grid.get_both_sides("a1", "BTCUSDT")
    assert [lvl.price for lvl in both["buy"]] == [49000]
    assert [lvl.price for lvl in both["sell"]] == [51000]


# ---------------------------------------------------------------------------
# 3. Deletion
# ---------------------------------------------------------------------------

@pytest.mark.asyncio
async def test_delete_level_removes_only_that_index(stores):
    grid = stores.grid_levels
    await grid.set_level("a1", "BTCUSDT", "buy", 0, _level(50000))
    await grid.set_level("a1", "BTCUSDT", "buy", 1, _level(49000))

    assert await grid.delete_level("a1", "BTCUSDT", "buy", 0) is True
    assert await grid.delete_level("a1", "BTCUSDT", "buy", 0) is False
    assert [lvl.level_index for lvl in await grid.get_levels("a1", "BTCUSDT", "buy")] == [1]


@pytest.mark.asyncio
async def test_clear_one_side_keeps_the_other(stores):
    grid = stores.grid_levels
    await grid.set_level("a1", "BTCUSDT", "buy", 0, _level(49000))
    await grid.set_level("a1", "BTCUSDT", "sell", 0, _level(51000))

    assert await grid.clear_all("a1", "BTCUSDT", "buy") == 1
    both = await grid.get_both_sides("a1", "BTCUSDT")
    assert both["buy"] == []
    assert len(both["sell"]) == 1


@pytest.mark.asyncio
async def test_clear_both_sides(stores):
    grid = stores.grid_levels
    await grid.set_level("a1", "BTCUSDT", "buy", 0, _level(49000))
    await grid.set_level("a1", "BTCUSDT", "sell", 0, _level(51000))

    assert await grid.clear_all("a1", "BTCUSDT") == 2
    assert await grid.get_both_sides("a1", "BTCUSDT") == {"buy": [], "sell": []}


# ---------------------------------------------------------------------------
# 4. Batch reads
# ---------------------------------------------------------------------------

@pytest.mark.asyncio
async def test_batch_read_covers_every_pair(stores):
    grid = stores.grid_levels
    await grid.set_level("a1", "BTCUSDT", "buy", 0, _level(49000))
    await grid.set_level("a2", "ETH-USDT-SWAP", "sell", 0, _level(3100), exchange="okx")

    batch = await grid.get_levels_batch([("a1", "BTCUSDT"), ("a2", "ETH-USDT-SWAP", "okx"), ("a3", "SOLUSDT")])
    assert [lvl.price for lvl in batch[("a1", "BTCUSDT")]["buy"]] == [49000]
    assert [lvl.price for lvl in batch[("a2", "ETH-USDT-SWAP")]["sell"]] == [3100]
    assert batch[("a3", "SOLUSDT")] == {"buy": [], "sell": []}


@pytest.mark.asyncio
async def test_batch_read_degrades_to_empty_ladders(stores, kv):
    kv.fail = True
    batch = await stores.grid_levels.get_levels_batch([("a1", "BTCUSDT")])
    assert batch == {("a1", "BTCUSDT"): {"buy": [], "sell": []}}
