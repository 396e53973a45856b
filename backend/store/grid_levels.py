"""Synthetic grid-level overlay, kept independently of the exchanges' order books.

One hash per (exchange, account, symbol, side); each field ``level_{index}``
holds a JSON-encoded GridLevel. Writing an index that already exists
overwrites it (last write wins). Partitioning by side lets "clear all buys"
be a single key delete.
"""

import asyncio
import json
import logging
import re

from pydantic import ValidationError

from backend.schemas.normalized import GridLevel
from backend.services.normalizer import exchange_for_symbol
from backend.store.client import STORE_ERRORS, KeyValueStore
from backend.store.keys import StoreKeys
from backend.utils.clock import Clock, now_ms
from backend.utils.constants import GRID_SIDES

logger = logging.getLogger(__name__)

_FIELD_RE = re.compile(r"^level_(\d+)$")


def normalize_side(side: str) -> str:
    value = (side or "").strip().lower()
    if value not in GRID_SIDES:
        raise ValueError(f"Invalid grid side: {side!r} (expected one of {GRID_SIDES})")
    return value


def level_field(index: int) -> str:
    if isinstance(index, bool) or not isinstance(index, int) or index < 0:
        raise ValueError(f"Invalid level index: {index!r}")
    return f"level_{index}"


class GridLevelStore:
    def __init__(self, client: KeyValueStore, keys: StoreKeys, clock: Clock = now_ms):
        self._client = client
        self._keys = keys
        self._clock = clock

    def _key(self, account_id: str, symbol: str, side: str, exchange: str | None) -> str:
        exchange = exchange or exchange_for_symbol(symbol)
        return self._keys.grid(exchange, account_id, symbol, normalize_side(side))

    @staticmethod
    def _parse(key: str, fields: dict[str, str]) -> list[GridLevel]:
        levels = []
        for field, raw in fields.items():
            match = _FIELD_RE.match(field)
            if not match:
                logger.warning(f"[grid] Ignoring unexpected field {field} in {key}")
                continue
            try:
                level = GridLevel.model_validate(json.loads(raw))
            except (ValueError, TypeError, ValidationError) as e:
                logger.warning(f"[grid] Skipping corrupt {field} in {key}: {e}")
                continue
            level.level_index = int(match.group(1))
            levels.append(level)
        levels.sort(key=lambda lvl: lvl.level_index)
        return levels

    async def set_level(
        self,
        account_id: str,
        symbol: str,
        side: str,
        index: int,
        level: GridLevel | dict,
        exchange: str | None = None,
    ) -> bool:
        """Upsert one level. Returns False if the store rejected the write."""
        key = self._key(account_id, symbol, side, exchange)
        field = level_field(index)
        if not isinstance(level, GridLevel):
            level = GridLevel.model_validate(level)

        doc = level.model_dump(by_alias=True, exclude={"level_index"})
        if doc.get("updatedAt") is None:
            doc["updatedAt"] = self._clock()

        try:
            await self._client.hset(key, field, json.dumps(doc))
        except STORE_ERRORS as e:
            logger.error(f"[grid] Failed to write {field} in {key}: {e}")
            return False
        return True

    async def get_levels(
        self, account_id: str, symbol: str, side: str, exchange: str | None = None
    ) -> list[GridLevel]:
        key = self._key(account_id, symbol, side, exchange)
        try:
            fields = await self._client.hgetall(key)
        except STORE_ERRORS as e:
            logger.error(f"[grid] Failed to read {key}: {e}")
            return []
        return self._parse(key, fields or {})

    async def get_both_sides(
        self, account_id: str, symbol: str, exchange: str | None = None
    ) -> dict[str, list[GridLevel]]:
        buy, sell = await asyncio.gather(
            self.get_levels(account_id, symbol, "buy", exchange),
            self.get_levels(account_id, symbol, "sell", exchange),
        )
        return {"buy": buy, "sell": sell}

    async def delete_level(
        self, account_id: str, symbol: str, side: str, index: int, exchange: str | None = None
    ) -> bool:
        """Remove one index. Returns True if it existed; deleting a missing index is a no-op."""
        key = self._key(account_id, symbol, side, exchange)
        field = level_field(index)
        try:
            removed = await self._client.hdel(key, field)
        except STORE_ERRORS as e:
            logger.error(f"[grid] Failed to delete {field} in {key}: {e}")
            return False
        return bool(removed)

    async def clear_all(
        self, account_id: str, symbol: str, side: str | None = None, exchange: str | None = None
    ) -> int:
        """Delete one side's ladder, or both when ``side`` is None. Returns hashes removed."""
        sides = [normalize_side(side)] if side else GRID_SIDES
        keys = [self._key(account_id, symbol, s, exchange) for s in sides]
        try:
            return await self._client.delete(*keys)
        except STORE_ERRORS as e:
            logger.error(f"[grid] Failed to clear {keys}: {e}")
            return 0

    async def get_levels_batch(
        self, pairs: list[tuple[str, str]] | list[tuple[str, str, str]]
    ) -> dict[tuple[str, str], dict[str, list[GridLevel]]]:
        """Read both sides for many (account_id, symbol[, exchange]) pairs in one round trip.

        Result is keyed by (account_id, symbol). A failed round trip yields empty
        ladders for every pair rather than an error.
        """
        keys: list[str] = []
        index: list[tuple[tuple[str, str], str]] = []
        for pair in pairs:
            account_id, symbol = pair[0], pair[1]
            exchange = pair[2] if len(pair) > 2 else None
            for side in GRID_SIDES:
                keys.append(self._key(account_id, symbol, side, exchange))
                index.append(((account_id, symbol), side))

        result: dict[tuple[str, str], dict[str, list[GridLevel]]] = {
            (pair[0], pair[1]): {side: [] for side in GRID_SIDES} for pair in pairs
        }
        if not keys:
            return result

        try:
            hashes = await self._client.hgetall_many(keys)
        except STORE_ERRORS as e:
            logger.error(f"[grid] Batch read of {len(keys)} ladders failed: {e}")
            return result

        for key, (pair_key, side), fields in zip(keys, index, hashes):
            result[pair_key][side] = self._parse(key, fields or {})
        return result
