"""Time-series snapshot persistence with a separate "latest" pointer per account.

Every write produces two keys:

    {prefix}:{kind}:{account_id}:{now_ms}  -> {"timestamp": now_ms, "data": payload}
    {prefix}:{kind}:{account_id}:latest    -> the same envelope

both carrying the kind's TTL. The pointer is its own key so the hot read path
never has to scan the history, and so history entries can expire underneath it.
"""

import json
import logging
from enum import Enum
from typing import Any

from pydantic import BaseModel

from backend.schemas.snapshot import Snapshot
from backend.store.client import STORE_ERRORS, KeyValueStore
from backend.store.keys import StoreKeys, timestamp_suffix
from backend.utils.clock import Clock, now_ms
from backend.utils.constants import SNAPSHOT_TTL_SECONDS, TRADE_HISTORY_TTL_SECONDS

logger = logging.getLogger(__name__)


class SnapshotKind(str, Enum):
    POSITIONS = "positions"
    ORDERS = "orders"
    TRADE_HISTORY = "trade_history"

    @property
    def ttl_seconds(self) -> int | None:
        return _KIND_TTL[self]


_KIND_TTL: dict[SnapshotKind, int | None] = {
    SnapshotKind.POSITIONS: SNAPSHOT_TTL_SECONDS,
    SnapshotKind.ORDERS: SNAPSHOT_TTL_SECONDS,
    SnapshotKind.TRADE_HISTORY: TRADE_HISTORY_TTL_SECONDS,
}


def _encode_payload(payload: Any) -> Any:
    if isinstance(payload, BaseModel):
        return payload.model_dump(by_alias=True, mode="json")
    return payload


def _decode_snapshot(raw: str) -> Snapshot:
    doc = json.loads(raw)
    return Snapshot(timestamp=int(doc["timestamp"]), data=doc.get("data"))


class SnapshotStore:
    def __init__(self, client: KeyValueStore, keys: StoreKeys, clock: Clock = now_ms):
        self._client = client
        self._keys = keys
        self._clock = clock

    async def store_snapshot(self, kind: SnapshotKind, account_id: str, payload: Any) -> bool:
        """Write the historical entry and overwrite the latest pointer.

        Returns False when the store rejected either write; the failure is
        logged and never raised, so one account cannot abort a collection run.
        """
        kind = SnapshotKind(kind)
        timestamp = self._clock()
        ttl = kind.ttl_seconds

        try:
            envelope = json.dumps({"timestamp": timestamp, "data": _encode_payload(payload)})
            await self._client.set(self._keys.snapshot(kind.value, account_id, timestamp), envelope, ttl)
            await self._client.set(self._keys.snapshot_latest(kind.value, account_id), envelope, ttl)
        except STORE_ERRORS as e:
            logger.error(f"[snapshots] Failed to store {kind.value} for {account_id}: {e}")
            return False
        except (TypeError, ValueError) as e:
            logger.error(f"[snapshots] Unserializable {kind.value} payload for {account_id}: {e}")
            return False

        logger.debug(f"[snapshots] Stored {kind.value} for {account_id} at {timestamp}")
        return True

    async def get_latest(self, kind: SnapshotKind, account_id: str) -> Snapshot | None:
        kind = SnapshotKind(kind)
        try:
            raw = await self._client.get(self._keys.snapshot_latest(kind.value, account_id))
        except STORE_ERRORS as e:
            logger.error(f"[snapshots] Failed to read latest {kind.value} for {account_id}: {e}")
            return None

        if raw is None:
            return None
        try:
            return _decode_snapshot(raw)
        except (ValueError, KeyError, TypeError) as e:
            logger.warning(f"[snapshots] Corrupt latest {kind.value} for {account_id}: {e}")
            return None

    async def get_history(
        self,
        kind: SnapshotKind,
        account_id: str,
        start_ms: int,
        end_ms: int,
    ) -> list[Snapshot]:
        """Return the snapshots with start_ms <= timestamp <= end_ms, oldest first.

        Cost is proportional to the number of retained snapshots for the
        account, not to the size of the range: the whole series is scanned.
        """
        kind = SnapshotKind(kind)
        try:
            keys = await self._client.scan_keys(self._keys.snapshot_pattern(kind.value, account_id))
        except STORE_ERRORS as e:
            logger.error(f"[snapshots] Failed to scan {kind.value} for {account_id}: {e}")
            return []

        in_range: list[str] = []
        for key in keys:
            ts = timestamp_suffix(key)
            if ts is None:
                continue
            if start_ms <= ts <= end_ms:
                in_range.append(key)

        if not in_range:
            return []

        try:
            values = await self._client.mget(in_range)
        except STORE_ERRORS as e:
            logger.error(f"[snapshots] Failed to read {kind.value} history for {account_id}: {e}")
            return []

        snapshots = []
        for key, raw in zip(in_range, values):
            # Expired between the scan and the read
            if raw is None:
                continue
            try:
                snapshots.append(_decode_snapshot(raw))
            except (ValueError, KeyError, TypeError) as e:
                logger.warning(f"[snapshots] Dropping corrupt entry {key}: {e}")

        snapshots.sort(key=lambda s: s.timestamp)
        return snapshots
