"""Equity samples per account, used for the 24h equity delta on the dashboard."""

import logging

from backend.store.client import STORE_ERRORS, KeyValueStore
from backend.store.keys import StoreKeys, timestamp_suffix
from backend.utils.clock import Clock, hours_to_ms, now_ms
from backend.utils.constants import EQUITY_SEARCH_WINDOW_MS, EQUITY_TTL_SECONDS

logger = logging.getLogger(__name__)


class EquityHistoryStore:
    def __init__(self, client: KeyValueStore, keys: StoreKeys, clock: Clock = now_ms):
        self._client = client
        self._keys = keys
        self._clock = clock

    async def record_equity(self, account_id: str, value: float) -> bool:
        timestamp = self._clock()
        try:
            await self._client.set(
                self._keys.equity(account_id, timestamp), str(float(value)), EQUITY_TTL_SECONDS
            )
        except STORE_ERRORS as e:
            logger.error(f"[equity] Failed to record equity for {account_id}: {e}")
            return False
        return True

    async def get_equity_n_hours_ago(self, account_id: str, hours: float = 24) -> float | None:
        """Return the sample closest to ``now - hours`` within +/- 1 hour.

        Equidistant samples resolve to the earlier one. None if nothing is
        retained inside the window.
        """
        target = self._clock() - hours_to_ms(hours)
        low, high = target - EQUITY_SEARCH_WINDOW_MS, target + EQUITY_SEARCH_WINDOW_MS

        try:
            keys = await self._client.scan_keys(self._keys.equity_pattern(account_id))
        except STORE_ERRORS as e:
            logger.error(f"[equity] Failed to scan equity for {account_id}: {e}")
            return None

        candidates = []
        for key in keys:
            ts = timestamp_suffix(key)
            if ts is not None and low <= ts <= high:
                candidates.append((abs(ts - target), ts, key))
        if not candidates:
            return None
        candidates.sort()

        try:
            values = await self._client.mget([key for _, _, key in candidates])
        except STORE_ERRORS as e:
            logger.error(f"[equity] Failed to read equity samples for {account_id}: {e}")
            return None

        # Fall through to the next-closest sample if one expired or is corrupt
        for (_, _, key), raw in zip(candidates, values):
            if raw is None:
                continue
            try:
                return float(raw)
            except ValueError:
                logger.warning(f"[equity] Corrupt equity sample {key}: {raw!r}")
        return None

    async def equity_change(
        self, account_id: str, current_equity: float, hours: float = 24
    ) -> tuple[float | None, float | None, float | None]:
        """Return (equity_then, change, change_percent); all None without a sample."""
        previous = await self.get_equity_n_hours_ago(account_id, hours)
        if previous is None:
            return None, None, None
        change = current_equity - previous
        percent = (change / previous * 100) if previous else None
        return previous, change, percent
