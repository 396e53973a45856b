"""Short-lived caches in front of the exchanges for the dashboard's live view."""

import json
import logging
from typing import Any

from backend.store.client import STORE_ERRORS, KeyValueStore
from backend.store.keys import StoreKeys
from backend.utils.clock import Clock, now_ms
from backend.utils.constants import ACCOUNT_STATE_TTL_SECONDS, MARKET_PRICE_TTL_SECONDS

logger = logging.getLogger(__name__)


class MarketPriceCache:
    def __init__(self, client: KeyValueStore, keys: StoreKeys, clock: Clock = now_ms):
        self._client = client
        self._keys = keys
        self._clock = clock

    async def get(self, exchange: str, symbol: str) -> float | None:
        key = self._keys.market_price(exchange, symbol)
        try:
            raw = await self._client.get(key)
            if raw is None:
                return None
            return float(json.loads(raw)["price"])
        except STORE_ERRORS as e:
            logger.warning(f"[price-cache] Read failed for {key}: {e}")
        except (ValueError, KeyError, TypeError) as e:
            logger.warning(f"[price-cache] Corrupt entry {key}: {e}")
        return None

    async def set(self, exchange: str, symbol: str, price: float) -> bool:
        key = self._keys.market_price(exchange, symbol)
        doc = json.dumps({"price": price, "timestamp": self._clock()})
        try:
            await self._client.set(key, doc, MARKET_PRICE_TTL_SECONDS)
        except STORE_ERRORS as e:
            logger.warning(f"[price-cache] Write failed for {key}: {e}")
            return False
        return True


class AccountStateCache:
    """Caches one account's assembled monitor payload."""

    def __init__(self, client: KeyValueStore, keys: StoreKeys):
        self._client = client
        self._keys = keys

    async def get(self, account_id: str) -> dict[str, Any] | None:
        key = self._keys.account_state(account_id)
        try:
            raw = await self._client.get(key)
            return json.loads(raw) if raw is not None else None
        except STORE_ERRORS as e:
            logger.warning(f"[state-cache] Read failed for {key}: {e}")
        except ValueError as e:
            logger.warning(f"[state-cache] Corrupt entry {key}: {e}")
        return None

    async def set(self, account_id: str, state: dict[str, Any]) -> bool:
        key = self._keys.account_state(account_id)
        try:
            await self._client.set(key, json.dumps(state), ACCOUNT_STATE_TTL_SECONDS)
        except STORE_ERRORS as e:
            logger.warning(f"[state-cache] Write failed for {key}: {e}")
            return False
        return True

    async def invalidate(self, account_id: str):
        try:
            await self._client.delete(self._keys.account_state(account_id))
        except STORE_ERRORS as e:
            logger.warning(f"[state-cache] Invalidate failed for {account_id}: {e}")
