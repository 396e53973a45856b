"""Key-value backed stores. Build them all from one shared client with ``Stores.build``."""

from dataclasses import dataclass

from backend.store.caches import AccountStateCache, MarketPriceCache
from backend.store.client import KeyValueStore, RedisStore
from backend.store.equity import EquityHistoryStore
from backend.store.grid_levels import GridLevelStore
from backend.store.keys import StoreKeys
from backend.store.snapshots import SnapshotKind, SnapshotStore
from backend.utils.clock import Clock, now_ms


@dataclass
class Stores:
    client: KeyValueStore
    snapshots: SnapshotStore
    grid_levels: GridLevelStore
    equity: EquityHistoryStore
    prices: MarketPriceCache
    account_state: AccountStateCache

    @classmethod
    def build(cls, client: KeyValueStore, prefix: str, clock: Clock = now_ms) -> "Stores":
        keys = StoreKeys(prefix)
        return cls(
            client=client,
            snapshots=SnapshotStore(client, keys, clock),
            grid_levels=GridLevelStore(client, keys, clock),
            equity=EquityHistoryStore(client, keys, clock),
            prices=MarketPriceCache(client, keys, clock),
            account_state=AccountStateCache(client, keys),
        )


__all__ = [
    "AccountStateCache",
    "EquityHistoryStore",
    "GridLevelStore",
    "KeyValueStore",
    "MarketPriceCache",
    "RedisStore",
    "SnapshotKind",
    "SnapshotStore",
    "StoreKeys",
    "Stores",
]
