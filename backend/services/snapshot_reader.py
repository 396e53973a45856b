"""Query logic behind the external read API.

Three response shapes per snapshot kind, picked from the query:

- accountId and a time bound → ``{accountId, type: "historical", count, data}``
- accountId only             → ``{accountId, type: "latest", data}``
- no accountId               → ``{type: "all", count, accounts: [...]}``

Absent data is reported as null, never as a missing key.
"""

import asyncio
import logging
from typing import Any

from backend.services.account_registry import AccountConfig
from backend.store import SnapshotKind, Stores
from backend.utils.clock import Clock, now_ms

logger = logging.getLogger(__name__)


class SnapshotReader:
    def __init__(self, stores: Stores, registry, clock: Clock = now_ms):
        self._stores = stores
        self._registry = registry
        self._clock = clock

    def list_accounts(self, exchange: str | None = None) -> dict[str, Any]:
        accounts = self._registry.list_accounts(exchange=exchange)
        return {"count": len(accounts), "accounts": [a.summary() for a in accounts]}

    async def read(
        self,
        kind: SnapshotKind,
        account_id: str | None = None,
        start_time: int | None = None,
        end_time: int | None = None,
        exchange: str | None = None,
    ) -> dict[str, Any]:
        kind = SnapshotKind(kind)
        if account_id:
            if start_time is not None or end_time is not None:
                return await self._historical(kind, account_id, start_time, end_time)
            return await self._latest(kind, account_id)
        return await self._all_latest(kind, exchange)

    async def _historical(
        self, kind: SnapshotKind, account_id: str, start_time: int | None, end_time: int | None
    ) -> dict[str, Any]:
        start = start_time if start_time is not None else 0
        end = end_time if end_time is not None else self._clock()
        history = await self._stores.snapshots.get_history(kind, account_id, start, end)
        return {
            "accountId": account_id,
            "type": "historical",
            "count": len(history),
            "data": [s.model_dump() for s in history],
        }

    async def _latest(self, kind: SnapshotKind, account_id: str) -> dict[str, Any]:
        latest = await self._stores.snapshots.get_latest(kind, account_id)
        return {
            "accountId": account_id,
            "type": "latest",
            "data": latest.model_dump() if latest else None,
        }

    async def _all_latest(self, kind: SnapshotKind, exchange: str | None) -> dict[str, Any]:
        accounts: list[AccountConfig] = self._registry.list_accounts(exchange=exchange)
        snapshots = await asyncio.gather(
            *(self._stores.snapshots.get_latest(kind, a.id) for a in accounts)
        )
        field = kind.value
        entries = []
        for account, snapshot in zip(accounts, snapshots):
            entries.append(
                {
                    "accountId": account.id,
                    "accountName": account.name,
                    "symbol": account.symbol,
                    "exchange": account.exchange,
                    field: snapshot.data if snapshot else None,
                    "timestamp": snapshot.timestamp if snapshot else None,
                }
            )
        return {"type": "all", "count": len(entries), "accounts": entries}
