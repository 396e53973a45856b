"""Fills and realized PnL over a time range, for exchanges that expose them.

Asterdex caps each history query at 7 days, so longer ranges are fetched in
consecutive 7-day chunks. A chunk that fails is logged and skipped; the rest
of the range is still returned.
"""

import logging
from typing import Any

from backend.schemas.snapshot import TradeHistoryPayload
from backend.services import normalizer
from backend.services.account_registry import AccountConfig
from backend.services.errors import AccountNotFound, ExchangeError, UnsupportedOperation
from backend.services.exchanges.registry import AdapterFactory, create_adapter
from backend.store import SnapshotKind, Stores
from backend.utils.clock import Clock, now_ms
from backend.utils.constants import ASTER_MAX_HISTORY_WINDOW_MS

logger = logging.getLogger(__name__)

REALIZED_PNL = "REALIZED_PNL"
HISTORY_PAGE_LIMIT = 1000


def history_chunks(start_ms: int, end_ms: int, window_ms: int = ASTER_MAX_HISTORY_WINDOW_MS) -> list[tuple[int, int]]:
    """Split [start_ms, end_ms] into consecutive windows no longer than ``window_ms``."""
    chunks = []
    current = start_ms
    while current < end_ms:
        chunk_end = min(current + window_ms, end_ms)
        chunks.append((current, chunk_end))
        current = chunk_end
    return chunks


class TradeHistoryService:
    def __init__(
        self,
        stores: Stores,
        registry,
        adapter_factory: AdapterFactory = create_adapter,
        clock: Clock = now_ms,
    ):
        self._stores = stores
        self._registry = registry
        self._adapter_factory = adapter_factory
        self._clock = clock

    def _account(self, account_id: str) -> AccountConfig:
        account = self._registry.get_account(account_id)
        if account is None:
            raise AccountNotFound(account_id)
        return account

    async def fetch(
        self,
        account_id: str,
        symbol: str | None = None,
        start_time: int | None = None,
        end_time: int | None = None,
    ) -> dict[str, Any]:
        """Fetch trades + realized PnL for the range (default: the last 7 days) and store a snapshot."""
        account = self._account(account_id)
        symbol = symbol or account.symbol
        end = end_time if end_time is not None else self._clock()
        start = start_time if start_time is not None else end - ASTER_MAX_HISTORY_WINDOW_MS

        async with self._adapter_factory(account) as adapter:
            if not adapter.supports_trade_history:
                raise UnsupportedOperation(adapter.exchange, "trade history")

            trades, income = [], []
            for chunk_start, chunk_end in history_chunks(start, end):
                try:
                    raw_trades = await adapter.get_user_trades(
                        symbol, chunk_start, chunk_end, HISTORY_PAGE_LIMIT
                    )
                    raw_income = await adapter.get_income_history(
                        symbol, REALIZED_PNL, chunk_start, chunk_end, HISTORY_PAGE_LIMIT
                    )
                except ExchangeError as e:
                    logger.error(f"[{account.name}] History chunk {chunk_start}-{chunk_end} failed: {e}")
                    continue
                trades.extend(normalizer.normalize_trade(t) for t in raw_trades or [] if isinstance(t, dict))
                income.extend(normalizer.normalize_income(i) for i in raw_income or [] if isinstance(i, dict))

            positions = normalizer.normalize_positions(
                adapter.exchange, await adapter.get_positions(symbol), symbol
            )
            exchange = adapter.exchange

        payload = TradeHistoryPayload(
            exchange=exchange,
            symbol=symbol,
            trades=trades,
            income=income,
            fetched_at=self._clock(),
            start_time=start,
            end_time=end,
        )
        await self._stores.snapshots.store_snapshot(SnapshotKind.TRADE_HISTORY, account.id, payload)
        logger.info(f"[{account.name}] Trade history: {len(trades)} trades, {len(income)} income rows")

        return {
            "accountId": account.id,
            "accountName": account.name or account.id,
            **payload.model_dump(by_alias=True),
            "positions": [p.model_dump(by_alias=True) for p in positions],
        }

    async def cached(self, account_id: str) -> dict[str, Any] | None:
        """Most recently stored trade history, without calling the exchange."""
        account = self._account(account_id)
        snapshot = await self._stores.snapshots.get_latest(SnapshotKind.TRADE_HISTORY, account.id)
        if snapshot is None:
            return None
        return {
            "accountId": account.id,
            "accountName": account.name or account.id,
            "timestamp": snapshot.timestamp,
            **(snapshot.data or {}),
        }
