"""Periodic collection of positions, pending orders and equity for every active account.

This is what the scheduler (or the external cron endpoint) runs. Per account:
balance + positions + orders fetched concurrently → normalized → written to
the snapshot and equity stores. Accounts are processed concurrently and
independently; one account failing or hanging never affects the others.
"""

import asyncio
import logging
import uuid
from collections import Counter
from datetime import datetime, timezone
from typing import Any, Protocol

from sqlmodel import Session

from backend.config import settings
from backend.database import engine
from backend.models.collection_log import CollectionLog
from backend.schemas.snapshot import OrdersPayload, PositionsPayload
from backend.services import normalizer
from backend.services.account_registry import AccountConfig
from backend.services.errors import ConfigurationError, ExchangeError
from backend.services.exchanges.base import ExchangeAdapter
from backend.services.exchanges.registry import AdapterFactory, create_adapter
from backend.store import SnapshotKind, Stores
from backend.utils.constants import EXCHANGE_OKX

logger = logging.getLogger(__name__)
_run_lock = asyncio.Lock()


class AccountSource(Protocol):
    def list_accounts(self, exchange: str | None = None, status: str | None = "active") -> list[AccountConfig]: ...


async def _fetch_account_state(adapter: ExchangeAdapter, account: AccountConfig) -> dict[str, Any]:
    raw_balance, raw_positions, raw_orders = await asyncio.gather(
        adapter.get_balance(),
        adapter.get_positions(account.symbol),
        adapter.get_pending_orders(account.symbol),
    )
    # OKX order sizes are in contracts; value needs the contract multiplier
    contract_value = 1.0
    if adapter.exchange == EXCHANGE_OKX and raw_orders:
        instrument = normalizer.normalize_instrument(adapter.exchange, await adapter.get_instrument(account.symbol))
        contract_value = instrument.contract_value
    return {
        "balance": raw_balance,
        "positions": raw_positions,
        "orders": raw_orders,
        "contract_value": contract_value,
    }


async def collect_account(
    account: AccountConfig,
    stores: Stores,
    adapter_factory: AdapterFactory = create_adapter,
    timeout: float | None = None,
) -> dict[str, Any]:
    """Collect one account and return its outcome entry. Never raises."""
    timeout = timeout if timeout is not None else settings.exchange_timeout_seconds
    outcome: dict[str, Any] = {"accountId": account.id, "accountName": account.name}

    try:
        adapter = adapter_factory(account)
    except ConfigurationError as e:
        logger.info(f"[{account.name}] Skipping: {e}")
        return {**outcome, "status": "skipped", "reason": str(e)}

    try:
        async with adapter:
            raw = await asyncio.wait_for(_fetch_account_state(adapter, account), timeout=timeout)
    except asyncio.TimeoutError:
        logger.warning(f"[{account.name}] Exchange calls timed out after {timeout}s")
        return {
            **outcome,
            "status": "error",
            "error": f"Timed out after {timeout}s",
            "errorCode": "timeout",
        }
    except ExchangeError as e:
        logger.error(f"[{account.name}] {e.exchange} error: {e.message} (code {e.code})")
        return {**outcome, "status": "error", "error": e.message, "errorCode": e.code}
    except Exception as e:
        logger.exception(f"[{account.name}] Unexpected collection failure")
        return {**outcome, "status": "error", "error": str(e), "errorCode": None}

    exchange = adapter.exchange
    positions = normalizer.normalize_positions(exchange, raw["positions"], account.symbol)
    orders = normalizer.normalize_orders(exchange, raw["orders"], raw["contract_value"])
    balance = normalizer.normalize_balance(exchange, raw["balance"], positions)

    stored = await asyncio.gather(
        stores.snapshots.store_snapshot(
            SnapshotKind.POSITIONS,
            account.id,
            PositionsPayload(exchange=exchange, symbol=account.symbol, positions=positions, raw=raw["positions"]),
        ),
        stores.snapshots.store_snapshot(
            SnapshotKind.ORDERS,
            account.id,
            OrdersPayload(exchange=exchange, symbol=account.symbol, orders=orders, raw=raw["orders"]),
        ),
        stores.equity.record_equity(account.id, balance.equity),
    )
    if not all(stored):
        return {**outcome, "status": "skipped", "reason": "Snapshot store write failed"}

    logger.info(
        f"[{account.name}] Collected {len(positions)} positions, {len(orders)} orders, "
        f"equity ${balance.equity:.2f}"
    )
    return {
        **outcome,
        "status": "success",
        "exchange": exchange,
        "positionsCount": len(positions),
        "ordersCount": len(orders),
        "equity": balance.equity,
    }


async def run_collection(
    stores: Stores,
    registry: AccountSource,
    adapter_factory: AdapterFactory = create_adapter,
    timeout: float | None = None,
) -> dict[str, Any]:
    """Collect every active account concurrently and return the aggregate report."""
    accounts = registry.list_accounts(status="active")
    logger.info(f"[collector] Collecting {len(accounts)} accounts")

    results = await asyncio.gather(
        *(collect_account(account, stores, adapter_factory, timeout) for account in accounts)
    )
    counts = Counter(r["status"] for r in results)
    summary = {
        "total": len(results),
        "successful": counts["success"],
        "failed": counts["error"],
        "skipped": counts["skipped"],
    }
    logger.info(f"[collector] Done: {summary}")
    return {
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "summary": summary,
        "results": list(results),
    }


async def collect_and_log(
    stores: Stores,
    registry: AccountSource,
    adapter_factory: AdapterFactory = create_adapter,
) -> dict[str, Any] | None:
    """Run one collection unless one is already in flight, then persist the outcomes.

    Returns None when the run was skipped because of an overlapping run.
    """
    if _run_lock.locked():
        logger.warning("[collector] Skipping overlapping collection run")
        return None

    async with _run_lock:
        report = await run_collection(stores, registry, adapter_factory)
    _log_run(report)
    return report


def _log_run(report: dict[str, Any]):
    """Write one CollectionLog row per account outcome."""
    run_id = uuid.uuid4().hex
    try:
        with Session(engine) as session:
            for result in report["results"]:
                session.add(
                    CollectionLog(
                        run_id=run_id,
                        account_id=result["accountId"],
                        account_name=result.get("accountName", ""),
                        status=result["status"],
                        exchange=result.get("exchange"),
                        positions_count=result.get("positionsCount"),
                        orders_count=result.get("ordersCount"),
                        equity=result.get("equity"),
                        message=result.get("error") or result.get("reason"),
                        error_code=result.get("errorCode"),
                        details=result,
                    )
                )
            session.commit()
    except Exception as e:
        logger.error(f"[collector] Failed to write collection log: {e}")
