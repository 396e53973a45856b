"""Live per-account view for the dashboard.

Unlike the read API, this path talks to the exchanges directly. Each
account's assembled state is cached for a few minutes; grid levels are read
fresh from the store on every request since the strategy writer updates them
independently.
"""

import asyncio
import logging
from typing import Any

from backend.config import settings
from backend.services import normalizer
from backend.services.account_registry import AccountConfig
from backend.services.errors import ConfigurationError, ExchangeError
from backend.services.exchanges.base import ExchangeAdapter
from backend.services.exchanges.registry import AdapterFactory, create_adapter
from backend.store import Stores
from backend.utils.clock import now_ms
from backend.utils.constants import EXCHANGE_OKX

logger = logging.getLogger(__name__)


def _dump(model) -> dict:
    return model.model_dump(by_alias=True)


class MonitorService:
    def __init__(self, stores: Stores, registry, adapter_factory: AdapterFactory = create_adapter):
        self._stores = stores
        self._registry = registry
        self._adapter_factory = adapter_factory

    async def get_monitor(self, refresh: bool = False) -> dict[str, Any]:
        accounts: list[AccountConfig] = self._registry.list_accounts()
        grids, states = await asyncio.gather(
            self._stores.grid_levels.get_levels_batch([(a.id, a.symbol, a.exchange) for a in accounts]),
            asyncio.gather(*(self.get_account_state(a, refresh) for a in accounts)),
        )

        for account, state in zip(accounts, states):
            if "error" not in state:
                grid = grids.get((account.id, account.symbol), {"buy": [], "sell": []})
                state["gridLevels"] = {side: [_dump(lvl) for lvl in levels] for side, levels in grid.items()}

        return {"timestamp": now_ms(), "accounts": list(states)}

    async def get_account_state(self, account: AccountConfig, refresh: bool = False) -> dict[str, Any]:
        """Assemble one account's live state; failures come back as an error entry."""
        base = {
            "accountId": account.id,
            "accountName": account.name or account.id,
            "symbol": account.symbol,
            "exchange": account.exchange,
        }

        if not refresh:
            cached = await self._stores.account_state.get(account.id)
            if cached is not None:
                return cached

        try:
            adapter = self._adapter_factory(account)
        except ConfigurationError as e:
            return {**base, "error": str(e), "errorCode": None}

        try:
            async with adapter:
                state = await asyncio.wait_for(
                    self._build_state(adapter, account, refresh),
                    timeout=settings.exchange_timeout_seconds,
                )
        except asyncio.TimeoutError:
            logger.warning(f"[{account.name}] Monitor request timed out")
            return {**base, "error": "Exchange request timed out", "errorCode": "timeout"}
        except ExchangeError as e:
            logger.error(f"[{account.name}] Monitor failed: {e.message} (code {e.code}, status {e.status})")
            return {**base, "error": e.message, "errorCode": e.code or e.status}
        except Exception as e:
            logger.exception(f"[{account.name}] Monitor failed")
            return {**base, "error": str(e), "errorCode": None}

        state = {**base, **state}
        await self._stores.account_state.set(account.id, state)
        return state

    async def _current_price(self, adapter: ExchangeAdapter, symbol: str, refresh: bool) -> float | None:
        if not refresh:
            cached = await self._stores.prices.get(adapter.exchange, symbol)
            if cached is not None:
                return cached
        price = normalizer.normalize_ticker(adapter.exchange, await adapter.get_ticker(symbol))
        if price <= 0:
            return None
        await self._stores.prices.set(adapter.exchange, symbol, price)
        return price

    async def _contract_value(self, adapter: ExchangeAdapter, symbol: str) -> float:
        if adapter.exchange != EXCHANGE_OKX:
            return 1.0
        info = normalizer.normalize_instrument(adapter.exchange, await adapter.get_instrument(symbol))
        return info.contract_value

    async def _build_state(self, adapter: ExchangeAdapter, account: AccountConfig, refresh: bool) -> dict:
        exchange = adapter.exchange
        price, contract_value, raw_balance, raw_positions, raw_orders = await asyncio.gather(
            self._current_price(adapter, account.symbol, refresh),
            self._contract_value(adapter, account.symbol),
            adapter.get_balance(),
            adapter.get_positions(account.symbol),
            adapter.get_pending_orders(account.symbol),
        )

        positions = normalizer.normalize_positions(exchange, raw_positions, account.symbol)
        orders = normalizer.normalize_orders(exchange, raw_orders, contract_value)
        buys, sells = normalizer.split_orders(orders)
        balance = normalizer.normalize_balance(exchange, raw_balance, positions)

        if balance.equity > 0:
            await self._stores.equity.record_equity(account.id, balance.equity)
            ago, change, percent = await self._stores.equity.equity_change(account.id, balance.equity)
            balance.equity_24h_ago = ago
            balance.equity_24h_change = change
            balance.equity_24h_change_percent = percent

        return {
            "currentPrice": price,
            "balance": _dump(balance),
            "positions": [_dump(p) for p in positions],
            "buyOrders": [_dump(o) for o in buys],
            "sellOrders": [_dump(o) for o in sells],
            "updatedAt": now_ms(),
        }
