"""Operator actions from the dashboard: close positions, cancel orders, edit grid levels.

These go straight to the exchange (never through the snapshot store) and
invalidate the account's cached dashboard state afterwards.
"""

import asyncio
import logging
from decimal import ROUND_FLOOR, Decimal
from typing import Any, Awaitable, Callable

from backend.services import normalizer
from backend.services.account_registry import AccountConfig
from backend.services.errors import AccountNotFound
from backend.services.exchanges.registry import AdapterFactory, create_adapter
from backend.store import Stores
from backend.utils.constants import MAX_CLOSE_PERCENTAGE, MIN_CLOSE_PERCENTAGE

logger = logging.getLogger(__name__)

CLOSE_POSITION_PAUSE_SECONDS = 0.5
CANCEL_ORDER_PAUSE_SECONDS = 0.1


def compute_close_size(position_size: float, percentage: float, lot_size: float) -> Decimal:
    """Portion of a position to close, floored to a whole number of lots.

    Returns 0 when the requested portion is smaller than one lot.
    """
    lot = Decimal(str(lot_size))
    raw = abs(Decimal(str(position_size))) * Decimal(str(percentage)) / Decimal(100)
    lots = (raw / lot).to_integral_value(rounding=ROUND_FLOOR)
    return lots * lot


class ActionService:
    def __init__(
        self,
        stores: Stores,
        registry,
        adapter_factory: AdapterFactory = create_adapter,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ):
        self._stores = stores
        self._registry = registry
        self._adapter_factory = adapter_factory
        self._sleep = sleep

    def _account(self, account_id: str) -> AccountConfig:
        account = self._registry.get_account(account_id)
        if account is None:
            raise AccountNotFound(account_id)
        return account

    async def close_position(self, account_id: str, percentage: float) -> dict[str, Any]:
        if not MIN_CLOSE_PERCENTAGE <= percentage <= MAX_CLOSE_PERCENTAGE:
            raise ValueError(
                f"Percentage must be between {MIN_CLOSE_PERCENTAGE} and {MAX_CLOSE_PERCENTAGE}"
            )
        account = self._account(account_id)

        async with self._adapter_factory(account) as adapter:
            positions = normalizer.normalize_positions(
                adapter.exchange, await adapter.get_positions(account.symbol), account.symbol
            )
            if not positions:
                return {"success": True, "message": "No positions to close", "results": []}

            instrument = normalizer.normalize_instrument(
                adapter.exchange, await adapter.get_instrument(account.symbol)
            )
            lot = instrument.lot_size

            results = []
            for i, position in enumerate(positions):
                if i > 0:
                    await self._sleep(CLOSE_POSITION_PAUSE_SECONDS)

                close_size = compute_close_size(position.contracts, percentage, lot)
                if close_size < Decimal(str(lot)):
                    results.append(
                        {
                            "symbol": position.instrument_id,
                            "success": False,
                            "orderId": None,
                            "error": f"Close size {close_size} is less than minimum lot size {lot}",
                            "closeSize": 0,
                            "percentage": percentage,
                        }
                    )
                    continue

                close_side = "sell" if position.side == "LONG" else "buy"
                result = await adapter.place_market_order(
                    position.instrument_id,
                    close_side,
                    close_size,
                    position_side=position.position_side,
                    margin_mode=position.margin_mode,
                    reduce_only=True,
                )
                logger.info(
                    f"[{account.name}] Close {percentage}% of {position.side} {position.instrument_id}: "
                    f"{close_side} {close_size} -> {'ok' if result.success else result.error}"
                )
                results.append(
                    {
                        "symbol": position.instrument_id,
                        "success": result.success,
                        "orderId": result.order_id,
                        "error": result.error,
                        "closeSize": float(close_size),
                        "percentage": percentage,
                    }
                )

        await self._stores.account_state.invalidate(account.id)
        return {"success": True, "results": results}

    async def cancel_order(self, account_id: str, order_id: str, instrument_id: str) -> dict[str, Any]:
        account = self._account(account_id)
        async with self._adapter_factory(account) as adapter:
            result = await adapter.cancel_order(instrument_id, order_id)

        await self._stores.account_state.invalidate(account.id)
        if result.success:
            return {"success": True, "message": "Order cancelled successfully"}
        return {"success": False, "error": result.error, "errorCode": result.error_code}

    async def cancel_all_orders(self, account_id: str) -> dict[str, Any]:
        account = self._account(account_id)
        async with self._adapter_factory(account) as adapter:
            orders = normalizer.normalize_orders(
                adapter.exchange, await adapter.get_pending_orders(account.symbol)
            )
            if not orders:
                return {
                    "success": True,
                    "message": "No orders to cancel",
                    "cancelledCount": 0,
                    "totalOrders": 0,
                }

            cancelled = 0
            for i, order in enumerate(orders):
                if i > 0:
                    await self._sleep(CANCEL_ORDER_PAUSE_SECONDS)
                result = await adapter.cancel_order(order.instrument_id or account.symbol, order.order_id)
                if result.success:
                    cancelled += 1
                else:
                    logger.warning(f"[{account.name}] Failed to cancel {order.order_id}: {result.error}")

        await self._stores.account_state.invalidate(account.id)
        return {
            "success": True,
            "message": f"Cancelled {cancelled} of {len(orders)} orders",
            "cancelledCount": cancelled,
            "totalOrders": len(orders),
        }

    def _grid_exchange(self, account_id: str) -> str | None:
        # Grid keys carry the account's exchange; fall back to the symbol format for unknown ids
        account = self._registry.get_account(account_id)
        return account.exchange if account is not None else None

    async def delete_grid_level(self, account_id: str, symbol: str, side: str, level_index: int) -> dict[str, Any]:
        await self._stores.grid_levels.delete_level(
            account_id, symbol, side, level_index, self._grid_exchange(account_id)
        )
        return {"success": True, "message": f"Deleted grid level {level_index}"}

    async def clear_grid_levels(self, account_id: str, symbol: str, side: str | None = None) -> dict[str, Any]:
        await self._stores.grid_levels.clear_all(account_id, symbol, side, self._grid_exchange(account_id))
        return {
            "success": True,
            "message": f"Cleared all {side or 'buy and sell'} grid levels for {symbol}",
        }
