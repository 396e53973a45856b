"""Dashboard API: live account monitor, grid levels and equity deltas."""

import logging

from fastapi import APIRouter, Depends, HTTPException, Query

from backend.api.deps import get_current_user, get_monitor_service, get_registry, get_stores
from backend.services.account_registry import AccountRegistry
from backend.services.monitor import MonitorService
from backend.store import Stores

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/dashboard", tags=["dashboard"], dependencies=[Depends(get_current_user)])


@router.get("/monitor")
async def monitor(
    refresh: bool = False,
    service: MonitorService = Depends(get_monitor_service),
):
    """Live state of every active account; per-account failures are returned inline."""
    return await service.get_monitor(refresh=refresh)


@router.get("/grid-levels")
async def grid_levels(
    account_id: str = Query(alias="accountId"),
    symbol: str = Query(),
    stores: Stores = Depends(get_stores),
    registry: AccountRegistry = Depends(get_registry),
):
    account = registry.get_account(account_id)
    levels = await stores.grid_levels.get_both_sides(account_id, symbol, account.exchange if account else None)
    return {
        "accountId": account_id,
        "symbol": symbol,
        "buy": [lvl.model_dump(by_alias=True) for lvl in levels["buy"]],
        "sell": [lvl.model_dump(by_alias=True) for lvl in levels["sell"]],
    }


@router.get("/equity/{account_id}")
async def equity_ago(
    account_id: str,
    hours: float = Query(default=24, gt=0, le=168),
    stores: Stores = Depends(get_stores),
    registry: AccountRegistry = Depends(get_registry),
):
    """Equity sample closest to ``hours`` ago (within an hour either side)."""
    if registry.get_account(account_id) is None:
        raise HTTPException(status_code=404, detail="Account not found")
    equity = await stores.equity.get_equity_n_hours_ago(account_id, hours)
    return {"accountId": account_id, "hours": hours, "equity": equity}
