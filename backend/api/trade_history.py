"""Trade history API: fills and realized PnL for exchanges that provide them."""

from fastapi import APIRouter, Depends, HTTPException, Query

from backend.api.deps import get_current_user, get_trade_history_service
from backend.services.errors import AccountNotFound, ConfigurationError, ExchangeError, UnsupportedOperation
from backend.services.trade_history import TradeHistoryService

router = APIRouter(prefix="/api/trade-history", tags=["trade-history"], dependencies=[Depends(get_current_user)])


@router.get("")
async def trade_history(
    account_id: str = Query(alias="accountId"),
    symbol: str | None = None,
    start_time: int | None = Query(default=None, alias="startTime"),
    end_time: int | None = Query(default=None, alias="endTime"),
    cached: bool = False,
    service: TradeHistoryService = Depends(get_trade_history_service),
):
    if start_time is not None and end_time is not None and start_time > end_time:
        raise HTTPException(status_code=400, detail="startTime must not be after endTime")

    try:
        if cached:
            result = await service.cached(account_id)
            if result is None:
                raise HTTPException(status_code=404, detail="No stored trade history for this account")
            return result
        return await service.fetch(account_id, symbol, start_time, end_time)
    except AccountNotFound:
        raise HTTPException(status_code=404, detail="Account not found")
    except UnsupportedOperation:
        raise HTTPException(status_code=400, detail="Trade history is only available for Asterdex accounts")
    except ConfigurationError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except ExchangeError as e:
        raise HTTPException(status_code=502, detail=e.message)
