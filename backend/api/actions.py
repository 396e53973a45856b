"""Action API: operator actions that go straight to the exchanges."""

import logging

from fastapi import APIRouter, Depends, HTTPException

from backend.api.deps import get_action_service, get_current_user
from backend.schemas.actions import (
    CancelAllOrdersRequest,
    CancelOrderRequest,
    ClosePositionRequest,
    DeleteGridLevelRequest,
)
from backend.services.actions import ActionService
from backend.services.errors import AccountNotFound, ConfigurationError, ExchangeError

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/actions", tags=["actions"], dependencies=[Depends(get_current_user)])


def _to_http(e: Exception) -> HTTPException:
    if isinstance(e, AccountNotFound):
        return HTTPException(status_code=404, detail="Account not found")
    if isinstance(e, ConfigurationError):
        return HTTPException(status_code=400, detail=str(e))
    if isinstance(e, ExchangeError):
        logger.error(f"Action failed on {e.exchange}: {e.message} (code {e.code})")
        return HTTPException(status_code=502, detail=e.message)
    logger.exception("Action failed")
    return HTTPException(status_code=500, detail=str(e))


@router.post("/close-position")
async def close_position(body: ClosePositionRequest, service: ActionService = Depends(get_action_service)):
    try:
        return await service.close_position(body.account_id, body.percentage)
    except Exception as e:
        raise _to_http(e)


@router.post("/cancel-order")
async def cancel_order(body: CancelOrderRequest, service: ActionService = Depends(get_action_service)):
    try:
        result = await service.cancel_order(body.account_id, body.order_id, body.instrument_id)
    except Exception as e:
        raise _to_http(e)
    if not result["success"]:
        raise HTTPException(status_code=502, detail=result["error"])
    return result


@router.post("/cancel-all-orders")
async def cancel_all_orders(body: CancelAllOrdersRequest, service: ActionService = Depends(get_action_service)):
    try:
        return await service.cancel_all_orders(body.account_id)
    except Exception as e:
        raise _to_http(e)


@router.post("/delete-grid-level")
async def delete_grid_level(body: DeleteGridLevelRequest, service: ActionService = Depends(get_action_service)):
    if body.clear_all:
        return await service.clear_grid_levels(body.account_id, body.symbol, body.side)

    if body.side is None or body.level_index is None:
        raise HTTPException(status_code=400, detail="Missing side or levelIndex")
    return await service.delete_grid_level(body.account_id, body.symbol, body.side, body.level_index)
