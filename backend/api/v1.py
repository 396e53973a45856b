"""External read API: API-key authenticated, always answers with a JSON envelope."""

import logging

from fastapi import APIRouter, Depends, Query, Request
from fastapi.responses import JSONResponse

from backend.api.deps import (
    ApiError,
    get_snapshot_reader,
    get_stores,
    require_api_key,
)
from backend.schemas.actions import GridLevelWrite
from backend.schemas.normalized import GridLevel
from backend.services.snapshot_reader import SnapshotReader
from backend.store import SnapshotKind, Stores

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/v1", tags=["v1"], dependencies=[Depends(require_api_key)])


async def api_error_handler(request: Request, exc: ApiError) -> JSONResponse:
    return JSONResponse(status_code=exc.status_code, content={"error": exc.error, "message": exc.message})


def _internal_error(e: Exception) -> ApiError:
    logger.exception(f"[api] Read API failure: {e}")
    return ApiError(500, "Internal Server Error", str(e))


@router.get("/accounts")
def list_accounts(
    exchange: str | None = None,
    reader: SnapshotReader = Depends(get_snapshot_reader),
):
    try:
        return reader.list_accounts(exchange)
    except Exception as e:
        raise _internal_error(e)


async def _read(
    reader: SnapshotReader,
    kind: SnapshotKind,
    account_id: str | None,
    start_time: int | None,
    end_time: int | None,
    exchange: str | None,
):
    try:
        return await reader.read(kind, account_id, start_time, end_time, exchange)
    except Exception as e:
        raise _internal_error(e)


@router.get("/positions")
async def get_positions(
    account_id: str | None = Query(default=None, alias="accountId"),
    start_time: int | None = Query(default=None, alias="startTime"),
    end_time: int | None = Query(default=None, alias="endTime"),
    exchange: str | None = None,
    reader: SnapshotReader = Depends(get_snapshot_reader),
):
    return await _read(reader, SnapshotKind.POSITIONS, account_id, start_time, end_time, exchange)


@router.get("/orders")
async def get_orders(
    account_id: str | None = Query(default=None, alias="accountId"),
    start_time: int | None = Query(default=None, alias="startTime"),
    end_time: int | None = Query(default=None, alias="endTime"),
    exchange: str | None = None,
    reader: SnapshotReader = Depends(get_snapshot_reader),
):
    return await _read(reader, SnapshotKind.ORDERS, account_id, start_time, end_time, exchange)


@router.get("/grid-levels")
async def get_grid_levels(
    account_id: str | None = Query(default=None, alias="accountId"),
    symbol: str | None = None,
    exchange: str | None = None,
    stores: Stores = Depends(get_stores),
):
    if not account_id or not symbol:
        raise ApiError(400, "Bad Request", "accountId and symbol are required")
    levels = await stores.grid_levels.get_both_sides(account_id, symbol, exchange)
    return {
        "accountId": account_id,
        "symbol": symbol,
        "buy": [lvl.model_dump(by_alias=True) for lvl in levels["buy"]],
        "sell": [lvl.model_dump(by_alias=True) for lvl in levels["sell"]],
    }


@router.put("/grid-levels")
async def put_grid_level(body: GridLevelWrite, stores: Stores = Depends(get_stores)):
    level = GridLevel(
        price=body.price,
        size=body.size,
        value=body.value if body.value is not None else body.price * body.size,
        status=body.status,
    )
    ok = await stores.grid_levels.set_level(
        body.account_id, body.symbol, body.side, body.level_index, level, body.exchange
    )
    if not ok:
        raise ApiError(500, "Internal Server Error", "Failed to write grid level")
    return {"success": True, "levelIndex": body.level_index}
