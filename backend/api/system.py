"""System API: health check, scheduler status, collection logs, manual and cron-triggered collection."""

import logging

from fastapi import APIRouter, Depends, Header, HTTPException
from sqlmodel import Session, select

from backend.api.deps import get_adapter_factory, get_current_user, get_registry, get_stores
from backend.database import get_session
from backend.engine.collector import collect_and_log
from backend.models.collection_log import CollectionLog
from backend.services.account_registry import AccountRegistry
from backend.services.auth import verify_cron_secret
from backend.services.exchanges.registry import AdapterFactory
from backend.store import Stores

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/system", tags=["system"])
cron_router = APIRouter(prefix="/api/cron", tags=["cron"])


@router.get("/health")
async def health_check(stores: Stores = Depends(get_stores)):
    store_ok = await stores.client.ping()
    return {"status": "ok" if store_ok else "degraded", "store": store_ok}


@router.get("/scheduler", dependencies=[Depends(get_current_user)])
def scheduler_status():
    """Current scheduler state with job details."""
    from backend.engine.scheduler import get_scheduler_status
    return get_scheduler_status()


async def _collect(stores: Stores, registry: AccountRegistry, adapter_factory: AdapterFactory) -> dict:
    try:
        report = await collect_and_log(stores, registry, adapter_factory)
    except Exception as e:
        logger.exception("[collector] Collection run failed")
        raise HTTPException(status_code=500, detail=str(e))
    if report is None:
        return {"status": "skipped", "message": "A collection run is already in progress"}
    return report


@router.post("/collect", dependencies=[Depends(get_current_user)])
async def trigger_collection(
    stores: Stores = Depends(get_stores),
    registry: AccountRegistry = Depends(get_registry),
    adapter_factory: AdapterFactory = Depends(get_adapter_factory),
):
    """Manually run one collection across all active accounts."""
    return await _collect(stores, registry, adapter_factory)


@router.get("/logs", dependencies=[Depends(get_current_user)])
def collection_logs(
    account_id: str | None = None,
    status: str | None = None,
    limit: int = 100,
    offset: int = 0,
    session: Session = Depends(get_session),
):
    stmt = select(CollectionLog).order_by(CollectionLog.timestamp.desc())
    if account_id is not None:
        stmt = stmt.where(CollectionLog.account_id == account_id)
    if status is not None:
        stmt = stmt.where(CollectionLog.status == status)
    stmt = stmt.offset(offset).limit(limit)
    return session.exec(stmt).all()


@cron_router.get("/collect")
async def cron_collect(
    authorization: str | None = Header(default=None),
    stores: Stores = Depends(get_stores),
    registry: AccountRegistry = Depends(get_registry),
    adapter_factory: AdapterFactory = Depends(get_adapter_factory),
):
    """Entry point for an external cron: ``Authorization: Bearer <MON_CRON_SECRET>``."""
    if not verify_cron_secret(authorization):
        logger.warning("[cron] Unauthorized collection request")
        raise HTTPException(status_code=401, detail="Unauthorized")
    return await _collect(stores, registry, adapter_factory)
