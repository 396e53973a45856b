"""Shared API dependencies."""

from fastapi import Depends, Header, HTTPException, Request, status
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from sqlmodel import Session, select

from backend.database import get_session
from backend.models.user import User
from backend.services.account_registry import AccountRegistry
from backend.services.actions import ActionService
from backend.services.auth import decode_access_token, verify_api_key
from backend.services.exchanges.registry import AdapterFactory, create_adapter
from backend.services.monitor import MonitorService
from backend.services.snapshot_reader import SnapshotReader
from backend.services.trade_history import TradeHistoryService
from backend.store import Stores

bearer_scheme = HTTPBearer()

UNAUTHORIZED_MESSAGE = "Valid API key required. Include 'x-api-key' header."


class ApiError(Exception):
    """Error rendered as ``{"error": ..., "message": ...}`` by the read API's handler."""

    def __init__(self, status_code: int, error: str, message: str):
        self.status_code = status_code
        self.error = error
        self.message = message
        super().__init__(message)


def get_current_user(
    credentials: HTTPAuthorizationCredentials = Depends(bearer_scheme),
    session: Session = Depends(get_session),
) -> User:
    """Validate JWT and return the current user."""
    username = decode_access_token(credentials.credentials)
    if username is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid or expired token",
        )
    user = session.exec(select(User).where(User.username == username)).first()
    if user is None or not user.is_active:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="User not found or inactive",
        )
    return user


def require_api_key(x_api_key: str | None = Header(default=None)):
    """Static key auth for the external read API."""
    if not verify_api_key(x_api_key):
        raise ApiError(status.HTTP_401_UNAUTHORIZED, "Unauthorized", UNAUTHORIZED_MESSAGE)


def get_stores(request: Request) -> Stores:
    return request.app.state.stores


def get_registry(request: Request) -> AccountRegistry:
    return request.app.state.registry


def get_adapter_factory() -> AdapterFactory:
    return create_adapter


def get_snapshot_reader(
    stores: Stores = Depends(get_stores),
    registry: AccountRegistry = Depends(get_registry),
) -> SnapshotReader:
    return SnapshotReader(stores, registry)


def get_monitor_service(
    stores: Stores = Depends(get_stores),
    registry: AccountRegistry = Depends(get_registry),
    adapter_factory: AdapterFactory = Depends(get_adapter_factory),
) -> MonitorService:
    return MonitorService(stores, registry, adapter_factory)


def get_action_service(
    stores: Stores = Depends(get_stores),
    registry: AccountRegistry = Depends(get_registry),
    adapter_factory: AdapterFactory = Depends(get_adapter_factory),
) -> ActionService:
    return ActionService(stores, registry, adapter_factory)


def get_trade_history_service(
    stores: Stores = Depends(get_stores),
    registry: AccountRegistry = Depends(get_registry),
    adapter_factory: AdapterFactory = Depends(get_adapter_factory),
) -> TradeHistoryService:
    return TradeHistoryService(stores, registry, adapter_factory)
