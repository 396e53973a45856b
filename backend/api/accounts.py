"""CRUD API for trading accounts (the registry the collector reads)."""

from datetime import datetime, timezone

from fastapi import APIRouter, Depends, HTTPException
from sqlmodel import Session, select

from backend.api.deps import get_adapter_factory, get_current_user, get_registry
from backend.database import get_session
from backend.models.trading_account import TradingAccount
from backend.schemas.account import AccountCreate, AccountRead, AccountUpdate, check_symbol
from backend.services import normalizer
from backend.services.account_registry import AccountRegistry
from backend.services.encryption import encrypt
from backend.services.errors import ConfigurationError, ExchangeError
from backend.services.exchanges.registry import AdapterFactory

router = APIRouter(prefix="/api/accounts", tags=["accounts"], dependencies=[Depends(get_current_user)])

_CREDENTIAL_FIELDS = {
    "api_key": "api_key_encrypted",
    "api_secret": "api_secret_encrypted",
    "passphrase": "passphrase_encrypted",
}


def _to_read(account: TradingAccount) -> AccountRead:
    read = AccountRead.model_validate(account)
    read.has_credentials = bool(account.api_key_encrypted and account.api_secret_encrypted)
    return read


def _get_or_404(session: Session, account_id: str) -> TradingAccount:
    account = session.get(TradingAccount, account_id)
    if not account:
        raise HTTPException(status_code=404, detail="Account not found")
    return account


@router.get("", response_model=list[AccountRead])
def list_accounts(
    exchange: str | None = None,
    status: str | None = None,
    session: Session = Depends(get_session),
):
    stmt = select(TradingAccount).order_by(TradingAccount.name)
    if exchange:
        stmt = stmt.where(TradingAccount.exchange == exchange)
    if status:
        stmt = stmt.where(TradingAccount.status == status)
    return [_to_read(a) for a in session.exec(stmt).all()]


@router.post("", response_model=AccountRead, status_code=201)
def create_account(data: AccountCreate, session: Session = Depends(get_session)):
    account = TradingAccount(
        name=data.name,
        symbol=data.symbol,
        exchange=data.exchange,
        status=data.status,
        api_key_encrypted=encrypt(data.api_key),
        api_secret_encrypted=encrypt(data.api_secret),
        passphrase_encrypted=encrypt(data.passphrase),
    )
    session.add(account)
    session.commit()
    session.refresh(account)
    return _to_read(account)


@router.get("/{account_id}", response_model=AccountRead)
def get_account(account_id: str, session: Session = Depends(get_session)):
    return _to_read(_get_or_404(session, account_id))


@router.put("/{account_id}", response_model=AccountRead)
def update_account(account_id: str, data: AccountUpdate, session: Session = Depends(get_session)):
    account = _get_or_404(session, account_id)

    update_data = data.model_dump(exclude_unset=True)
    for field, column in _CREDENTIAL_FIELDS.items():
        if field in update_data:
            value = update_data.pop(field)
            if value is not None:
                setattr(account, column, encrypt(value))

    for key, value in update_data.items():
        if value is not None:
            setattr(account, key, value)

    # Symbol and exchange may change independently; validate the combination
    try:
        check_symbol(account.symbol, account.exchange)
    except ValueError as e:
        raise HTTPException(status_code=422, detail=str(e))

    account.updated_at = datetime.now(timezone.utc)
    session.add(account)
    session.commit()
    session.refresh(account)
    return _to_read(account)


@router.delete("/{account_id}", status_code=204)
def delete_account(account_id: str, session: Session = Depends(get_session)):
    account = _get_or_404(session, account_id)
    session.delete(account)
    session.commit()


@router.post("/{account_id}/test")
async def test_account(
    account_id: str,
    registry: AccountRegistry = Depends(get_registry),
    adapter_factory: AdapterFactory = Depends(get_adapter_factory),
):
    """Check the account's credentials by fetching its balance."""
    account = registry.get_account(account_id)
    if account is None:
        raise HTTPException(status_code=404, detail="Account not found")

    try:
        async with adapter_factory(account) as adapter:
            raw = await adapter.get_balance()
        balance = normalizer.normalize_balance(adapter.exchange, raw)
        return {"status": "ok", "equity": balance.equity}
    except (ConfigurationError, ExchangeError) as e:
        return {"status": "error", "message": str(e)}
