"""Read access to the trading-account registry.

The monitoring core only reads accounts; the admin CRUD lives in
``backend.api.accounts``. Credentials are decrypted here so nothing
downstream touches ciphertext.
"""

import logging
from dataclasses import dataclass, field

from sqlalchemy.engine import Engine
from sqlmodel import Session, select

from backend.models.trading_account import TradingAccount
from backend.services.encryption import try_decrypt
from backend.utils.constants import EXCHANGE_OKX, SIGNING_SCHEMES

logger = logging.getLogger(__name__)

REQUIRED_CREDENTIALS: dict[str, tuple[str, ...]] = {
    EXCHANGE_OKX: ("api_key", "api_secret", "passphrase"),
}
DEFAULT_REQUIRED_CREDENTIALS = ("api_key", "api_secret")


@dataclass
class AccountConfig:
    id: str
    name: str
    symbol: str
    exchange: str
    status: str = "active"
    api_key: str = field(default="", repr=False)
    api_secret: str = field(default="", repr=False)
    passphrase: str = field(default="", repr=False)

    @property
    def signing_scheme(self) -> str | None:
        """Capability tag used to pick an exchange adapter."""
        return SIGNING_SCHEMES.get(self.exchange)

    def missing_credentials(self) -> list[str]:
        required = REQUIRED_CREDENTIALS.get(self.exchange, DEFAULT_REQUIRED_CREDENTIALS)
        return [name for name in required if not getattr(self, name)]

    def summary(self) -> dict:
        return {"id": self.id, "name": self.name, "symbol": self.symbol, "exchange": self.exchange}


def _decrypt_field(account: TradingAccount, attr: str) -> str:
    value = try_decrypt(getattr(account, attr))
    if value is None:
        logger.warning(f"[{account.name}] Could not decrypt {attr}; treating as missing")
        return ""
    return value


def to_config(account: TradingAccount) -> AccountConfig:
    return AccountConfig(
        id=account.id,
        name=account.name,
        symbol=account.symbol,
        exchange=account.exchange,
        status=account.status,
        api_key=_decrypt_field(account, "api_key_encrypted"),
        api_secret=_decrypt_field(account, "api_secret_encrypted"),
        passphrase=_decrypt_field(account, "passphrase_encrypted"),
    )


class AccountRegistry:
    def __init__(self, engine: Engine):
        self._engine = engine

    def list_accounts(self, exchange: str | None = None, status: str | None = "active") -> list[AccountConfig]:
        with Session(self._engine) as session:
            query = select(TradingAccount)
            if status:
                query = query.where(TradingAccount.status == status)
            if exchange:
                query = query.where(TradingAccount.exchange == exchange)
            rows = session.exec(query.order_by(TradingAccount.name)).all()
            return [to_config(row) for row in rows]

    def get_account(self, account_id: str) -> AccountConfig | None:
        with Session(self._engine) as session:
            row = session.get(TradingAccount, account_id)
            return to_config(row) if row else None
