"""TradingAccount model: an exchange account the monitor collects from."""

import uuid
from datetime import datetime, timezone

from sqlmodel import SQLModel, Field


class TradingAccount(SQLModel, table=True):
    __tablename__ = "trading_account"

    id: str = Field(default_factory=lambda: str(uuid.uuid4()), primary_key=True)
    name: str = Field(index=True)
    symbol: str  # exchange-native format, e.g. BTC-USDT-SWAP (okx) or BTCUSDT (asterdex)
    exchange: str = Field(index=True)  # "okx" | "asterdex"
    status: str = Field(default="active", index=True)  # "active" | "inactive"
    # Fernet-encrypted. okx: api key / secret / passphrase.
    # asterdex: api_key = wallet (user) address, api_secret = signer private key.
    api_key_encrypted: str = ""
    api_secret_encrypted: str = ""
    passphrase_encrypted: str = ""
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    updated_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
