"""Pydantic schemas for the trading-account admin API."""

from datetime import datetime

from pydantic import BaseModel, Field, field_validator, model_validator

from backend.services.normalizer import is_valid_symbol, suggest_symbol
from backend.utils.constants import ACCOUNT_STATUSES, SUPPORTED_EXCHANGES


def _check_exchange(value: str) -> str:
    exchange = value.strip().lower()
    if exchange not in SUPPORTED_EXCHANGES:
        raise ValueError(f"must be one of {SUPPORTED_EXCHANGES}")
    return exchange


def _check_status(value: str) -> str:
    status = value.strip().lower()
    if status not in ACCOUNT_STATUSES:
        raise ValueError(f"must be one of {ACCOUNT_STATUSES}")
    return status


def check_symbol(symbol: str, exchange: str) -> None:
    if not is_valid_symbol(symbol, exchange):
        suggestion = suggest_symbol(symbol, exchange)
        hint = f" (did you mean {suggestion}?)" if suggestion else ""
        raise ValueError(f"symbol {symbol!r} is not a valid {exchange} symbol{hint}")


class AccountCreate(BaseModel):
    name: str = Field(min_length=1, max_length=120)
    symbol: str = Field(min_length=1)
    exchange: str
    status: str = "active"
    # Raw credentials, encrypted before storage
    api_key: str = ""
    api_secret: str = ""
    passphrase: str = ""

    @field_validator("name", "symbol")
    @classmethod
    def _trim(cls, value: str) -> str:
        text = value.strip()
        if not text:
            raise ValueError("must not be empty")
        return text

    @field_validator("exchange")
    @classmethod
    def _validate_exchange(cls, value: str) -> str:
        return _check_exchange(value)

    @field_validator("status")
    @classmethod
    def _validate_status(cls, value: str) -> str:
        return _check_status(value)

    @model_validator(mode="after")
    def _validate_symbol_format(self):
        check_symbol(self.symbol, self.exchange)
        return self


class AccountUpdate(BaseModel):
    name: str | None = Field(default=None, min_length=1, max_length=120)
    symbol: str | None = None
    exchange: str | None = None
    status: str | None = None
    api_key: str | None = None  # If provided, re-encrypts
    api_secret: str | None = None
    passphrase: str | None = None

    @field_validator("exchange")
    @classmethod
    def _validate_optional_exchange(cls, value: str | None) -> str | None:
        return _check_exchange(value) if value is not None else None

    @field_validator("status")
    @classmethod
    def _validate_optional_status(cls, value: str | None) -> str | None:
        return _check_status(value) if value is not None else None


class AccountRead(BaseModel):
    id: str
    name: str
    symbol: str
    exchange: str
    status: str
    has_credentials: bool = False
    created_at: datetime
    updated_at: datetime
    # credentials are NEVER exposed

    model_config = {"from_attributes": True}
