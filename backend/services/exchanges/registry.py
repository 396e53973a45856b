"""Pick the adapter implementation for an account by its signing capability."""

from typing import Callable

import httpx

from backend.config import settings
from backend.services.account_registry import AccountConfig
from backend.services.errors import ConfigurationError, MissingCredentials
from backend.services.exchanges.aster import AsterAdapter
from backend.services.exchanges.base import ExchangeAdapter
from backend.services.exchanges.okx import OkxAdapter
from backend.utils.constants import SIGNING_HMAC, SIGNING_WALLET

AdapterFactory = Callable[[AccountConfig], ExchangeAdapter]

ADAPTERS: dict[str, tuple[type[ExchangeAdapter], str]] = {
    SIGNING_HMAC: (OkxAdapter, "okx_base_url"),
    SIGNING_WALLET: (AsterAdapter, "aster_base_url"),
}


def create_adapter(
    account: AccountConfig,
    timeout: float | None = None,
    transport: httpx.AsyncBaseTransport | None = None,
) -> ExchangeAdapter:
    """Build the adapter for ``account``; the caller owns closing it.

    Raises MissingCredentials if the account lacks what its exchange needs.
    """
    entry = ADAPTERS.get(account.signing_scheme or "")
    if entry is None:
        raise ConfigurationError(f"Unsupported exchange: {account.exchange}")

    missing = account.missing_credentials()
    if missing:
        raise MissingCredentials(account.name, missing)

    adapter_cls, url_setting = entry
    return adapter_cls(
        account,
        base_url=getattr(settings, url_setting),
        timeout=timeout if timeout is not None else settings.exchange_timeout_seconds,
        transport=transport,
    )
