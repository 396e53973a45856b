"""Exchange adapter interface.

An adapter owns transport and request signing for one exchange and returns
the exchange's payloads with the response envelope removed. Interpreting the
payload is the normalizer's job.
"""

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from decimal import Decimal
from typing import Any

import httpx

from backend.services.account_registry import AccountConfig
from backend.services.errors import ExchangeError, UnsupportedOperation

logger = logging.getLogger(__name__)


@dataclass
class OrderResult:
    success: bool
    order_id: str | None = None
    error: str | None = None
    error_code: str | None = None
    raw_response: Any = None


def format_decimal(value: float | Decimal) -> str:
    """Render a size/price without float noise or exponent notation."""
    return format(Decimal(str(value)).normalize(), "f")


class ExchangeAdapter(ABC):
    exchange: str = ""
    signing_scheme: str = ""
    supports_trade_history: bool = False

    def __init__(
        self,
        account: AccountConfig,
        base_url: str,
        timeout: float = 15.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.account = account
        self._client = httpx.AsyncClient(
            base_url=base_url.rstrip("/"),
            timeout=timeout,
            transport=transport,
        )

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc, tb):
        await self.close()

    async def close(self):
        await self._client.aclose()

    def _error_from_body(self, body: Any) -> tuple[str | None, str | None]:
        """Extract (code, message) from an error response body."""
        if isinstance(body, dict):
            code = body.get("code")
            message = body.get("msg") or body.get("message")
            return (str(code) if code is not None else None), message
        return None, None

    async def _send(
        self,
        method: str,
        url: str,
        *,
        params: dict | None = None,
        content: str | None = None,
        data: dict | None = None,
        headers: dict | None = None,
    ) -> Any:
        """Issue one request and return the decoded JSON body.

        Transport failures, timeouts and non-2xx statuses all surface as
        ``ExchangeError`` carrying the exchange's code/message when present.
        """
        try:
            resp = await self._client.request(
                method, url, params=params, content=content, data=data, headers=headers
            )
        except httpx.TimeoutException as e:
            raise ExchangeError(self.exchange, f"Request to {url} timed out", code="timeout") from e
        except httpx.HTTPError as e:
            raise ExchangeError(self.exchange, f"Request to {url} failed: {e}") from e

        try:
            body = resp.json()
        except ValueError:
            body = None

        if resp.status_code >= 400:
            code, message = self._error_from_body(body)
            message = message or resp.text[:200] or resp.reason_phrase
            logger.warning(
                f"[{self.account.name}] {self.exchange} {method} {url} -> "
                f"{resp.status_code} code={code} msg={message}"
            )
            raise ExchangeError(self.exchange, message, code=code, status=resp.status_code)

        if body is None:
            raise ExchangeError(self.exchange, f"Non-JSON response from {url}", status=resp.status_code)
        return body

    # -- Account state ------------------------------------------------------

    @abstractmethod
    async def get_balance(self) -> Any: ...

    @abstractmethod
    async def get_positions(self, symbol: str | None = None) -> list: ...

    @abstractmethod
    async def get_pending_orders(self, symbol: str | None = None) -> list: ...

    # -- Market metadata ----------------------------------------------------

    @abstractmethod
    async def get_ticker(self, symbol: str) -> Any: ...

    @abstractmethod
    async def get_instrument(self, symbol: str) -> Any: ...

    # -- Trading ------------------------------------------------------------

    @abstractmethod
    async def place_market_order(
        self,
        symbol: str,
        side: str,
        size: float | Decimal,
        position_side: str | None = None,
        margin_mode: str | None = None,
        reduce_only: bool = True,
    ) -> OrderResult: ...

    @abstractmethod
    async def cancel_order(self, symbol: str, order_id: str) -> OrderResult: ...

    # -- History (not every exchange offers these) --------------------------

    async def get_user_trades(
        self, symbol: str, start_time: int | None = None, end_time: int | None = None, limit: int = 1000
    ) -> list:
        raise UnsupportedOperation(self.exchange, "get_user_trades")

    async def get_income_history(
        self,
        symbol: str | None = None,
        income_type: str | None = None,
        start_time: int | None = None,
        end_time: int | None = None,
        limit: int = 1000,
    ) -> list:
        raise UnsupportedOperation(self.exchange, "get_income_history")
