"""OKX v5 REST adapter (HMAC-SHA256 signed requests)."""

import base64
import hashlib
import hmac
import json
import logging
from datetime import datetime, timezone
from decimal import Decimal
from typing import Any
from urllib.parse import urlencode

from backend.services.errors import ExchangeError
from backend.services.exchanges.base import ExchangeAdapter, OrderResult, format_decimal
from backend.services.normalizer import unwrap_okx
from backend.utils.constants import EXCHANGE_OKX, SIGNING_HMAC

logger = logging.getLogger(__name__)


def okx_timestamp() -> str:
    """ISO-8601 UTC timestamp with millisecond precision, as OKX expects."""
    return datetime.now(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")


def sign_okx(secret: str, timestamp: str, method: str, request_path: str, body: str = "") -> str:
    message = f"{timestamp}{method.upper()}{request_path}{body}"
    digest = hmac.new(secret.encode(), message.encode(), hashlib.sha256).digest()
    return base64.b64encode(digest).decode()


class OkxAdapter(ExchangeAdapter):
    exchange = EXCHANGE_OKX
    signing_scheme = SIGNING_HMAC

    def _auth_headers(self, method: str, request_path: str, body: str = "") -> dict[str, str]:
        timestamp = okx_timestamp()
        return {
            "OK-ACCESS-KEY": self.account.api_key,
            "OK-ACCESS-SIGN": sign_okx(self.account.api_secret, timestamp, method, request_path, body),
            "OK-ACCESS-TIMESTAMP": timestamp,
            "OK-ACCESS-PASSPHRASE": self.account.passphrase,
            "Content-Type": "application/json",
        }

    async def _request(
        self, method: str, path: str, params: dict | None = None, body: dict | None = None, signed: bool = True
    ) -> list:
        # The signature covers the exact path+query string, so build it here
        query = urlencode({k: v for k, v in (params or {}).items() if v is not None})
        request_path = f"{path}?{query}" if query else path
        content = json.dumps(body) if body is not None else ""
        headers = self._auth_headers(method, request_path, content) if signed else None
        response = await self._send(method, request_path, content=content or None, headers=headers)
        return unwrap_okx(response)

    async def get_balance(self) -> list:
        return await self._request("GET", "/api/v5/account/balance")

    async def get_positions(self, symbol: str | None = None) -> list:
        return await self._request(
            "GET", "/api/v5/account/positions", params={"instType": "SWAP", "instId": symbol}
        )

    async def get_pending_orders(self, symbol: str | None = None) -> list:
        return await self._request(
            "GET", "/api/v5/trade/orders-pending", params={"instType": "SWAP", "instId": symbol}
        )

    async def get_ticker(self, symbol: str) -> dict:
        data = await self._request("GET", "/api/v5/market/ticker", params={"instId": symbol}, signed=False)
        return data[0] if data else {}

    async def get_instrument(self, symbol: str) -> dict:
        data = await self._request(
            "GET", "/api/v5/public/instruments", params={"instType": "SWAP", "instId": symbol}, signed=False
        )
        return data[0] if data else {}

    async def place_market_order(
        self,
        symbol: str,
        side: str,
        size: float | Decimal,
        position_side: str | None = None,
        margin_mode: str | None = None,
        reduce_only: bool = True,
    ) -> OrderResult:
        order: dict[str, Any] = {
            "instId": symbol,
            "tdMode": margin_mode or "cross",
            "side": side.lower(),
            "ordType": "market",
            "sz": format_decimal(size),
        }
        if reduce_only:
            order["reduceOnly"] = True
        # Long/short mode needs posSide; net mode rejects it
        if position_side and position_side.lower() != "net":
            order["posSide"] = position_side.lower()

        try:
            data = await self._request("POST", "/api/v5/trade/order", body=order)
        except ExchangeError as e:
            logger.error(f"[{self.account.name}] OKX order failed: {e.message} (code {e.code})")
            return OrderResult(success=False, error=e.message, error_code=e.code)

        row = data[0] if data else {}
        logger.info(f"[{self.account.name}] OKX market {side} {order['sz']} {symbol} -> {row.get('ordId')}")
        return OrderResult(success=True, order_id=row.get("ordId"), raw_response=data)

    async def cancel_order(self, symbol: str, order_id: str) -> OrderResult:
        try:
            data = await self._request(
                "POST", "/api/v5/trade/cancel-order", body={"instId": symbol, "ordId": str(order_id)}
            )
        except ExchangeError as e:
            logger.error(f"[{self.account.name}] OKX cancel {order_id} failed: {e.message} (code {e.code})")
            return OrderResult(success=False, order_id=str(order_id), error=e.message, error_code=e.code)
        return OrderResult(success=True, order_id=str(order_id), raw_response=data)
