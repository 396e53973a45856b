"""Asterdex futures adapter (v3 API, wallet-signature authentication).

Signed requests carry no API-key header. Instead the parameters are
stringified, JSON-encoded with sorted keys, ABI-encoded together with the
account's wallet (``user``), the API signer address and a microsecond nonce,
keccak-hashed and signed with the signer's private key. ``user``, ``signer``,
``nonce`` and ``signature`` are then appended to the request parameters.

Account credentials map as: ``api_key`` = wallet address,
``api_secret`` = signer private key.
"""

import json
import logging
import time
from decimal import Decimal
from typing import Any

from eth_abi import encode
from eth_account import Account
from eth_account.messages import encode_defunct
from eth_utils import keccak, to_checksum_address

from backend.services.errors import ExchangeError
from backend.services.exchanges.base import ExchangeAdapter, OrderResult, format_decimal
from backend.services.normalizer import unwrap_aster
from backend.utils.constants import EXCHANGE_ASTER, SIGNING_WALLET

logger = logging.getLogger(__name__)

RECV_WINDOW_MS = 50000


def _stringify(value: Any) -> Any:
    if isinstance(value, dict):
        return {k: _stringify(v) for k, v in value.items()}
    if isinstance(value, list):
        return [_stringify(v) for v in value]
    if isinstance(value, bool):
        return "true" if value else "false"
    return str(value)


def wallet_signature_payload(params: dict, user: str, signer: str, nonce: int) -> bytes:
    """Bytes that get signed: keccak(abi.encode(json(params), user, signer, nonce))."""
    json_str = json.dumps(_stringify(params), sort_keys=True, separators=(",", ":"))
    encoded = encode(
        ["string", "address", "address", "uint256"],
        [json_str, to_checksum_address(user), to_checksum_address(signer), nonce],
    )
    return keccak(encoded)


def sign_params(params: dict, user: str, private_key: str, nonce: int | None = None) -> dict:
    """Return a copy of ``params`` with the wallet-signature fields appended."""
    signer = Account.from_key(private_key).address
    nonce = nonce if nonce is not None else int(time.time() * 1_000_000)
    digest = wallet_signature_payload(params, user, signer, nonce)
    signed = Account.sign_message(encode_defunct(primitive=digest), private_key=private_key)

    result = _stringify(params)
    result["nonce"] = str(nonce)
    result["user"] = user
    result["signer"] = signer
    result["signature"] = "0x" + bytes(signed.signature).hex()
    return result


class AsterAdapter(ExchangeAdapter):
    exchange = EXCHANGE_ASTER
    signing_scheme = SIGNING_WALLET
    supports_trade_history = True

    async def _signed(self, method: str, path: str, params: dict | None = None) -> Any:
        payload = {k: v for k, v in (params or {}).items() if v is not None}
        payload["recvWindow"] = RECV_WINDOW_MS
        payload["timestamp"] = int(time.time() * 1000)
        signed = sign_params(payload, self.account.api_key, self.account.api_secret)

        if method == "POST":
            response = await self._send(method, path, data=signed)
        else:
            response = await self._send(method, path, params=signed)
        return unwrap_aster(response)

    async def _public(self, path: str, params: dict | None = None) -> Any:
        return unwrap_aster(await self._send("GET", path, params=params))

    async def get_balance(self) -> list:
        return await self._signed("GET", "/fapi/v3/balance")

    async def get_positions(self, symbol: str | None = None) -> list:
        return await self._signed("GET", "/fapi/v3/positionRisk", {"symbol": symbol})

    async def get_pending_orders(self, symbol: str | None = None) -> list:
        return await self._signed("GET", "/fapi/v3/openOrders", {"symbol": symbol})

    async def get_ticker(self, symbol: str) -> dict:
        return await self._public("/fapi/v1/ticker/24hr", {"symbol": symbol})

    async def get_instrument(self, symbol: str) -> dict:
        info = await self._public("/fapi/v1/exchangeInfo")
        for entry in (info or {}).get("symbols", []):
            if entry.get("symbol") == symbol:
                return entry
        raise ExchangeError(self.exchange, f"Unknown symbol {symbol}")

    async def place_market_order(
        self,
        symbol: str,
        side: str,
        size: float | Decimal,
        position_side: str | None = None,
        margin_mode: str | None = None,
        reduce_only: bool = True,
    ) -> OrderResult:
        params: dict[str, Any] = {
            "symbol": symbol,
            "side": side.upper(),
            "type": "MARKET",
            "quantity": format_decimal(size),
        }
        hedge_side = (position_side or "").upper()
        if hedge_side in ("LONG", "SHORT"):
            # Hedge mode: the position side implies the reduce direction
            params["positionSide"] = hedge_side
        elif reduce_only:
            params["reduceOnly"] = True

        try:
            data = await self._signed("POST", "/fapi/v3/order", params)
        except ExchangeError as e:
            logger.error(f"[{self.account.name}] Asterdex order failed: {e.message} (code {e.code})")
            return OrderResult(success=False, error=e.message, error_code=e.code)

        order_id = data.get("orderId") if isinstance(data, dict) else None
        logger.info(f"[{self.account.name}] Asterdex market {side} {params['quantity']} {symbol} -> {order_id}")
        return OrderResult(
            success=True,
            order_id=str(order_id) if order_id is not None else None,
            raw_response=data,
        )

    async def cancel_order(self, symbol: str, order_id: str) -> OrderResult:
        try:
            data = await self._signed("DELETE", "/fapi/v3/order", {"symbol": symbol, "orderId": order_id})
        except ExchangeError as e:
            logger.error(f"[{self.account.name}] Asterdex cancel {order_id} failed: {e.message} (code {e.code})")
            return OrderResult(success=False, order_id=str(order_id), error=e.message, error_code=e.code)
        return OrderResult(success=True, order_id=str(order_id), raw_response=data)

    async def get_user_trades(
        self, symbol: str, start_time: int | None = None, end_time: int | None = None, limit: int = 1000
    ) -> list:
        return await self._signed(
            "GET",
            "/fapi/v3/userTrades",
            {"symbol": symbol, "startTime": start_time, "endTime": end_time, "limit": limit},
        )

    async def get_income_history(
        self,
        symbol: str | None = None,
        income_type: str | None = None,
        start_time: int | None = None,
        end_time: int | None = None,
        limit: int = 1000,
    ) -> list:
        return await self._signed(
            "GET",
            "/fapi/v3/income",
            {
                "symbol": symbol,
                "incomeType": income_type,
                "startTime": start_time,
                "endTime": end_time,
                "limit": limit,
            },
        )
