"""Maps both exchanges' raw responses onto the canonical Position/Order/balance shapes.

Field names differ between the exchanges and between payload variants of the
same exchange (``positionAmt`` vs ``pa``, ``price`` vs ``p``). Each logical
field is resolved through an ordered list of candidate names in
``FIELD_FALLBACKS``; the first candidate present with a non-empty value wins.

Exchanges send prices and sizes as decimal strings. Every numeric field goes
through ``to_float`` which treats missing, empty or unparseable values as 0.
"""

import logging
import math
import re
from typing import Any

from backend.schemas.normalized import (
    AccountBalance,
    IncomeEvent,
    InstrumentInfo,
    Order,
    Position,
    Trade,
)
from backend.services.errors import ExchangeError
from backend.utils.constants import EXCHANGE_ASTER, EXCHANGE_OKX, SUPPORTED_EXCHANGES

logger = logging.getLogger(__name__)

FIELD_FALLBACKS: dict[str, dict[str, tuple[str, ...]]] = {
    EXCHANGE_ASTER: {
        "position_amount": ("positionAmt", "pa"),
        "avg_price": ("entryPrice", "ep"),
        "mark_price": ("markPrice", "mp"),
        "unrealized_pnl": ("unRealizedProfit", "unrealizedProfit", "upl", "up"),
        "unrealized_pnl_ratio": ("unRealizedProfitRatio", "uplRatio"),
        "leverage": ("leverage", "lever"),
        "notional": ("notional", "notionalUsd"),
        "instrument": ("symbol", "s", "instId"),
        "position_side": ("positionSide", "ps"),
        "margin_mode": ("marginType", "mt"),
        "order_price": ("price", "p", "px"),
        "order_size": ("origQty", "q", "sz"),
        "order_id": ("orderId", "i", "ordId"),
        "order_side": ("side", "S"),
        "order_status": ("status", "X", "state"),
        "balance_asset": ("asset", "a"),
        "balance_equity": ("balance", "wb", "walletBalance"),
        "balance_available": ("availableBalance", "ab", "availBal"),
        "balance_upl": ("crossUnPnl", "cup"),
        "ticker_last": ("lastPrice", "c"),
        "ticker_bid": ("bidPrice", "b"),
        "ticker_ask": ("askPrice", "a"),
    },
    EXCHANGE_OKX: {
        "position_amount": ("pos",),
        "avg_price": ("avgPx",),
        "mark_price": ("markPx",),
        "unrealized_pnl": ("upl",),
        "unrealized_pnl_ratio": ("uplRatio",),
        "leverage": ("lever",),
        "notional": ("notionalUsd",),
        "instrument": ("instId",),
        "position_side": ("posSide",),
        "margin_mode": ("mgnMode",),
        "order_price": ("px",),
        "order_size": ("sz",),
        "order_id": ("ordId",),
        "order_side": ("side",),
        "order_status": ("state",),
        "balance_equity": ("totalEq",),
        "balance_available": ("availBal", "availEq"),
        "balance_upl": ("upl",),
        "ticker_last": ("last",),
        "ticker_bid": ("bidPx",),
        "ticker_ask": ("askPx",),
    },
}

ORDER_STATUS_MAP = {
    "NEW": "pending",
    "PARTIALLY_FILLED": "pending",
    "live": "pending",
    "partially_filled": "pending",
    "FILLED": "filled",
    "filled": "filled",
}


def to_float(value: Any, default: float = 0.0) -> float:
    """Parse an exchange number, tolerating strings, None and garbage."""
    if value is None or value == "":
        return default
    try:
        result = float(value)
    except (TypeError, ValueError):
        return default
    if not math.isfinite(result):
        return default
    return result


def pick(raw: dict, exchange: str, field: str, default: Any = None) -> Any:
    """Return the first non-empty candidate for a logical field."""
    for name in FIELD_FALLBACKS[exchange][field]:
        value = raw.get(name)
        if value is not None and value != "":
            return value
    return default


def _check_exchange(exchange: str):
    if exchange not in SUPPORTED_EXCHANGES:
        raise ValueError(f"Unsupported exchange: {exchange}")


# ---------------------------------------------------------------------------
# Response envelopes
# ---------------------------------------------------------------------------


def unwrap_okx(response: Any) -> list:
    """Return ``data`` from an OKX v5 envelope, raising on a non-zero code."""
    if not isinstance(response, dict):
        raise ExchangeError(EXCHANGE_OKX, f"Unexpected response: {response!r}")
    code = str(response.get("code", "0"))
    if code != "0":
        message = response.get("msg") or "Request failed"
        # Per-item errors (e.g. order placement) carry the useful message in data[0]
        data = response.get("data") or []
        if data and isinstance(data[0], dict) and data[0].get("sMsg"):
            message = data[0]["sMsg"]
            code = str(data[0].get("sCode") or code)
        raise ExchangeError(EXCHANGE_OKX, message, code=code)
    data = response.get("data")
    return data if isinstance(data, list) else []


def unwrap_aster(response: Any) -> Any:
    """Asterdex returns bare payloads, occasionally wrapped in ``{"data": ...}``."""
    if isinstance(response, dict):
        code = response.get("code")
        if code is not None and "msg" in response and to_float(code) < 0:
            raise ExchangeError(EXCHANGE_ASTER, str(response["msg"]), code=str(code))
        if "data" in response and isinstance(response["data"], (list, dict)):
            return response["data"]
    return response


def unwrap(exchange: str, response: Any) -> Any:
    _check_exchange(exchange)
    if exchange == EXCHANGE_OKX:
        return unwrap_okx(response)
    return unwrap_aster(response)


def _as_list(value: Any) -> list:
    if isinstance(value, list):
        return value
    if isinstance(value, dict):
        return [value]
    return []


# ---------------------------------------------------------------------------
# Positions
# ---------------------------------------------------------------------------


def normalize_position(exchange: str, raw: dict) -> Position:
    """Normalize one non-flat raw position."""
    _check_exchange(exchange)
    amount = to_float(pick(raw, exchange, "position_amount"))
    notional = abs(to_float(pick(raw, exchange, "notional")))
    if not notional:
        notional = abs(amount * to_float(pick(raw, exchange, "mark_price")))

    position_side = pick(raw, exchange, "position_side")
    margin_mode = pick(raw, exchange, "margin_mode")

    return Position(
        side="LONG" if amount > 0 else "SHORT",
        contracts=abs(amount),
        avg_price=to_float(pick(raw, exchange, "avg_price")),
        unrealized_pnl=to_float(pick(raw, exchange, "unrealized_pnl")),
        unrealized_pnl_ratio=to_float(pick(raw, exchange, "unrealized_pnl_ratio")) * 100,
        leverage=abs(to_float(pick(raw, exchange, "leverage"))),
        notional_usd=notional,
        instrument_id=str(pick(raw, exchange, "instrument", "")),
        position_side=str(position_side) if position_side is not None else None,
        margin_mode=str(margin_mode).lower() if margin_mode is not None else None,
    )


def normalize_positions(exchange: str, raw_positions: Any, symbol: str | None = None) -> list[Position]:
    """Drop flat positions (and other instruments when ``symbol`` is given), then normalize."""
    _check_exchange(exchange)
    positions = []
    for raw in _as_list(raw_positions):
        if not isinstance(raw, dict):
            continue
        if abs(to_float(pick(raw, exchange, "position_amount"))) <= 0:
            continue
        if symbol and pick(raw, exchange, "instrument") != symbol:
            continue
        positions.append(normalize_position(exchange, raw))
    return positions


# ---------------------------------------------------------------------------
# Orders
# ---------------------------------------------------------------------------


def normalize_order(exchange: str, raw: dict, contract_value: float = 1.0) -> Order:
    _check_exchange(exchange)
    price = to_float(pick(raw, exchange, "order_price"))
    size = to_float(pick(raw, exchange, "order_size"))
    multiplier = contract_value if exchange == EXCHANGE_OKX else 1.0
    order_id = pick(raw, exchange, "order_id")
    return Order(
        price=abs(price),
        size=abs(size),
        value=abs(price * size * multiplier),
        status=ORDER_STATUS_MAP.get(str(pick(raw, exchange, "order_status", "")), "pending"),
        side="buy" if str(pick(raw, exchange, "order_side", "")).lower() == "buy" else "sell",
        order_id=str(order_id) if order_id is not None else None,
        instrument_id=str(pick(raw, exchange, "instrument", "")),
    )


def normalize_orders(exchange: str, raw_orders: Any, contract_value: float = 1.0) -> list[Order]:
    return [
        normalize_order(exchange, raw, contract_value)
        for raw in _as_list(raw_orders)
        if isinstance(raw, dict)
    ]


def split_orders(orders: list[Order]) -> tuple[list[Order], list[Order]]:
    """Split into (buys highest price first, sells lowest price first)."""
    buys = sorted((o for o in orders if o.side == "buy"), key=lambda o: o.price, reverse=True)
    sells = sorted((o for o in orders if o.side == "sell"), key=lambda o: o.price)
    return buys, sells


# ---------------------------------------------------------------------------
# Balance, instrument, ticker
# ---------------------------------------------------------------------------


def normalize_balance(exchange: str, raw: Any, positions: list[Position] | None = None) -> AccountBalance:
    """Normalize a balance response.

    OKX: ``raw`` is ``data[0]`` of the account balance endpoint.
    Asterdex: ``raw`` is the per-asset balance list; the USDT row is used and
    unrealized PnL is summed from ``positions`` when they are supplied.
    """
    _check_exchange(exchange)

    if exchange == EXCHANGE_OKX:
        row = raw[0] if isinstance(raw, list) and raw else raw
        if not isinstance(row, dict):
            return AccountBalance()
        details = row.get("details") or []
        detail = next((d for d in details if d.get("ccy") == "USDT"), details[0] if details else {})
        equity = to_float(pick(row, exchange, "balance_equity"))
        available = to_float(pick(detail, exchange, "balance_available"))
        upl = pick(row, exchange, "balance_upl")
        if upl is None:
            upl = pick(detail, exchange, "balance_upl")
        unrealized = to_float(upl)
    else:
        rows = [r for r in _as_list(raw) if isinstance(r, dict)]
        row = next((r for r in rows if pick(r, exchange, "balance_asset") == "USDT"), None)
        if row is None:
            return AccountBalance()
        equity = to_float(pick(row, exchange, "balance_equity"))
        available = to_float(pick(row, exchange, "balance_available"))
        if positions is not None:
            unrealized = sum(p.unrealized_pnl for p in positions)
        else:
            unrealized = to_float(pick(row, exchange, "balance_upl"))

    return AccountBalance(
        equity=equity,
        available_balance=available,
        balance_in_use=max(equity - available, 0.0),
        unrealized_pnl=unrealized,
    )


def _aster_filter(filters: list, filter_type: str, field: str) -> float:
    for f in filters:
        if isinstance(f, dict) and f.get("filterType") == filter_type:
            return to_float(f.get(field))
    return 0.0


def normalize_instrument(exchange: str, raw: Any) -> InstrumentInfo:
    """Lot size, tick size and contract value; 1/0/1 when the exchange omits them."""
    _check_exchange(exchange)
    if isinstance(raw, list):
        raw = raw[0] if raw else {}
    if not isinstance(raw, dict):
        return InstrumentInfo()

    if exchange == EXCHANGE_OKX:
        lot = to_float(raw.get("lotSz"))
        tick = to_float(raw.get("tickSz"))
        contract_value = to_float(raw.get("ctVal"))
    else:
        filters = raw.get("filters") or []
        lot = _aster_filter(filters, "LOT_SIZE", "stepSize") or _aster_filter(
            filters, "MARKET_LOT_SIZE", "stepSize"
        )
        tick = _aster_filter(filters, "PRICE_FILTER", "tickSize")
        contract_value = 1.0

    return InstrumentInfo(
        lot_size=lot if lot > 0 else 1.0,
        tick_size=max(tick, 0.0),
        contract_value=contract_value if contract_value > 0 else 1.0,
    )


def normalize_ticker(exchange: str, raw: Any) -> float:
    """Current price: OKX uses the bid/ask mid, Asterdex the last trade price."""
    _check_exchange(exchange)
    if isinstance(raw, list):
        raw = raw[0] if raw else {}
    if not isinstance(raw, dict):
        return 0.0

    bid = to_float(pick(raw, exchange, "ticker_bid"))
    ask = to_float(pick(raw, exchange, "ticker_ask"))
    mid = (bid + ask) / 2 if bid > 0 and ask > 0 else 0.0
    last = to_float(pick(raw, exchange, "ticker_last"))

    if exchange == EXCHANGE_OKX:
        return mid or last
    return last or mid


# ---------------------------------------------------------------------------
# Trade history rows (Asterdex)
# ---------------------------------------------------------------------------


def normalize_trade(raw: dict) -> Trade:
    return Trade(
        trade_id=str(raw["id"]) if raw.get("id") is not None else None,
        order_id=str(raw["orderId"]) if raw.get("orderId") is not None else None,
        symbol=str(raw.get("symbol", "")),
        side=str(raw.get("side", "")).upper(),
        price=to_float(raw.get("price")),
        quantity=to_float(raw.get("qty")),
        quote_quantity=to_float(raw.get("quoteQty")),
        realized_pnl=to_float(raw.get("realizedPnl")),
        commission=to_float(raw.get("commission")),
        commission_asset=raw.get("commissionAsset"),
        maker=bool(raw.get("maker", False)),
        time=int(to_float(raw.get("time"))),
    )


def normalize_income(raw: dict) -> IncomeEvent:
    tran_id = raw.get("tranId")
    return IncomeEvent(
        symbol=raw.get("symbol") or None,
        income_type=str(raw.get("incomeType", "")),
        income=to_float(raw.get("income")),
        asset=raw.get("asset"),
        time=int(to_float(raw.get("time"))),
        transaction_id=str(tran_id) if tran_id is not None else None,
    )


# ---------------------------------------------------------------------------
# Symbols
# ---------------------------------------------------------------------------

OKX_SWAP_SUFFIX = "-USDT-SWAP"
QUOTE_ASSET = "USDT"

SYMBOL_FORMATS = {
    EXCHANGE_OKX: re.compile(r"^[A-Z0-9]+-USDT-SWAP$"),
    EXCHANGE_ASTER: re.compile(r"^[A-Z0-9]+USDT$"),
}


def base_asset(symbol: str) -> str:
    """``BTC-USDT-SWAP``, ``BTC-USDT``, ``BTCUSDT`` and ``btc`` all give ``BTC``."""
    s = symbol.strip().upper()
    if s.endswith(OKX_SWAP_SUFFIX):
        s = s[: -len(OKX_SWAP_SUFFIX)]
    elif s.endswith("-SWAP"):
        s = s[: -len("-SWAP")]
    s = s.replace("-", "")
    if s.endswith(QUOTE_ASSET) and len(s) > len(QUOTE_ASSET):
        s = s[: -len(QUOTE_ASSET)]
    return s


def to_okx_symbol(symbol: str) -> str:
    s = symbol.strip().upper()
    if s.endswith(OKX_SWAP_SUFFIX):
        return s
    return f"{base_asset(s)}{OKX_SWAP_SUFFIX}"


def to_aster_symbol(symbol: str) -> str:
    return f"{base_asset(symbol)}{QUOTE_ASSET}"


def to_exchange_symbol(symbol: str, exchange: str) -> str:
    _check_exchange(exchange)
    if exchange == EXCHANGE_OKX:
        return to_okx_symbol(symbol)
    return to_aster_symbol(symbol)


def exchange_for_symbol(symbol: str) -> str:
    """Infer the exchange from the symbol format: hyphenated symbols are OKX's."""
    return EXCHANGE_OKX if "-" in symbol else EXCHANGE_ASTER


def is_valid_symbol(symbol: str, exchange: str) -> bool:
    pattern = SYMBOL_FORMATS.get(exchange)
    if pattern is None:
        logger.warning(f"Unknown exchange: {exchange}")
        return False
    return bool(pattern.match(symbol))


def suggest_symbol(symbol: str, exchange: str) -> str | None:
    """Return the corrected symbol for a misformatted one, or None if it's fine or unfixable."""
    if exchange not in SYMBOL_FORMATS or is_valid_symbol(symbol, exchange):
        return None
    if not base_asset(symbol):
        return None
    suggestion = to_exchange_symbol(symbol, exchange)
    return suggestion if is_valid_symbol(suggestion, exchange) else None
