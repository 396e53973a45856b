"""Tests for the OKX and Asterdex adapters against a mocked HTTP transport."""

import json
from decimal import Decimal
from urllib.parse import parse_qsl

import httpx
import pytest
from eth_account import Account
from eth_account.messages import encode_defunct

from backend.services.errors import ConfigurationError, ExchangeError, MissingCredentials
from backend.services.exchanges.aster import AsterAdapter, sign_params, wallet_signature_payload
from backend.services.exchanges.base import format_decimal
from backend.services.exchanges.okx import OkxAdapter, sign_okx
from backend.services.exchanges.registry import create_adapter
from fakes import make_account

SIGNER_KEY = "0x" + "11" * 32
WALLET = "0x" + "22" * 20
SIGNATURE_FIELDS = {"nonce", "user", "signer", "signature"}


class Recorder:
    """MockTransport handler that records requests and replays canned responses."""

    def __init__(self, *responses: httpx.Response):
        self.responses = list(responses)
        self.requests: list[httpx.Request] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        return self.responses.pop(0) if len(self.responses) > 1 else self.responses[0]


def _okx(recorder) -> OkxAdapter:
    account = make_account("okx-1", exchange="okx", api_key="okx-key", api_secret="okx-secret", passphrase="okx-pass")
    return OkxAdapter(account, base_url="https://okx.test", transport=httpx.MockTransport(recorder))


def _aster(recorder) -> AsterAdapter:
    account = make_account("aster-1", exchange="asterdex", api_key=WALLET, api_secret=SIGNER_KEY)
    return AsterAdapter(account, base_url="https://aster.test", transport=httpx.MockTransport(recorder))


def _ok(data) -> httpx.Response:
    return httpx.Response(200, json={"code": "0", "msg": "", "data": data})


# ---------------------------------------------------------------------------
# 1. Helpers
# ---------------------------------------------------------------------------

def test_format_decimal_has_no_float_noise():
    assert format_decimal(Decimal("0.300")) == "0.3"
    assert format_decimal(0.001) == "0.001"
    assert format_decimal(1e-7) == "0.0000001"
    assert format_decimal(10.0) == "10"


def test_okx_signature_is_base64_hmac():
    sig = sign_okx("secret", "2024-01-01T00:00:00.000Z", "get", "/api/v5/account/balance")
    assert sig == sign_okx("secret", "2024-01-01T00:00:00.000Z", "GET", "/api/v5/account/balance")
    assert sig != sign_okx("other", "2024-01-01T00:00:00.000Z", "GET", "/api/v5/account/balance")


def test_wallet_signature_recovers_signer():
    params = {"symbol": "BTCUSDT", "timestamp": 1700000000000, "reduceOnly": True}
    signed = sign_params(params, WALLET, SIGNER_KEY, nonce=123)

    assert signed["nonce"] == "123"
    assert signed["reduceOnly"] == "true"
    digest = wallet_signature_payload(params, WALLET, signed["signer"], 123)
    recovered = Account.recover_message(encode_defunct(primitive=digest), signature=signed["signature"])
    assert recovered == Account.from_key(SIGNER_KEY).address == signed["signer"]


# ---------------------------------------------------------------------------
# 2. OKX
# ---------------------------------------------------------------------------

@pytest.mark.asyncio
async def test_okx_signed_request_headers():
    recorder = Recorder(_ok([{"instId": "BTC-USDT-SWAP", "pos": "1"}]))
    async with _okx(recorder) as adapter:
        positions = await adapter.get_positions("BTC-USDT-SWAP")

    assert positions == [{"instId": "BTC-USDT-SWAP", "pos": "1"}]
    request = recorder.requests[0]
    path = request.url.raw_path.decode()
    assert path == "/api/v5/account/positions?instType=SWAP&instId=BTC-USDT-SWAP"
    assert request.headers["OK-ACCESS-KEY"] == "okx-key"
    assert request.headers["OK-ACCESS-PASSPHRASE"] == "okx-pass"
    expected = sign_okx("okx-secret", request.headers["OK-ACCESS-TIMESTAMP"], "GET", path)
    assert request.headers["OK-ACCESS-SIGN"] == expected


@pytest.mark.asyncio
async def test_okx_public_endpoints_are_unsigned():
    recorder = Recorder(_ok([{"instId": "BTC-USDT-SWAP", "bidPx": "1", "askPx": "3"}]))
    async with _okx(recorder) as adapter:
        ticker = await adapter.get_ticker("BTC-USDT-SWAP")

    assert ticker["bidPx"] == "1"
    assert "OK-ACCESS-SIGN" not in recorder.requests[0].headers


@pytest.mark.asyncio
async def test_okx_error_code_raises():
    recorder = Recorder(httpx.Response(200, json={"code": "50113", "msg": "Invalid Sign", "data": []}))
    async with _okx(recorder) as adapter:
        with pytest.raises(ExchangeError) as exc:
            await adapter.get_balance()
    assert exc.value.code == "50113"
    assert exc.value.message == "Invalid Sign"


@pytest.mark.asyncio
async def test_okx_market_order_body_signed():
    recorder = Recorder(_ok([{"ordId": "555", "sCode": "0"}]))
    async with _okx(recorder) as adapter:
        result = await adapter.place_market_order("BTC-USDT-SWAP", "sell", 0.3, position_side="long", margin_mode="isolated")

    assert result.success
    assert result.order_id == "555"
    request = recorder.requests[0]
    body = request.content.decode()
    assert json.loads(body) == {
        "instId": "BTC-USDT-SWAP",
        "tdMode": "isolated",
        "side": "sell",
        "ordType": "market",
        "sz": "0.3",
        "reduceOnly": True,
        "posSide": "long",
    }
    expected = sign_okx("okx-secret", request.headers["OK-ACCESS-TIMESTAMP"], "POST", "/api/v5/trade/order", body)
    assert request.headers["OK-ACCESS-SIGN"] == expected


@pytest.mark.asyncio
async def test_okx_net_mode_omits_pos_side():
    recorder = Recorder(_ok([{"ordId": "1"}]))
    async with _okx(recorder) as adapter:
        await adapter.place_market_order("BTC-USDT-SWAP", "buy", 1, position_side="net")
    assert "posSide" not in json.loads(recorder.requests[0].content)


@pytest.mark.asyncio
async def test_okx_rejected_order_is_a_failed_result():
    recorder = Recorder(httpx.Response(200, json={"code": "1", "msg": "", "data": [{"sCode": "51008", "sMsg": "Insufficient"}]}))
    async with _okx(recorder) as adapter:
        result = await adapter.place_market_order("BTC-USDT-SWAP", "buy", 1)
    assert not result.success
    assert result.error == "Insufficient"
    assert result.error_code == "51008"


# ---------------------------------------------------------------------------
# 3. Asterdex
# ---------------------------------------------------------------------------

@pytest.mark.asyncio
async def test_aster_signed_get_recovers_signer():
    recorder = Recorder(httpx.Response(200, json=[{"symbol": "BTCUSDT", "positionAmt": "1"}]))
    async with _aster(recorder) as adapter:
        positions = await adapter.get_positions("BTCUSDT")

    assert positions[0]["positionAmt"] == "1"
    request = recorder.requests[0]
    assert request.url.path == "/fapi/v3/positionRisk"
    params = dict(request.url.params)
    assert params["user"] == WALLET
    assert params["recvWindow"] == "50000"

    signed_fields = {k: v for k, v in params.items() if k not in SIGNATURE_FIELDS}
    digest = wallet_signature_payload(signed_fields, params["user"], params["signer"], int(params["nonce"]))
    recovered = Account.recover_message(encode_defunct(primitive=digest), signature=params["signature"])
    assert recovered == params["signer"]


@pytest.mark.asyncio
async def test_aster_order_posts_form_with_reduce_only():
    recorder = Recorder(httpx.Response(200, json={"orderId": 42, "status": "NEW"}))
    async with _aster(recorder) as adapter:
        result = await adapter.place_market_order("BTCUSDT", "sell", 0.005, position_side="BOTH")

    assert result.success
    assert result.order_id == "42"
    request = recorder.requests[0]
    assert request.method == "POST"
    form = dict(parse_qsl(request.content.decode()))
    assert form["side"] == "SELL"
    assert form["type"] == "MARKET"
    assert form["quantity"] == "0.005"
    assert form["reduceOnly"] == "true"
    assert SIGNATURE_FIELDS <= set(form)


@pytest.mark.asyncio
async def test_aster_hedge_mode_sends_position_side_only():
    recorder = Recorder(httpx.Response(200, json={"orderId": 1}))
    async with _aster(recorder) as adapter:
        await adapter.place_market_order("BTCUSDT", "buy", 1, position_side="SHORT")

    form = dict(parse_qsl(recorder.requests[0].content.decode()))
    assert form["positionSide"] == "SHORT"
    assert "reduceOnly" not in form


@pytest.mark.asyncio
async def test_aster_http_error_carries_exchange_code():
    recorder = Recorder(httpx.Response(400, json={"code": -2011, "msg": "Unknown order sent."}))
    async with _aster(recorder) as adapter:
        result = await adapter.cancel_order("BTCUSDT", "9")
        with pytest.raises(ExchangeError) as exc:
            await adapter.get_pending_orders("BTCUSDT")

    assert not result.success
    assert result.error_code == "-2011"
    assert exc.value.status == 400
    assert exc.value.message == "Unknown order sent."


@pytest.mark.asyncio
async def test_aster_instrument_lookup():
    info = {"symbols": [{"symbol": "ETHUSDT"}, {"symbol": "BTCUSDT", "filters": []}]}
    recorder = Recorder(httpx.Response(200, json=info))
    async with _aster(recorder) as adapter:
        assert (await adapter.get_instrument("BTCUSDT"))["symbol"] == "BTCUSDT"
        with pytest.raises(ExchangeError):
            await adapter.get_instrument("DOGEUSDT")


@pytest.mark.asyncio
async def test_timeout_maps_to_exchange_error():
    def handler(request):
        raise httpx.ReadTimeout("slow", request=request)

    account = make_account("aster-1", api_key=WALLET, api_secret=SIGNER_KEY)
    async with AsterAdapter(account, base_url="https://aster.test", transport=httpx.MockTransport(handler)) as adapter:
        with pytest.raises(ExchangeError) as exc:
            await adapter.get_ticker("BTCUSDT")
    assert exc.value.code == "timeout"


@pytest.mark.asyncio
async def test_okx_has_no_trade_history():
    recorder = Recorder(_ok([]))
    async with _okx(recorder) as adapter:
        assert adapter.supports_trade_history is False
        with pytest.raises(ExchangeError):
            await adapter.get_user_trades("BTC-USDT-SWAP")


# ---------------------------------------------------------------------------
# 4. Adapter selection
# ---------------------------------------------------------------------------

@pytest.mark.asyncio
async def test_create_adapter_picks_by_signing_scheme():
    async with create_adapter(make_account("a", exchange="okx")) as okx:
        assert isinstance(okx, OkxAdapter)
    async with create_adapter(make_account("b", exchange="asterdex")) as aster:
        assert isinstance(aster, AsterAdapter)


def test_create_adapter_requires_passphrase_for_okx():
    with pytest.raises(MissingCredentials) as exc:
        create_adapter(make_account("a", exchange="okx", passphrase=""))
    assert exc.value.missing == ["passphrase"]


def test_create_adapter_rejects_unknown_exchange():
    with pytest.raises(ConfigurationError):
        create_adapter(make_account("a", exchange="binance"))
