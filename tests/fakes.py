"""In-memory stand-ins for the key-value store, the account registry and exchange adapters."""

import asyncio
import fnmatch
from typing import Any

import redis.asyncio as aioredis

from backend.services.account_registry import AccountConfig
from backend.services.errors import MissingCredentials
from backend.services.exchanges.base import OrderResult


class ManualClock:
    """Epoch-ms clock the tests move by hand."""

    def __init__(self, now: int = 1_700_000_000_000):
        self.now = now

    def __call__(self) -> int:
        return self.now

    def advance(self, ms: int):
        self.now += ms


class InMemoryStore:
    """``KeyValueStore`` with TTLs evaluated against a ManualClock."""

    def __init__(self, clock: ManualClock):
        self.clock = clock
        self.values: dict[str, tuple[str, int | None]] = {}
        self.hashes: dict[str, dict[str, str]] = {}
        self.fail = False
        self.fail_on_set_key: str | None = None

    def _check(self):
        if self.fail:
            raise aioredis.ConnectionError("store unavailable")

    def _alive(self, key: str) -> bool:
        entry = self.values.get(key)
        if entry is None:
            return False
        _, expires_at = entry
        if expires_at is not None and expires_at <= self.clock():
            del self.values[key]
            return False
        return True

    async def get(self, key: str) -> str | None:
        self._check()
        return self.values[key][0] if self._alive(key) else None

    async def mget(self, keys: list[str]) -> list[str | None]:
        self._check()
        return [self.values[k][0] if self._alive(k) else None for k in keys]

    async def set(self, key: str, value: str, ttl_seconds: int | None = None) -> None:
        self._check()
        if self.fail_on_set_key and self.fail_on_set_key in key:
            raise aioredis.ConnectionError("write rejected")
        expires_at = self.clock() + ttl_seconds * 1000 if ttl_seconds is not None else None
        self.values[key] = (value, expires_at)

    async def scan_keys(self, pattern: str) -> list[str]:
        self._check()
        names = [k for k in list(self.values) if self._alive(k)] + list(self.hashes)
        return [k for k in names if fnmatch.fnmatchcase(k, pattern)]

    async def delete(self, *keys: str) -> int:
        self._check()
        removed = 0
        for key in keys:
            if self._alive(key):
                del self.values[key]
                removed += 1
            elif key in self.hashes:
                del self.hashes[key]
                removed += 1
        return removed

    async def hset(self, key: str, field: str, value: str) -> None:
        self._check()
        self.hashes.setdefault(key, {})[field] = value

    async def hgetall(self, key: str) -> dict[str, str]:
        self._check()
        return dict(self.hashes.get(key, {}))

    async def hgetall_many(self, keys: list[str]) -> list[dict[str, str]]:
        self._check()
        return [dict(self.hashes.get(k, {})) for k in keys]

    async def hdel(self, key: str, field: str) -> int:
        self._check()
        fields = self.hashes.get(key, {})
        if field not in fields:
            return 0
        del fields[field]
        if not fields:
            del self.hashes[key]
        return 1

    async def ping(self) -> bool:
        return not self.fail

    async def close(self) -> None:
        pass


class FakeRegistry:
    def __init__(self, accounts: list[AccountConfig]):
        self.accounts = accounts

    def list_accounts(self, exchange: str | None = None, status: str | None = "active") -> list[AccountConfig]:
        return [
            a for a in self.accounts
            if (status is None or a.status == status) and (exchange is None or a.exchange == exchange)
        ]

    def get_account(self, account_id: str) -> AccountConfig | None:
        return next((a for a in self.accounts if a.id == account_id), None)


def make_account(account_id: str = "acct-1", exchange: str = "asterdex", **kwargs) -> AccountConfig:
    symbol = "BTC-USDT-SWAP" if exchange == "okx" else "BTCUSDT"
    defaults: dict[str, Any] = {
        "name": f"Account {account_id}",
        "symbol": symbol,
        "api_key": "key",
        "api_secret": "secret",
        "passphrase": "pass" if exchange == "okx" else "",
    }
    defaults.update(kwargs)
    return AccountConfig(id=account_id, exchange=exchange, **defaults)


class FakeAdapter:
    """Scripted adapter returning canned raw exchange payloads."""

    supports_trade_history = True

    def __init__(
        self,
        account: AccountConfig,
        balance: Any = None,
        positions: list | None = None,
        orders: list | None = None,
        ticker: Any = None,
        instrument: Any = None,
        delay: float = 0.0,
        error: Exception | None = None,
    ):
        self.account = account
        self.exchange = account.exchange
        self.balance = balance if balance is not None else [{"asset": "USDT", "balance": "1000", "availableBalance": "800"}]
        self.positions = positions or []
        self.orders = orders or []
        self.ticker = ticker if ticker is not None else {"lastPrice": "50000"}
        self.instrument = instrument if instrument is not None else {"filters": [{"filterType": "LOT_SIZE", "stepSize": "0.001"}]}
        self.delay = delay
        self.error = error
        self.placed: list[dict] = []
        self.cancelled: list[str] = []
        self.cancel_failures: set[str] = set()
        self.trade_calls: list[tuple[int, int]] = []
        self.closed = False

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc, tb):
        self.closed = True

    async def _respond(self, value):
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.error is not None:
            raise self.error
        return value

    async def get_balance(self):
        return await self._respond(self.balance)

    async def get_positions(self, symbol=None):
        return await self._respond(self.positions)

    async def get_pending_orders(self, symbol=None):
        return await self._respond(self.orders)

    async def get_ticker(self, symbol):
        return await self._respond(self.ticker)

    async def get_instrument(self, symbol):
        return await self._respond(self.instrument)

    async def place_market_order(self, symbol, side, size, position_side=None, margin_mode=None, reduce_only=True):
        self.placed.append({"symbol": symbol, "side": side, "size": size, "positionSide": position_side})
        return OrderResult(success=True, order_id=f"close-{len(self.placed)}")

    async def cancel_order(self, symbol, order_id):
        if order_id in self.cancel_failures:
            return OrderResult(success=False, order_id=order_id, error="Unknown order", error_code="-2011")
        self.cancelled.append(order_id)
        return OrderResult(success=True, order_id=order_id)

    async def get_user_trades(self, symbol, start_time=None, end_time=None, limit=1000):
        self.trade_calls.append((start_time, end_time))
        return [{"id": len(self.trade_calls), "symbol": symbol, "side": "BUY", "price": "100", "qty": "1", "time": start_time}]

    async def get_income_history(self, symbol=None, income_type=None, start_time=None, end_time=None, limit=1000):
        return [{"symbol": symbol, "incomeType": income_type, "income": "1.5", "asset": "USDT", "time": start_time}]


class AdapterBook:
    """Adapter factory handing out one FakeAdapter per account id."""

    def __init__(self, adapters: dict[str, FakeAdapter] | None = None):
        self.adapters = adapters or {}

    def __call__(self, account: AccountConfig) -> FakeAdapter:
        missing = account.missing_credentials()
        if missing:
            raise MissingCredentials(account.name, missing)
        if account.id not in self.adapters:
            self.adapters[account.id] = FakeAdapter(account)
        return self.adapters[account.id]
