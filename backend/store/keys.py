"""Key layout for everything the monitor keeps in the key-value store.

    {prefix}:{kind}:{account_id}:{timestamp|latest}      snapshots
    {prefix}:grid:{exchange}:{account_id}:{symbol}:{SIDE} grid level hash
    {prefix}:equity:{account_id}:{timestamp}              equity samples
    {prefix}:price:{exchange}:{symbol}                    market price cache
    {prefix}:account_state:{account_id}                   dashboard state cache
"""

from backend.utils.constants import (
    ACCOUNT_STATE_NAMESPACE,
    EQUITY_NAMESPACE,
    GRID_NAMESPACE,
    LATEST_POINTER,
    MARKET_PRICE_NAMESPACE,
)


class StoreKeys:
    def __init__(self, prefix: str):
        self.prefix = prefix.rstrip(":")

    def _join(self, *parts) -> str:
        return ":".join([self.prefix, *(str(p) for p in parts)])

    def snapshot(self, kind: str, account_id: str, timestamp: int) -> str:
        return self._join(kind, account_id, timestamp)

    def snapshot_latest(self, kind: str, account_id: str) -> str:
        return self._join(kind, account_id, LATEST_POINTER)

    def snapshot_pattern(self, kind: str, account_id: str) -> str:
        return self._join(kind, account_id, "*")

    def grid(self, exchange: str, account_id: str, symbol: str, side: str) -> str:
        return self._join(GRID_NAMESPACE, exchange, account_id, symbol, side.upper())

    def equity(self, account_id: str, timestamp: int) -> str:
        return self._join(EQUITY_NAMESPACE, account_id, timestamp)

    def equity_pattern(self, account_id: str) -> str:
        return self._join(EQUITY_NAMESPACE, account_id, "*")

    def market_price(self, exchange: str, symbol: str) -> str:
        return self._join(MARKET_PRICE_NAMESPACE, exchange, symbol)

    def account_state(self, account_id: str) -> str:
        return self._join(ACCOUNT_STATE_NAMESPACE, account_id)


def timestamp_suffix(key: str) -> int | None:
    """Return the trailing epoch-ms component of a time-series key.

    Returns None for the ``latest`` pointer or any non-numeric suffix.
    """
    suffix = key.rsplit(":", 1)[-1]
    if not suffix.isdigit():
        return None
    return int(suffix)
