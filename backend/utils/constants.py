"""Shared constants: exchanges, retention windows and store namespaces."""

EXCHANGE_OKX = "okx"
EXCHANGE_ASTER = "asterdex"
SUPPORTED_EXCHANGES = [EXCHANGE_OKX, EXCHANGE_ASTER]

# Capability tag on an account: how its exchange requests are signed
SIGNING_HMAC = "hmac"
SIGNING_WALLET = "wallet"
SIGNING_SCHEMES: dict[str, str] = {
    EXCHANGE_OKX: SIGNING_HMAC,
    EXCHANGE_ASTER: SIGNING_WALLET,
}

ACCOUNT_STATUSES = ["active", "inactive"]

# Retention (seconds); None means the key never expires
DAY_SECONDS = 24 * 60 * 60
SNAPSHOT_TTL_SECONDS = 30 * DAY_SECONDS
TRADE_HISTORY_TTL_SECONDS: int | None = None
EQUITY_TTL_SECONDS = 7 * DAY_SECONDS
ACCOUNT_STATE_TTL_SECONDS = 5 * 60
MARKET_PRICE_TTL_SECONDS = 60

# Equity "N hours ago" lookups search +/- this many ms around the target
EQUITY_SEARCH_WINDOW_MS = 60 * 60 * 1000

# Key namespaces under settings.key_prefix
LATEST_POINTER = "latest"
GRID_NAMESPACE = "grid"
EQUITY_NAMESPACE = "equity"
MARKET_PRICE_NAMESPACE = "price"
ACCOUNT_STATE_NAMESPACE = "account_state"

GRID_SIDES = ["buy", "sell"]

# Close-position percentage bounds
MIN_CLOSE_PERCENTAGE = 10
MAX_CLOSE_PERCENTAGE = 100

# Exchange limits
ASTER_MAX_HISTORY_WINDOW_MS = 7 * DAY_SECONDS * 1000
