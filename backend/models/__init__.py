"""Database models."""

from backend.models.trading_account import TradingAccount
from backend.models.collection_log import CollectionLog
from backend.models.user import User

__all__ = [
    "TradingAccount",
    "CollectionLog",
    "User",
]
