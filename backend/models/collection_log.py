"""CollectionLog model: per-account outcome of each collection run."""

from datetime import datetime, timezone
from typing import Any

from sqlmodel import SQLModel, Field, Column
from sqlalchemy import JSON


class CollectionLog(SQLModel, table=True):
    __tablename__ = "collection_log"

    id: int | None = Field(default=None, primary_key=True)
    run_id: str = Field(index=True)
    account_id: str = Field(index=True)
    account_name: str = ""
    timestamp: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    status: str  # "success", "error", "skipped"
    exchange: str | None = None
    positions_count: int | None = None
    orders_count: int | None = None
    equity: float | None = None
    message: str | None = None  # error message or skip reason
    error_code: str | None = None
    details: dict[str, Any] | None = Field(default=None, sa_column=Column(JSON))
