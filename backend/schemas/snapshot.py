"""Snapshot envelope and the payloads stored under each snapshot kind."""

from typing import Any

from pydantic import BaseModel, Field

from backend.schemas.normalized import IncomeEvent, Order, Position, Trade


class Snapshot(BaseModel):
    timestamp: int
    data: Any = None


class PositionsPayload(BaseModel):
    exchange: str
    symbol: str
    positions: list[Position] = []
    # Untouched exchange response, kept for audit/debugging
    raw: Any = None


class OrdersPayload(BaseModel):
    exchange: str
    symbol: str
    orders: list[Order] = []
    raw: Any = None


class TradeHistoryPayload(BaseModel):
    exchange: str
    symbol: str
    trades: list[Trade] = []
    income: list[IncomeEvent] = []
    fetched_at: int = Field(alias="fetchedAt")
    start_time: int = Field(alias="startTime")
    end_time: int = Field(alias="endTime")

    model_config = {"populate_by_name": True}
