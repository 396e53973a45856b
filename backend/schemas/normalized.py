"""Canonical shapes both exchanges' responses are normalized into.

Field names are snake_case in Python and camelCase on the wire; dump with
``model_dump(by_alias=True)`` when persisting or returning them.
"""

from typing import Literal

from pydantic import BaseModel, Field

PositionSide = Literal["LONG", "SHORT"]
OrderSide = Literal["buy", "sell"]
OrderStatus = Literal["pending", "filled"]


class Position(BaseModel):
    side: PositionSide
    contracts: float = Field(ge=0)
    avg_price: float = Field(default=0.0, alias="avgPrice")
    unrealized_pnl: float = Field(default=0.0, alias="unrealizedPnL")
    unrealized_pnl_ratio: float = Field(default=0.0, alias="unrealizedPnLRatio")  # percent
    leverage: float = Field(default=0.0, ge=0)
    notional_usd: float = Field(default=0.0, ge=0, alias="notionalUsd")
    instrument_id: str = Field(alias="instrumentId")
    # Carried through for close-position; not part of the stored shape
    position_side: str | None = Field(default=None, alias="positionSide", exclude=True)
    margin_mode: str | None = Field(default=None, alias="marginMode", exclude=True)

    model_config = {"populate_by_name": True}


class Order(BaseModel):
    price: float = Field(ge=0)
    size: float = Field(ge=0)
    value: float = Field(ge=0)
    status: OrderStatus = "pending"
    side: OrderSide
    order_id: str | None = Field(default=None, alias="orderId")
    instrument_id: str = Field(alias="instrumentId")

    model_config = {"populate_by_name": True}


class GridLevel(BaseModel):
    price: float = Field(gt=0)
    size: float = Field(ge=0)
    value: float = Field(ge=0)
    status: OrderStatus = "pending"
    level_index: int | None = Field(default=None, alias="levelIndex")
    updated_at: int | None = Field(default=None, alias="updatedAt")

    model_config = {"populate_by_name": True}


class AccountBalance(BaseModel):
    equity: float = 0.0
    available_balance: float = Field(default=0.0, alias="availableBalance")
    balance_in_use: float = Field(default=0.0, alias="balanceInUse")
    unrealized_pnl: float = Field(default=0.0, alias="unrealizedPnL")
    equity_24h_ago: float | None = Field(default=None, alias="equity24hAgo")
    equity_24h_change: float | None = Field(default=None, alias="equity24hChange")
    equity_24h_change_percent: float | None = Field(default=None, alias="equity24hChangePercent")

    model_config = {"populate_by_name": True}


class InstrumentInfo(BaseModel):
    lot_size: float = Field(default=1.0, gt=0, alias="lotSize")
    tick_size: float = Field(default=0.0, ge=0, alias="tickSize")
    contract_value: float = Field(default=1.0, gt=0, alias="contractValue")

    model_config = {"populate_by_name": True}


class Trade(BaseModel):
    trade_id: str | None = Field(default=None, alias="tradeId")
    order_id: str | None = Field(default=None, alias="orderId")
    symbol: str
    side: str
    price: float = 0.0
    quantity: float = 0.0
    quote_quantity: float = Field(default=0.0, alias="quoteQuantity")
    realized_pnl: float = Field(default=0.0, alias="realizedPnl")
    commission: float = 0.0
    commission_asset: str | None = Field(default=None, alias="commissionAsset")
    maker: bool = False
    time: int = 0

    model_config = {"populate_by_name": True}


class IncomeEvent(BaseModel):
    symbol: str | None = None
    income_type: str = Field(alias="incomeType")
    income: float = 0.0
    asset: str | None = None
    time: int = 0
    transaction_id: str | None = Field(default=None, alias="transactionId")

    model_config = {"populate_by_name": True}
