"""Request bodies for the dashboard action endpoints and the grid-level writer."""

from pydantic import BaseModel, Field, field_validator, model_validator

from backend.schemas.normalized import OrderStatus
from backend.utils.constants import GRID_SIDES, MAX_CLOSE_PERCENTAGE, MIN_CLOSE_PERCENTAGE


def _check_side(value: str | None) -> str | None:
    if value is None:
        return None
    side = value.strip().lower()
    if side not in GRID_SIDES:
        raise ValueError(f"must be one of {GRID_SIDES}")
    return side


class ClosePositionRequest(BaseModel):
    account_id: str = Field(alias="accountId", min_length=1)
    percentage: float = Field(ge=MIN_CLOSE_PERCENTAGE, le=MAX_CLOSE_PERCENTAGE)

    model_config = {"populate_by_name": True}


class CancelOrderRequest(BaseModel):
    account_id: str = Field(alias="accountId", min_length=1)
    order_id: str = Field(alias="orderId", min_length=1)
    instrument_id: str = Field(alias="instrumentId", min_length=1)

    model_config = {"populate_by_name": True}

    @model_validator(mode="before")
    @classmethod
    def _accept_inst_id(cls, data):
        # The dashboard sends OKX-style "instId"
        if isinstance(data, dict) and "instrumentId" not in data and "instId" in data:
            data = {**data, "instrumentId": data["instId"]}
        return data


class CancelAllOrdersRequest(BaseModel):
    account_id: str = Field(alias="accountId", min_length=1)

    model_config = {"populate_by_name": True}


class DeleteGridLevelRequest(BaseModel):
    account_id: str = Field(alias="accountId", min_length=1)
    symbol: str = Field(min_length=1)
    side: str | None = None
    level_index: int | None = Field(default=None, alias="levelIndex", ge=0)
    clear_all: bool = Field(default=False, alias="clearAll")

    model_config = {"populate_by_name": True}

    @field_validator("side")
    @classmethod
    def _validate_side(cls, value: str | None) -> str | None:
        return _check_side(value)


class GridLevelWrite(BaseModel):
    """Upsert of one grid level by the external strategy writer."""

    account_id: str = Field(alias="accountId", min_length=1)
    symbol: str = Field(min_length=1)
    side: str
    level_index: int = Field(alias="levelIndex", ge=0)
    price: float = Field(gt=0)
    size: float = Field(ge=0)
    value: float | None = Field(default=None, ge=0)
    status: OrderStatus = "pending"
    exchange: str | None = None

    model_config = {"populate_by_name": True}

    @field_validator("side")
    @classmethod
    def _validate_side(cls, value: str) -> str:
        return _check_side(value)
