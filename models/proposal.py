from __future__ import annotations

import math
from typing import Any, Mapping, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator, model_validator

from core.errors import InvalidProposal
from models.position import Side

# highest leverage any supported venue offers on perpetuals
MAX_LEVERAGE = 125


class TradeProposal(BaseModel):
    """What a decision source hands the engine for one symbol on one tick."""

    model_config = ConfigDict(populate_by_name=True, frozen=True)

    symbol: str = Field(..., min_length=1)
    side: Side
    amount: float = Field(..., gt=0, allow_inf_nan=False)
    price: float = Field(..., gt=0, allow_inf_nan=False)
    confidence: float = Field(..., ge=0, le=1)
    should_trade: bool = Field(True, alias="shouldTrade")
    leverage: float = Field(1.0, ge=1, le=MAX_LEVERAGE, allow_inf_nan=False)

    @field_validator("side", mode="before")
    @classmethod
    def normalize_side(cls, v):
        return Side.parse(v)

    @model_validator(mode="after")
    def check_notional(self):
        if not math.isfinite(self.notional):
            raise ValueError("amount * leverage overflows")
        return self

    @property
    def notional(self) -> float:
        """Position size after leverage; what both paper and live paths book."""
        return self.amount * self.leverage

    @classmethod
    def coerce(cls, obj: Union["TradeProposal", Mapping[str, Any]],
               symbol: Optional[str] = None) -> "TradeProposal":
        """Accept a model or a plain mapping; raise InvalidProposal on bad input."""
        if isinstance(obj, cls):
            return obj
        if not isinstance(obj, Mapping):
            raise InvalidProposal(f"proposal must be a mapping, got {type(obj).__name__}")
        data = dict(obj)
        if symbol is not None:
            data.setdefault("symbol", symbol)
        try:
            return cls.model_validate(data)
        except ValidationError as exc:
            raise InvalidProposal(str(exc)) from exc
