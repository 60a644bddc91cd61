# --------------------------------------------------------------------
# models/position.py
# One simulated trade from open to close. Owned by SimulationLedger;
# everyone else only ever sees copies.
# --------------------------------------------------------------------
from __future__ import annotations

import time
import uuid
from dataclasses import dataclass, field, asdict, replace
from enum import Enum
from typing import Optional


class Side(str, Enum):
    LONG = "long"
    SHORT = "short"

    @classmethod
    def parse(cls, raw) -> "Side":
        if isinstance(raw, cls):
            return raw
        value = str(raw).strip().lower()
        if value in ("buy", "long"):
            return cls.LONG
        if value in ("sell", "short"):
            return cls.SHORT
        raise ValueError(f"unknown side {raw!r}")


class PositionState(str, Enum):
    OPEN = "open"
    CLOSED = "closed"


def new_position_id() -> str:
    return uuid.uuid4().hex


def now_ms() -> int:
    return int(time.time() * 1000)


@dataclass
class Position:
    symbol: str
    side: Side
    amount: float
    entry_price: float
    confidence: float
    id: str = field(default_factory=new_position_id)
    opened_at: int = field(default_factory=now_ms)  # epoch-ms
    leverage: float = 1.0
    state: PositionState = PositionState.OPEN
    exit_price: Optional[float] = None
    pnl: Optional[float] = None
    closed_at: Optional[int] = None  # epoch-ms

    @property
    def is_open(self) -> bool:
        return self.state is PositionState.OPEN

    def realised_pnl(self, exit_price: float) -> float:
        """PnL of closing at ``exit_price``; amount is notional in quote currency."""
        units = self.amount / self.entry_price
        if self.side is Side.LONG:
            return (exit_price - self.entry_price) * units
        return (self.entry_price - exit_price) * units

    def copy(self) -> "Position":
        return replace(self)

    def to_dict(self) -> dict:
        """Return a dict ready for JSON serialisation."""
        data = asdict(self)
        data["side"] = self.side.value
        data["state"] = self.state.value
        return data
