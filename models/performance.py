# --------------------------------------------------------------------
# models/performance.py
# Aggregate statistics of the simulation ledger.
# --------------------------------------------------------------------
from __future__ import annotations

from dataclasses import dataclass, asdict, replace


@dataclass
class PerformanceCounters:
    total_opened: int = 0
    total_closed: int = 0
    winning_closed: int = 0
    cumulative_pnl: float = 0.0
    confidence_level: float = 0.5
    learning_progress: float = 0.0

    @property
    def win_rate(self) -> float:
        if self.total_closed == 0:
            return 0.0
        return self.winning_closed / self.total_closed

    def copy(self) -> "PerformanceCounters":
        return replace(self)

    def to_dict(self) -> dict:
        data = asdict(self)
        data["win_rate"] = self.win_rate
        return data
