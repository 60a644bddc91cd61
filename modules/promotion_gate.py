"""
promotion_gate.py
-----------------
Decides whether the paper record is good enough to allow live mode.
"""

from __future__ import annotations

from dataclasses import dataclass

from models.performance import PerformanceCounters


@dataclass(frozen=True)
class PromotionCriteria:
    min_closed: int = 50
    min_win_rate: float = 0.75  # inclusive
    min_pnl: float = 500.0      # exclusive


DEFAULT_CRITERIA = PromotionCriteria()


def can_promote(counters: PerformanceCounters,
                criteria: PromotionCriteria = DEFAULT_CRITERIA) -> bool:
    """Pure check over a counters snapshot; never mutates it."""
    if counters.total_closed < criteria.min_closed or counters.total_closed == 0:
        return False
    win_rate = counters.winning_closed / counters.total_closed
    return win_rate >= criteria.min_win_rate and counters.cumulative_pnl > criteria.min_pnl
