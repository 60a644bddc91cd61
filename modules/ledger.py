"""
ledger.py
---------
Single authority over simulated positions and the running performance
counters. ``open``, ``close`` and ``snapshot`` are serialised by one lock so a
reader never sees a half-applied close.
"""

from __future__ import annotations

import logging
import math
import threading
from typing import Dict, List, NamedTuple, Optional

from core.errors import InvalidExitPrice, UnknownPosition
from models.performance import PerformanceCounters
from models.position import Position, PositionState, now_ms
from models.proposal import TradeProposal
from modules.promotion_gate import DEFAULT_CRITERIA, PromotionCriteria, can_promote
from utils.event_bus import EventBus, Topics

# learning-progress targets
TRADES_TARGET = 100
WIN_RATE_TARGET = 0.75


def compute_learning_progress(closed: int, wins: int, confidence: float) -> float:
    """
    Average of three progress factors, scaled to [0, 100].

    * trades     – closed / 100
    * success    – (wins / closed) / 0.75, 0 before the first close
    * confidence – current confidence level
    """
    trades_factor = closed / TRADES_TARGET
    success_factor = (wins / closed) / WIN_RATE_TARGET if closed else 0.0
    avg = (trades_factor + success_factor + confidence) / 3
    return max(0.0, min(100.0, avg * 100))


class LedgerSnapshot(NamedTuple):
    counters: PerformanceCounters
    open_positions: List[Position]


class SimulationLedger:
    """
    In-memory paper-trading book.

    A scheduler attached with :meth:`attach_scheduler` is asked to arrange a
    delayed close for every position opened here.
    """

    def __init__(
        self,
        *,
        criteria: PromotionCriteria = DEFAULT_CRITERIA,
        initial_confidence: float = 0.5,
        confidence_increment: float = 0.01,
        confidence_cap: float = 0.95,
        bus: Optional[EventBus] = None,
        scheduler=None,
        logger: Optional[logging.Logger] = None,
    ) -> None:
        self.logger = logger or logging.getLogger(__name__)
        self.criteria = criteria
        self.confidence_increment = confidence_increment
        self.confidence_cap = confidence_cap
        self.bus = bus
        self.scheduler = scheduler

        self._lock = threading.RLock()
        self._open: Dict[str, Position] = {}
        self._closed: List[Position] = []
        self._counters = PerformanceCounters(
            confidence_level=min(confidence_cap, initial_confidence)
        )
        self._counters.learning_progress = compute_learning_progress(
            0, 0, self._counters.confidence_level
        )
        self._gate_open = False

    @classmethod
    def from_config(cls, config, **kwargs) -> "SimulationLedger":
        increment, cap = config.get_confidence_rule()
        return cls(
            criteria=config.get_promotion_criteria(),
            initial_confidence=config.get_initial_confidence(),
            confidence_increment=increment,
            confidence_cap=cap,
            **kwargs,
        )

    def attach_scheduler(self, scheduler) -> None:
        self.scheduler = scheduler

    # ------------------------------------------------------------------ #
    # Mutations
    # ------------------------------------------------------------------ #
    def open(self, proposal) -> Position:
        """Open a simulated position; raises InvalidProposal on bad input."""
        proposal = TradeProposal.coerce(proposal)
        position = Position(
            symbol=proposal.symbol,
            side=proposal.side,
            amount=proposal.notional,
            entry_price=proposal.price,
            confidence=proposal.confidence,
            leverage=proposal.leverage,
        )

        with self._lock:
            self._open[position.id] = position
            self._counters.total_opened += 1
            if self.scheduler is not None:
                try:
                    self.scheduler.schedule_close(
                        position.id, position.entry_price, position.side, position.amount
                    )
                except Exception:
                    # a position nobody will ever close must not stay on the book
                    del self._open[position.id]
                    self._counters.total_opened -= 1
                    raise
            result = position.copy()

        self.logger.info(
            "PAPER TRADE: %s %s - $%.2f @ $%.2f (conf %.2f)",
            result.side.value.upper(), result.symbol, result.amount,
            result.entry_price, result.confidence,
        )
        self._publish(Topics.POSITION_OPENED, result)
        return result

    def close(self, identifier: str, exit_price: float) -> Position:
        """Close an open position exactly once; raises UnknownPosition or InvalidExitPrice otherwise."""
        if not (math.isfinite(exit_price) and exit_price > 0):
            raise InvalidExitPrice(f"exit price must be a positive number, got {exit_price!r}")
        with self._lock:
            position = self._open.get(identifier)
            if position is None:
                raise UnknownPosition(identifier)

            pnl = position.realised_pnl(exit_price)
            position.exit_price = exit_price
            position.pnl = pnl
            position.closed_at = now_ms()
            position.state = PositionState.CLOSED
            del self._open[identifier]
            self._closed.append(position)

            c = self._counters
            c.total_closed += 1
            if pnl > 0:
                c.winning_closed += 1
            c.cumulative_pnl += pnl
            # familiarity score: grows on every close, win or lose
            c.confidence_level = min(self.confidence_cap,
                                     c.confidence_level + self.confidence_increment)
            c.learning_progress = compute_learning_progress(
                c.total_closed, c.winning_closed, c.confidence_level
            )

            was_open = self._gate_open
            self._gate_open = can_promote(c, self.criteria)
            became_ready = self._gate_open and not was_open
            result = position.copy()
            counters = c.copy()

        self.logger.info("PAPER TRADE CLOSED: %s - P&L: $%.2f", result.symbol, pnl)
        self._publish(Topics.POSITION_CLOSED, result)
        if became_ready:
            self.logger.info("Promotion gate passed - ready for live trading")
            self._publish(Topics.READY_FOR_LIVE, counters)
        return result

    # ------------------------------------------------------------------ #
    # Reads
    # ------------------------------------------------------------------ #
    def snapshot(self) -> LedgerSnapshot:
        with self._lock:
            return LedgerSnapshot(
                counters=self._counters.copy(),
                open_positions=[p.copy() for p in self._open.values()],
            )

    def counters(self) -> PerformanceCounters:
        with self._lock:
            return self._counters.copy()

    def get(self, identifier: str) -> Optional[Position]:
        with self._lock:
            position = self._open.get(identifier)
            if position is None:
                position = next((p for p in self._closed if p.id == identifier), None)
            return position.copy() if position else None

    def open_positions(self) -> List[Position]:
        return self.snapshot().open_positions

    def closed_history(self) -> List[Position]:
        """Closed positions, oldest close first."""
        with self._lock:
            return [p.copy() for p in self._closed]

    def can_promote(self) -> bool:
        return can_promote(self.counters(), self.criteria)

    # ------------------------------------------------------------------ #
    def _publish(self, topic: str, payload: object) -> None:
        if self.bus is not None:
            self.bus.publish(topic, payload)
