"""
mode_controller.py
------------------
Owns the run mode (SIMULATED / LIVE) and the running flag. Leaving simulation
is gated by the promotion check; going back to simulation never is.
"""

from __future__ import annotations

import logging
import threading
from contextlib import contextmanager
from dataclasses import dataclass, replace
from enum import Enum
from typing import Iterator, Optional

from core.errors import NotReady
from modules.promotion_gate import can_promote
from utils.event_bus import EventBus, Topics


class RunMode(str, Enum):
    SIMULATED = "simulated"
    LIVE = "live"


@dataclass
class ModeState:
    mode: RunMode = RunMode.SIMULATED
    running: bool = False


class ModeController:
    def __init__(self, ledger, bus: Optional[EventBus] = None,
                 logger: Optional[logging.Logger] = None) -> None:
        self.logger = logger or logging.getLogger(__name__)
        self.ledger = ledger
        self.bus = bus
        self._state = ModeState()
        # re-entrant: bus handlers run inline when no loop is running
        self._lock = threading.RLock()

    @property
    def mode(self) -> RunMode:
        return self._state.mode

    @property
    def running(self) -> bool:
        return self._state.running

    @property
    def is_simulated(self) -> bool:
        return self._state.mode is RunMode.SIMULATED

    @contextmanager
    def holding_mode(self) -> Iterator[RunMode]:
        """
        Yield the current mode and keep it fixed until the block exits.

        request_mode_switch from any thread waits for the block, so work
        routed on the yielded mode never lands after the switch.
        """
        with self._lock:
            yield self._state.mode

    def state(self) -> ModeState:
        with self._lock:
            return replace(self._state)

    def set_running(self, running: bool) -> None:
        with self._lock:
            changed = self._state.running != bool(running)
            self._state.running = bool(running)
        if changed:
            if running:
                self.logger.info("Starting trading in %s mode", self.mode.value.upper())
            else:
                self.logger.info("Trading stopped")
            self._publish(Topics.RUNNING_CHANGED, bool(running))

    def request_mode_switch(self) -> RunMode:
        """
        Toggle SIMULATED <-> LIVE and return the new mode.

        SIMULATED -> LIVE raises NotReady unless the promotion gate passes on
        the ledger's current counters. LIVE -> SIMULATED always succeeds.
        """
        with self._lock:
            if self._state.mode is RunMode.SIMULATED:
                counters = self.ledger.counters()
                if not can_promote(counters, self.ledger.criteria):
                    self.logger.warning(
                        "Not ready for live trading yet (closed=%d, win rate=%.2f, pnl=%.2f)",
                        counters.total_closed, counters.win_rate, counters.cumulative_pnl,
                    )
                    raise NotReady("promotion gate not passed")
                self._state.mode = RunMode.LIVE
            else:
                self._state.mode = RunMode.SIMULATED
            new_mode = self._state.mode

        self.logger.info("Switched to %s trading mode", new_mode.value.upper())
        self._publish(Topics.MODE_CHANGED, new_mode)
        return new_mode

    def _publish(self, topic: str, payload: object) -> None:
        if self.bus is not None:
            self.bus.publish(topic, payload)
