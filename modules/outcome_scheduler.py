"""
outcome_scheduler.py
--------------------
Resolves every paper position after a random delay with a synthetic exit
price. Each pending close is an asyncio task keyed by position id; on firing
it calls back into ``SimulationLedger.close`` which serialises it with every
other mutation.
"""

from __future__ import annotations

import asyncio
import logging
import random
import threading
from typing import Dict, Optional

from core.errors import UnknownPosition
from models.position import Side


class OutcomeScheduler:
    """Fire-and-forget delayed closes for paper positions."""

    def __init__(
        self,
        ledger=None,
        *,
        delay_window: tuple = (30.0, 300.0),
        exit_jitter: float = 0.02,
        rng: Optional[random.Random] = None,
        loop: Optional[asyncio.AbstractEventLoop] = None,
        logger: Optional[logging.Logger] = None,
    ) -> None:
        self.ledger = ledger
        self.delay_window = delay_window
        self.exit_jitter = exit_jitter
        self.rng = rng or random.Random()
        self.logger = logger or logging.getLogger(self.__class__.__name__)
        self._loop = loop
        self._tasks: Dict[str, asyncio.Task] = {}
        self._guard = threading.Lock()

    @classmethod
    def from_config(cls, config, **kwargs) -> "OutcomeScheduler":
        return cls(
            delay_window=config.get_close_delay_window(),
            exit_jitter=config.get_exit_jitter(),
            **kwargs,
        )

    def attach(self, ledger) -> None:
        self.ledger = ledger

    def bind_loop(self, loop: asyncio.AbstractEventLoop) -> None:
        """Loop used when ``schedule_close`` is called from another thread."""
        self._loop = loop

    # -------------------------------------------------------------------- #
    @property
    def pending(self) -> int:
        with self._guard:
            return len(self._tasks)

    def draw_delay(self, lower: float, upper: float) -> float:
        return self.rng.uniform(lower, upper)

    def synthetic_exit_price(self, entry_price: float) -> float:
        """Entry price moved by a uniform factor in [-jitter, +jitter]."""
        return entry_price * (1 + self.rng.uniform(-self.exit_jitter, self.exit_jitter))

    def schedule_close(
        self,
        identifier: str,
        entry_price: float,
        side: Side,
        amount: float,
        delay_lower: Optional[float] = None,
        delay_upper: Optional[float] = None,
    ) -> float:
        """Arrange the close of ``identifier``; returns the drawn delay in seconds."""
        lower = self.delay_window[0] if delay_lower is None else delay_lower
        upper = self.delay_window[1] if delay_upper is None else delay_upper
        delay = self.draw_delay(lower, upper)

        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            loop = None

        if loop is not None:
            self._spawn(identifier, entry_price, side, amount, delay)
        elif self._loop is not None and self._loop.is_running():
            self._loop.call_soon_threadsafe(
                self._spawn, identifier, entry_price, side, amount, delay
            )
        else:
            raise RuntimeError("no running event loop to schedule the close on")

        self.logger.debug("close of %s scheduled in %.1fs", identifier, delay)
        return delay

    def cancel(self, identifier: str) -> bool:
        """Cancel the pending close of one position; True if one was pending."""
        with self._guard:
            task = self._tasks.pop(identifier, None)
        if task is None:
            return False
        task.cancel()
        return True

    async def wait_idle(self) -> None:
        """Wait until every close scheduled so far has fired."""
        while True:
            with self._guard:
                tasks = list(self._tasks.values())
            if not tasks:
                return
            await asyncio.gather(*tasks, return_exceptions=True)

    # -------------------------------------------------------------------- #
    def _spawn(self, identifier, entry_price, side, amount, delay) -> None:
        task = asyncio.get_running_loop().create_task(
            self._resolve(identifier, entry_price, side, amount, delay)
        )
        with self._guard:
            self._tasks[identifier] = task

    async def _resolve(self, identifier, entry_price, side, amount, delay) -> None:
        try:
            await asyncio.sleep(delay)
            exit_price = self.synthetic_exit_price(entry_price)
            try:
                self.ledger.close(identifier, exit_price)
            except UnknownPosition:
                self.logger.warning(
                    "Close for %s (%s $%.2f) dropped: position no longer open",
                    identifier, Side.parse(side).value, amount,
                )
        finally:
            with self._guard:
                if self._tasks.get(identifier) is asyncio.current_task():
                    del self._tasks[identifier]
