"""
core/engine.py
--------------
The paper-trading engine: asks a DecisionSource for proposals on a fixed
tick, opens paper positions, lets the OutcomeScheduler resolve them, and
gates the switch to live mode on the ledger's record.
"""

from __future__ import annotations

import asyncio
import inspect
import logging
import random
from typing import Callable, Dict, List, Optional, Union

from core.errors import InvalidProposal
from models.position import Position
from models.proposal import TradeProposal
from modules.decision_source import DecisionSource, RandomDecisionSource
from modules.ledger import LedgerSnapshot, SimulationLedger
from modules.mode_controller import ModeController, RunMode
from modules.outcome_scheduler import OutcomeScheduler
from modules.promotion_gate import can_promote
from modules import reporting
from utils.config_manager import ConfigManager
from utils.event_bus import EventBus, Topics

LiveExecutor = Callable[[TradeProposal], Dict]

LIMIT_ORDER_CONFIDENCE = 0.8


def paper_only_executor(proposal: TradeProposal) -> Dict:
    """Default LIVE handler: no exchange is wired, so nothing is sent."""
    return {
        "success": False,
        "executed": False,
        "symbol": proposal.symbol,
        "side": proposal.side.value,
        "amount": proposal.notional,
        "leverage": proposal.leverage,
        "message": "Live order routing is not available",
    }


class TradingEngine:
    """Explicitly constructed owner of ledger, scheduler and mode state."""

    def __init__(
        self,
        config: Union[ConfigManager, Dict, None] = None,
        decision_source: Optional[DecisionSource] = None,
        *,
        bus: Optional[EventBus] = None,
        rng: Optional[random.Random] = None,
        live_executor: Optional[LiveExecutor] = None,
        logger: Optional[logging.Logger] = None,
    ) -> None:
        self.logger = logger or logging.getLogger(self.__class__.__name__)
        self.config = config if isinstance(config, ConfigManager) else ConfigManager(config)
        rng = rng or random.Random()

        self.symbols: List[str] = self.config.get_symbols()
        self.scan_interval = self.config.get_scan_interval()
        self.min_confidence = self.config.get_min_confidence()
        self.initial_balance = self.config.get_initial_balance()
        self.promotion_check_interval = self.config.get_promotion_check_interval()

        self.bus = bus or EventBus()
        self.decision_source = decision_source or RandomDecisionSource(rng=rng)
        self.live_executor = live_executor or paper_only_executor
        self.scheduler = OutcomeScheduler.from_config(self.config, rng=rng, logger=self.logger)
        self.ledger = SimulationLedger.from_config(
            self.config, bus=self.bus, scheduler=self.scheduler, logger=self.logger
        )
        self.scheduler.attach(self.ledger)
        self.controller = ModeController(self.ledger, bus=self.bus, logger=self.logger)

        self._tasks: List[asyncio.Task] = []

        # metrics
        self.metrics = {
            "scans": 0,
            "proposals": 0,
            "opened": 0,
            "live_orders": 0,
            "errors": 0,
        }

    # ------------------------------------------------------------------ #
    # Core interface
    # ------------------------------------------------------------------ #
    def open(self, proposal) -> Position:
        return self.ledger.open(proposal)

    def close(self, identifier: str, exit_price: float) -> Position:
        return self.ledger.close(identifier, exit_price)

    def snapshot(self) -> LedgerSnapshot:
        return self.ledger.snapshot()

    def can_promote(self) -> bool:
        return self.ledger.can_promote()

    def request_mode_switch(self) -> RunMode:
        return self.controller.request_mode_switch()

    def set_running(self, running: bool) -> None:
        self.controller.set_running(running)

    @property
    def mode(self) -> RunMode:
        return self.controller.mode

    @property
    def running(self) -> bool:
        return self.controller.running

    def subscribe(self, topic: str, fn) -> None:
        self.bus.subscribe(topic, fn)

    # ------------------------------------------------------------------ #
    # Order entry
    # ------------------------------------------------------------------ #
    def execute(self, proposal) -> Union[Position, Dict]:
        """
        Route a proposal: paper ledger in SIMULATED mode, live executor otherwise.

        The mode is held for the whole call, so a concurrent switch cannot
        slip between the check and the booking. Live executors receive the
        proposal unchanged and should size the order by ``proposal.notional``,
        the same leveraged amount the ledger books.
        """
        proposal = TradeProposal.coerce(proposal)
        with self.controller.holding_mode() as mode:
            if mode is RunMode.SIMULATED:
                position = self.ledger.open(proposal)
                self.metrics["opened"] += 1
                return position
            self.metrics["live_orders"] += 1
            self.logger.warning(
                "LIVE TRADE: %s %s - $%.2f (%.0fx)",
                proposal.side.value.upper(), proposal.symbol,
                proposal.notional, proposal.leverage,
            )
            return self.live_executor(proposal)

    async def market_order(self, symbol: str, side: str, amount: float) -> Union[Position, Dict]:
        analysis = await self._propose(symbol)
        analysis.update(side=side, amount=amount)
        return self.execute(analysis)

    def limit_order(self, symbol: str, side: str, amount: float, price: float) -> Union[Position, Dict]:
        # filled immediately at the limit price
        return self.execute({
            "symbol": symbol,
            "side": side,
            "amount": amount,
            "price": price,
            "confidence": LIMIT_ORDER_CONFIDENCE,
            "should_trade": True,
        })

    async def futures_trade(self, symbol: str, side: str, amount: float,
                            leverage: float) -> Union[Position, Dict]:
        analysis = await self._propose(symbol)
        analysis.update(side=side, amount=amount, leverage=leverage)
        return self.execute(analysis)

    # ------------------------------------------------------------------ #
    # Scanning
    # ------------------------------------------------------------------ #
    async def scan_once(self) -> List[Union[Position, Dict]]:
        """One pass over the symbol set; does nothing while stopped."""
        if not self.controller.running:
            return []
        self.metrics["scans"] += 1
        results: List[Union[Position, Dict]] = []
        for symbol in self.symbols:
            try:
                analysis = await self._propose(symbol)
                proposal = TradeProposal.coerce(analysis, symbol=symbol)
            except InvalidProposal as exc:
                self.metrics["errors"] += 1
                self.logger.warning("Rejected proposal for %s: %s", symbol, exc)
                continue
            except Exception as exc:
                self.metrics["errors"] += 1
                self.logger.warning("Decision source failed for %s: %s", symbol, exc)
                continue
            self.metrics["proposals"] += 1

            if not (proposal.should_trade and proposal.confidence > self.min_confidence):
                continue
            # stop may have been requested while we awaited the source
            if not self.controller.running:
                break
            results.append(self.execute(proposal))
        return results

    async def scan_loop(self) -> None:
        while True:
            await self.scan_once()
            await asyncio.sleep(self.scan_interval)

    async def promotion_watch(self) -> None:
        """Periodically re-announce readiness while the gate passes."""
        while True:
            await asyncio.sleep(self.promotion_check_interval)
            if self.controller.is_simulated and self.ledger.can_promote():
                self.logger.info("AI ready for live trading!")
                self.bus.publish(Topics.READY_FOR_LIVE, self.ledger.counters())

    # ------------------------------------------------------------------ #
    # Lifecycle
    # ------------------------------------------------------------------ #
    def launch(self) -> None:
        """Start background loops on the running event loop (idempotent)."""
        if self._tasks:
            return
        loop = asyncio.get_running_loop()
        self.scheduler.bind_loop(loop)
        self._tasks = [
            loop.create_task(self.scan_loop()),
            loop.create_task(self.promotion_watch()),
        ]
        self.logger.info(
            "Paper trading engine launched - scanning %s every %.1fs",
            self.symbols, self.scan_interval,
        )
        self.bus.publish(Topics.INITIALIZED, self.symbols)

    async def start(self) -> bool:
        self.launch()
        self.controller.set_running(True)
        return True

    async def stop(self) -> bool:
        # pending closes keep running; only new evaluation halts
        self.controller.set_running(False)
        return True

    async def shutdown(self, drain: bool = False) -> None:
        self.controller.set_running(False)
        for task in self._tasks:
            task.cancel()
        for task in self._tasks:
            try:
                await task
            except asyncio.CancelledError:
                pass
        self._tasks = []
        if drain:
            await self.scheduler.wait_idle()
        await self.bus.drain()
        await self.bus.close()

    async def run(self) -> None:
        """Start and block until cancelled."""
        await self.start()
        try:
            await asyncio.gather(*self._tasks)
        except asyncio.CancelledError:
            self.logger.info("Engine cancelled - shutting down")
            raise

    # ------------------------------------------------------------------ #
    # Reporting
    # ------------------------------------------------------------------ #
    def status(self) -> Dict:
        snap = self.ledger.snapshot()
        return reporting.format_status(
            snap.counters,
            self.controller.state(),
            ready_for_live=can_promote(snap.counters, self.ledger.criteria),
            initial_balance=self.initial_balance,
            open_count=len(snap.open_positions),
        )

    def learning_status(self) -> Dict:
        counters = self.ledger.counters()
        return reporting.format_learning_status(
            counters,
            self.controller.state(),
            ready_for_live=can_promote(counters, self.ledger.criteria),
        )

    def positions(self) -> List[Position]:
        return self.ledger.open_positions()

    def log_status(self) -> None:
        self.logger.info(reporting.format_summary_line(self.status()))

    # ------------------------------------------------------------------ #
    async def _propose(self, symbol: str) -> Dict:
        result = self.decision_source.propose(symbol)
        if inspect.isawaitable(result):
            result = await result
        if isinstance(result, TradeProposal):
            result = result.model_dump()
        result = dict(result)
        result.setdefault("symbol", symbol)
        return result
