"""
decision_source.py
------------------
Common interface for whatever proposes trades, plus the mock analyser the
paper bot ships with.

A DecisionSource receives a symbol and returns a proposal mapping (or a
``TradeProposal``). The engine only opens a position when ``should_trade`` is
set and the confidence beats its minimum.
"""

from __future__ import annotations

import random
from abc import ABC, abstractmethod
from typing import Dict, Optional, Union

from models.proposal import TradeProposal


class DecisionSource(ABC):
    """Abstract decision source with a single entry point."""

    @abstractmethod
    def propose(self, symbol: str) -> Union[Dict, TradeProposal]:
        """
        Analyse ``symbol`` and return a proposal; may be a coroutine.

        Expected keys
        -------------
        price        : float – reference price
        confidence   : float – score in [0, 1]
        should_trade : bool  – whether the source wants a trade at all
        side         : str   – 'buy'/'long' or 'sell'/'short'
        amount       : float – notional in quote currency
        """
        raise NotImplementedError


BASE_PRICES: Dict[str, float] = {
    "BTC/USDT": 45000.0,
    "ETH/USDT": 2800.0,
    "SOL/USDT": 110.0,
}


class RandomDecisionSource(DecisionSource):
    """
    Placeholder analysis: random sentiment and technical scores.

    Prices wander ±5% around a fixed base, confidence is the mean of two
    uniform draws, and only about one confident call in ten wants a trade.
    """

    def __init__(self, rng: Optional[random.Random] = None,
                 base_prices: Optional[Dict[str, float]] = None,
                 trade_threshold: float = 0.7) -> None:
        self.rng = rng or random.Random()
        self.base_prices = base_prices or BASE_PRICES
        self.trade_threshold = trade_threshold

    def mock_price(self, symbol: str) -> float:
        base = self.base_prices.get(symbol, 100.0)
        return base * (0.95 + self.rng.random() * 0.1)

    def propose(self, symbol: str) -> Dict:
        price = self.mock_price(symbol)
        sentiment = self.rng.random()
        technical = self.rng.random()
        confidence = (sentiment + technical) / 2
        should_trade = confidence > self.trade_threshold and self.rng.random() > 0.9  # rare
        return {
            "symbol": symbol,
            "price": price,
            "confidence": confidence,
            "should_trade": should_trade,
            "side": "buy" if self.rng.random() > 0.5 else "sell",
            "amount": 100 + self.rng.random() * 400,  # $100-500
        }
