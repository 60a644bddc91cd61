import pytest
from pydantic import ValidationError

from core.errors import InvalidProposal
from models.position import Position, Side
from models.proposal import TradeProposal


@pytest.mark.parametrize("raw,expected", [
    ("buy", Side.LONG), ("LONG", Side.LONG), (" Sell ", Side.SHORT), ("short", Side.SHORT),
])
def test_side_normalised(raw, expected):
    proposal = TradeProposal(symbol="BTC/USDT", side=raw, amount=1, price=1, confidence=0.5)
    assert proposal.side is expected


def test_should_trade_alias():
    p = TradeProposal.coerce({"symbol": "BTC/USDT", "side": "buy", "amount": 1,
                              "price": 1, "confidence": 0.9, "shouldTrade": False})
    assert p.should_trade is False
    q = TradeProposal.coerce({"symbol": "BTC/USDT", "side": "buy", "amount": 1,
                              "price": 1, "confidence": 0.9, "should_trade": False})
    assert q.should_trade is False


def test_coerce_fills_symbol():
    p = TradeProposal.coerce({"side": "sell", "amount": 1, "price": 1, "confidence": 0.9},
                             symbol="ETH/USDT")
    assert p.symbol == "ETH/USDT"


def test_direct_construction_validates():
    with pytest.raises(ValidationError):
        TradeProposal(symbol="BTC/USDT", side="buy", amount=-1, price=1, confidence=0.5)


@pytest.mark.parametrize("bad", [None, 42, "proposal"])
def test_coerce_rejects_non_mappings(bad):
    with pytest.raises(InvalidProposal):
        TradeProposal.coerce(bad)


def test_coerce_rejects_nan_price():
    with pytest.raises(InvalidProposal):
        TradeProposal.coerce({"symbol": "BTC/USDT", "side": "buy", "amount": 1,
                              "price": float("nan"), "confidence": 0.5})


def test_position_ids_unique_and_to_dict():
    a = Position(symbol="BTC/USDT", side=Side.LONG, amount=1.0, entry_price=1.0, confidence=0.5)
    b = Position(symbol="BTC/USDT", side=Side.LONG, amount=1.0, entry_price=1.0, confidence=0.5)
    assert a.id != b.id
    data = a.to_dict()
    assert data["side"] == "long"
    assert data["state"] == "open"
    assert data["pnl"] is None


def test_realised_pnl_direction():
    long_pos = Position(symbol="X", side=Side.LONG, amount=100.0, entry_price=100.0, confidence=0.5)
    short_pos = Position(symbol="X", side=Side.SHORT, amount=100.0, entry_price=100.0, confidence=0.5)
    assert long_pos.realised_pnl(105.0) == pytest.approx(5.0)
    assert short_pos.realised_pnl(105.0) == pytest.approx(-5.0)
    assert short_pos.realised_pnl(95.0) == pytest.approx(5.0)


def test_notional_applies_leverage():
    proposal = TradeProposal(symbol="BTC/USDT", side="sell", amount=200, price=45000,
                             confidence=0.8, leverage=10)
    assert proposal.notional == 2000.0


@pytest.mark.parametrize("leverage", [float("inf"), 0.9, 126])
def test_leverage_bounds(leverage):
    with pytest.raises(InvalidProposal):
        TradeProposal.coerce({"symbol": "BTC/USDT", "side": "buy", "amount": 1,
                              "price": 1, "confidence": 0.5, "leverage": leverage})
