import threading
from concurrent.futures import ThreadPoolExecutor

import pytest
from unittest.mock import MagicMock

from core.errors import InvalidExitPrice, InvalidProposal, UnknownPosition
from models.position import PositionState, Side
from modules.ledger import SimulationLedger, compute_learning_progress
from modules.promotion_gate import PromotionCriteria
from utils.event_bus import EventBus, Topics

# ------------------------- Fixtures ------------------------- #

@pytest.fixture
def ledger():
    return SimulationLedger()


@pytest.fixture
def long_proposal():
    return {
        "symbol": "BTC/USDT",
        "side": "buy",
        "amount": 100.0,
        "price": 100.0,
        "confidence": 0.8,
        "shouldTrade": True,
    }

# ------------------------- Tests ------------------------- #

def test_open_shows_in_snapshot(ledger, long_proposal):
    pos = ledger.open(long_proposal)
    counters, open_positions = ledger.snapshot()

    assert pos.state is PositionState.OPEN
    assert [p.id for p in open_positions] == [pos.id]
    snap_pos = open_positions[0]
    assert snap_pos.state is PositionState.OPEN
    assert snap_pos.symbol == "BTC/USDT"
    assert snap_pos.side is Side.LONG
    assert snap_pos.amount == 100.0
    assert snap_pos.entry_price == 100.0
    assert snap_pos.confidence == 0.8
    assert snap_pos.exit_price is None and snap_pos.pnl is None and snap_pos.closed_at is None
    assert counters.total_opened == 1
    assert counters.total_closed == 0


def test_snapshot_returns_copies(ledger, long_proposal):
    pos = ledger.open(long_proposal)
    counters, open_positions = ledger.snapshot()
    open_positions[0].amount = 1.0
    counters.total_opened = 99

    fresh_counters, fresh_positions = ledger.snapshot()
    assert fresh_positions[0].amount == 100.0
    assert fresh_counters.total_opened == 1
    assert ledger.get(pos.id).amount == 100.0


@pytest.mark.parametrize("field,value", [
    ("amount", 0),
    ("amount", -5),
    ("price", 0),
    ("price", -1),
    ("confidence", 1.5),
    ("side", "sideways"),
    ("leverage", float("inf")),
    ("leverage", float("nan")),
    ("leverage", 0.5),
    ("leverage", 1000),
])
def test_open_rejects_invalid_proposals(ledger, long_proposal, field, value):
    long_proposal[field] = value
    with pytest.raises(InvalidProposal):
        ledger.open(long_proposal)

    counters, open_positions = ledger.snapshot()
    assert counters.total_opened == 0
    assert open_positions == []


def test_open_rejects_missing_fields(ledger):
    with pytest.raises(InvalidProposal):
        ledger.open({"symbol": "BTC/USDT", "side": "buy"})


def test_long_close_scenario(ledger, long_proposal):
    pos = ledger.open(long_proposal)
    closed = ledger.close(pos.id, 105.0)

    assert closed.state is PositionState.CLOSED
    assert closed.pnl == pytest.approx(5.0)
    assert closed.exit_price == 105.0
    assert closed.closed_at is not None

    counters = ledger.counters()
    assert counters.total_closed == 1
    assert counters.winning_closed == 1
    assert counters.cumulative_pnl == pytest.approx(5.0)
    assert counters.confidence_level == pytest.approx(0.51)
    assert ledger.snapshot().open_positions == []


def test_short_closed_above_entry_loses(ledger, long_proposal):
    long_proposal["side"] = "sell"
    pos = ledger.open(long_proposal)
    closed = ledger.close(pos.id, 110.0)

    assert closed.pnl == pytest.approx(-10.0)
    counters = ledger.counters()
    assert counters.winning_closed == 0
    assert counters.cumulative_pnl == pytest.approx(-10.0)
    # confidence grows on losses too
    assert counters.confidence_level == pytest.approx(0.51)


def test_pnl_scales_with_notional_over_entry(ledger):
    pos = ledger.open({"symbol": "ETH/USDT", "side": "long", "amount": 250.0,
                       "price": 2500.0, "confidence": 0.9})
    closed = ledger.close(pos.id, 2600.0)
    assert closed.pnl == pytest.approx(100.0 * 250.0 / 2500.0)


def test_second_close_fails_and_leaves_counters(ledger, long_proposal):
    pos = ledger.open(long_proposal)
    ledger.close(pos.id, 105.0)
    before = ledger.counters()

    with pytest.raises(UnknownPosition):
        ledger.close(pos.id, 120.0)

    assert ledger.counters() == before
    assert ledger.get(pos.id).exit_price == 105.0


def test_close_unknown_id(ledger):
    with pytest.raises(UnknownPosition) as info:
        ledger.close("does-not-exist", 1.0)
    assert info.value.identifier == "does-not-exist"


def test_confidence_is_capped():
    ledger = SimulationLedger(initial_confidence=0.945)
    for exit_price in (101.0, 99.0, 102.0):
        pos = ledger.open({"symbol": "SOL/USDT", "side": "buy", "amount": 50,
                           "price": 100, "confidence": 0.75})
        ledger.close(pos.id, exit_price)
    assert ledger.counters().confidence_level == pytest.approx(0.95)


def test_learning_progress_updates_on_close(ledger, long_proposal):
    pos = ledger.open(long_proposal)
    ledger.close(pos.id, 105.0)
    counters = ledger.counters()
    expected = (1 / 100 + (1 / 1) / 0.75 + 0.51) / 3 * 100
    assert counters.learning_progress == pytest.approx(expected)


def test_closed_history_in_close_order(ledger, long_proposal):
    first = ledger.open(long_proposal)
    second = ledger.open(long_proposal)
    ledger.close(second.id, 101.0)
    ledger.close(first.id, 99.0)

    history = ledger.closed_history()
    assert [p.id for p in history] == [second.id, first.id]
    assert history[0].closed_at <= history[1].closed_at


def test_open_schedules_close():
    scheduler = MagicMock()
    ledger = SimulationLedger(scheduler=scheduler)
    pos = ledger.open({"symbol": "BTC/USDT", "side": "sell", "amount": 200,
                       "price": 45000, "confidence": 0.8})
    scheduler.schedule_close.assert_called_once_with(pos.id, 45000, Side.SHORT, 200)


def test_open_rolls_back_when_scheduling_fails():
    scheduler = MagicMock()
    scheduler.schedule_close.side_effect = RuntimeError("no loop")
    ledger = SimulationLedger(scheduler=scheduler)

    with pytest.raises(RuntimeError):
        ledger.open({"symbol": "BTC/USDT", "side": "buy", "amount": 200,
                     "price": 45000, "confidence": 0.8})

    counters, open_positions = ledger.snapshot()
    assert counters.total_opened == 0
    assert open_positions == []


def test_ready_for_live_published_once_when_gate_opens(long_proposal):
    bus = EventBus()
    ready = []
    closed = []
    bus.subscribe(Topics.READY_FOR_LIVE, ready.append)
    bus.subscribe(Topics.POSITION_CLOSED, closed.append)
    ledger = SimulationLedger(
        criteria=PromotionCriteria(min_closed=2, min_win_rate=0.5, min_pnl=5.0),
        bus=bus,
    )

    for _ in range(4):
        pos = ledger.open(long_proposal)
        ledger.close(pos.id, 104.0)

    assert len(closed) == 4
    assert len(ready) == 1
    assert ready[0].total_closed == 2
    assert ledger.can_promote()


# ------------------------- Learning progress ------------------------- #

def test_learning_progress_before_any_close():
    assert compute_learning_progress(0, 0, 0.5) == pytest.approx(50 / 3)


def test_learning_progress_monotone_in_closed_count():
    # win rate and confidence held fixed
    values = [compute_learning_progress(n, n // 2 if n else 0, 0.6) for n in (2, 10, 40, 80)]
    assert values == sorted(values)


@pytest.mark.parametrize("closed,wins,confidence", [
    (0, 0, 0.0),
    (10, 10, 0.95),
    (1000, 1000, 0.95),
    (10 ** 6, 0, 0.95),
])
def test_learning_progress_clamped(closed, wins, confidence):
    value = compute_learning_progress(closed, wins, confidence)
    assert 0.0 <= value <= 100.0


def test_open_rejects_overflowing_notional(ledger, long_proposal):
    long_proposal.update(amount=1e308, leverage=100)
    with pytest.raises(InvalidProposal):
        ledger.open(long_proposal)
    assert ledger.counters().total_opened == 0


def test_leverage_multiplies_booked_amount(ledger, long_proposal):
    long_proposal["leverage"] = 3
    pos = ledger.open(long_proposal)
    closed = ledger.close(pos.id, 110.0)
    assert pos.amount == 300.0
    assert closed.pnl == pytest.approx(30.0)


@pytest.mark.parametrize("exit_price", [float("nan"), float("inf"), float("-inf"), 0.0, -1.0])
def test_close_rejects_bad_exit_price(ledger, long_proposal, exit_price):
    pos = ledger.open(long_proposal)
    before = ledger.counters()

    with pytest.raises(InvalidExitPrice):
        ledger.close(pos.id, exit_price)

    assert ledger.counters() == before
    assert ledger.get(pos.id).state is PositionState.OPEN
    # the position can still be closed normally afterwards
    assert ledger.close(pos.id, 101.0).pnl == pytest.approx(1.0)


# ------------------------- Concurrency ------------------------- #

def test_racing_closes_on_one_id_succeed_once(ledger, long_proposal):
    pos = ledger.open(long_proposal)
    workers = 16
    barrier = threading.Barrier(workers)

    def close():
        barrier.wait()
        try:
            ledger.close(pos.id, 105.0)
            return True
        except UnknownPosition:
            return False

    with ThreadPoolExecutor(max_workers=workers) as pool:
        results = list(pool.map(lambda _: close(), range(workers)))

    assert results.count(True) == 1
    counters = ledger.counters()
    assert counters.total_closed == 1
    assert counters.winning_closed == 1
    assert counters.cumulative_pnl == pytest.approx(5.0)
    assert len(ledger.closed_history()) == 1


def test_snapshots_stay_consistent_under_concurrent_traffic(ledger, long_proposal):
    writers, per_writer = 8, 150
    done = threading.Event()
    violations = []
    snapshots = []

    def trade(seed):
        for i in range(per_writer):
            pos = ledger.open(long_proposal)
            ledger.close(pos.id, 101.0 if (seed + i) % 2 else 99.0)
            if i % 3 == 0:
                ledger.open(long_proposal)  # left open

    def watch():
        while not done.is_set():
            counters, open_positions = ledger.snapshot()
            snapshots.append(counters)
            if not counters.winning_closed <= counters.total_closed <= counters.total_opened:
                violations.append(counters)
            if counters.total_opened - counters.total_closed != len(open_positions):
                violations.append((counters, len(open_positions)))

    watcher = threading.Thread(target=watch)
    watcher.start()
    try:
        with ThreadPoolExecutor(max_workers=writers) as pool:
            list(pool.map(trade, range(writers)))
    finally:
        done.set()
        watcher.join()

    assert snapshots
    assert violations == []
    counters, open_positions = ledger.snapshot()
    assert counters.total_closed == writers * per_writer
    assert counters.total_opened == writers * (per_writer + per_writer // 3)
    assert len(open_positions) == counters.total_opened - counters.total_closed
    assert counters.winning_closed == writers * per_writer // 2
