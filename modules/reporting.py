"""
reporting.py
------------
Status payloads and closed-trade statistics for whatever layer sits on top
of the engine (HTTP, CLI, logs).
"""

from __future__ import annotations

from typing import Dict, Iterable, List

import pandas as pd

from models.performance import PerformanceCounters
from models.position import Position
from modules.mode_controller import ModeState, RunMode


HISTORY_COLUMNS = [
    "id", "symbol", "side", "amount", "entry_price", "exit_price",
    "pnl", "confidence", "opened_at", "closed_at",
]


def format_status(counters: PerformanceCounters, state: ModeState, *,
                  ready_for_live: bool, initial_balance: float,
                  open_count: int) -> Dict:
    """Summary shaped like the bot's status endpoint."""
    return {
        "running": state.running,
        "mode": state.mode.value,
        "paper_mode": state.mode is RunMode.SIMULATED,
        "balance": round(initial_balance + counters.cumulative_pnl, 2),
        "total_trades": counters.total_opened,
        "closed_trades": counters.total_closed,
        "open_positions": open_count,
        "success_rate": f"{counters.win_rate * 100:.1f}",
        "total_profit": round(counters.cumulative_pnl, 2),
        "confidence": f"{counters.confidence_level * 100:.1f}",
        "learning_progress": f"{counters.learning_progress:.1f}",
        "ready_for_live": ready_for_live,
    }


def format_learning_status(counters: PerformanceCounters, state: ModeState, *,
                           ready_for_live: bool) -> Dict:
    return {
        "paper_trading_enabled": state.mode is RunMode.SIMULATED,
        "total_paper_trades": counters.total_opened,
        "closed_paper_trades": counters.total_closed,
        "paper_success_rate": counters.win_rate,
        "ai_confidence": counters.confidence_level,
        "learning_progress": counters.learning_progress,
        "ready_for_live": ready_for_live,
    }


def format_summary_line(status: Dict) -> str:
    return (
        f"[{status['mode'].upper()}] trades={status['total_trades']} "
        f"closed={status['closed_trades']} open={status['open_positions']} "
        f"win={status['success_rate']}% pnl=${status['total_profit']:.2f} "
        f"progress={status['learning_progress']}% ready={status['ready_for_live']}"
    )


# ------------------------------------------------------------------ #
# Closed-trade statistics
# ------------------------------------------------------------------ #
def history_frame(positions: Iterable[Position]) -> pd.DataFrame:
    """One row per closed position, ordered by close time."""
    rows: List[Dict] = [p.to_dict() for p in positions if not p.is_open]
    if not rows:
        return pd.DataFrame(columns=HISTORY_COLUMNS)
    df = pd.DataFrame(rows)[HISTORY_COLUMNS]
    return df.sort_values("closed_at", kind="stable").reset_index(drop=True)


def symbol_breakdown(positions: Iterable[Position]) -> pd.DataFrame:
    """Per-symbol trades, wins, win rate and PnL over closed positions."""
    df = history_frame(positions)
    if df.empty:
        return pd.DataFrame(columns=["trades", "wins", "win_rate", "pnl"])
    df["win"] = df["pnl"] > 0
    out = df.groupby("symbol").agg(
        trades=("id", "count"),
        wins=("win", "sum"),
        pnl=("pnl", "sum"),
    )
    out["wins"] = out["wins"].astype(int)
    out["win_rate"] = out["wins"] / out["trades"]
    return out[["trades", "wins", "win_rate", "pnl"]]
