"""
Backtest metrics: totals, win rate, profit factor, max drawdown, per close reason.
"""
from collections import defaultdict
from typing import Dict, List

from src.aurum.data.schema import SimulatedTrade


def compute_metrics(trades: List[SimulatedTrade]) -> dict:
    """
    Winners are P&L > 0, losers P&L < 0; a flat trade counts as neither.
    win_rate is a percentage of all trades, rounded to 2 decimals.
    """
    if not trades:
        return {
            "total_trades": 0,
            "winning_trades": 0,
            "losing_trades": 0,
            "win_rate": 0.0,
            "total_profit_loss": 0.0,
            "profit_factor": 0.0,
            "max_drawdown": 0.0,
            "avg_holding_hours": 0.0,
        }

    pnls = [t.profit_or_loss for t in trades]
    wins = [p for p in pnls if p > 0]
    losses = [p for p in pnls if p < 0]
    gross_profit = sum(wins)
    gross_loss = abs(sum(losses))
    pf = (gross_profit / gross_loss) if gross_loss else (gross_profit or 0.0)

    # Equity curve (cumulative P&L) for max drawdown
    peak = 0.0
    cum = 0.0
    max_dd = 0.0
    for p in pnls:
        cum += p
        peak = max(peak, cum)
        max_dd = max(max_dd, peak - cum)

    holding_seconds = [(t.exit_time - t.entry_time).total_seconds() for t in trades]

    return {
        "total_trades": len(trades),
        "winning_trades": len(wins),
        "losing_trades": len(losses),
        "win_rate": round(100.0 * len(wins) / len(trades), 2),
        "total_profit_loss": round(sum(pnls), 2),
        "profit_factor": round(pf, 2),
        "max_drawdown": round(-max_dd, 2),
        "avg_holding_hours": sum(holding_seconds) / len(holding_seconds) / 3600.0,
    }


def compute_metrics_by_reason(trades: List[SimulatedTrade]) -> Dict[str, dict]:
    """Metrics split by close reason (SL / TP / Signal / EndOfTest)."""
    by_reason: Dict[str, List[SimulatedTrade]] = defaultdict(list)
    for t in trades:
        by_reason[t.close_reason.value].append(t)
    return {reason: compute_metrics(group) for reason, group in sorted(by_reason.items())}


def compute_metrics_by_direction(trades: List[SimulatedTrade]) -> Dict[str, dict]:
    """Metrics split by BUY / SELL."""
    return {
        direction: compute_metrics([t for t in trades if t.type == direction])
        for direction in ("BUY", "SELL")
    }
