"""
Simple text report from a backtest result.
"""
from src.aurum.backtest.metrics import compute_metrics, compute_metrics_by_direction, compute_metrics_by_reason
from src.aurum.data.schema import BacktestReport


def report_text(report: BacktestReport, title: str = "Backtest Report") -> str:
    m = compute_metrics(report.trades)
    lines = [
        f"=== {title} ===",
        f"{report.symbol} {report.timeframe} {report.strategy_mode.value} "
        f"{report.start_date:%Y-%m-%d} -> {report.end_date:%Y-%m-%d}",
        f"Total trades: {report.total_trades}",
        f"Wins: {report.winning_trades} | Losses: {report.losing_trades}",
        f"Win rate: {report.win_rate:.2f}%",
        f"Total P&L: {report.total_profit_loss:.2f}",
        f"Profit factor: {m['profit_factor']:.2f}",
        f"Max drawdown: {m['max_drawdown']:.2f}",
    ]
    for direction, dm in compute_metrics_by_direction(report.trades).items():
        lines.append(f"  {direction}: {dm['total_trades']} trades, win rate {dm['win_rate']:.2f}%, "
                     f"P&L {dm['total_profit_loss']:.2f}")
    for reason, rm in compute_metrics_by_reason(report.trades).items():
        lines.append(f"  {reason}: {rm['total_trades']} trades, P&L {rm['total_profit_loss']:.2f}")
    return "\n".join(lines)
