"""
Backtest engine: replay candles through the strategy dispatcher bar by bar.

Indicators are computed once over the filtered candles.
Per bar: exit check for the open position against the bar's high/low
(stop-loss before take-profit), then a dispatcher call at the bar's open.
A flat book opens on a signal; an open position closes on an opposite signal.
Whatever is still open at the end is closed at the last close.
"""
import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Dict, List, Optional

import pandas as pd

from src.aurum.backtest.metrics import compute_metrics
from src.aurum.backtest.repository import save_report
from src.aurum.data.candles import to_utc, validate_candles
from src.aurum.data.schema import Action, BacktestReport, CloseReason, SimulatedTrade, StrategyMode
from src.aurum.db.store import Store
from src.aurum.errors import InsufficientDataError, ValidationError
from src.aurum.execution.sizing import CONTRACT_SIZE, RiskLevel, get_risk_level
from src.aurum.strategies.base import indicator_frame
from src.aurum.strategies.dispatcher import evaluate
from src.aurum.strategies.params import StrategyParameters

logger = logging.getLogger(__name__)


@dataclass
class _Position:
    type: Action
    entry_time: datetime
    entry_price: float
    lot_size: float
    stop_loss: float
    take_profit: Optional[float]


def _exit_hit(pos: _Position, bar: pd.Series) -> Optional[tuple[float, CloseReason]]:
    """Stop-loss has priority when both levels lie inside the same bar."""
    if pos.type == Action.BUY:
        if bar["low"] <= pos.stop_loss:
            return pos.stop_loss, CloseReason.SL
        if pos.take_profit is not None and bar["high"] >= pos.take_profit:
            return pos.take_profit, CloseReason.TP
    else:
        if bar["high"] >= pos.stop_loss:
            return pos.stop_loss, CloseReason.SL
        if pos.take_profit is not None and bar["low"] <= pos.take_profit:
            return pos.take_profit, CloseReason.TP
    return None


def _close(
    pos: _Position,
    price: float,
    exit_time: datetime,
    reason: CloseReason,
    slippage: float,
    commission_per_lot: float,
) -> SimulatedTrade:
    if pos.type == Action.BUY:
        exit_price = price - slippage
        delta = exit_price - pos.entry_price
    else:
        exit_price = price + slippage
        delta = pos.entry_price - exit_price
    pnl = delta * pos.lot_size * CONTRACT_SIZE - commission_per_lot * pos.lot_size
    return SimulatedTrade(
        entry_time=pos.entry_time,
        entry_price=pos.entry_price,
        exit_time=exit_time,
        exit_price=round(exit_price, 5),
        type=pos.type.value,
        lot_size=pos.lot_size,
        stop_loss=pos.stop_loss,
        take_profit=pos.take_profit,
        profit_or_loss=round(pnl, 2),
        close_reason=reason,
    )


def run_backtest(
    candles: pd.DataFrame,
    start: Optional[datetime] = None,
    end: Optional[datetime] = None,
    mode: StrategyMode | str = StrategyMode.ADAPTIVE,
    params: Optional[StrategyParameters] = None,
    commission_per_lot: float = 0.0,
    slippage_points: float = 0.0,
    risk_level: str = "conservative",
    risk_levels: Optional[Dict[str, RiskLevel]] = None,
    symbol: str = "XAUUSD",
    timeframe: str = "15min",
    store: Optional[Store] = None,
    user_id: Optional[str] = None,
) -> BacktestReport:
    """
    Run one backtest over `candles` limited to [start, end]. When `store` is
    given the report and its trades are persisted (see repository.save_report).
    """
    try:
        mode = StrategyMode(mode)
    except ValueError:
        raise ValidationError(f"Unknown strategy mode: {mode!r}")
    params = params or StrategyParameters()
    params.validate()
    if commission_per_lot < 0 or slippage_points < 0:
        raise ValidationError("commission_per_lot and slippage_points must be >= 0")
    if start is not None and end is not None and to_utc(start) >= to_utc(end):
        raise ValidationError("Backtest start must be before end")
    lot_size = get_risk_level(risk_level, risk_levels).max_lot_size

    data = validate_candles(candles)
    if start is not None:
        data = data[data.index >= to_utc(start)]
    if end is not None:
        data = data[data.index <= to_utc(end)]

    lookback = params.required_lookback(mode)
    if len(data) < lookback:
        raise InsufficientDataError(lookback, len(data))

    logger.info(
        "Backtest %s %s %s: %d candles, lookback %d, lot %.2f",
        symbol, timeframe, mode.value, len(data), lookback, lot_size,
    )

    indicators = indicator_frame(data, params)
    trades: List[SimulatedTrade] = []
    position: Optional[_Position] = None
    for i in range(lookback, len(data)):
        bar = data.iloc[i]
        ts = data.index[i]

        if position is not None:
            hit = _exit_hit(position, bar)
            if hit is not None:
                trades.append(_close(position, hit[0], ts, hit[1], slippage_points, commission_per_lot))
                position = None

        signal = evaluate(data, i, mode, params, indicators=indicators)
        if not signal.is_trade:
            continue
        if position is None:
            entry = signal.price_at_decision
            entry += slippage_points if signal.action == Action.BUY else -slippage_points
            position = _Position(
                type=signal.action,
                entry_time=ts,
                entry_price=entry,
                lot_size=lot_size,
                stop_loss=signal.stop_loss,
                take_profit=signal.take_profit,
            )
            logger.debug("%s open %s @ %.2f sl=%.2f tp=%s", ts, signal.action.value, entry,
                         signal.stop_loss, signal.take_profit)
        elif signal.action != position.type:
            trades.append(_close(position, signal.price_at_decision, ts, CloseReason.SIGNAL,
                                 slippage_points, commission_per_lot))
            position = None

    if position is not None:
        trades.append(_close(position, float(data["close"].iloc[-1]), data.index[-1],
                             CloseReason.END_OF_TEST, slippage_points, commission_per_lot))

    m = compute_metrics(trades)
    report = BacktestReport(
        symbol=symbol,
        timeframe=timeframe,
        start_date=start if start is not None else data.index[0].to_pydatetime(),
        end_date=end if end is not None else data.index[-1].to_pydatetime(),
        strategy_mode=mode,
        strategy_params=params.to_dict(),
        total_trades=m["total_trades"],
        total_profit_loss=m["total_profit_loss"],
        winning_trades=m["winning_trades"],
        losing_trades=m["losing_trades"],
        win_rate=m["win_rate"],
        commission_per_lot=commission_per_lot,
        slippage_points=slippage_points,
        user_id=user_id,
        trades=trades,
    )
    logger.info(
        "%s %s: %d trades, P&L %.2f, win rate %.2f%%",
        symbol, mode.value, report.total_trades, report.total_profit_loss, report.win_rate,
    )

    if store is not None:
        report = save_report(store, report)
    return report
