"""
Strategy dispatcher: one entry point for backtest and live.

evaluate(candles, decision_index, mode, params) -> Signal
The decision candle's open is the execution price; indicators only see the
candles before it. Live callers pass decision_index=len(candles) together
with the current price. The backtest computes indicator_frame() once per run
and hands it in as `indicators`; without it the frame is built from the
history slice on every call.
"""
import logging
from typing import Callable, Dict, Optional

import pandas as pd

from src.aurum.data.schema import Signal, StrategyMode
from src.aurum.errors import ValidationError
from src.aurum.strategies.base import indicator_frame, ready, value_at
from src.aurum.strategies.breakout import breakout_at
from src.aurum.strategies.mean_reversion import mean_reversion_at
from src.aurum.strategies.params import StrategyParameters
from src.aurum.strategies.sma_crossover import sma_crossover_at

logger = logging.getLogger(__name__)

SignalFn = Callable[[pd.DataFrame, int, float, StrategyParameters], Signal]


def adaptive_at(frame: pd.DataFrame, pos: int, decision_price: float, params: StrategyParameters) -> Signal:
    """ADX above trend threshold -> SMA crossover, below range threshold -> mean reversion, else HOLD."""
    adx_now = value_at(frame, "adx", pos)
    if not ready(adx_now):
        return Signal.hold(decision_price)
    if adx_now > params.adx_trend_threshold:
        return sma_crossover_at(frame, pos, decision_price, params)
    if adx_now < params.adx_range_threshold:
        return mean_reversion_at(frame, pos, decision_price, params)
    logger.debug("ADX %.2f between range/trend thresholds, HOLD", adx_now)
    return Signal.hold(decision_price)


def _signal_fn(mode: StrategyMode) -> SignalFn:
    modes: Dict[StrategyMode, SignalFn] = {
        StrategyMode.SMA_ONLY: sma_crossover_at,
        StrategyMode.MEAN_REVERSION_ONLY: mean_reversion_at,
        StrategyMode.BREAKOUT_ONLY: breakout_at,
    }
    return modes.get(mode, adaptive_at)


def evaluate(
    candles: pd.DataFrame,
    decision_index: int,
    mode: StrategyMode | str = StrategyMode.ADAPTIVE,
    params: Optional[StrategyParameters] = None,
    decision_price: Optional[float] = None,
    indicators: Optional[pd.DataFrame] = None,
) -> Signal:
    params = params or StrategyParameters()
    mode = StrategyMode(mode)
    if not 0 <= decision_index <= len(candles):
        raise ValidationError(f"decision_index {decision_index} outside 0..{len(candles)}")
    if indicators is not None and len(indicators) != len(candles):
        raise ValidationError("indicators must have one row per candle")
    if decision_price is None:
        if decision_index == len(candles):
            raise ValidationError("decision_price is required when deciding past the last candle")
        decision_price = float(candles["open"].iloc[decision_index])

    if decision_index < params.required_lookback(mode):
        return Signal.hold(decision_price)

    if indicators is None:
        indicators = indicator_frame(candles.iloc[:decision_index], params)
    return _signal_fn(mode)(indicators, decision_index - 1, decision_price, params)
