"""
Shared helpers for the signal functions: the causal indicator frame,
readiness checks and ATR-based SL/TP.

Every signal function has the same shape:
    fn(frame: pd.DataFrame, pos: int, decision_price: float, params: StrategyParameters) -> Signal
where `frame` comes from indicator_frame() and `pos` is the row of the last
candle strictly before the decision candle. An indicator value at row j only
depends on candles 0..j, so one frame over the whole series serves every
decision of a backtest.
"""
import math

import pandas as pd

from src.aurum.data.schema import Action, Signal
from src.aurum.indicators.adx import adx
from src.aurum.indicators.atr import atr
from src.aurum.indicators.bollinger import bollinger_bands
from src.aurum.indicators.rsi import rsi
from src.aurum.indicators.smoothing import sma
from src.aurum.strategies.params import StrategyParameters

PRICE_DECIMALS = 4


def ready(*values: float) -> bool:
    """True when every value is a real number (not NaN / None)."""
    return all(v is not None and not math.isnan(v) for v in values)


def indicator_frame(candles: pd.DataFrame, params: StrategyParameters) -> pd.DataFrame:
    """
    Every indicator the strategies read, one row per candle.
    channel_high / channel_low cover the `breakout_lookback` candles before each row.
    """
    high, low, close = candles["high"], candles["low"], candles["close"]
    bands = bollinger_bands(close, params.bb_period, params.bb_std_dev)
    lookback = params.breakout_lookback
    return pd.DataFrame({
        "close": close,
        "sma_short": sma(close, params.sma_short),
        "sma_long": sma(close, params.sma_long),
        "bb_upper": bands["bb_upper"],
        "bb_lower": bands["bb_lower"],
        "rsi": rsi(close, params.rsi_period),
        "atr": atr(high, low, close, params.atr_period),
        "adx": adx(high, low, close, params.adx_period)["adx"],
        "channel_high": high.rolling(window=lookback, min_periods=lookback).max().shift(1),
        "channel_low": low.rolling(window=lookback, min_periods=lookback).min().shift(1),
    }, index=candles.index)


def value_at(frame: pd.DataFrame, column: str, pos: int) -> float:
    if pos < 0:
        return float("nan")
    return float(frame[column].iat[pos])


def atr_signal(
    action: Action,
    decision_price: float,
    atr_value: float,
    params: StrategyParameters,
    strategy: str,
) -> Signal:
    """Directional signal with SL/TP at decision price -/+ ATR multiples (mirrored for SELL)."""
    if action == Action.HOLD or not ready(atr_value) or atr_value <= 0:
        return Signal.hold(decision_price)
    sl_dist = atr_value * params.atr_sl_multiplier
    tp_dist = atr_value * params.atr_tp_multiplier
    if action == Action.BUY:
        sl, tp = decision_price - sl_dist, decision_price + tp_dist
    else:
        sl, tp = decision_price + sl_dist, decision_price - tp_dist
    return Signal(
        action=action,
        price_at_decision=decision_price,
        stop_loss=round(sl, PRICE_DECIMALS),
        take_profit=round(tp, PRICE_DECIMALS),
        strategy=strategy,
    )
