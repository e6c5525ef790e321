"""
SMA crossover: BUY when the short SMA crosses above the long SMA, SELL on the
mirrored cross. Compares the last two closed candles only.
"""
import pandas as pd

from src.aurum.data.schema import Action, Signal
from src.aurum.strategies.base import atr_signal, ready, value_at
from src.aurum.strategies.params import StrategyParameters

NAME = "SMA_CROSSOVER"


def crossover_action(s_prev: float, s_now: float, l_prev: float, l_now: float) -> Action:
    if not ready(s_prev, s_now, l_prev, l_now):
        return Action.HOLD
    if s_prev <= l_prev and s_now > l_now:
        return Action.BUY
    if s_prev >= l_prev and s_now < l_now:
        return Action.SELL
    return Action.HOLD


def sma_crossover_at(frame: pd.DataFrame, pos: int, decision_price: float, params: StrategyParameters) -> Signal:
    if pos < 1:
        return Signal.hold(decision_price)
    action = crossover_action(
        value_at(frame, "sma_short", pos - 1), value_at(frame, "sma_short", pos),
        value_at(frame, "sma_long", pos - 1), value_at(frame, "sma_long", pos),
    )
    if action == Action.HOLD:
        return Signal.hold(decision_price)
    return atr_signal(action, decision_price, value_at(frame, "atr", pos), params, NAME)
