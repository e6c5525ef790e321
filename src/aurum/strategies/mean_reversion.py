"""
Mean reversion: Bollinger band touch confirmed by RSI extreme and RSI turning.

BUY:  last close <= lower band, RSI < oversold, RSI rising vs previous candle.
SELL: last close >= upper band, RSI > overbought, RSI falling.
"""
import pandas as pd

from src.aurum.data.schema import Action, Signal
from src.aurum.strategies.base import atr_signal, ready, value_at
from src.aurum.strategies.params import StrategyParameters

NAME = "MEAN_REVERSION"


def mean_reversion_at(frame: pd.DataFrame, pos: int, decision_price: float, params: StrategyParameters) -> Signal:
    if pos < 1:
        return Signal.hold(decision_price)

    last_close = value_at(frame, "close", pos)
    upper = value_at(frame, "bb_upper", pos)
    lower = value_at(frame, "bb_lower", pos)
    r_now, r_prev = value_at(frame, "rsi", pos), value_at(frame, "rsi", pos - 1)
    if not ready(upper, lower, r_now, r_prev):
        return Signal.hold(decision_price)

    action = Action.HOLD
    if last_close <= lower and r_now < params.rsi_oversold and r_now > r_prev:
        action = Action.BUY
    elif last_close >= upper and r_now > params.rsi_overbought and r_now < r_prev:
        action = Action.SELL
    if action == Action.HOLD:
        return Signal.hold(decision_price)
    return atr_signal(action, decision_price, value_at(frame, "atr", pos), params, NAME)
