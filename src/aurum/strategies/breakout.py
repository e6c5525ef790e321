"""
Channel breakout: the last closed candle closes beyond the highest high / lowest
low of the `breakout_lookback` candles before it. Channels narrower than
`breakout_min_width_atr` ATRs are ignored.

SL sits half an ATR outside the opposite channel edge; TP is the SL distance
times the ATR TP multiplier, measured from the decision price.
"""
import pandas as pd

from src.aurum.data.schema import Action, Signal
from src.aurum.strategies.base import PRICE_DECIMALS, ready, value_at
from src.aurum.strategies.params import StrategyParameters

NAME = "BREAKOUT"
SL_BUFFER_ATR = 0.5


def breakout_at(frame: pd.DataFrame, pos: int, decision_price: float, params: StrategyParameters) -> Signal:
    if pos < params.breakout_lookback:
        return Signal.hold(decision_price)

    atr_value = value_at(frame, "atr", pos)
    highest = value_at(frame, "channel_high", pos)
    lowest = value_at(frame, "channel_low", pos)
    if not ready(atr_value, highest, lowest) or atr_value <= 0:
        return Signal.hold(decision_price)
    if highest - lowest < params.breakout_min_width_atr * atr_value:
        return Signal.hold(decision_price)

    signal_close = value_at(frame, "close", pos)
    if signal_close > highest:
        action = Action.BUY
        sl = lowest - SL_BUFFER_ATR * atr_value
        risk = decision_price - sl
        tp = decision_price + risk * params.atr_tp_multiplier
    elif signal_close < lowest:
        action = Action.SELL
        sl = highest + SL_BUFFER_ATR * atr_value
        risk = sl - decision_price
        tp = decision_price - risk * params.atr_tp_multiplier
    else:
        return Signal.hold(decision_price)

    if risk <= 0:
        return Signal.hold(decision_price)
    return Signal(
        action=action,
        price_at_decision=decision_price,
        stop_loss=round(sl, PRICE_DECIMALS),
        take_profit=round(tp, PRICE_DECIMALS),
        strategy=NAME,
    )
