"""
Regime labels: TRENDING_UP / TRENDING_DOWN, RANGING, BREAKOUT_SETUP_UP / _DOWN
or UNCLEAR, from ADX, +DI/-DI and Bollinger width.

Adaptive routing only looks at the ADX thresholds; the label is informational
(logged by the live processor).
"""
from enum import Enum

import pandas as pd

from src.aurum.indicators.adx import adx
from src.aurum.indicators.bollinger import bollinger_bands
from src.aurum.strategies.base import ready
from src.aurum.strategies.params import StrategyParameters


class Regime(str, Enum):
    TRENDING_UP = "TRENDING_UP"
    TRENDING_DOWN = "TRENDING_DOWN"
    RANGING = "RANGING"
    BREAKOUT_SETUP_UP = "BREAKOUT_SETUP_UP"
    BREAKOUT_SETUP_DOWN = "BREAKOUT_SETUP_DOWN"
    UNCLEAR = "UNCLEAR"


DEFAULT_CONFIG = {
    "width_lookback": 10,
    "squeeze_ratio": 0.6,  # current width below 60% of recent average
    "squeeze_max_width": 0.05,
    "direction_bars": 5,
}


def classify_regime(history: pd.DataFrame, params: StrategyParameters, config: dict | None = None) -> Regime:
    cfg = {**DEFAULT_CONFIG, **(config or {})}
    if len(history) < max(2 * params.adx_period, params.bb_period):
        return Regime.UNCLEAR

    dmi = adx(history["high"], history["low"], history["close"], params.adx_period)
    width = bollinger_bands(history["close"], params.bb_period, params.bb_std_dev)["bb_width"]
    adx_now = dmi["adx"].iloc[-1]
    pdi, ndi = dmi["plus_di"].iloc[-1], dmi["minus_di"].iloc[-1]
    width_now = width.iloc[-1]
    if not ready(adx_now, pdi, ndi, width_now):
        return Regime.UNCLEAR

    if adx_now > params.adx_trend_threshold:
        if pdi > ndi:
            return Regime.TRENDING_UP
        if ndi > pdi:
            return Regime.TRENDING_DOWN

    if adx_now < params.adx_range_threshold:
        recent = width.iloc[-cfg["width_lookback"]:].dropna()
        avg_recent = recent.mean() if len(recent) else None
        if (
            avg_recent is not None
            and width_now < avg_recent * cfg["squeeze_ratio"]
            and width_now < cfg["squeeze_max_width"]
        ):
            closes = history["close"].iloc[-cfg["direction_bars"]:]
            if closes.iloc[-1] > closes.iloc[0]:
                return Regime.BREAKOUT_SETUP_UP
            return Regime.BREAKOUT_SETUP_DOWN
        return Regime.RANGING

    return Regime.UNCLEAR
