"""
RSI (Relative Strength Index), Wilder variant.
"""
import numpy as np
import pandas as pd

from src.aurum.indicators.smoothing import wilder


def rsi(close: pd.Series, period: int = 14) -> pd.Series:
    """
    Average gain/loss are seeded with a simple mean of the first `period`
    deltas and then Wilder-smoothed. RSI is 100 when the average loss is 0.
    First value at index `period`.
    """
    delta = close.diff()
    gain = delta.clip(lower=0)
    loss = (-delta).clip(lower=0)

    avg_gain = wilder(gain, period)
    avg_loss = wilder(loss, period)

    rs = avg_gain / avg_loss.replace(0, np.nan)
    out = 100 - 100 / (1 + rs)
    return out.where(avg_loss != 0, 100.0)
