"""
ATR (Average True Range) – volatility used for stop-loss / take-profit distance.
"""
import pandas as pd

from src.aurum.indicators.smoothing import wilder


def true_range(high: pd.Series, low: pd.Series, close: pd.Series) -> pd.Series:
    """max(high-low, |high-prevClose|, |low-prevClose|); NaN on the first bar."""
    prev_close = close.shift(1)
    tr1 = high - low
    tr2 = (high - prev_close).abs()
    tr3 = (low - prev_close).abs()
    return pd.concat([tr1, tr2, tr3], axis=1).max(axis=1, skipna=False)


def atr(high: pd.Series, low: pd.Series, close: pd.Series, period: int = 14) -> pd.Series:
    """
    Wilder ATR. The first value sits at index `period` (mean of the first
    `period` true ranges), so at least period+1 candles are needed.
    """
    return wilder(true_range(high, low, close), period)
