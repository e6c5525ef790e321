"""
Moving averages and Wilder smoothing shared by the other indicators.
All outputs are aligned to the input index; NaN means "not enough lookback yet".
"""
import numpy as np
import pandas as pd


def sma(values: pd.Series, period: int) -> pd.Series:
    """Simple moving average, defined from index period-1 onwards."""
    return values.rolling(window=period, min_periods=period).mean()


def stddev(values: pd.Series, period: int) -> pd.Series:
    """Population standard deviation over the trailing window (same alignment as sma)."""
    return values.rolling(window=period, min_periods=period).std(ddof=0)


def _first_full_window(arr: np.ndarray, period: int) -> int | None:
    """Start index of the first run of `period` consecutive non-NaN values."""
    run = 0
    for i, v in enumerate(arr):
        run = 0 if np.isnan(v) else run + 1
        if run == period:
            return i - period + 1
    return None


def wilder(values: pd.Series, period: int) -> pd.Series:
    """
    Wilder smoothing: seeded with the mean of the first full window of values,
    then out[i] = (out[i-1] * (period - 1) + x[i]) / period.
    Leading NaNs in the input (e.g. true range at index 0) are skipped.
    """
    arr = values.to_numpy(dtype=float)
    out = np.full(len(arr), np.nan)
    start = _first_full_window(arr, period)
    if start is None:
        return pd.Series(out, index=values.index)

    seed = start + period - 1
    out[seed] = arr[start:seed + 1].mean()
    for i in range(seed + 1, len(arr)):
        out[i] = (out[i - 1] * (period - 1) + arr[i]) / period
    return pd.Series(out, index=values.index)
