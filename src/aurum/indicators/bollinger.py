"""
Bollinger Bands – volatility and range detection.
"""
import numpy as np
import pandas as pd

from src.aurum.indicators.smoothing import sma, stddev


def bollinger_bands(
    close: pd.Series,
    period: int = 20,
    std_dev: float = 2.0,
) -> pd.DataFrame:
    """
    Compute Bollinger Bands with a population standard deviation.
    Returns DataFrame with columns: bb_upper, bb_middle, bb_lower, bb_width.
    """
    middle = sma(close, period)
    std = stddev(close, period)

    upper = middle + std_dev * std
    lower = middle - std_dev * std
    width = (upper - lower) / middle.replace(0, np.nan)  # Normalized width

    return pd.DataFrame({
        "bb_upper": upper,
        "bb_middle": middle,
        "bb_lower": lower,
        "bb_width": width,
    }, index=close.index)
