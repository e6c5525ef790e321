"""
ADX (Average Directional Index) – trend strength measurement, with +DI / -DI.
"""
import numpy as np
import pandas as pd

from src.aurum.indicators.atr import true_range
from src.aurum.indicators.smoothing import wilder


def directional_movement(high: pd.Series, low: pd.Series) -> pd.DataFrame:
    """
    +DM / -DM per bar. Only the larger positive move counts; ties give 0 on
    both sides. NaN on the first bar.
    """
    up = high.diff()
    down = -low.diff()
    plus_dm = up.where((up > down) & (up > 0), 0.0)
    minus_dm = down.where((down > up) & (down > 0), 0.0)
    plus_dm[up.isna()] = np.nan
    minus_dm[down.isna()] = np.nan
    return pd.DataFrame({"plus_dm": plus_dm, "minus_dm": minus_dm}, index=high.index)


def adx(high: pd.Series, low: pd.Series, close: pd.Series, period: int = 14) -> pd.DataFrame:
    """
    Compute ADX with its directional components.
    Returns DataFrame with columns: adx, plus_di, minus_di.
    +DI/-DI start at index `period`, ADX at index 2*period-1.
    ADX > 25 = trending, ADX < 20 = ranging.
    """
    dm = directional_movement(high, low)
    s_tr = wilder(true_range(high, low, close), period)
    s_plus = wilder(dm["plus_dm"], period)
    s_minus = wilder(dm["minus_dm"], period)

    # Flat market: no range at all, both DIs are 0
    safe_tr = s_tr.replace(0, np.nan)
    plus_di = (100 * s_plus / safe_tr).where(s_tr != 0, 0.0)
    minus_di = (100 * s_minus / safe_tr).where(s_tr != 0, 0.0)

    di_sum = plus_di + minus_di
    dx = (100 * (plus_di - minus_di).abs() / di_sum.replace(0, np.nan)).where(di_sum != 0, 0.0)
    adx_val = wilder(dx, period)

    return pd.DataFrame({
        "adx": adx_val,
        "plus_di": plus_di,
        "minus_di": minus_di,
    }, index=high.index)
