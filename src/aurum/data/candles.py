"""
Candle frames: DatetimeIndex named `timestamp`, columns open/high/low/close/volume,
ascending and unique. Helpers to build, validate, store and load them.
"""
import logging
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, Iterable, Optional

import pandas as pd

from src.aurum.db.store import Between, Store
from src.aurum.errors import ValidationError

logger = logging.getLogger(__name__)

OHLCV = ["open", "high", "low", "close", "volume"]
CANDLE_TABLE = "candles"
CANDLE_KEY = ("symbol", "timeframe", "timestamp")


def candles_from_records(records: Iterable[Dict[str, Any]]) -> pd.DataFrame:
    """Rows with a `timestamp` key and OHLC(V) fields -> validated candle frame."""
    df = pd.DataFrame(list(records))
    if df.empty:
        return pd.DataFrame(columns=OHLCV, index=pd.DatetimeIndex([], name="timestamp"))
    if "volume" not in df.columns:
        df["volume"] = 0.0
    df["timestamp"] = pd.to_datetime(df["timestamp"], utc=True)
    df = df.set_index("timestamp")[OHLCV].astype(float)
    return validate_candles(df)


def validate_candles(df: pd.DataFrame) -> pd.DataFrame:
    missing = [c for c in ("open", "high", "low", "close") if c not in df.columns]
    if missing:
        raise ValidationError(f"Candle data missing columns: {missing}")
    if df.index.has_duplicates:
        raise ValidationError("Candle timestamps must be unique")
    if not df.index.is_monotonic_increasing:
        df = df.sort_index()
    return df


def load_csv(path: str | Path) -> pd.DataFrame:
    """CSV with a timestamp column (or `time`/`date`) and OHLC columns."""
    df = pd.read_csv(path)
    df.columns = [c.strip().lower() for c in df.columns]
    for alias in ("time", "date", "datetime"):
        if "timestamp" not in df.columns and alias in df.columns:
            df = df.rename(columns={alias: "timestamp"})
    return candles_from_records(df.to_dict("records"))


def store_candles(store: Store, symbol: str, timeframe: str, df: pd.DataFrame) -> int:
    """Upsert candles keyed by (symbol, timeframe, timestamp)."""
    rows = []
    for ts, row in df.iterrows():
        rows.append({
            "symbol": symbol,
            "timeframe": timeframe,
            "timestamp": to_utc(ts).to_pydatetime(),
            "open": float(row["open"]),
            "high": float(row["high"]),
            "low": float(row["low"]),
            "close": float(row["close"]),
            "volume": float(row.get("volume", 0.0) or 0.0),
        })
    if not rows:
        return 0
    n = store.upsert(CANDLE_TABLE, rows, key=CANDLE_KEY)
    logger.info("Stored %d candles for %s %s", n, symbol, timeframe)
    return n


def to_utc(value: Any) -> pd.Timestamp:
    ts = pd.Timestamp(value)
    return ts.tz_localize("UTC") if ts.tzinfo is None else ts.tz_convert("UTC")


def load_candles(
    store: Store,
    symbol: str,
    timeframe: str,
    start: Optional[datetime] = None,
    end: Optional[datetime] = None,
) -> pd.DataFrame:
    """Stored candles for (symbol, timeframe), optionally limited to [start, end]."""
    where = {"symbol": symbol, "timeframe": timeframe}
    if start is not None or end is not None:
        where["timestamp"] = Between(
            to_utc(start).to_pydatetime() if start is not None else None,
            to_utc(end).to_pydatetime() if end is not None else None,
        )
    return candles_from_records(store.select(CANDLE_TABLE, where, order_by="timestamp"))
