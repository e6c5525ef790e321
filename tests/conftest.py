"""Shared pytest fixtures: synthetic candle frames, in-memory store, fake market data."""
import numpy as np
import pandas as pd
import pytest


def build_candles(closes, start="2024-01-01", freq="15min", spread=0.5) -> pd.DataFrame:
    """Candles whose open is the previous close; high/low sit `spread` outside the body."""
    closes = np.asarray(closes, dtype=float)
    opens = np.concatenate([[closes[0]], closes[:-1]])
    highs = np.maximum(opens, closes) + spread
    lows = np.minimum(opens, closes) - spread
    index = pd.date_range(start, periods=len(closes), freq=freq, tz="UTC", name="timestamp")
    return pd.DataFrame({
        "open": opens,
        "high": highs,
        "low": lows,
        "close": closes,
        "volume": np.full(len(closes), 100.0),
    }, index=index)


def up_down_closes(base=2000.0, amplitude=20, flat=20):
    """Flat warm-up, `amplitude` steps up, `amplitude` steps down (60 candles by default)."""
    closes = [base] * flat
    closes += [base + k for k in range(1, amplitude + 1)]
    closes += [base + amplitude - k for k in range(1, amplitude + 1)]
    return closes


class FakeResponse:
    """Stand-in for requests.Response: status code, optional JSON body."""

    def __init__(self, status_code=200, payload=None, reason="OK"):
        self.status_code = status_code
        self._payload = payload
        self.reason = reason

    def json(self):
        if self._payload is None:
            raise ValueError("no json")
        return self._payload


class FakeMarketData:
    def __init__(self, candles: pd.DataFrame, price: float):
        self.candles = candles
        self.price = price
        self.candle_calls = 0
        self.price_calls = 0

    def get_candles(self, symbol="XAUUSD", interval="15min", size=100):
        self.candle_calls += 1
        return self.candles.iloc[-size:]

    def get_current_price(self, symbol="XAUUSD"):
        self.price_calls += 1
        return self.price


@pytest.fixture
def candle_factory():
    return build_candles


@pytest.fixture
def scenario_candles():
    """60 ascending-then-descending 15m candles around 2000 (amplitude 20)."""
    return build_candles(up_down_closes())


@pytest.fixture
def flat_candles():
    return build_candles([2000.0] * 200)


@pytest.fixture
def random_walk_candles():
    rng = np.random.default_rng(42)
    closes = 2000 + np.cumsum(rng.normal(0, 2.0, 400))
    return build_candles(closes, spread=1.0)


@pytest.fixture
def store():
    from src.aurum.db.store import InMemoryStore
    return InMemoryStore()


@pytest.fixture(params=["memory", "sqlite"])
def any_store(request, tmp_path):
    """Both Store implementations: in-memory and SQLite through SQLAlchemy."""
    from src.aurum.db.sql_store import SqlStore
    from src.aurum.db.store import InMemoryStore
    if request.param == "memory":
        return InMemoryStore()
    return SqlStore(f"sqlite:///{tmp_path / 'aurum.db'}")


@pytest.fixture
def sample_config():
    return {
        "symbol": "XAUUSD",
        "timeframe": "15min",
        "strategy": {},
        "risk": {"risk_per_trade": 0.01, "max_drawdown": 0.10},
        "live": {"candle_history": 100, "max_hold_hours": 24},
    }
