"""Unit tests: price cache, Alpha Vantage client, retry policy."""
from datetime import datetime, timedelta, timezone

import pytest
import requests


class Clock:
    def __init__(self):
        self.now = datetime(2024, 6, 1, 12, 0, tzinfo=timezone.utc)

    def __call__(self):
        return self.now

    def advance(self, seconds):
        self.now += timedelta(seconds=seconds)


class FakeResponse:
    def __init__(self, payload, status_code=200):
        self._payload = payload
        self.status_code = status_code

    def json(self):
        return self._payload


def _rate_payload(price):
    return {"Realtime Currency Exchange Rate": {"5. Exchange Rate": str(price)}}


def _client(responses, clock, calls):
    from src.aurum.io.cache import PriceCache
    from src.aurum.io.market_data import MarketDataClient
    session = requests.Session()

    def fake_get(url, params=None, timeout=None):
        calls.append(params)
        item = responses.pop(0)
        if isinstance(item, Exception):
            raise item
        return item

    session.get = fake_get
    cache = PriceCache(ttl_seconds=300, max_stale_factor=2.0, clock=clock)
    return MarketDataClient(api_key="demo", cache=cache, retry_delay=0, session=session)


def test_price_cache_fresh_and_stale():
    from src.aurum.io.cache import PriceCache
    clock = Clock()
    cache = PriceCache(ttl_seconds=300, clock=clock)
    cache.put("xauusd", 2300.0)
    assert cache.get_fresh("XAUUSD") == 2300.0
    clock.advance(301)
    assert cache.get_fresh("XAUUSD") is None
    assert cache.get_stale("XAUUSD") == 2300.0
    clock.advance(300)
    assert cache.get_stale("XAUUSD") is None


def test_current_price_served_from_cache_within_ttl():
    clock, calls = Clock(), []
    client = _client([FakeResponse(_rate_payload(2310.5))], clock, calls)
    assert client.get_current_price("XAUUSD") == 2310.5
    clock.advance(120)
    assert client.get_current_price("XAUUSD") == 2310.5
    assert len(calls) == 1
    assert calls[0]["from_currency"] == "XAU" and calls[0]["to_currency"] == "USD"


def test_rate_limit_serves_stale_price():
    clock, calls = Clock(), []
    limited = FakeResponse({"Information": "Thank you for using Alpha Vantage! Our standard API call frequency is 25 requests per day."})
    client = _client([FakeResponse(_rate_payload(2300.0)), limited, limited, limited], clock, calls)
    client.get_current_price()
    clock.advance(400)
    assert client.get_current_price() == 2300.0
    assert len(calls) == 4  # 1 fresh + 3 attempts


def test_price_failure_without_cache_raises():
    from src.aurum.errors import ExternalServiceError
    clock, calls = Clock(), []
    client = _client([requests.Timeout("slow")] * 3, clock, calls)
    with pytest.raises(ExternalServiceError):
        client.get_current_price()


def test_check_payload_classifies_errors():
    from src.aurum.errors import ExternalServiceError, RateLimitError
    from src.aurum.io.market_data import check_payload
    with pytest.raises(RateLimitError):
        check_payload({"Note": "API call frequency exceeded"})
    with pytest.raises(ExternalServiceError):
        check_payload({"Error Message": "Invalid API call"})
    check_payload({"Meta Data": {}})


def test_get_candles_parses_and_sorts():
    clock, calls = Clock(), []
    payload = {"Time Series FX (15min)": {
        "2024-06-01 10:30:00": {"1. open": "2302", "2. high": "2305", "3. low": "2301", "4. close": "2304"},
        "2024-06-01 10:15:00": {"1. open": "2300", "2. high": "2303", "3. low": "2299", "4. close": "2302"},
        "2024-06-01 10:00:00": {"1. open": "2298", "2. high": "2301", "3. low": "2297", "4. close": "2300"},
    }}
    client = _client([FakeResponse(payload)], clock, calls)
    df = client.get_candles("XAUUSD", "15min", size=2)
    assert list(df["close"]) == [2302.0, 2304.0]
    assert df.index.is_monotonic_increasing
    assert calls[0]["function"] == "FX_INTRADAY" and calls[0]["outputsize"] == "compact"


def test_missing_api_key(monkeypatch):
    from src.aurum.errors import ExternalServiceError
    from src.aurum.io.market_data import MarketDataClient
    monkeypatch.delenv("ALPHA_VANTAGE_API_KEY", raising=False)
    with pytest.raises(ExternalServiceError):
        MarketDataClient(api_key="").get_candles()


def test_call_with_retry_counts_attempts():
    from src.aurum.utils.retry import call_with_retry
    attempts = []

    def flaky():
        attempts.append(1)
        if len(attempts) < 3:
            raise ConnectionError("boom")
        return "ok"

    assert call_with_retry(flaky, retries=2, delay_seconds=0) == "ok"
    assert len(attempts) == 3

    attempts.clear()

    def always_down():
        attempts.append(1)
        raise ConnectionError("down")

    with pytest.raises(ConnectionError):
        call_with_retry(always_down, retries=2, delay_seconds=0)
    assert len(attempts) == 3


def test_call_with_retry_does_not_retry_other_errors():
    from src.aurum.utils.retry import call_with_retry
    attempts = []

    def broken():
        attempts.append(1)
        raise KeyError("bug")

    with pytest.raises(KeyError):
        call_with_retry(broken, retries=2, delay_seconds=0, retry_on=(ConnectionError,))
    assert len(attempts) == 1
