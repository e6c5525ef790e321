"""
Market data from Alpha Vantage: latest XAU/USD rate and intraday FX candles.

Requires ALPHA_VANTAGE_API_KEY (env or market_data.api_key).
The latest price goes through the injected PriceCache; if the live fetch fails
after retries, a stale cached price is served when one is available.
"""
import logging
import os
from typing import Any, Dict, Optional, Tuple

import pandas as pd
import requests

from src.aurum.data.candles import candles_from_records
from src.aurum.errors import ExternalServiceError, RateLimitError
from src.aurum.io.cache import PriceCache
from src.aurum.utils.retry import call_with_retry

logger = logging.getLogger(__name__)

BASE_URL = "https://www.alphavantage.co/query"
COMPACT_SIZE = 100


def split_symbol(symbol: str) -> Tuple[str, str]:
    """XAUUSD -> (XAU, USD)."""
    s = symbol.replace("/", "").replace("_", "").upper()
    if len(s) != 6:
        raise ValueError(f"Expected a 6-letter FX symbol, got {symbol!r}")
    return s[:3], s[3:]


def check_payload(data: Dict[str, Any]) -> None:
    """Raise for Alpha Vantage error / rate-limit bodies (served with HTTP 200)."""
    note = data.get("Information") or data.get("Note")
    if note and "API call frequency" in note:
        raise RateLimitError("alpha_vantage", note)
    if "Error Message" in data:
        raise ExternalServiceError("alpha_vantage", data["Error Message"])


class MarketDataClient:
    def __init__(
        self,
        api_key: Optional[str] = None,
        cache: Optional[PriceCache] = None,
        base_url: str = BASE_URL,
        timeout: float = 15.0,
        retries: int = 2,
        retry_delay: float = 5.0,
        session: Optional[requests.Session] = None,
    ):
        self.api_key = api_key or os.getenv("ALPHA_VANTAGE_API_KEY", "")
        self.cache = cache or PriceCache()
        self.base_url = base_url
        self.timeout = timeout
        self.retries = retries
        self.retry_delay = retry_delay
        self._session = session or requests.Session()

    @classmethod
    def from_config(cls, cfg: Dict[str, Any], cache: Optional[PriceCache] = None) -> "MarketDataClient":
        md = cfg.get("market_data", {})
        return cls(
            api_key=md.get("api_key"),
            cache=cache or PriceCache(
                ttl_seconds=float(md.get("price_cache_ttl_seconds", 300)),
                max_stale_factor=float(md.get("max_stale_factor", 2.0)),
            ),
            base_url=md.get("base_url", BASE_URL),
            timeout=float(md.get("timeout", 15)),
            retries=int(md.get("retries", 2)),
            retry_delay=float(md.get("retry_delay", 5.0)),
        )

    def _get(self, params: Dict[str, Any]) -> Dict[str, Any]:
        if not self.api_key:
            raise ExternalServiceError("alpha_vantage", "ALPHA_VANTAGE_API_KEY not configured")
        query = {**params, "apikey": self.api_key}

        def attempt() -> Dict[str, Any]:
            response = self._session.get(self.base_url, params=query, timeout=self.timeout)
            if not 200 <= response.status_code < 300:
                raise ExternalServiceError("alpha_vantage", f"HTTP {response.status_code}",
                                           status_code=response.status_code)
            try:
                data = response.json()
            except ValueError:
                raise ExternalServiceError("alpha_vantage", "malformed JSON response")
            check_payload(data)
            return data

        return call_with_retry(
            attempt,
            retries=self.retries,
            delay_seconds=self.retry_delay,
            retry_on=(requests.RequestException, ExternalServiceError),
            context=f"alpha_vantage {params.get('function')}",
        )

    def _fetch_rate(self, symbol: str) -> float:
        base, quote = split_symbol(symbol)
        data = self._get({"function": "CURRENCY_EXCHANGE_RATE", "from_currency": base, "to_currency": quote})
        try:
            return float(data["Realtime Currency Exchange Rate"]["5. Exchange Rate"])
        except (KeyError, TypeError, ValueError):
            raise ExternalServiceError("alpha_vantage", f"Unexpected exchange rate payload for {symbol}")

    def get_current_price(self, symbol: str = "XAUUSD") -> float:
        cached = self.cache.get_fresh(symbol)
        if cached is not None:
            return cached
        try:
            price = self._fetch_rate(symbol)
        except (requests.RequestException, ExternalServiceError) as e:
            stale = self.cache.get_stale(symbol)
            if stale is not None:
                logger.warning("Price fetch for %s failed (%s); serving cached %.2f (age %.0fs)",
                               symbol, e, stale, self.cache.age_seconds(symbol) or 0)
                return stale
            if isinstance(e, ExternalServiceError):
                raise
            raise ExternalServiceError("alpha_vantage", str(e))
        self.cache.put(symbol, price)
        return price

    def get_candles(self, symbol: str = "XAUUSD", interval: str = "15min", size: int = COMPACT_SIZE) -> pd.DataFrame:
        """Most recent `size` intraday candles, ascending."""
        base, quote = split_symbol(symbol)
        data = self._get({
            "function": "FX_INTRADAY",
            "from_symbol": base,
            "to_symbol": quote,
            "interval": interval,
            "outputsize": "compact" if size <= COMPACT_SIZE else "full",
        })
        series = data.get(f"Time Series FX ({interval})")
        if not isinstance(series, dict):
            raise ExternalServiceError("alpha_vantage", f"No intraday series for {symbol} {interval}")
        records = [
            {
                "timestamp": ts,
                "open": values["1. open"],
                "high": values["2. high"],
                "low": values["3. low"],
                "close": values["4. close"],
                "volume": values.get("5. volume", 0),
            }
            for ts, values in series.items()
        ]
        df = candles_from_records(records)
        logger.info("Fetched %d %s candles for %s", len(df), interval, symbol)
        return df.iloc[-size:]
