"""
Latest-price cache owned by the market-data client.

A value is fresh for `ttl_seconds`; after that it is only served through
get_stale(), as a fallback when a live fetch failed, up to
`ttl_seconds * max_stale_factor` old.
"""
import threading
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Callable, Dict, Optional


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True)
class CachedPrice:
    price: float
    fetched_at: datetime


class PriceCache:
    def __init__(
        self,
        ttl_seconds: float = 300.0,
        max_stale_factor: float = 2.0,
        clock: Callable[[], datetime] = _utcnow,
    ):
        self.ttl = timedelta(seconds=ttl_seconds)
        self.max_stale = timedelta(seconds=ttl_seconds * max_stale_factor)
        self._clock = clock
        self._entries: Dict[str, CachedPrice] = {}
        self._lock = threading.Lock()

    def _read(self, symbol: str, max_age: timedelta) -> Optional[float]:
        with self._lock:
            entry = self._entries.get(symbol.upper())
        if entry is None:
            return None
        if self._clock() - entry.fetched_at > max_age:
            return None
        return entry.price

    def get_fresh(self, symbol: str) -> Optional[float]:
        return self._read(symbol, self.ttl)

    def get_stale(self, symbol: str) -> Optional[float]:
        return self._read(symbol, self.max_stale)

    def put(self, symbol: str, price: float) -> CachedPrice:
        entry = CachedPrice(price=price, fetched_at=self._clock())
        with self._lock:
            self._entries[symbol.upper()] = entry
        return entry

    def age_seconds(self, symbol: str) -> Optional[float]:
        with self._lock:
            entry = self._entries.get(symbol.upper())
        return None if entry is None else (self._clock() - entry.fetched_at).total_seconds()
