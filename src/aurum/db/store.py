"""
Persistent store boundary: select / insert / update / upsert / delete over
named relations (candles, trades, bot_sessions, trading_accounts,
backtest_reports, simulated_trades, notifications, system_logs).

`where` filters are {column: value} equality checks; a Between value limits
the column to an inclusive range instead. SqlStore (db/sql_store.py) is the
persistent implementation; InMemoryStore backs tests and one-off runs.
"""
import logging
import threading
import uuid
from abc import ABC, abstractmethod
from copy import deepcopy
from dataclasses import dataclass
from typing import Any, Dict, Iterable, List, Optional, Sequence

logger = logging.getLogger(__name__)

Row = Dict[str, Any]
Where = Dict[str, Any]


@dataclass(frozen=True)
class Between:
    """Inclusive range filter; either bound may be None."""
    low: Any = None
    high: Any = None

    def contains(self, value: Any) -> bool:
        if value is None:
            return False
        if self.low is not None and value < self.low:
            return False
        if self.high is not None and value > self.high:
            return False
        return True


class Store(ABC):
    @abstractmethod
    def select(
        self,
        table: str,
        where: Optional[Where] = None,
        order_by: Optional[str] = None,
        descending: bool = False,
        limit: Optional[int] = None,
    ) -> List[Row]:
        ...

    @abstractmethod
    def insert(self, table: str, rows: Row | Iterable[Row]) -> List[Row]:
        """Insert rows; rows without an `id` get a generated one. Returns the stored rows."""

    @abstractmethod
    def update(self, table: str, where: Where, values: Row) -> int:
        ...

    @abstractmethod
    def upsert(self, table: str, rows: Iterable[Row], key: Sequence[str]) -> int:
        """Insert or replace rows matching on the `key` columns. Returns rows written."""

    @abstractmethod
    def delete(self, table: str, where: Where) -> int:
        ...

    def select_one(self, table: str, where: Optional[Where] = None) -> Optional[Row]:
        rows = self.select(table, where, limit=1)
        return rows[0] if rows else None


def new_id() -> str:
    return str(uuid.uuid4())


def _matches(row: Row, where: Optional[Where]) -> bool:
    for col, expected in (where or {}).items():
        value = row.get(col)
        if isinstance(expected, Between):
            if not expected.contains(value):
                return False
        elif value != expected:
            return False
    return True


class InMemoryStore(Store):
    """Dict-of-lists store."""

    def __init__(self, tables: Optional[Dict[str, List[Row]]] = None):
        self._tables: Dict[str, List[Row]] = deepcopy(tables) if tables else {}
        self._lock = threading.RLock()

    def _rows(self, table: str) -> List[Row]:
        return self._tables.setdefault(table, [])

    def select(self, table, where=None, order_by=None, descending=False, limit=None):
        with self._lock:
            rows = [dict(r) for r in self._rows(table) if _matches(r, where)]
        if order_by:
            rows.sort(key=lambda r: (r.get(order_by) is None, r.get(order_by)), reverse=descending)
        return rows[:limit] if limit is not None else rows

    def insert(self, table, rows):
        batch = [rows] if isinstance(rows, dict) else list(rows)
        stored = []
        with self._lock:
            for row in batch:
                new = dict(row)
                new.setdefault("id", new_id())
                self._rows(table).append(new)
                stored.append(dict(new))
        return stored

    def update(self, table, where, values):
        count = 0
        with self._lock:
            for row in self._rows(table):
                if _matches(row, where):
                    row.update(values)
                    count += 1
        return count

    def upsert(self, table, rows, key):
        count = 0
        with self._lock:
            existing = self._rows(table)
            index = {tuple(r.get(k) for k in key): i for i, r in enumerate(existing)}
            for row in rows:
                k = tuple(row.get(c) for c in key)
                if k in index:
                    merged = {**existing[index[k]], **row}
                    existing[index[k]] = merged
                else:
                    new = dict(row)
                    new.setdefault("id", new_id())
                    existing.append(new)
                    index[k] = len(existing) - 1
                count += 1
        return count

    def delete(self, table, where):
        with self._lock:
            rows = self._rows(table)
            keep = [r for r in rows if not _matches(r, where)]
            removed = len(rows) - len(keep)
            self._tables[table] = keep
        return removed
