"""
SQL-backed Store on SQLAlchemy Core.

Connects to `store.url` (or DATABASE_URL); without one a SQLite file at
`store.path` is used. Tables are created on first connect. Every call runs in
its own transaction; a failing multi-row insert/upsert writes nothing.

Usage:
    store = SqlStore.from_config(cfg)
    store.insert("notifications", {...})
"""
import logging
from pathlib import Path
from typing import Any, Dict, Optional

from sqlalchemy import Table, and_, create_engine, select
from sqlalchemy.engine import Connection, Engine
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.pool import StaticPool

from src.aurum.db.store import Between, Row, Store, Where, new_id
from src.aurum.db.tables import metadata
from src.aurum.errors import PersistenceError

logger = logging.getLogger(__name__)

DEFAULT_PATH = "data/aurum.db"


class SqlStore(Store):
    def __init__(self, url: str, engine: Optional[Engine] = None, echo: bool = False):
        self.url = url
        if engine is None:
            kwargs: Dict[str, Any] = {}
            if url.startswith("sqlite"):
                kwargs["connect_args"] = {"check_same_thread": False}
                if ":memory:" in url or url.rstrip("/") == "sqlite:":
                    kwargs["poolclass"] = StaticPool
                else:
                    _ensure_sqlite_dir(url)
            engine = create_engine(url, echo=echo, **kwargs)
        self.engine = engine
        try:
            metadata.create_all(self.engine)
        except SQLAlchemyError as e:
            logger.error("Failed to initialise database at %s: %s", self._safe_url(), e)
            raise PersistenceError(f"Could not initialise database: {e}") from e
        logger.debug("SqlStore connected to %s", self._safe_url())

    @classmethod
    def from_config(cls, cfg: Dict[str, Any]) -> "SqlStore":
        store_cfg = cfg.get("store", {})
        url = store_cfg.get("url") or f"sqlite:///{store_cfg.get('path') or DEFAULT_PATH}"
        return cls(url, echo=bool(store_cfg.get("echo", False)))

    def _safe_url(self) -> str:
        return self.engine.url.render_as_string(hide_password=True)

    # -- helpers ---------------------------------------------------------

    def _table(self, name: str) -> Table:
        table = metadata.tables.get(name)
        if table is None:
            raise PersistenceError(f"Unknown table: {name}")
        return table

    @staticmethod
    def _check_columns(table: Table, names) -> None:
        unknown = [n for n in names if n not in table.c]
        if unknown:
            raise PersistenceError(f"Unknown column(s) for {table.name}: {unknown}")

    def _clause(self, table: Table, where: Optional[Where]):
        if not where:
            return None
        self._check_columns(table, where)
        parts = []
        for col, expected in where.items():
            column = table.c[col]
            if isinstance(expected, Between):
                if expected.low is not None:
                    parts.append(column >= expected.low)
                if expected.high is not None:
                    parts.append(column <= expected.high)
                if expected.low is None and expected.high is None:
                    parts.append(column.is_not(None))
            elif expected is None:
                parts.append(column.is_(None))
            else:
                parts.append(column == expected)
        return and_(*parts)

    def _run(self, action: str, table: str, fn):
        try:
            with self.engine.begin() as conn:
                return fn(conn)
        except SQLAlchemyError as e:
            logger.error("%s on %s failed: %s", action, table, e)
            raise PersistenceError(f"{action} on {table} failed: {e}") from e

    def _insert_row(self, conn: Connection, table: Table, row: Row) -> Row:
        new = dict(row)
        new.setdefault("id", new_id())
        self._check_columns(table, new)
        conn.execute(table.insert().values(**new))
        stored = conn.execute(select(table).where(table.c.id == new["id"])).mappings().one()
        return dict(stored)

    # -- Store -----------------------------------------------------------

    def select(self, table, where=None, order_by=None, descending=False, limit=None):
        t = self._table(table)
        stmt = select(t)
        clause = self._clause(t, where)
        if clause is not None:
            stmt = stmt.where(clause)
        if order_by:
            self._check_columns(t, [order_by])
            col = t.c[order_by]
            stmt = stmt.order_by(col.desc().nulls_first() if descending else col.asc().nulls_last())
        if limit is not None:
            stmt = stmt.limit(limit)
        return self._run("select", table, lambda conn: [dict(r) for r in conn.execute(stmt).mappings()])

    def insert(self, table, rows):
        t = self._table(table)
        batch = [rows] if isinstance(rows, dict) else list(rows)
        return self._run("insert", table, lambda conn: [self._insert_row(conn, t, r) for r in batch])

    def update(self, table, where, values):
        t = self._table(table)
        self._check_columns(t, values)
        stmt = t.update().values(**values)
        clause = self._clause(t, where)
        if clause is not None:
            stmt = stmt.where(clause)
        return self._run("update", table, lambda conn: conn.execute(stmt).rowcount)

    def upsert(self, table, rows, key):
        t = self._table(table)
        self._check_columns(t, key)

        def write(conn: Connection) -> int:
            count = 0
            for row in rows:
                match = self._clause(t, {k: row.get(k) for k in key})
                found = conn.execute(select(t.c.id).where(match)).first()
                if found is None:
                    self._insert_row(conn, t, row)
                else:
                    values = {k: v for k, v in row.items() if k != "id"}
                    self._check_columns(t, values)
                    conn.execute(t.update().where(t.c.id == found.id).values(**values))
                count += 1
            return count

        return self._run("upsert", table, write)

    def delete(self, table, where):
        t = self._table(table)
        stmt = t.delete()
        clause = self._clause(t, where)
        if clause is not None:
            stmt = stmt.where(clause)
        return self._run("delete", table, lambda conn: conn.execute(stmt).rowcount)


def _ensure_sqlite_dir(url: str) -> None:
    path = url.split("///", 1)[1] if "///" in url else ""
    if path and path != ":memory:":
        Path(path).parent.mkdir(parents=True, exist_ok=True)
