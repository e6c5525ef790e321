"""
Relational schema for the SQL store.

Tables:
- candles: OHLCV bars, unique per (symbol, timeframe, timestamp)
- trading_accounts: MT4/MT5 logins with the encrypted password
- trades: live / simulated trades, at most one open per bot session
- bot_sessions: live bot sessions with counters and equity tracking
- backtest_reports / simulated_trades: persisted backtest runs
- notifications / system_logs: user notifications and operational log
"""
from datetime import datetime, timezone

from sqlalchemy import (
    JSON,
    Boolean,
    Column,
    DateTime,
    Float,
    Index,
    Integer,
    MetaData,
    String,
    Table,
    Text,
    UniqueConstraint,
)
from sqlalchemy.types import TypeDecorator

metadata = MetaData()


class UTCDateTime(TypeDecorator):
    """Stored as naive UTC, returned as timezone-aware UTC. Accepts ISO strings."""

    impl = DateTime
    cache_ok = True

    def process_bind_param(self, value, dialect):
        if value is None:
            return None
        if isinstance(value, str):
            value = datetime.fromisoformat(value.replace("Z", "+00:00"))
        if hasattr(value, "to_pydatetime"):  # pandas Timestamp
            value = value.to_pydatetime()
        if value.tzinfo is None:
            return value
        return value.astimezone(timezone.utc).replace(tzinfo=None)

    def process_result_value(self, value, dialect):
        if value is None:
            return None
        return value.replace(tzinfo=timezone.utc)


def _id() -> Column:
    return Column("id", String(36), primary_key=True)


candles = Table(
    "candles", metadata,
    _id(),
    Column("symbol", String(20), nullable=False),
    Column("timeframe", String(10), nullable=False),
    Column("timestamp", UTCDateTime, nullable=False),
    Column("open", Float, nullable=False),
    Column("high", Float, nullable=False),
    Column("low", Float, nullable=False),
    Column("close", Float, nullable=False),
    Column("volume", Float, default=0.0),
    UniqueConstraint("symbol", "timeframe", "timestamp", name="uq_candles_bar"),
)

trading_accounts = Table(
    "trading_accounts", metadata,
    _id(),
    Column("user_id", String(64), index=True),
    Column("platform", String(3)),  # MT4 or MT5
    Column("server_name", String(100)),
    Column("login_id", String(50)),
    Column("password_encrypted", Text),
    Column("balance", Float),
    Column("equity", Float),
    Column("margin", Float),
    Column("free_margin", Float),
    Column("currency", String(10), default="USD"),
    Column("is_active", Boolean, default=True),
    Column("last_sync", UTCDateTime),
    Column("created_at", UTCDateTime),
    Column("updated_at", UTCDateTime),
    UniqueConstraint("platform", "server_name", "login_id", name="uq_trading_accounts_login"),
)

trades = Table(
    "trades", metadata,
    _id(),
    Column("ticket_id", String(64), nullable=False, index=True),
    Column("user_id", String(64)),
    Column("account_id", String(64)),
    Column("bot_session_id", String(36)),
    Column("symbol", String(20), default="XAUUSD"),
    Column("type", String(4), nullable=False),
    Column("lot_size", Float, nullable=False),
    Column("open_price", Float, nullable=False),
    Column("stop_loss", Float),
    Column("take_profit", Float),
    Column("open_time", UTCDateTime),
    Column("status", String(10), default="open"),
    Column("close_price", Float),
    Column("profit_loss", Float),
    Column("close_time", UTCDateTime),
    Index("idx_trades_session_status", "bot_session_id", "status"),
)

bot_sessions = Table(
    "bot_sessions", metadata,
    _id(),
    Column("user_id", String(64), nullable=False, index=True),
    Column("account_id", String(64), nullable=False),
    Column("risk_level", String(20), default="conservative"),
    Column("strategy_mode", String(30), default="ADAPTIVE"),
    Column("strategy_params", JSON),
    Column("status", String(20), default="active"),
    Column("symbol", String(20), default="XAUUSD"),
    Column("timeframe", String(10), default="15min"),
    Column("total_trades", Integer, default=0),
    Column("winning_trades", Integer, default=0),
    Column("losing_trades", Integer, default=0),
    Column("total_profit", Float, default=0.0),
    Column("session_initial_equity", Float),
    Column("session_peak_equity", Float),
    Column("session_start", UTCDateTime),
    Column("session_end", UTCDateTime),
    Column("last_trade_time", UTCDateTime),
    Index("idx_sessions_account_status", "account_id", "status"),
)

backtest_reports = Table(
    "backtest_reports", metadata,
    _id(),
    Column("user_id", String(64), index=True),
    Column("symbol", String(20), nullable=False),
    Column("timeframe", String(10), nullable=False),
    Column("start_date", UTCDateTime),
    Column("end_date", UTCDateTime),
    Column("strategy_mode", String(30), nullable=False),
    Column("strategy_params", JSON),
    Column("total_trades", Integer, default=0),
    Column("total_profit_loss", Float, default=0.0),
    Column("winning_trades", Integer, default=0),
    Column("losing_trades", Integer, default=0),
    Column("win_rate", Float, default=0.0),
    Column("commission_per_lot", Float, default=0.0),
    Column("slippage_points", Float, default=0.0),
    Column("created_at", UTCDateTime),
)

simulated_trades = Table(
    "simulated_trades", metadata,
    _id(),
    Column("backtest_report_id", String(36), nullable=False, index=True),
    Column("entry_time", UTCDateTime, nullable=False),
    Column("entry_price", Float, nullable=False),
    Column("exit_time", UTCDateTime, nullable=False),
    Column("exit_price", Float, nullable=False),
    Column("type", String(4), nullable=False),
    Column("lot_size", Float, nullable=False),
    Column("stop_loss", Float),
    Column("take_profit", Float),
    Column("profit_or_loss", Float, nullable=False),
    Column("close_reason", String(20), nullable=False),
)

notifications = Table(
    "notifications", metadata,
    _id(),
    Column("user_id", String(64), index=True),
    Column("type", String(40), nullable=False),
    Column("title", String(200)),
    Column("message", Text),
    Column("is_read", Boolean, default=False),
    Column("created_at", UTCDateTime),
)

system_logs = Table(
    "system_logs", metadata,
    _id(),
    Column("log_level", String(10), nullable=False),
    Column("context", String(50)),
    Column("message", Text),
    Column("details", JSON),
    Column("session_id", String(36)),
    Column("user_id", String(64)),
    Column("created_at", UTCDateTime),
)
