"""
Data models: Signal, BotSession, Trade, BacktestReport, SimulatedTrade.
Rows in the store are plain dicts with snake_case columns; the to_row/from_row
helpers convert between the two.
"""
from dataclasses import asdict, dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Literal, Optional


class Action(str, Enum):
    BUY = "BUY"
    SELL = "SELL"
    HOLD = "HOLD"


class StrategyMode(str, Enum):
    ADAPTIVE = "ADAPTIVE"
    SMA_ONLY = "SMA_ONLY"
    MEAN_REVERSION_ONLY = "MEAN_REVERSION_ONLY"
    BREAKOUT_ONLY = "BREAKOUT_ONLY"


class SessionStatus(str, Enum):
    ACTIVE = "active"
    PAUSED_DRAWDOWN = "paused_drawdown"
    STOPPED = "stopped"


class CloseReason(str, Enum):
    SL = "SL"
    TP = "TP"
    SIGNAL = "Signal"
    END_OF_TEST = "EndOfTest"
    TIME_EXIT = "TimeExit"


def parse_dt(value: Any) -> Optional[datetime]:
    if value is None or isinstance(value, datetime):
        return value
    return datetime.fromisoformat(str(value).replace("Z", "+00:00"))


@dataclass
class Signal:
    action: Action
    price_at_decision: float
    stop_loss: Optional[float] = None
    take_profit: Optional[float] = None
    strategy: Optional[str] = None

    @property
    def is_trade(self) -> bool:
        return self.action != Action.HOLD

    @classmethod
    def hold(cls, price: float) -> "Signal":
        return cls(action=Action.HOLD, price_at_decision=price)


@dataclass
class BotSession:
    id: str
    user_id: str
    account_id: str
    risk_level: str = "conservative"
    strategy_mode: StrategyMode = StrategyMode.ADAPTIVE
    strategy_params: Dict[str, Any] = field(default_factory=dict)
    status: SessionStatus = SessionStatus.ACTIVE
    symbol: str = "XAUUSD"
    timeframe: str = "15min"
    total_trades: int = 0
    winning_trades: int = 0
    losing_trades: int = 0
    total_profit: float = 0.0
    session_initial_equity: Optional[float] = None
    session_peak_equity: Optional[float] = None
    session_start: Optional[datetime] = None
    session_end: Optional[datetime] = None
    last_trade_time: Optional[datetime] = None

    @classmethod
    def from_row(cls, row: Dict[str, Any]) -> "BotSession":
        return cls(
            id=row["id"],
            user_id=row["user_id"],
            account_id=row["account_id"],
            risk_level=row.get("risk_level", "conservative"),
            strategy_mode=StrategyMode(row.get("strategy_mode") or "ADAPTIVE"),
            strategy_params=dict(row.get("strategy_params") or {}),
            status=SessionStatus(row.get("status", "active")),
            symbol=row.get("symbol", "XAUUSD"),
            timeframe=row.get("timeframe", "15min"),
            total_trades=int(row.get("total_trades") or 0),
            winning_trades=int(row.get("winning_trades") or 0),
            losing_trades=int(row.get("losing_trades") or 0),
            total_profit=float(row.get("total_profit") or 0.0),
            session_initial_equity=row.get("session_initial_equity"),
            session_peak_equity=row.get("session_peak_equity"),
            session_start=parse_dt(row.get("session_start")),
            session_end=parse_dt(row.get("session_end")),
            last_trade_time=parse_dt(row.get("last_trade_time")),
        )

    def to_row(self) -> Dict[str, Any]:
        row = asdict(self)
        row["strategy_mode"] = self.strategy_mode.value
        row["status"] = self.status.value
        return row


@dataclass
class Trade:
    id: str
    ticket_id: str
    user_id: str
    account_id: str
    symbol: str
    type: Literal["BUY", "SELL"]
    lot_size: float
    open_price: float
    stop_loss: Optional[float]
    take_profit: Optional[float]
    open_time: datetime
    status: Literal["open", "closed"] = "open"
    bot_session_id: Optional[str] = None
    close_price: Optional[float] = None
    profit_loss: Optional[float] = None
    close_time: Optional[datetime] = None

    @classmethod
    def from_row(cls, row: Dict[str, Any]) -> "Trade":
        return cls(
            id=row["id"],
            ticket_id=row["ticket_id"],
            user_id=row.get("user_id", ""),
            account_id=row.get("account_id", ""),
            symbol=row.get("symbol", "XAUUSD"),
            type=row["type"],
            lot_size=float(row["lot_size"]),
            open_price=float(row["open_price"]),
            stop_loss=row.get("stop_loss"),
            take_profit=row.get("take_profit"),
            open_time=parse_dt(row.get("open_time")),
            status=row.get("status", "open"),
            bot_session_id=row.get("bot_session_id"),
            close_price=row.get("close_price"),
            profit_loss=row.get("profit_loss"),
            close_time=parse_dt(row.get("close_time")),
        )

    def to_row(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass
class SimulatedTrade:
    entry_time: datetime
    entry_price: float
    exit_time: datetime
    exit_price: float
    type: Literal["BUY", "SELL"]
    lot_size: float
    stop_loss: float
    take_profit: Optional[float]
    profit_or_loss: float
    close_reason: CloseReason

    def to_row(self, report_id: str) -> Dict[str, Any]:
        row = asdict(self)
        row["close_reason"] = self.close_reason.value
        row["backtest_report_id"] = report_id
        return row

    @classmethod
    def from_row(cls, row: Dict[str, Any]) -> "SimulatedTrade":
        return cls(
            entry_time=parse_dt(row["entry_time"]),
            entry_price=float(row["entry_price"]),
            exit_time=parse_dt(row["exit_time"]),
            exit_price=float(row["exit_price"]),
            type=row["type"],
            lot_size=float(row["lot_size"]),
            stop_loss=float(row["stop_loss"]),
            take_profit=row.get("take_profit"),
            profit_or_loss=float(row["profit_or_loss"]),
            close_reason=CloseReason(row["close_reason"]),
        )


@dataclass
class BacktestReport:
    symbol: str
    timeframe: str
    start_date: datetime
    end_date: datetime
    strategy_mode: StrategyMode
    strategy_params: Dict[str, Any]
    total_trades: int = 0
    total_profit_loss: float = 0.0
    winning_trades: int = 0
    losing_trades: int = 0
    win_rate: float = 0.0
    commission_per_lot: float = 0.0
    slippage_points: float = 0.0
    id: Optional[str] = None
    user_id: Optional[str] = None
    created_at: Optional[datetime] = None
    trades: List[SimulatedTrade] = field(default_factory=list)

    def to_row(self) -> Dict[str, Any]:
        row = asdict(self)
        row.pop("trades")
        row["strategy_mode"] = self.strategy_mode.value
        return row

    @classmethod
    def from_row(cls, row: Dict[str, Any], trades: Optional[List[SimulatedTrade]] = None) -> "BacktestReport":
        return cls(
            id=row.get("id"),
            user_id=row.get("user_id"),
            symbol=row["symbol"],
            timeframe=row["timeframe"],
            start_date=parse_dt(row["start_date"]),
            end_date=parse_dt(row["end_date"]),
            strategy_mode=StrategyMode(row["strategy_mode"]),
            strategy_params=dict(row.get("strategy_params") or {}),
            total_trades=int(row.get("total_trades") or 0),
            total_profit_loss=float(row.get("total_profit_loss") or 0.0),
            winning_trades=int(row.get("winning_trades") or 0),
            losing_trades=int(row.get("losing_trades") or 0),
            win_rate=float(row.get("win_rate") or 0.0),
            commission_per_lot=float(row.get("commission_per_lot") or 0.0),
            slippage_points=float(row.get("slippage_points") or 0.0),
            created_at=parse_dt(row.get("created_at")),
            trades=list(trades or []),
        )
