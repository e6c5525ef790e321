"""
Live session processor: one batch pass over all active bot sessions.

Per session (under a per-session lock):
  1. drawdown guard (equity via provider; pause on breach)
  2. open trade? manage its exit and stop there
  3. evaluate the strategy on fresh candles + current price
  4. size the position from equity and risk fraction (session settings
     risk_per_trade_percent / max_drawdown_percent override the config)
  5. submit through the provider, update counters / notify

Scheduling the pass is up to the caller (cron, CLI `cycle`, run loop).
A failing session is logged and notified; the others still run.
"""
import logging
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Any, Callable, Dict, Optional, Tuple

from src.aurum.data.schema import Action, BotSession, CloseReason, SessionStatus, Trade
from src.aurum.db.store import Store
from src.aurum.errors import InvariantViolation
from src.aurum.execution.provider import CloseRequest, OrderRequest, TradeProvider
from src.aurum.execution.simulated import trade_pnl
from src.aurum.execution.risk import update_drawdown
from src.aurum.execution.sizing import get_risk_level, position_size, risk_levels_from_config
from src.aurum.live.locks import SessionLocks
from src.aurum.live.sessions import SESSIONS
from src.aurum.notify import BOT_ALERT, BOT_ERROR, TRADE_CLOSED, TRADE_ERROR, TRADE_EXECUTED, Notifier, SystemLog
from src.aurum.strategies.dispatcher import evaluate
from src.aurum.strategies.params import StrategyParameters, session_risk_overrides
from src.aurum.strategies.regime import classify_regime

logger = logging.getLogger(__name__)


class SessionOutcome(str, Enum):
    TRADE_OPENED = "trade_opened"
    ORDER_FAILED = "order_failed"
    HOLD = "hold"
    POSITION_OPEN = "position_open"
    POSITION_CLOSED = "position_closed"
    PAUSED_DRAWDOWN = "paused_drawdown"
    LOCKED = "locked"
    ERROR = "error"


@dataclass
class CycleSummary:
    outcomes: Dict[str, SessionOutcome] = field(default_factory=dict)
    errors: Dict[str, str] = field(default_factory=dict)

    def count(self, outcome: SessionOutcome) -> int:
        return sum(1 for o in self.outcomes.values() if o == outcome)


DEFAULT_LIVE_CONFIG = {
    "candle_history": 100,
    "max_hold_hours": 24,
    "magic_number": 20240601,
}


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class SessionProcessor:
    def __init__(
        self,
        store: Store,
        provider: TradeProvider,
        market_data: Any,
        config: Optional[Dict[str, Any]] = None,
        notifier: Optional[Notifier] = None,
        system_log: Optional[SystemLog] = None,
        locks: Optional[SessionLocks] = None,
        clock: Callable[[], datetime] = _utcnow,
    ):
        cfg = config or {}
        self.store = store
        self.provider = provider
        self.market_data = market_data
        self.notifier = notifier or Notifier(store)
        self.system_log = system_log or SystemLog(store)
        self.locks = locks or SessionLocks()
        self.clock = clock

        self.live_cfg = {**DEFAULT_LIVE_CONFIG, **cfg.get("live", {})}
        risk_cfg = cfg.get("risk", {})
        self.risk_per_trade = float(risk_cfg.get("risk_per_trade", 0.01))
        self.max_drawdown = float(risk_cfg.get("max_drawdown", 0.10))
        self.risk_levels = risk_levels_from_config(cfg)
        self.default_params = StrategyParameters.from_dict(cfg.get("strategy"))

    # -- batch -----------------------------------------------------------

    def run_cycle(self) -> CycleSummary:
        summary = CycleSummary()
        rows = self.store.select(SESSIONS, {"status": SessionStatus.ACTIVE.value})
        logger.info("Processing %d active bot sessions via %s provider", len(rows), self.provider.name)
        for row in rows:
            session_id = row.get("id", "?")
            try:
                session = BotSession.from_row(row)
                summary.outcomes[session_id] = self.process_session(session)
            except Exception as e:
                logger.exception("Session %s (user %s) failed: %s", session_id, row.get("user_id"), e)
                summary.outcomes[session_id] = SessionOutcome.ERROR
                summary.errors[session_id] = str(e)
                self.system_log.log("ERROR", "session_processor", f"Session processing failed: {e}",
                                    {"error_type": type(e).__name__}, session_id=session_id,
                                    user_id=row.get("user_id"))
                if row.get("user_id"):
                    self.notifier.notify(row["user_id"], BOT_ERROR, "Trading Bot Error",
                                         f"Bot session {session_id} hit an error: {e}")
        logger.info(
            "Cycle done: %d opened, %d hold, %d paused, %d errors",
            summary.count(SessionOutcome.TRADE_OPENED), summary.count(SessionOutcome.HOLD),
            summary.count(SessionOutcome.PAUSED_DRAWDOWN), len(summary.errors),
        )
        return summary

    def process_session(self, session: BotSession) -> SessionOutcome:
        with self.locks.hold(session.id) as acquired:
            if not acquired:
                logger.warning("Session %s is already being processed; skipping this cycle", session.id)
                return SessionOutcome.LOCKED
            return self._process(session)

    # -- per session -----------------------------------------------------

    def _process(self, session: BotSession) -> SessionOutcome:
        params = StrategyParameters.from_dict(session.strategy_params, base=self.default_params)
        risk_level = get_risk_level(session.risk_level, self.risk_levels)
        risk = {
            "risk_per_trade": self.risk_per_trade,
            "max_drawdown": self.max_drawdown,
            **session_risk_overrides(session.strategy_params),
        }

        equity, paused = self._drawdown_guard(session, risk["max_drawdown"])
        if paused:
            return SessionOutcome.PAUSED_DRAWDOWN

        open_trade = self._open_trade(session)
        if open_trade is not None:
            closed = self._manage_open_trade(session, open_trade)
            return SessionOutcome.POSITION_CLOSED if closed else SessionOutcome.POSITION_OPEN

        candles = self.market_data.get_candles(session.symbol, session.timeframe, int(self.live_cfg["candle_history"]))
        price = self.market_data.get_current_price(session.symbol)
        signal = evaluate(candles, len(candles), session.strategy_mode, params, decision_price=price)
        regime = classify_regime(candles, params)
        logger.info("Session %s: %s @ %.2f (%s, regime %s)", session.id, signal.action.value, price,
                    session.strategy_mode.value, regime.value)
        if not signal.is_trade:
            return SessionOutcome.HOLD

        lots, basis = position_size(equity, price, signal.stop_loss, risk_level, risk["risk_per_trade"])
        if basis == "flat_default":
            self.system_log.log("WARN", "position_sizing",
                                "Equity unavailable; flat default lot size used instead of risk-based sizing",
                                {"lot_size": lots, "risk_level": risk_level.name},
                                session_id=session.id, user_id=session.user_id)

        if self._open_trade(session) is not None:
            raise InvariantViolation(f"Session {session.id} already has an open trade")

        result = self.provider.execute_order(OrderRequest(
            symbol=session.symbol,
            type=signal.action.value,
            lots=lots,
            price=price,
            stop_loss=signal.stop_loss,
            take_profit=signal.take_profit,
            user_id=session.user_id,
            account_id=session.account_id,
            bot_session_id=session.id,
            magic_number=int(self.live_cfg["magic_number"]),
            comment=f"aurum {signal.strategy or session.strategy_mode.value}",
        ))

        if not result.success:
            logger.error("Order for session %s failed: %s", session.id, result.error)
            self.system_log.log("ERROR", "trade_execution", f"Order failed: {result.error}",
                                {"signal": signal.action.value, "lots": lots},
                                session_id=session.id, user_id=session.user_id)
            self.notifier.notify(session.user_id, TRADE_ERROR, "Trade Execution Failed",
                                 f"{signal.action.value} {session.symbol} {lots:.2f} lots failed: {result.error}")
            return SessionOutcome.ORDER_FAILED

        now = self.clock()
        session.total_trades += 1
        session.last_trade_time = now
        self.store.update(SESSIONS, {"id": session.id}, {
            "total_trades": session.total_trades,
            "last_trade_time": now,
        })
        self.notifier.notify(
            session.user_id, TRADE_EXECUTED, "Trade Executed",
            f"{signal.action.value} {lots:.2f} lots {session.symbol} @ {price:.2f} "
            f"(SL {signal.stop_loss}, TP {signal.take_profit}), ticket {result.ticket_id}",
        )
        return SessionOutcome.TRADE_OPENED

    def _drawdown_guard(self, session: BotSession, max_drawdown: float) -> Tuple[Optional[float], bool]:
        """Returns (equity or None, paused)."""
        summary = self.provider.get_account_summary(session.account_id)
        if not summary.equity_known:
            logger.warning("Session %s: equity unavailable (%s); drawdown check skipped this cycle",
                           session.id, summary.error or f"equity={summary.equity}")
            self.system_log.log("WARN", "drawdown_guard", "Equity unavailable; drawdown check skipped",
                                {"error": summary.error}, session_id=session.id, user_id=session.user_id)
            return None, False

        state = update_drawdown(summary.equity, session.session_initial_equity,
                                session.session_peak_equity, max_drawdown)
        changes: Dict[str, Any] = {}
        if state.initial_equity != session.session_initial_equity:
            changes["session_initial_equity"] = state.initial_equity
        if state.peak_equity != session.session_peak_equity:
            changes["session_peak_equity"] = state.peak_equity
        session.session_initial_equity = state.initial_equity
        session.session_peak_equity = state.peak_equity

        if state.breached:
            changes["status"] = SessionStatus.PAUSED_DRAWDOWN.value
            changes["session_end"] = self.clock()
            self.store.update(SESSIONS, {"id": session.id}, changes)
            session.status = SessionStatus.PAUSED_DRAWDOWN
            msg = (f"Bot paused: drawdown {state.drawdown:.2%} from peak {state.peak_equity:.2f} "
                   f"(equity {state.current_equity:.2f}) reached the {max_drawdown:.0%} limit.")
            logger.warning("Session %s: %s", session.id, msg)
            self.system_log.log("WARN", "drawdown_guard", msg, {"drawdown": state.drawdown},
                                session_id=session.id, user_id=session.user_id)
            self.notifier.notify(session.user_id, BOT_ALERT, "Trading Bot Paused (Drawdown)", msg)
            return state.current_equity, True

        if changes:
            self.store.update(SESSIONS, {"id": session.id}, changes)
        return state.current_equity, False

    def _open_trade(self, session: BotSession) -> Optional[Trade]:
        row = self.store.select_one("trades", {"bot_session_id": session.id, "status": "open"})
        return Trade.from_row(row) if row else None

    def _exit_reason(self, trade: Trade, price: float) -> Optional[CloseReason]:
        if trade.type == Action.BUY.value:
            if trade.stop_loss is not None and price <= trade.stop_loss:
                return CloseReason.SL
            if trade.take_profit is not None and price >= trade.take_profit:
                return CloseReason.TP
        else:
            if trade.stop_loss is not None and price >= trade.stop_loss:
                return CloseReason.SL
            if trade.take_profit is not None and price <= trade.take_profit:
                return CloseReason.TP
        max_hold = timedelta(hours=float(self.live_cfg["max_hold_hours"]))
        if trade.open_time is not None and self.clock() - trade.open_time >= max_hold:
            return CloseReason.TIME_EXIT
        return None

    def _manage_open_trade(self, session: BotSession, trade: Trade) -> bool:
        price = self.market_data.get_current_price(trade.symbol)
        reason = self._exit_reason(trade, price)
        if reason is None:
            logger.info("Session %s: trade %s still open (price %.2f)", session.id, trade.ticket_id, price)
            return False

        result = self.provider.close_order(CloseRequest(ticket_id=trade.ticket_id, lots=trade.lot_size))
        if not result.success:
            logger.error("Closing %s (%s) failed: %s", trade.ticket_id, reason.value, result.error)
            self.system_log.log("ERROR", "trade_exit", f"Close failed: {result.error}",
                                {"ticket_id": trade.ticket_id, "reason": reason.value},
                                session_id=session.id, user_id=session.user_id)
            if self.provider.position_is_open(trade.ticket_id, session.account_id) is False:
                return self._closed_by_provider(session, trade, reason, price)
            self.notifier.notify(session.user_id, TRADE_ERROR, "Trade Close Failed",
                                 f"Closing {trade.type} {trade.symbol} ticket {trade.ticket_id} "
                                 f"({reason.value}) failed: {result.error}")
            return False

        profit = float(result.profit or 0.0)
        self.record_trade_outcome(session, profit)
        self.notifier.notify(session.user_id, TRADE_CLOSED, "Trade Closed",
                             f"{trade.type} {trade.symbol} ticket {trade.ticket_id} closed ({reason.value}), "
                             f"P&L {profit:.2f}")
        return True

    def _closed_by_provider(self, session: BotSession, trade: Trade, reason: CloseReason, price: float) -> bool:
        """
        The provider no longer lists the ticket (e.g. the broker hit the stop
        first). Close the mirrored row at the level that triggered the exit.
        """
        close_price = price
        if reason == CloseReason.SL and trade.stop_loss is not None:
            close_price = trade.stop_loss
        elif reason == CloseReason.TP and trade.take_profit is not None:
            close_price = trade.take_profit
        profit = trade_pnl(trade.type, trade.open_price, close_price, trade.lot_size)
        self.store.update("trades", {"id": trade.id, "status": "open"}, {
            "status": "closed",
            "close_price": close_price,
            "profit_loss": profit,
            "close_time": self.clock(),
        })
        logger.warning("Session %s: ticket %s already closed by %s; recorded at %.2f (P&L %.2f)",
                       session.id, trade.ticket_id, self.provider.name, close_price, profit)
        self.system_log.log("WARN", "trade_exit", "Position already closed at provider; trade row reconciled",
                            {"ticket_id": trade.ticket_id, "reason": reason.value, "close_price": close_price},
                            session_id=session.id, user_id=session.user_id)
        self.record_trade_outcome(session, profit)
        self.notifier.notify(session.user_id, TRADE_CLOSED, "Trade Closed",
                             f"{trade.type} {trade.symbol} ticket {trade.ticket_id} closed by the broker "
                             f"({reason.value}), estimated P&L {profit:.2f}")
        return True

    def record_trade_outcome(self, session: BotSession, profit: float) -> None:
        if profit > 0:
            session.winning_trades += 1
        elif profit < 0:
            session.losing_trades += 1
        session.total_profit = round(session.total_profit + profit, 2)
        self.store.update(SESSIONS, {"id": session.id}, {
            "winning_trades": session.winning_trades,
            "losing_trades": session.losing_trades,
            "total_profit": session.total_profit,
        })
