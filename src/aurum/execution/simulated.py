"""
Simulated provider: orders become rows in the `trades` relation, closes are
priced from the market-data price source.
"""
import logging
import random
import time
from datetime import datetime, timezone
from typing import List, Optional

from src.aurum.data.schema import Trade
from src.aurum.db.store import Store
from src.aurum.execution.provider import (
    AccountSummary,
    CloseRequest,
    CloseResult,
    OpenPosition,
    OrderRequest,
    OrderResult,
    PriceSource,
    ServerTime,
    TradeProvider,
)
from src.aurum.execution.sizing import CONTRACT_SIZE

logger = logging.getLogger(__name__)

DEFAULT_BALANCE = 10_000.0


def trade_pnl(trade_type: str, open_price: float, close_price: float, lots: float) -> float:
    delta = close_price - open_price if trade_type == "BUY" else open_price - close_price
    return round(delta * lots * CONTRACT_SIZE, 2)


class SimulatedProvider(TradeProvider):
    name = "SIMULATED"

    def __init__(self, store: Store, price_source: PriceSource):
        self.store = store
        self.price_source = price_source

    def _ticket(self) -> str:
        return f"SIM_{int(time.time() * 1000)}_{random.randint(1000, 9999)}"

    def execute_order(self, req: OrderRequest) -> OrderResult:
        ticket = self._ticket()
        trade = Trade(
            id="",
            ticket_id=ticket,
            user_id=req.user_id,
            account_id=req.account_id,
            symbol=req.symbol,
            type=req.type,
            lot_size=req.lots,
            open_price=req.price,
            stop_loss=req.stop_loss,
            take_profit=req.take_profit,
            open_time=datetime.now(timezone.utc),
            bot_session_id=req.bot_session_id,
        )
        row = trade.to_row()
        row.pop("id")
        try:
            stored = self.store.insert("trades", row)[0]
        except Exception as e:
            logger.error("Simulated order insert failed: %s", e)
            return OrderResult(success=False, error=str(e))
        logger.info(
            "SIM %s %s %.2f lots @ %.2f sl=%s tp=%s ticket=%s",
            req.type, req.symbol, req.lots, req.price, req.stop_loss, req.take_profit, ticket,
        )
        return OrderResult(success=True, trade_id=stored["id"], ticket_id=ticket)

    def close_order(self, req: CloseRequest) -> CloseResult:
        row = self.store.select_one("trades", {"ticket_id": req.ticket_id, "status": "open"})
        if row is None:
            return CloseResult(success=False, ticket_id=req.ticket_id, error="Open trade not found")
        trade = Trade.from_row(row)
        if req.lots is not None and req.lots != trade.lot_size:
            logger.debug("Simulated close ignores partial lots %.2f; closing %.2f", req.lots, trade.lot_size)
        try:
            close_price = float(self.price_source(trade.symbol))
        except Exception as e:
            logger.error("No price to close %s: %s", req.ticket_id, e)
            return CloseResult(success=False, ticket_id=req.ticket_id, error=str(e))

        profit = trade_pnl(trade.type, trade.open_price, close_price, trade.lot_size)
        self.store.update("trades", {"id": trade.id}, {
            "status": "closed",
            "close_price": close_price,
            "profit_loss": profit,
            "close_time": datetime.now(timezone.utc),
        })
        logger.info("SIM closed %s @ %.2f P&L=%.2f", req.ticket_id, close_price, profit)
        return CloseResult(success=True, ticket_id=req.ticket_id, close_price=close_price, profit=profit)

    def get_account_summary(self, account_id: Optional[str] = None) -> AccountSummary:
        row = self.store.select_one("trading_accounts", {"id": account_id}) if account_id else None
        if row is None:
            return AccountSummary(
                balance=DEFAULT_BALANCE,
                equity=DEFAULT_BALANCE,
                free_margin=DEFAULT_BALANCE,
                error=f"Trading account {account_id!r} not found; default balance",
            )
        balance = float(row.get("balance") or 0.0)
        equity = float(row.get("equity") if row.get("equity") is not None else balance)
        margin = float(row.get("margin") or 0.0)
        return AccountSummary(
            balance=balance,
            equity=equity,
            margin=margin,
            free_margin=float(row.get("free_margin") if row.get("free_margin") is not None else equity - margin),
            currency=row.get("currency") or "USD",
        )

    def get_open_positions(self, account_id: Optional[str] = None) -> List[OpenPosition]:
        where = {"status": "open"}
        if account_id:
            where["account_id"] = account_id
        return [
            OpenPosition(
                ticket_id=t.ticket_id,
                symbol=t.symbol,
                type=t.type,
                lots=t.lot_size,
                open_price=t.open_price,
                stop_loss=t.stop_loss,
                take_profit=t.take_profit,
                open_time=t.open_time,
            )
            for t in (Trade.from_row(r) for r in self.store.select("trades", where))
        ]

    def get_server_time(self) -> ServerTime:
        return ServerTime(time=datetime.now(timezone.utc).isoformat())
