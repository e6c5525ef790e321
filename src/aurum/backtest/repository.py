"""
Backtest report persistence: the report and its simulated trades are written
together; if the trades cannot be written the report row is deleted again.
"""
import logging
from datetime import datetime, timezone
from typing import List, Optional

from src.aurum.data.schema import BacktestReport, SimulatedTrade
from src.aurum.db.store import Store
from src.aurum.errors import PersistenceError

logger = logging.getLogger(__name__)

REPORTS = "backtest_reports"
TRADES = "simulated_trades"


def save_report(store: Store, report: BacktestReport) -> BacktestReport:
    row = report.to_row()
    row.pop("id")
    row["created_at"] = datetime.now(timezone.utc)
    try:
        stored = store.insert(REPORTS, row)[0]
    except Exception as e:
        logger.error("Saving backtest report failed: %s", e)
        raise PersistenceError(f"Could not save backtest report: {e}") from e

    report_id = stored["id"]
    if report.trades:
        try:
            store.insert(TRADES, [t.to_row(report_id) for t in report.trades])
        except Exception as e:
            logger.error("Saving %d simulated trades for report %s failed: %s; rolling back report",
                         len(report.trades), report_id, e)
            try:
                store.delete(REPORTS, {"id": report_id})
            except Exception as cleanup_err:
                logger.error("Rollback of report %s failed: %s", report_id, cleanup_err)
            raise PersistenceError(f"Could not save simulated trades: {e}") from e

    logger.info("Saved backtest report %s with %d trades", report_id, len(report.trades))
    return BacktestReport.from_row(stored, trades=report.trades)


def get_report(store: Store, report_id: str) -> Optional[BacktestReport]:
    row = store.select_one(REPORTS, {"id": report_id})
    if row is None:
        return None
    trades = [SimulatedTrade.from_row(r) for r in store.select(TRADES, {"backtest_report_id": report_id},
                                                               order_by="entry_time")]
    return BacktestReport.from_row(row, trades=trades)


def list_reports(store: Store, user_id: Optional[str] = None) -> List[BacktestReport]:
    """Reports without their trades, newest first."""
    where = {"user_id": user_id} if user_id else None
    rows = store.select(REPORTS, where, order_by="created_at", descending=True)
    return [BacktestReport.from_row(r) for r in rows]
