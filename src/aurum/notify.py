"""
Notification sink and system-log writer. Both write rows to the store and never
raise: a failed write is logged and trading continues.
"""
import logging
from datetime import datetime, timezone
from typing import Any, Dict, Optional

from src.aurum.db.store import Store

logger = logging.getLogger(__name__)

TRADE_EXECUTED = "bot_trade_executed"
TRADE_ERROR = "bot_trade_error"
TRADE_CLOSED = "bot_trade_closed"
BOT_ALERT = "bot_alert"
BOT_ERROR = "bot_error"


class Notifier:
    def __init__(self, store: Store):
        self.store = store

    def notify(self, user_id: str, type: str, title: str, message: str) -> bool:
        try:
            self.store.insert("notifications", {
                "user_id": user_id,
                "type": type,
                "title": title,
                "message": message,
                "is_read": False,
                "created_at": datetime.now(timezone.utc),
            })
            return True
        except Exception as e:
            logger.error("Notification %s for user %s not delivered: %s", type, user_id, e)
            return False


class SystemLog:
    def __init__(self, store: Store):
        self.store = store

    def log(
        self,
        level: str,
        context: str,
        message: str,
        details: Optional[Dict[str, Any]] = None,
        session_id: Optional[str] = None,
        user_id: Optional[str] = None,
    ) -> None:
        try:
            self.store.insert("system_logs", {
                "log_level": level.upper(),
                "context": context,
                "message": message,
                "details": details or {},
                "session_id": session_id,
                "user_id": user_id,
                "created_at": datetime.now(timezone.utc),
            })
        except Exception as e:
            logger.error("Failed to write system log (%s: %s): %s", context, message, e)
