"""
Bot session lifecycle: start (validated insert) and stop.
"""
import logging
from datetime import datetime, timezone
from typing import Any, Dict, Optional

from src.aurum.data.schema import BotSession, SessionStatus, StrategyMode
from src.aurum.db.store import Store
from src.aurum.errors import ValidationError
from src.aurum.execution.sizing import RiskLevel, get_risk_level
from src.aurum.strategies.params import StrategyParameters

logger = logging.getLogger(__name__)

SESSIONS = "bot_sessions"


def start_session(
    store: Store,
    user_id: str,
    account_id: str,
    risk_level: str = "conservative",
    strategy_mode: StrategyMode | str = StrategyMode.ADAPTIVE,
    strategy_params: Optional[Dict[str, Any]] = None,
    symbol: str = "XAUUSD",
    timeframe: str = "15min",
    risk_levels: Optional[Dict[str, RiskLevel]] = None,
) -> BotSession:
    """Validate and insert an active session. One active session per trading account."""
    if not user_id or not account_id:
        raise ValidationError("user_id and account_id are required")
    get_risk_level(risk_level, risk_levels)
    try:
        mode = StrategyMode(strategy_mode)
    except ValueError:
        raise ValidationError(f"Unknown strategy mode: {strategy_mode!r}")
    StrategyParameters.from_dict(strategy_params)

    if store.select_one(SESSIONS, {"account_id": account_id, "status": SessionStatus.ACTIVE.value}):
        raise ValidationError(f"Account {account_id} already has an active bot session")

    session = BotSession(
        id="",
        user_id=user_id,
        account_id=account_id,
        risk_level=risk_level,
        strategy_mode=mode,
        strategy_params=dict(strategy_params or {}),
        symbol=symbol,
        timeframe=timeframe,
        session_start=datetime.now(timezone.utc),
    )
    row = session.to_row()
    row.pop("id")
    stored = store.insert(SESSIONS, row)[0]
    logger.info("Started bot session %s for user %s (%s, %s)", stored["id"], user_id, mode.value, risk_level)
    return BotSession.from_row(stored)


def stop_session(store: Store, session_id: str) -> bool:
    updated = store.update(SESSIONS, {"id": session_id}, {
        "status": SessionStatus.STOPPED.value,
        "session_end": datetime.now(timezone.utc),
    })
    if updated:
        logger.info("Stopped bot session %s", session_id)
    else:
        logger.warning("Bot session %s not found", session_id)
    return bool(updated)


def get_session(store: Store, session_id: str) -> Optional[BotSession]:
    row = store.select_one(SESSIONS, {"id": session_id})
    return BotSession.from_row(row) if row else None
