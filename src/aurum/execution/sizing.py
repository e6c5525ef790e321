"""
Position sizing: lot size from account equity, risk fraction and SL distance,
clamped to the session's risk level.
"""
import logging
from dataclasses import dataclass
from typing import Any, Dict, Optional, Tuple

from src.aurum.errors import ValidationError

logger = logging.getLogger(__name__)

CONTRACT_SIZE = 100.0  # XAUUSD: 100 oz per lot, P&L per 1.0 price move per lot
MIN_LOT = 0.01


@dataclass(frozen=True)
class RiskLevel:
    name: str
    max_lot_size: float
    default_lot_size: float


RISK_LEVELS: Dict[str, RiskLevel] = {
    "conservative": RiskLevel("conservative", 0.01, 0.01),
    "medium": RiskLevel("medium", 0.05, 0.05),
    "risky": RiskLevel("risky", 0.10, 0.10),
}


def risk_levels_from_config(cfg: Optional[Dict[str, Any]] = None) -> Dict[str, RiskLevel]:
    """risk.levels section -> RiskLevel map; falls back to the built-in levels."""
    levels_cfg = ((cfg or {}).get("risk") or {}).get("levels") or {}
    if not levels_cfg:
        return dict(RISK_LEVELS)
    levels = {}
    for name, values in levels_cfg.items():
        max_lot = float(values.get("max_lot", MIN_LOT))
        levels[name] = RiskLevel(name, max_lot, float(values.get("default_lot", max_lot)))
    return levels


def get_risk_level(name: str, levels: Optional[Dict[str, RiskLevel]] = None) -> RiskLevel:
    levels = levels or RISK_LEVELS
    if name not in levels:
        raise ValidationError(f"Unknown risk level: {name!r} (expected one of {sorted(levels)})")
    return levels[name]


def lot_size_from_sl_distance(
    equity: float,
    entry_price: float,
    stop_loss: float,
    risk_pct: float = 0.01,
    max_lot: float = MIN_LOT,
    min_lot: float = MIN_LOT,
    contract_size: float = CONTRACT_SIZE,
) -> float:
    """
    Lot size so that a stop-out loses `risk_pct` of equity:
        (equity * risk_pct) / (|entry - sl| * contract_size)
    rounded to 2 decimals and clamped to [min_lot, max_lot].
    """
    distance = abs(entry_price - stop_loss)
    if distance <= 0 or equity <= 0:
        return min_lot
    raw = (equity * risk_pct) / (distance * contract_size)
    return min(max(round(raw, 2), min_lot), max_lot)


def position_size(
    equity: Optional[float],
    entry_price: float,
    stop_loss: Optional[float],
    risk_level: RiskLevel,
    risk_pct: float = 0.01,
) -> Tuple[float, str]:
    """
    Returns (lot_size, basis). basis is "equity" when sized from equity, or
    "flat_default" when equity / stop loss is unavailable.
    """
    if equity is None or equity <= 0 or stop_loss is None:
        logger.warning(
            "Equity-based sizing unavailable (equity=%s, sl=%s); using flat %s lot %.2f",
            equity, stop_loss, risk_level.name, risk_level.default_lot_size,
        )
        return risk_level.default_lot_size, "flat_default"
    lot = lot_size_from_sl_distance(
        equity, entry_price, stop_loss, risk_pct=risk_pct, max_lot=risk_level.max_lot_size,
    )
    return lot, "equity"
