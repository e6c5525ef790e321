"""
Strategy parameters: every tunable period / multiplier / threshold with its
default, plus the lookback each strategy mode needs before it can decide.
"""
from dataclasses import asdict, dataclass, fields
from typing import Any, Dict, Optional

from src.aurum.data.schema import StrategyMode
from src.aurum.errors import ValidationError

# Keys as stored by the dashboard on bot sessions / backtest requests
_CAMEL_ALIASES = {
    "smaShortPeriod": "sma_short",
    "smaLongPeriod": "sma_long",
    "bbPeriod": "bb_period",
    "bbStdDevMult": "bb_std_dev",
    "rsiPeriod": "rsi_period",
    "rsiOversold": "rsi_oversold",
    "rsiOverbought": "rsi_overbought",
    "adxPeriod": "adx_period",
    "adxTrendThreshold": "adx_trend_threshold",
    "adxRangeThreshold": "adx_range_threshold",
    "atrPeriod": "atr_period",
    "atrMultiplierSL": "atr_sl_multiplier",
    "atrMultiplierTP": "atr_tp_multiplier",
    "breakoutLookbackPeriod": "breakout_lookback",
    "minChannelWidthATR": "breakout_min_width_atr",
}

# Dashboard settings kept on the session but not read by any strategy
STORED_ONLY_KEYS = frozenset({"adxTrendMinLevel", "atrSpikeMultiplier"})

# Per-session risk settings (fractions, e.g. 0.02 for 2%) -> config risk key
SESSION_RISK_KEYS = {
    "risk_per_trade_percent": "risk_per_trade",
    "max_drawdown_percent": "max_drawdown",
}

_INT_FIELDS = ("sma_short", "sma_long", "bb_period", "rsi_period", "adx_period", "atr_period", "breakout_lookback")


def session_risk_overrides(settings: Optional[Dict[str, Any]]) -> Dict[str, float]:
    """Risk settings a bot session overrides, keyed like the `risk` config section."""
    out = {}
    for key, name in SESSION_RISK_KEYS.items():
        value = (settings or {}).get(key)
        if value is None:
            continue
        try:
            value = float(value)
        except (TypeError, ValueError):
            raise ValidationError(f"Session setting {key} is not numeric: {value!r}")
        if not 0 < value <= 1:
            raise ValidationError(f"Session setting {key} must be a fraction in (0, 1], got {value}")
        out[name] = value
    return out


@dataclass(frozen=True)
class StrategyParameters:
    sma_short: int = 20
    sma_long: int = 50
    bb_period: int = 20
    bb_std_dev: float = 2.0
    rsi_period: int = 14
    rsi_oversold: float = 30.0
    rsi_overbought: float = 70.0
    adx_period: int = 14
    adx_trend_threshold: float = 25.0
    adx_range_threshold: float = 20.0
    atr_period: int = 14
    atr_sl_multiplier: float = 1.5
    atr_tp_multiplier: float = 3.0
    breakout_lookback: int = 50
    breakout_min_width_atr: float = 1.0

    @classmethod
    def from_dict(
        cls,
        overrides: Optional[Dict[str, Any]] = None,
        base: Optional["StrategyParameters"] = None,
    ) -> "StrategyParameters":
        """
        Apply a (partial) override on top of `base` (or the defaults) and validate.
        Session risk keys are validated here and read by session_risk_overrides().
        """
        session_risk_overrides(overrides)
        known = {f.name for f in fields(cls)}
        merged = asdict(base or cls())
        for key, value in (overrides or {}).items():
            if key in STORED_ONLY_KEYS or key in SESSION_RISK_KEYS:
                continue
            name = _CAMEL_ALIASES.get(key, key)
            if name not in known:
                raise ValidationError(f"Unknown strategy parameter: {key}")
            if value is None:
                continue
            try:
                merged[name] = int(value) if name in _INT_FIELDS else float(value)
            except (TypeError, ValueError):
                raise ValidationError(f"Strategy parameter {key} is not numeric: {value!r}")
        params = cls(**merged)
        params.validate()
        return params

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    def validate(self) -> None:
        for name in _INT_FIELDS:
            if getattr(self, name) < 1:
                raise ValidationError(f"{name} must be >= 1")
        if self.sma_short >= self.sma_long:
            raise ValidationError("sma_short must be smaller than sma_long")
        if not 0 <= self.rsi_oversold < self.rsi_overbought <= 100:
            raise ValidationError("RSI levels must satisfy 0 <= oversold < overbought <= 100")
        if self.adx_range_threshold > self.adx_trend_threshold:
            raise ValidationError("adx_range_threshold must not exceed adx_trend_threshold")
        if self.bb_std_dev <= 0 or self.atr_sl_multiplier <= 0 or self.atr_tp_multiplier <= 0:
            raise ValidationError("Band and ATR multipliers must be positive")
        if self.breakout_min_width_atr < 0:
            raise ValidationError("breakout_min_width_atr must be >= 0")

    def required_lookback(self, mode: StrategyMode) -> int:
        """
        Candles needed before the decision candle so every indicator the mode
        reads is defined (including the previous bar used for cross/momentum checks).
        """
        atr_need = self.atr_period + 1
        sma_need = max(self.sma_long + 1, atr_need)
        mr_need = max(self.bb_period, self.rsi_period + 2, atr_need)
        breakout_need = max(self.breakout_lookback + 1, atr_need)
        if mode == StrategyMode.SMA_ONLY:
            return sma_need
        if mode == StrategyMode.MEAN_REVERSION_ONLY:
            return mr_need
        if mode == StrategyMode.BREAKOUT_ONLY:
            return breakout_need
        return max(sma_need, mr_need, 2 * self.adx_period)
