"""
Error taxonomy for the engine.

Indicators and the dispatcher never raise for short history (they return
NaN / HOLD); the classes below are raised at the edges: backtest input
checks, market-data fetches and persistence.
"""


class AurumError(Exception):
    """Base class for all engine errors."""


class InsufficientDataError(AurumError):
    """Not enough candles to cover the lookback of the requested mode."""

    def __init__(self, required: int, available: int, message: str = ""):
        self.required = required
        self.available = available
        super().__init__(message or f"Need at least {required} candles, got {available}")


class ExternalServiceError(AurumError):
    """Market data, bridge or notification call failed after retries."""

    def __init__(self, service: str, message: str, status_code: int | None = None):
        self.service = service
        self.status_code = status_code
        super().__init__(f"{service}: {message}")


class RateLimitError(ExternalServiceError):
    """Provider reported that the call frequency limit was hit."""


class ValidationError(AurumError):
    """Malformed session, strategy or backtest parameters."""


class InvariantViolation(AurumError):
    """A structural guarantee was about to be broken (e.g. second open trade)."""


class PersistenceError(AurumError):
    """Store write failed; any partial writes were rolled back."""


class CredentialError(AurumError):
    """Missing / malformed encryption key, or a secret that fails to decrypt."""
