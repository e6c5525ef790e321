"""
Risk limits: session drawdown circuit breaker.
"""
from dataclasses import dataclass
from typing import Optional


@dataclass
class DrawdownState:
    initial_equity: float
    peak_equity: float
    current_equity: float
    drawdown: float  # fraction of peak, 0.0 - 1.0
    breached: bool


def update_drawdown(
    equity: float,
    initial_equity: Optional[float],
    peak_equity: Optional[float],
    max_drawdown: float = 0.10,
) -> DrawdownState:
    """
    First reading seeds both initial and peak equity; later readings raise the
    peak when exceeded. Breached when (peak - equity) / peak >= max_drawdown.
    """
    if initial_equity is None or peak_equity is None:
        initial_equity = peak_equity = equity
    elif equity > peak_equity:
        peak_equity = equity

    drawdown = (peak_equity - equity) / peak_equity if peak_equity > 0 else 0.0
    return DrawdownState(
        initial_equity=initial_equity,
        peak_equity=peak_equity,
        current_equity=equity,
        drawdown=drawdown,
        breached=drawdown >= max_drawdown,
    )
