"""
Trade execution provider interface and result types.

Two implementations: SimulatedProvider (records trades in the store) and
BridgeProvider (external MetaTrader bridge over HTTP). `select_provider` is the
only place that looks at the provider type.
"""
import logging
import os
from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Callable, Dict, List, Literal, Optional

from src.aurum.db.store import Store

logger = logging.getLogger(__name__)

PriceSource = Callable[[str], float]


@dataclass
class OrderRequest:
    symbol: str
    type: Literal["BUY", "SELL"]
    lots: float
    price: float
    stop_loss: Optional[float]
    take_profit: Optional[float]
    user_id: str = ""
    account_id: str = ""
    bot_session_id: Optional[str] = None
    magic_number: int = 0
    comment: str = ""


@dataclass
class OrderResult:
    success: bool
    trade_id: Optional[str] = None
    ticket_id: Optional[str] = None
    error: Optional[str] = None


@dataclass
class CloseRequest:
    ticket_id: str
    lots: Optional[float] = None


@dataclass
class CloseResult:
    success: bool
    ticket_id: str
    close_price: Optional[float] = None
    profit: Optional[float] = None
    error: Optional[str] = None


@dataclass
class AccountSummary:
    balance: float
    equity: float
    margin: float = 0.0
    free_margin: float = 0.0
    currency: str = "USD"
    error: Optional[str] = None

    @property
    def equity_known(self) -> bool:
        return self.error is None and self.equity > 0


@dataclass
class OpenPosition:
    ticket_id: str
    symbol: str
    type: Literal["BUY", "SELL"]
    lots: float
    open_price: float
    stop_loss: Optional[float] = None
    take_profit: Optional[float] = None
    profit: Optional[float] = None
    open_time: Optional[datetime] = None


@dataclass
class ServerTime:
    time: str
    error: Optional[str] = None


class TradeProvider(ABC):
    name: str = "base"

    @abstractmethod
    def execute_order(self, req: OrderRequest) -> OrderResult:
        ...

    @abstractmethod
    def close_order(self, req: CloseRequest) -> CloseResult:
        ...

    @abstractmethod
    def get_account_summary(self, account_id: Optional[str] = None) -> AccountSummary:
        ...

    @abstractmethod
    def get_open_positions(self, account_id: Optional[str] = None) -> List[OpenPosition]:
        ...

    def position_is_open(self, ticket_id: str, account_id: Optional[str] = None) -> Optional[bool]:
        """Whether the provider still lists the ticket; None when that cannot be determined."""
        return any(p.ticket_id == ticket_id for p in self.get_open_positions(account_id))

    @abstractmethod
    def get_server_time(self) -> ServerTime:
        ...


def select_provider(
    cfg: Dict[str, Any],
    store: Store,
    price_source: PriceSource,
) -> TradeProvider:
    """
    provider.type SIMULATED (default) or METATRADER. METATRADER without a bridge
    URL or API key falls back to the simulated provider.
    """
    from src.aurum.execution.bridge import BridgeProvider
    from src.aurum.execution.simulated import SimulatedProvider

    prov_cfg = cfg.get("provider", {})
    kind = str(prov_cfg.get("type") or os.getenv("TRADE_PROVIDER_TYPE") or "SIMULATED").upper()
    if kind == "METATRADER":
        url = prov_cfg.get("bridge_url") or os.getenv("MT_BRIDGE_URL")
        api_key = prov_cfg.get("bridge_api_key") or os.getenv("MT_BRIDGE_API_KEY")
        if url and api_key:
            logger.info("Using MetaTrader bridge provider at %s", url)
            return BridgeProvider(
                base_url=url,
                api_key=api_key,
                store=store,
                timeout=float(prov_cfg.get("timeout", 15)),
                retries=int(prov_cfg.get("retries", 2)),
                retry_delay=float(prov_cfg.get("retry_delay", 3.0)),
            )
        logger.warning("METATRADER provider selected but bridge URL/API key missing; falling back to SIMULATED")
    elif kind != "SIMULATED":
        logger.warning("Unknown provider type %r; using SIMULATED", kind)
    return SimulatedProvider(store=store, price_source=price_source)
