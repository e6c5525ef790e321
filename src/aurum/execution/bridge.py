"""
MetaTrader bridge provider: the four provider operations as HTTP calls to an
external bridge service (authenticated with the X-MT-Bridge-API-Key header).

Each call gets a fixed retry budget; non-2xx and unparseable bodies count as a
failed attempt. 202/204 means the bridge accepted the request asynchronously.
Executed/closed orders are mirrored into the `trades` relation so the
single-open-trade check works the same as in simulation.
"""
import logging
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

import requests

from src.aurum.data.schema import parse_dt
from src.aurum.db.store import Store
from src.aurum.errors import ExternalServiceError
from src.aurum.execution.provider import (
    AccountSummary,
    CloseRequest,
    CloseResult,
    OpenPosition,
    OrderRequest,
    OrderResult,
    ServerTime,
    TradeProvider,
)
from src.aurum.utils.retry import call_with_retry

logger = logging.getLogger(__name__)

API_KEY_HEADER = "X-MT-Bridge-API-Key"


class BridgeProvider(TradeProvider):
    name = "METATRADER"

    def __init__(
        self,
        base_url: str,
        api_key: str,
        store: Optional[Store] = None,
        timeout: float = 15.0,
        retries: int = 2,
        retry_delay: float = 3.0,
        session: Optional[requests.Session] = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.store = store
        self.timeout = timeout
        self.retries = retries
        self.retry_delay = retry_delay
        self._session = session or requests.Session()
        self._session.headers.update({API_KEY_HEADER: api_key, "Content-Type": "application/json"})

    def _request(self, method: str, endpoint: str, payload: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        url = f"{self.base_url}{endpoint}"

        def attempt() -> Dict[str, Any]:
            response = self._session.request(method, url, json=payload, timeout=self.timeout)
            if response.status_code in (202, 204):
                return {"success": True, "message": f"Request to {endpoint} accepted."}
            if not 200 <= response.status_code < 300:
                try:
                    detail = response.json().get("error") or response.reason
                except ValueError:
                    detail = response.reason
                raise ExternalServiceError("bridge", f"{method} {endpoint}: {response.status_code} - {detail}",
                                           status_code=response.status_code)
            try:
                data = response.json()
            except ValueError:
                raise ExternalServiceError("bridge", f"{method} {endpoint}: malformed JSON response")
            if not isinstance(data, dict):
                raise ExternalServiceError("bridge", f"{method} {endpoint}: unexpected payload type")
            return data

        return call_with_retry(
            attempt,
            retries=self.retries,
            delay_seconds=self.retry_delay,
            retry_on=(requests.RequestException, ExternalServiceError),
            context=f"bridge {method} {endpoint}",
        )

    def execute_order(self, req: OrderRequest) -> OrderResult:
        payload = {
            "symbol": req.symbol,
            "type": req.type,
            "lots": req.lots,
            "price": req.price,
            "stopLossPrice": req.stop_loss,
            "takeProfitPrice": req.take_profit,
            "magicNumber": req.magic_number,
            "comment": req.comment,
        }
        try:
            data = self._request("POST", "/order/execute", payload)
        except (requests.RequestException, ExternalServiceError) as e:
            logger.error("Bridge execute failed: %s", e)
            return OrderResult(success=False, error=str(e))

        if not (data.get("success") and data.get("ticket")):
            return OrderResult(success=False, error=data.get("error") or "Failed to execute order via bridge.")

        ticket = str(data["ticket"])
        trade_id = ticket
        if self.store is not None:
            stored = self.store.insert("trades", {
                "ticket_id": ticket,
                "user_id": req.user_id,
                "account_id": req.account_id,
                "bot_session_id": req.bot_session_id,
                "symbol": req.symbol,
                "type": req.type,
                "lot_size": req.lots,
                "open_price": float(data.get("price") or req.price),
                "stop_loss": req.stop_loss,
                "take_profit": req.take_profit,
                "status": "open",
                "open_time": datetime.now(timezone.utc),
            })[0]
            trade_id = stored["id"]
        logger.info("Bridge %s %s %.2f lots ticket=%s", req.type, req.symbol, req.lots, ticket)
        return OrderResult(success=True, trade_id=trade_id, ticket_id=ticket)

    def close_order(self, req: CloseRequest) -> CloseResult:
        try:
            ticket_num = int(req.ticket_id)
        except ValueError:
            return CloseResult(success=False, ticket_id=req.ticket_id, error="Bridge tickets must be numeric")
        try:
            data = self._request("POST", "/order/close", {"ticket": ticket_num, "lots": req.lots})
        except (requests.RequestException, ExternalServiceError) as e:
            logger.error("Bridge close %s failed: %s", req.ticket_id, e)
            return CloseResult(success=False, ticket_id=req.ticket_id, error=str(e))

        if not data.get("success"):
            return CloseResult(success=False, ticket_id=req.ticket_id,
                               error=data.get("error") or "Failed to close order via bridge.")
        close_price = data.get("closePrice")
        profit = data.get("profit")
        if self.store is not None:
            self.store.update("trades", {"ticket_id": req.ticket_id, "status": "open"}, {
                "status": "closed",
                "close_price": close_price,
                "profit_loss": profit,
                "close_time": datetime.now(timezone.utc),
            })
        return CloseResult(success=True, ticket_id=req.ticket_id, close_price=close_price, profit=profit)

    def get_account_summary(self, account_id: Optional[str] = None) -> AccountSummary:
        try:
            data = self._request("GET", "/account/summary")
            return AccountSummary(
                balance=float(data["balance"]),
                equity=float(data["equity"]),
                margin=float(data.get("margin") or 0.0),
                free_margin=float(data.get("freeMargin") or 0.0),
                currency=data.get("currency") or "USD",
            )
        except (requests.RequestException, ExternalServiceError, KeyError, TypeError, ValueError) as e:
            logger.error("Bridge account summary failed: %s", e)
            return AccountSummary(balance=0.0, equity=0.0, currency="N/A", error=str(e))

    def _open_positions(self) -> List[OpenPosition]:
        data = self._request("GET", "/positions/open")
        return [
            OpenPosition(
                ticket_id=str(p["ticket"]),
                symbol=p.get("symbol", ""),
                type=p.get("type", "BUY"),
                lots=float(p.get("lots") or 0.0),
                open_price=float(p.get("openPrice") or 0.0),
                stop_loss=p.get("stopLoss"),
                take_profit=p.get("takeProfit"),
                profit=p.get("profit"),
                open_time=parse_dt(p.get("openTime")),
            )
            for p in data.get("positions") or []
        ]

    def get_open_positions(self, account_id: Optional[str] = None) -> List[OpenPosition]:
        try:
            return self._open_positions()
        except (requests.RequestException, ExternalServiceError, KeyError, TypeError, ValueError) as e:
            logger.error("Bridge open positions failed: %s", e)
            return []

    def position_is_open(self, ticket_id: str, account_id: Optional[str] = None) -> Optional[bool]:
        try:
            return any(p.ticket_id == str(ticket_id) for p in self._open_positions())
        except (requests.RequestException, ExternalServiceError, KeyError, TypeError, ValueError) as e:
            logger.error("Bridge position lookup for %s failed: %s", ticket_id, e)
            return None

    def get_server_time(self) -> ServerTime:
        try:
            data = self._request("GET", "/server/time")
            return ServerTime(time=str(data.get("serverTime") or ""), error=data.get("error"))
        except (requests.RequestException, ExternalServiceError) as e:
            return ServerTime(time="", error=str(e))
