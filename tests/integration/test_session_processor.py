"""Integration: live session processor against the simulated provider and an in-memory store."""
from datetime import datetime, timedelta, timezone

import pytest

from tests.conftest import FakeMarketData, FakeResponse, build_candles, up_down_closes

NOW = datetime(2024, 6, 3, 12, 0, tzinfo=timezone.utc)


def _clock():
    return NOW


def _processor(store, market_data, config, provider=None, locks=None):
    from src.aurum.execution.simulated import SimulatedProvider
    from src.aurum.live.session_processor import SessionProcessor
    provider = provider or SimulatedProvider(store, market_data.get_current_price)
    return SessionProcessor(store, provider, market_data, config, locks=locks, clock=_clock)


def _session(store, account_id="acct-1", user_id="user-1", mode="SMA_ONLY", params=None):
    from src.aurum.live.sessions import start_session
    return start_session(store, user_id, account_id, strategy_mode=mode,
                         strategy_params=params if params is not None else {"sma_short": 5, "sma_long": 10})


def _account(store, account_id="acct-1", equity=10_000.0):
    store.insert("trading_accounts", {"id": account_id, "balance": 10_000.0, "equity": equity})


def _open_trade(store, session, trade_type="BUY", open_price=2010.0, sl=2005.0, tp=2030.0, opened=None,
                ticket="SIM_1"):
    from src.aurum.data.schema import Trade
    row = Trade(
        id="", ticket_id=ticket, user_id=session.user_id, account_id=session.account_id,
        symbol="XAUUSD", type=trade_type, lot_size=0.01, open_price=open_price,
        stop_loss=sl, take_profit=tp, open_time=opened or NOW - timedelta(hours=1),
        bot_session_id=session.id,
    ).to_row()
    row.pop("id")
    return store.insert("trades", row)[0]


def _notifications(store, type_):
    return store.select("notifications", {"type": type_})


@pytest.fixture
def buy_market():
    """21 candles ending on the upward SMA(5/10) cross, price just above the last close."""
    return FakeMarketData(build_candles(up_down_closes())[:21], price=2001.2)


@pytest.fixture
def flat_market():
    return FakeMarketData(build_candles([2000.0] * 120), price=2000.0)


def test_drawdown_breach_pauses_session(store, flat_market, sample_config):
    from src.aurum.live.session_processor import SessionOutcome
    from src.aurum.live.sessions import SESSIONS
    session = _session(store)
    store.update(SESSIONS, {"id": session.id}, {"session_initial_equity": 10_000.0,
                                                "session_peak_equity": 10_000.0})
    _account(store, equity=8_900.0)

    summary = _processor(store, flat_market, sample_config).run_cycle()

    assert summary.outcomes[session.id] == SessionOutcome.PAUSED_DRAWDOWN
    row = store.select_one(SESSIONS, {"id": session.id})
    assert row["status"] == "paused_drawdown"
    assert len(_notifications(store, "bot_alert")) == 1
    assert store.select("trades") == []
    assert flat_market.candle_calls == 0


def test_paused_session_is_not_processed_again(store, flat_market, sample_config):
    from src.aurum.live.sessions import SESSIONS
    session = _session(store)
    store.update(SESSIONS, {"id": session.id}, {"status": "paused_drawdown"})
    summary = _processor(store, flat_market, sample_config).run_cycle()
    assert summary.outcomes == {}


def test_first_equity_reading_seeds_initial_and_peak(store, flat_market, sample_config):
    from src.aurum.live.session_processor import SessionOutcome
    from src.aurum.live.sessions import get_session
    session = _session(store, mode="ADAPTIVE", params={})
    _account(store, equity=10_000.0)

    summary = _processor(store, flat_market, sample_config).run_cycle()

    assert summary.outcomes[session.id] == SessionOutcome.HOLD
    loaded = get_session(store, session.id)
    assert loaded.session_initial_equity == 10_000.0
    assert loaded.session_peak_equity == 10_000.0


def test_peak_rises_with_equity(store, flat_market, sample_config):
    from src.aurum.live.sessions import SESSIONS, get_session
    session = _session(store, mode="ADAPTIVE", params={})
    store.update(SESSIONS, {"id": session.id}, {"session_initial_equity": 10_000.0,
                                                "session_peak_equity": 10_000.0})
    _account(store, equity=10_500.0)
    _processor(store, flat_market, sample_config).run_cycle()
    loaded = get_session(store, session.id)
    assert loaded.session_initial_equity == 10_000.0
    assert loaded.session_peak_equity == 10_500.0


def test_signal_opens_trade_and_notifies(any_store, buy_market, sample_config):
    from src.aurum.live.session_processor import SessionOutcome
    from src.aurum.live.sessions import get_session
    store = any_store
    session = _session(store)
    _account(store)

    outcome = _processor(store, buy_market, sample_config).process_session(session)

    assert outcome == SessionOutcome.TRADE_OPENED
    trades = store.select("trades", {"bot_session_id": session.id, "status": "open"})
    assert len(trades) == 1
    trade = trades[0]
    assert trade["type"] == "BUY"
    assert trade["open_price"] == 2001.2
    assert trade["stop_loss"] < 2001.2 < trade["take_profit"]
    assert trade["lot_size"] == 0.01
    assert trade["ticket_id"].startswith("SIM_")

    loaded = get_session(store, session.id)
    assert loaded.total_trades == 1
    assert loaded.last_trade_time == NOW
    assert len(_notifications(store, "bot_trade_executed")) == 1


def test_open_trade_skips_evaluation(store, buy_market, sample_config):
    from src.aurum.live.session_processor import SessionOutcome
    session = _session(store)
    _account(store)
    _open_trade(store, session, open_price=2000.0, sl=1990.0, tp=2020.0)

    outcome = _processor(store, buy_market, sample_config).process_session(session)

    assert outcome == SessionOutcome.POSITION_OPEN
    assert buy_market.candle_calls == 0
    assert len(store.select("trades", {"status": "open"})) == 1


def test_stop_loss_hit_closes_trade_and_counts_loss(any_store, buy_market, sample_config):
    from src.aurum.live.session_processor import SessionOutcome
    from src.aurum.live.sessions import get_session
    store = any_store
    session = _session(store)
    _account(store)
    _open_trade(store, session, open_price=2010.0, sl=2005.0, tp=2030.0)

    outcome = _processor(store, buy_market, sample_config).process_session(session)

    assert outcome == SessionOutcome.POSITION_CLOSED
    closed = store.select_one("trades", {"ticket_id": "SIM_1"})
    assert closed["status"] == "closed"
    assert closed["close_price"] == 2001.2
    assert closed["profit_loss"] == pytest.approx(-8.8)
    loaded = get_session(store, session.id)
    assert loaded.losing_trades == 1 and loaded.winning_trades == 0
    assert loaded.total_profit == pytest.approx(-8.8)
    assert len(_notifications(store, "bot_trade_closed")) == 1


def test_trade_closed_after_max_hold_time(store, buy_market, sample_config):
    from src.aurum.live.session_processor import SessionOutcome
    from src.aurum.live.sessions import get_session
    session = _session(store)
    _account(store)
    _open_trade(store, session, open_price=2000.0, sl=1990.0, tp=2020.0, opened=NOW - timedelta(hours=25))

    outcome = _processor(store, buy_market, sample_config).process_session(session)

    assert outcome == SessionOutcome.POSITION_CLOSED
    assert get_session(store, session.id).winning_trades == 1


def test_order_failure_leaves_counters(store, buy_market, sample_config):
    from src.aurum.execution.provider import OrderResult
    from src.aurum.execution.simulated import SimulatedProvider
    from src.aurum.live.session_processor import SessionOutcome
    from src.aurum.live.sessions import get_session

    class RejectingProvider(SimulatedProvider):
        def execute_order(self, req):
            return OrderResult(success=False, error="market closed")

    session = _session(store)
    _account(store)
    provider = RejectingProvider(store, buy_market.get_current_price)

    outcome = _processor(store, buy_market, sample_config, provider=provider).process_session(session)

    assert outcome == SessionOutcome.ORDER_FAILED
    assert get_session(store, session.id).total_trades == 0
    errors = _notifications(store, "bot_trade_error")
    assert len(errors) == 1 and "market closed" in errors[0]["message"]
    assert store.select("system_logs", {"context": "trade_execution"})


def test_failing_session_does_not_stop_others(store, buy_market, sample_config):
    from src.aurum.live.session_processor import SessionOutcome
    from src.aurum.live.sessions import SESSIONS
    good = _session(store, account_id="acct-1", user_id="user-1")
    bad = _session(store, account_id="acct-2", user_id="user-2")
    store.update(SESSIONS, {"id": bad.id}, {"risk_level": "yolo"})
    _account(store, "acct-1")
    _account(store, "acct-2")

    summary = _processor(store, buy_market, sample_config).run_cycle()

    assert summary.outcomes[bad.id] == SessionOutcome.ERROR
    assert summary.outcomes[good.id] == SessionOutcome.TRADE_OPENED
    assert bad.id in summary.errors
    bot_errors = _notifications(store, "bot_error")
    assert [n["user_id"] for n in bot_errors] == ["user-2"]


def test_equity_unavailable_falls_back_to_flat_lot(store, buy_market, sample_config):
    from src.aurum.live.session_processor import SessionOutcome
    session = _session(store)  # no trading_accounts row

    outcome = _processor(store, buy_market, sample_config).process_session(session)

    assert outcome == SessionOutcome.TRADE_OPENED
    trade = store.select_one("trades", {"bot_session_id": session.id})
    assert trade["lot_size"] == 0.01
    sizing_logs = store.select("system_logs", {"context": "position_sizing"})
    assert len(sizing_logs) == 1 and sizing_logs[0]["log_level"] == "WARN"


def test_locked_session_is_skipped(store, buy_market, sample_config):
    from src.aurum.live.locks import SessionLocks
    from src.aurum.live.session_processor import SessionOutcome
    session = _session(store)
    _account(store)
    locks = SessionLocks()
    processor = _processor(store, buy_market, sample_config, locks=locks)

    with locks.hold(session.id) as acquired:
        assert acquired
        assert locks.is_locked(session.id)
        assert processor.process_session(session) == SessionOutcome.LOCKED
    assert not locks.is_locked(session.id)
    assert store.select("trades") == []


def test_start_and_stop_session(store):
    from src.aurum.errors import ValidationError
    from src.aurum.live.sessions import get_session, start_session, stop_session
    session = start_session(store, "user-1", "acct-1", risk_level="medium",
                            strategy_mode="BREAKOUT_ONLY", strategy_params={"breakoutLookbackPeriod": 30})
    assert session.id
    assert session.status.value == "active"

    with pytest.raises(ValidationError):
        start_session(store, "user-1", "acct-1")
    with pytest.raises(ValidationError):
        start_session(store, "user-1", "acct-9", risk_level="yolo")
    with pytest.raises(ValidationError):
        start_session(store, "user-1", "acct-9", strategy_params={"sma_short": 60})

    assert stop_session(store, session.id)
    assert get_session(store, session.id).status.value == "stopped"
    assert not stop_session(store, "missing")
    # account is free again
    assert start_session(store, "user-1", "acct-1").id != session.id


DASHBOARD_DEFAULTS = {
    "smaShortPeriod": 20, "smaLongPeriod": 50,
    "bbPeriod": 20, "bbStdDevMult": 2,
    "rsiPeriod": 14, "rsiOversold": 30, "rsiOverbought": 70,
    "adxPeriod": 14, "adxTrendMinLevel": 25, "adxRangeThreshold": 20, "adxTrendThreshold": 25,
    "atrPeriod": 14, "atrMultiplierSL": 1.5, "atrMultiplierTP": 3.0,
    "breakoutLookbackPeriod": 50, "atrSpikeMultiplier": 1.5,
}


def test_dashboard_default_settings_run_a_cycle(any_store, flat_market, sample_config):
    from src.aurum.live.session_processor import SessionOutcome
    from src.aurum.live.sessions import get_session
    store = any_store
    session = _session(store, mode="ADAPTIVE", params=dict(DASHBOARD_DEFAULTS, adxTrendThreshold=30))
    _account(store)

    summary = _processor(store, flat_market, sample_config).run_cycle()

    assert summary.errors == {}
    assert summary.outcomes[session.id] == SessionOutcome.HOLD
    assert get_session(store, session.id).strategy_params["atrSpikeMultiplier"] == 1.5


def _risky_buy(store, buy_market, sample_config, account_id, settings):
    from src.aurum.live.sessions import start_session
    session = start_session(store, "user-1", account_id, risk_level="risky", strategy_mode="SMA_ONLY",
                            strategy_params={"sma_short": 5, "sma_long": 10, **settings})
    _account(store, account_id, equity=1_000.0)
    _processor(store, buy_market, sample_config).process_session(session)
    return store.select_one("trades", {"bot_session_id": session.id})


def test_session_risk_per_trade_overrides_config(store, buy_market, sample_config):
    from src.aurum.execution.sizing import lot_size_from_sl_distance
    default = _risky_buy(store, buy_market, sample_config, "acct-1", {})
    halved = _risky_buy(store, buy_market, sample_config, "acct-2", {"risk_per_trade_percent": 0.005})

    assert default["lot_size"] == 0.06
    assert halved["lot_size"] == 0.03
    assert halved["lot_size"] == lot_size_from_sl_distance(1_000.0, 2001.2, halved["stop_loss"],
                                                           risk_pct=0.005, max_lot=0.10)


def test_session_max_drawdown_overrides_config(any_store, flat_market, sample_config):
    from src.aurum.live.session_processor import SessionOutcome
    from src.aurum.live.sessions import SESSIONS
    store = any_store
    strict = _session(store, account_id="acct-1", params={"max_drawdown_percent": 0.05})
    loose = _session(store, account_id="acct-2", user_id="user-2")
    for s in (strict, loose):
        store.update(SESSIONS, {"id": s.id}, {"session_initial_equity": 10_000.0,
                                              "session_peak_equity": 10_000.0})
    _account(store, "acct-1", equity=9_400.0)
    _account(store, "acct-2", equity=9_400.0)

    summary = _processor(store, flat_market, sample_config).run_cycle()

    assert summary.outcomes[strict.id] == SessionOutcome.PAUSED_DRAWDOWN
    assert summary.outcomes[loose.id] == SessionOutcome.HOLD
    alert = _notifications(store, "bot_alert")[0]
    assert "5% limit" in alert["message"]


def test_invalid_session_risk_setting_is_rejected(store):
    from src.aurum.errors import ValidationError
    with pytest.raises(ValidationError):
        _session(store, params={"risk_per_trade_percent": 2})


def _routed_bridge(store, routes, calls):
    """BridgeProvider whose HTTP calls are answered per endpoint."""
    import requests
    from src.aurum.execution.bridge import BridgeProvider
    http = requests.Session()

    def fake_request(method, url, json=None, timeout=None):
        endpoint = url.replace("http://bridge.local", "")
        calls.append(endpoint)
        return routes[endpoint]

    http.request = fake_request
    return BridgeProvider("http://bridge.local", "secret", store=store, retry_delay=0, session=http)


def test_position_stopped_out_at_broker_is_reconciled(any_store, flat_market, sample_config):
    from src.aurum.live.session_processor import SessionOutcome
    from src.aurum.live.sessions import get_session
    store = any_store
    session = _session(store)
    _open_trade(store, session, open_price=2010.0, sl=2005.0, tp=2030.0, ticket="555")
    calls = []
    bridge = _routed_bridge(store, {
        "/account/summary": FakeResponse(200, {"balance": 10_000, "equity": 10_000}),
        "/order/close": FakeResponse(404, {"error": "Position not found"}, "Not Found"),
        "/positions/open": FakeResponse(200, {"positions": []}),
    }, calls)
    processor = _processor(store, flat_market, sample_config, provider=bridge)

    outcomes = [processor.process_session(get_session(store, session.id)) for _ in range(3)]

    assert outcomes == [SessionOutcome.POSITION_CLOSED, SessionOutcome.HOLD, SessionOutcome.HOLD]
    assert calls.count("/order/close") == 3  # one call plus two retries, first cycle only
    row = store.select_one("trades", {"ticket_id": "555"})
    assert row["status"] == "closed"
    assert row["close_price"] == 2005.0
    assert row["profit_loss"] == pytest.approx(-5.0)
    loaded = get_session(store, session.id)
    assert loaded.losing_trades == 1
    assert loaded.total_profit == pytest.approx(-5.0)
    assert len(_notifications(store, "bot_trade_closed")) == 1
    assert store.select("system_logs", {"context": "trade_exit", "log_level": "WARN"})


@pytest.mark.parametrize("positions", [
    FakeResponse(200, {"positions": [{"ticket": 555, "symbol": "XAUUSD", "type": "BUY", "lots": 0.01}]}),
    FakeResponse(500, {"error": "bridge down"}, "Server Error"),
])
def test_failed_close_of_live_position_keeps_it_open_and_notifies(store, flat_market, sample_config, positions):
    from src.aurum.live.session_processor import SessionOutcome
    session = _session(store)
    _open_trade(store, session, open_price=2010.0, sl=2005.0, tp=2030.0, ticket="555")
    bridge = _routed_bridge(store, {
        "/account/summary": FakeResponse(200, {"balance": 10_000, "equity": 10_000}),
        "/order/close": FakeResponse(500, {"error": "trade context busy"}, "Server Error"),
        "/positions/open": positions,
    }, [])

    outcome = _processor(store, flat_market, sample_config, provider=bridge).process_session(session)

    assert outcome == SessionOutcome.POSITION_OPEN
    assert store.select_one("trades", {"ticket_id": "555"})["status"] == "open"
    errors = _notifications(store, "bot_trade_error")
    assert len(errors) == 1 and "trade context busy" in errors[0]["message"]
