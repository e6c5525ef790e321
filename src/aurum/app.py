"""
CLI entrypoint: backtest, fetch, cycle, start, stop, report, account.

    python -m src.aurum.app backtest --csv data/xauusd_15m.csv --mode SMA_ONLY
    python -m src.aurum.app cycle
"""
import argparse
import json
import os
import sys
from datetime import datetime

from src.aurum.config import load_config
from src.aurum.logging_config import setup_logging


def _store(cfg):
    from src.aurum.db.sql_store import SqlStore
    return SqlStore.from_config(cfg)


def _date(value):
    return datetime.fromisoformat(value) if value else None


def cmd_backtest(args: argparse.Namespace) -> int:
    from src.aurum.backtest.engine import run_backtest
    from src.aurum.backtest.report import report_text
    from src.aurum.data.candles import load_candles, load_csv
    from src.aurum.execution.sizing import risk_levels_from_config
    from src.aurum.strategies.params import StrategyParameters

    cfg = load_config(args.config)
    setup_logging(cfg)
    bt = cfg.get("backtest", {})
    symbol = args.symbol or cfg.get("symbol", "XAUUSD")
    timeframe = args.timeframe or cfg.get("timeframe", "15min")
    store = _store(cfg)
    candles = load_csv(args.csv) if args.csv else load_candles(store, symbol, timeframe)
    params = StrategyParameters.from_dict(json.loads(args.params) if args.params else None,
                                          base=StrategyParameters.from_dict(cfg.get("strategy")))
    report = run_backtest(
        candles,
        start=_date(args.start),
        end=_date(args.end),
        mode=args.mode or bt.get("mode", "ADAPTIVE"),
        params=params,
        commission_per_lot=float(bt.get("commission_per_lot", 0.0) if args.commission is None else args.commission),
        slippage_points=float(bt.get("slippage_points", 0.0) if args.slippage is None else args.slippage),
        risk_level=args.risk_level or bt.get("risk_level", "conservative"),
        risk_levels=risk_levels_from_config(cfg),
        symbol=symbol,
        timeframe=timeframe,
        store=store if args.save else None,
        user_id=args.user,
    )
    print(report_text(report))
    if report.id:
        print(f"Saved as {report.id}")
    return 0


def cmd_fetch(args: argparse.Namespace) -> int:
    from src.aurum.data.candles import store_candles
    from src.aurum.io.market_data import MarketDataClient

    cfg = load_config(args.config)
    setup_logging(cfg)
    symbol = args.symbol or cfg.get("symbol", "XAUUSD")
    timeframe = args.timeframe or cfg.get("timeframe", "15min")
    client = MarketDataClient.from_config(cfg)
    df = client.get_candles(symbol, timeframe, args.size)
    n = store_candles(_store(cfg), symbol, timeframe, df)
    print(f"{symbol} {timeframe}: {n} candles stored")
    return 0


def cmd_cycle(args: argparse.Namespace) -> int:
    from src.aurum.execution.provider import select_provider
    from src.aurum.io.market_data import MarketDataClient
    from src.aurum.live.session_processor import SessionProcessor

    cfg = load_config(args.config)
    setup_logging(cfg)
    store = _store(cfg)
    market_data = MarketDataClient.from_config(cfg)
    provider = select_provider(cfg, store, market_data.get_current_price)
    summary = SessionProcessor(store, provider, market_data, config=cfg).run_cycle()
    for session_id, outcome in summary.outcomes.items():
        print(f"{session_id}: {outcome.value}")
    return 1 if summary.errors else 0


def cmd_start(args: argparse.Namespace) -> int:
    from src.aurum.execution.sizing import risk_levels_from_config
    from src.aurum.live.sessions import start_session

    cfg = load_config(args.config)
    setup_logging(cfg)
    session = start_session(
        _store(cfg),
        user_id=args.user,
        account_id=args.account,
        risk_level=args.risk_level,
        strategy_mode=args.mode,
        strategy_params=json.loads(args.params) if args.params else None,
        symbol=args.symbol or cfg.get("symbol", "XAUUSD"),
        timeframe=args.timeframe or cfg.get("timeframe", "15min"),
        risk_levels=risk_levels_from_config(cfg),
    )
    print(session.id)
    return 0


def cmd_stop(args: argparse.Namespace) -> int:
    from src.aurum.live.sessions import stop_session

    cfg = load_config(args.config)
    setup_logging(cfg)
    return 0 if stop_session(_store(cfg), args.session_id) else 1


def cmd_account(args: argparse.Namespace) -> int:
    from getpass import getpass

    from src.aurum.live.accounts import upsert_trading_account

    cfg = load_config(args.config)
    setup_logging(cfg)
    password = os.getenv("TRADING_ACCOUNT_PASSWORD") or getpass("Trading account password: ")
    account = upsert_trading_account(
        _store(cfg),
        user_id=args.user,
        platform=args.platform,
        server_name=args.server,
        login_id=args.login,
        password=password,
        account_id=args.account_id,
    )
    print(account["id"])
    return 0


def cmd_report(args: argparse.Namespace) -> int:
    from src.aurum.backtest.report import report_text
    from src.aurum.backtest.repository import get_report, list_reports

    cfg = load_config(args.config)
    setup_logging(cfg)
    store = _store(cfg)
    if args.report_id:
        report = get_report(store, args.report_id)
        if report is None:
            print(f"Report {args.report_id} not found")
            return 1
        print(report_text(report))
        return 0
    for r in list_reports(store, args.user):
        print(f"{r.id}  {r.symbol} {r.timeframe} {r.strategy_mode.value}  trades={r.total_trades} "
              f"P&L={r.total_profit_loss:.2f} win={r.win_rate:.2f}%")
    return 0


def main() -> int:
    parser = argparse.ArgumentParser(prog="aurum", description="aurum XAUUSD strategy engine")
    parser.add_argument("--config", "-c", default=None, help="Path to YAML config")
    sub = parser.add_subparsers(dest="command", required=True)

    modes = ["ADAPTIVE", "SMA_ONLY", "MEAN_REVERSION_ONLY", "BREAKOUT_ONLY"]

    backtest_p = sub.add_parser("backtest", help="Run a backtest on CSV or stored candles")
    backtest_p.add_argument("--csv", default=None, help="CSV with timestamp,open,high,low,close[,volume]")
    backtest_p.add_argument("--symbol", "-s", default=None)
    backtest_p.add_argument("--timeframe", "-t", default=None)
    backtest_p.add_argument("--start", default=None, help="ISO date/time")
    backtest_p.add_argument("--end", default=None, help="ISO date/time")
    backtest_p.add_argument("--mode", "-m", choices=modes, default=None)
    backtest_p.add_argument("--params", default=None, help="JSON strategy parameter overrides")
    backtest_p.add_argument("--risk-level", default=None)
    backtest_p.add_argument("--commission", type=float, default=None, help="Commission per lot")
    backtest_p.add_argument("--slippage", type=float, default=None, help="Slippage in price points")
    backtest_p.add_argument("--save", action="store_true", help="Persist report and trades to the store")
    backtest_p.add_argument("--user", default=None)
    backtest_p.set_defaults(func=cmd_backtest)

    fetch_p = sub.add_parser("fetch", help="Fetch intraday candles into the store")
    fetch_p.add_argument("--symbol", "-s", default=None)
    fetch_p.add_argument("--timeframe", "-t", default=None)
    fetch_p.add_argument("--size", type=int, default=100)
    fetch_p.set_defaults(func=cmd_fetch)

    cycle_p = sub.add_parser("cycle", help="Run one processing pass over all active bot sessions")
    cycle_p.set_defaults(func=cmd_cycle)

    start_p = sub.add_parser("start", help="Start a bot session")
    start_p.add_argument("--user", required=True)
    start_p.add_argument("--account", required=True)
    start_p.add_argument("--risk-level", default="conservative")
    start_p.add_argument("--mode", "-m", choices=modes, default="ADAPTIVE")
    start_p.add_argument("--params", default=None, help="JSON strategy parameter overrides")
    start_p.add_argument("--symbol", "-s", default=None)
    start_p.add_argument("--timeframe", "-t", default=None)
    start_p.set_defaults(func=cmd_start)

    stop_p = sub.add_parser("stop", help="Stop a bot session")
    stop_p.add_argument("session_id")
    stop_p.set_defaults(func=cmd_stop)

    report_p = sub.add_parser("report", help="Show a stored backtest report, or list them")
    report_p.add_argument("report_id", nargs="?", default=None)
    report_p.add_argument("--user", default=None)
    report_p.set_defaults(func=cmd_report)

    account_p = sub.add_parser("account", help="Add or update a trading account",
                               description="Password is read from TRADING_ACCOUNT_PASSWORD or prompted for.")
    account_p.add_argument("--user", required=True)
    account_p.add_argument("--platform", choices=["MT4", "MT5"], required=True)
    account_p.add_argument("--server", required=True)
    account_p.add_argument("--login", required=True)
    account_p.add_argument("--account-id", default=None, help="Update this account instead of adding one")
    account_p.set_defaults(func=cmd_account)

    args = parser.parse_args()
    return args.func(args)


if __name__ == "__main__":
    sys.exit(main())
