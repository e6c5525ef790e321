"""
Smoke test: load config, build strategy parameters from it, backtest a CSV through the CLI.
"""
import numpy as np


def test_config_defaults_match_strategy_parameters():
    from src.aurum.config import load_config
    from src.aurum.strategies.params import StrategyParameters
    cfg = load_config()
    assert cfg["symbol"] == "XAUUSD"
    assert StrategyParameters.from_dict(cfg["strategy"]) == StrategyParameters()
    assert cfg["backtest"]["mode"] == "ADAPTIVE"


def test_env_overrides_config(monkeypatch):
    from src.aurum.config import load_config
    monkeypatch.setenv("MAX_DRAWDOWN_PCT", "0.2")
    monkeypatch.setenv("TRADE_PROVIDER_TYPE", "METATRADER")
    monkeypatch.setenv("DATABASE_URL", "sqlite:///:memory:")
    cfg = load_config()
    assert cfg["risk"]["max_drawdown"] == 0.2
    assert cfg["store"]["url"] == "sqlite:///:memory:"
    assert cfg["provider"]["type"] == "METATRADER"


def test_camel_case_parameters_accepted():
    from src.aurum.strategies.params import StrategyParameters
    params = StrategyParameters.from_dict({"smaShortPeriod": 10, "atrMultiplierSL": "2.0"})
    assert params.sma_short == 10
    assert params.atr_sl_multiplier == 2.0


def test_cli_backtest_on_csv(tmp_path, monkeypatch, capsys):
    from src.aurum import app
    from tests.conftest import build_candles
    rng = np.random.default_rng(7)
    candles = build_candles(2000 + np.cumsum(rng.normal(0, 2.0, 300)))
    csv = tmp_path / "xauusd_15m.csv"
    candles.reset_index().to_csv(csv, index=False)

    monkeypatch.setenv("STORE_PATH", str(tmp_path / "store.db"))
    monkeypatch.delenv("DATABASE_URL", raising=False)
    monkeypatch.delenv("CONFIG_PATH", raising=False)
    monkeypatch.setattr("sys.argv", ["aurum", "backtest", "--csv", str(csv), "--mode", "SMA_ONLY", "--save"])

    assert app.main() == 0
    out = capsys.readouterr().out
    assert "Backtest Report" in out
    assert "XAUUSD 15min SMA_ONLY" in out
    assert "Saved as" in out
    assert (tmp_path / "store.db").exists()

    report_id = out.split("Saved as ")[1].split()[0]
    monkeypatch.setattr("sys.argv", ["aurum", "report", report_id])
    assert app.main() == 0
    assert "Backtest Report" in capsys.readouterr().out


def test_log_file_from_env(tmp_path, monkeypatch):
    import logging
    from src.aurum.logging_config import setup_logging
    log_file = tmp_path / "logs" / "run.log"
    monkeypatch.setenv("AURUM_LOG_FILE", str(log_file))
    setup_logging({"logging": {"level": "INFO"}})
    logging.getLogger("src.aurum.smoke").info("hello from smoke test")
    for handler in logging.getLogger().handlers:
        handler.flush()
    assert "hello from smoke test" in log_file.read_text(encoding="utf-8")


def test_log_file_from_config_is_used_as_given(tmp_path, monkeypatch):
    import logging
    from src.aurum.logging_config import setup_logging
    monkeypatch.delenv("AURUM_LOG_FILE", raising=False)
    log_file = tmp_path / "aurum.log"
    setup_logging({"logging": {"level": "DEBUG", "file_path": str(log_file)}})
    logging.getLogger("src.aurum.smoke").debug("debug line")
    for handler in logging.getLogger().handlers:
        handler.flush()
    assert [p.name for p in tmp_path.iterdir()] == ["aurum.log"]
    assert "debug line" in log_file.read_text(encoding="utf-8")


def test_cli_account_stores_encrypted_password(tmp_path, monkeypatch, capsys):
    from src.aurum import app
    from src.aurum.db.sql_store import SqlStore
    from src.aurum.live.accounts import account_credentials
    from src.aurum.utils.crypto import generate_key, load_key
    enc_key = generate_key()
    monkeypatch.setenv("TRADING_ACCOUNT_ENC_KEY", enc_key)
    monkeypatch.setenv("TRADING_ACCOUNT_PASSWORD", "broker-pw")
    monkeypatch.setenv("STORE_PATH", str(tmp_path / "store.db"))
    monkeypatch.delenv("DATABASE_URL", raising=False)
    monkeypatch.delenv("CONFIG_PATH", raising=False)
    monkeypatch.setattr("sys.argv", ["aurum", "account", "--user", "u1", "--platform", "MT5",
                                     "--server", "Broker-Demo", "--login", "42"])

    assert app.main() == 0
    account_id = capsys.readouterr().out.strip().splitlines()[-1]
    store = SqlStore(f"sqlite:///{tmp_path / 'store.db'}")
    assert "broker-pw" not in store.select_one("trading_accounts", {"id": account_id})["password_encrypted"]
    assert account_credentials(store, account_id, key=load_key(enc_key)).password == "broker-pw"
