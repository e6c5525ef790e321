"""
Configuration loader: YAML + env.
"""
import os
from pathlib import Path
from typing import Any, Dict

import yaml
from dotenv import load_dotenv

load_dotenv()

_ROOT = Path(__file__).resolve().parents[2]
_DEFAULT_PATH = _ROOT / "configs" / "default.yaml"


def load_config(path: str | Path | None = None) -> Dict[str, Any]:
    """Load defaults, merge an optional override YAML, then apply env overrides."""
    merged: Dict[str, Any] = {}
    if _DEFAULT_PATH.exists():
        with open(_DEFAULT_PATH, "r", encoding="utf-8") as f:
            merged = yaml.safe_load(f) or {}

    cfg_path = path or os.getenv("CONFIG_PATH")
    if cfg_path:
        cfg_path = Path(cfg_path)
        if not cfg_path.is_absolute():
            cfg_path = _ROOT / cfg_path
        if cfg_path.exists() and cfg_path.resolve() != _DEFAULT_PATH:
            with open(cfg_path, "r", encoding="utf-8") as f:
                overrides = yaml.safe_load(f) or {}
            _deep_merge(merged, overrides)

    _apply_env(merged)
    return merged


def _apply_env(cfg: Dict[str, Any]) -> None:
    env_map = {
        "TRADE_PROVIDER_TYPE": ("provider", "type", str),
        "MT_BRIDGE_URL": ("provider", "bridge_url", str),
        "MT_BRIDGE_API_KEY": ("provider", "bridge_api_key", str),
        "ALPHA_VANTAGE_API_KEY": ("market_data", "api_key", str),
        "MAX_DRAWDOWN_PCT": ("risk", "max_drawdown", float),
        "STORE_PATH": ("store", "path", str),
        "DATABASE_URL": ("store", "url", str),
        "LOG_LEVEL": ("logging", "level", str),
    }
    for env, (section, key, cast) in env_map.items():
        value = os.getenv(env)
        if value:
            cfg.setdefault(section, {})[key] = cast(value)


def _deep_merge(base: Dict[str, Any], override: Dict[str, Any]) -> None:
    for k, v in override.items():
        if k in base and isinstance(base[k], dict) and isinstance(v, dict):
            _deep_merge(base[k], v)
        else:
            base[k] = v
