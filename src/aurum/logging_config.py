"""
Logging setup from config: stdout always, plus a log file when
logging.file_path (or env AURUM_LOG_FILE) is set.
"""
import logging
import os
import sys
from pathlib import Path
from typing import Any, Dict


def setup_logging(cfg: Dict[str, Any] | None = None) -> None:
    log_cfg = (cfg or {}).get("logging", {})
    level = getattr(logging, str(log_cfg.get("level", "INFO")).upper(), logging.INFO)
    fmt = log_cfg.get("format", "%(asctime)s - %(name)s - %(levelname)s - %(message)s")

    logging.basicConfig(level=level, format=fmt, stream=sys.stdout, force=True)
    # urllib3 logs every pooled connection at DEBUG
    logging.getLogger("urllib3").setLevel(max(level, logging.INFO))

    file_path = os.environ.get("AURUM_LOG_FILE") or log_cfg.get("file_path")
    if not file_path:
        return
    path = Path(file_path)
    try:
        path.parent.mkdir(parents=True, exist_ok=True)
        handler = logging.FileHandler(path, mode="a", encoding="utf-8")
    except OSError as e:
        logging.getLogger(__name__).warning("Could not open log file %s: %s", path, e)
        return
    handler.setFormatter(logging.Formatter(fmt))
    logging.getLogger().addHandler(handler)
