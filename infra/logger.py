"""
Simple structured logger for console and file output.
"""

from __future__ import annotations

import logging
import os
import sys
from datetime import datetime, timezone
from typing import Any, Optional


LOG_FORMAT = "%(asctime)s | %(levelname)s | %(name)s | %(message)s"
ROOT_NAME = "perp_exec"


def _level_from_env() -> int:
    name = os.getenv("LOG_LEVEL", "INFO").upper()
    return getattr(logging, name, logging.INFO)


def get_logger(name: Optional[str] = None, level: Optional[int] = None) -> logging.Logger:
    """
    Return a configured logger instance.

    Ensures handlers are attached only once to avoid duplicate logs. Setting
    LOG_DIR to an empty string keeps output on the console only.
    """
    logger = logging.getLogger(name if name else ROOT_NAME)
    if not logger.handlers:
        console_handler = logging.StreamHandler(sys.stdout)
        console_handler.setFormatter(logging.Formatter(LOG_FORMAT))
        logger.addHandler(console_handler)

        # File handler (daily folder: <LOG_DIR>/YYYY-MM-DD/exec-HHMMSS-<pid>.log)
        log_root = os.getenv("LOG_DIR", "logs")
        if log_root:
            now = datetime.now(timezone.utc)
            log_dir = os.path.join(log_root, now.strftime("%Y-%m-%d"))
            os.makedirs(log_dir, exist_ok=True)
            file_path = os.path.join(log_dir, f"exec-{now.strftime('%H%M%S')}-{os.getpid()}.log")
            file_handler = logging.FileHandler(file_path, encoding="utf-8")
            file_handler.setFormatter(logging.Formatter(LOG_FORMAT))
            logger.addHandler(file_handler)

        logger.setLevel(level if level is not None else _level_from_env())
        logger.propagate = False
    return logger


def log_trade(agent_id: str, user_id: str, **fields: Any) -> None:
    """Emit one trade ledger line with sorted key=value pairs."""
    body = " ".join(f"{key}={fields[key]}" for key in sorted(fields))
    get_logger("Trades").info("agent=%s user=%s %s", agent_id, user_id, body)
