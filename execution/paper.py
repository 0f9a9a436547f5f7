"""
Paper-trading fallback when the venue is unavailable.
"""

from __future__ import annotations

from typing import Optional

from config.settings import ExecutionConfig
from exchange.errors import is_operational_unavailable

PAPER_PREFIX = "PAPER TRADE"


def should_paper_trade(error: Optional[str], config: Optional[ExecutionConfig] = None) -> bool:
    """Simulate the fill only for regional/service outages, and only when enabled."""
    enabled = config.paper_trading_on_error if config is not None else True
    return enabled and is_operational_unavailable(error)


def paper_reason(reason: str) -> str:
    return f"{PAPER_PREFIX}: {reason}"
