"""
Operator notifications for events that need a human to look at them.

Console/log based; swap the logger handlers to route them elsewhere.
"""

from __future__ import annotations

from infra.logger import get_logger

logger = get_logger("Notifier")


def notify_paper_trade(action: str, symbol: str, side: str, error: str) -> None:
    """Live venue refused the order and a simulated fill was recorded instead."""
    logger.warning("[NOTIFY] PAPER %s %s %s: venue unavailable (%s)", action, side, symbol, error)


def notify_funding_required(message: str) -> None:
    """Account registration is blocked until the wallet is funded."""
    logger.error("[NOTIFY] Funding required: %s", message)
