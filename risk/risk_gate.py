"""
Pre-trade checks for opening a new position.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Iterable, Optional

from config import risk as risk_config
from config.settings import ExecutionConfig
from position.position import Position


@dataclass(frozen=True)
class RiskDecision:
    allowed: bool
    reason: Optional[str] = None


def calculate_exposure(positions: Iterable[Position]) -> float:
    """Total margin tied up in open positions."""
    return sum(position.margin_used for position in positions)


def can_open_position(
    equity: float,
    current_exposure: float,
    position_count: int,
    estimated_margin: float,
    config: ExecutionConfig,
) -> RiskDecision:
    """
    Validate a new position. Checks run in order and the first failure wins:

    1. equity >= $10
    2. position_count < max_positions
    3. max exposure (max_exposure_percent of equity) >= $10
    4. current_exposure + estimated_margin <= max exposure
    """
    min_equity = risk_config.MIN_EQUITY_USD
    if equity < min_equity:
        return RiskDecision(False, f"Insufficient equity (${equity:.2f} < ${min_equity:.0f} minimum)")

    if position_count >= config.max_positions:
        return RiskDecision(False, f"Max positions reached ({position_count}/{config.max_positions})")

    max_exposure = equity * config.max_exposure_percent / 100
    if max_exposure < min_equity:
        return RiskDecision(
            False,
            f"Max exposure too low (${max_exposure:.2f} < ${min_equity:.0f} minimum). "
            f"Equity: ${equity:.2f}, Exposure %: {config.max_exposure_percent}%",
        )

    total = current_exposure + estimated_margin
    if total > max_exposure:
        return RiskDecision(
            False,
            f"Exposure limit (${total:.2f} > ${max_exposure:.2f}). "
            f"Current: ${current_exposure:.2f}, New: ${estimated_margin:.2f}, "
            f"Max: ${max_exposure:.2f} ({config.max_exposure_percent}% of ${equity:.2f})",
        )

    return RiskDecision(True)
