"""
Position sizing from equity, exposure, signal confidence and recent win rate.
"""

from __future__ import annotations

from typing import Optional

from config import risk as risk_config
from config.settings import ExecutionConfig


def confidence_multiplier(confidence: float, config: ExecutionConfig) -> float:
    """
    Scale factor from a 0-100 confidence.

    normalized = (confidence - 50) / 50. Above 0.4 the size grows linearly
    toward max_position_size_boost; below 0.2 (and under 65 absolute) it is cut
    to min_position_size_reduction. In between nothing changes.
    """
    normalized = (confidence - 50) / 50
    boost_ceiling = config.max_position_size_boost
    if normalized > risk_config.CONFIDENCE_BOOST_THRESHOLD:
        boost = 1 + (normalized - risk_config.CONFIDENCE_BOOST_THRESHOLD) * (boost_ceiling - 1) * 0.5
        return min(boost, boost_ceiling)
    if (
        normalized < risk_config.CONFIDENCE_REDUCTION_THRESHOLD
        and confidence < risk_config.CONFIDENCE_REDUCTION_CEILING
    ):
        return config.min_position_size_reduction
    return 1.0


def win_rate_multiplier(recent_win_rate: float, config: ExecutionConfig) -> float:
    if recent_win_rate >= config.high_win_rate_threshold:
        return risk_config.HIGH_WIN_RATE_MULTIPLIER
    if recent_win_rate < risk_config.LOW_WIN_RATE:
        return risk_config.LOW_WIN_RATE_MULTIPLIER
    return 1.0


def compute_position_size(
    equity: float,
    current_exposure: float,
    price: float,
    config: ExecutionConfig,
    confidence: Optional[float] = None,
    recent_win_rate: Optional[float] = None,
) -> float:
    """
    Calculate order quantity.

    notional = fixed position_size_usd, or
               (equity - exposure) * position_size_percent% * adjustments
    qty = clamp(notional, min_position_size_usd, max_position_size_usd) / price
    """
    if config.position_size_usd is not None:
        target_usd = config.position_size_usd
    else:
        size_percent = config.position_size_percent
        if config.dynamic_position_sizing and confidence is not None:
            size_percent *= confidence_multiplier(confidence, config)
        if config.performance_adaptation and recent_win_rate is not None:
            size_percent *= win_rate_multiplier(recent_win_rate, config)
        target_usd = (equity - current_exposure) * size_percent / 100

    target_usd = max(config.min_position_size_usd, target_usd)
    target_usd = min(config.max_position_size_usd, target_usd)

    if price <= 0:
        return 0.0
    return target_usd / price
