"""
Take-profit target selection for new positions.

Targets are ROE percentages; the position monitor turns them into exits.
"""

from __future__ import annotations

from typing import Optional, Tuple

from config import risk as risk_config
from config.settings import ExecutionConfig
from execution.models import Signal


def compute_take_profit(signal: Signal, config: ExecutionConfig) -> Tuple[float, Optional[float]]:
    """
    Return (take_profit_roe, dynamic_tp).

    dynamic_tp = max(take_profit_roe, atr% * atr_tp_multiplier / leverage) when
    dynamic TP is on and the signal carries an ATR. A high-confidence signal uses
    take_profit_roe_high instead, if configured.
    """
    dynamic_tp: Optional[float] = None
    atr_percent = signal.atr_percent
    if config.dynamic_tp_enabled and atr_percent:
        atr_move = atr_percent * config.atr_tp_multiplier / config.leverage
        dynamic_tp = max(config.take_profit_roe, atr_move)

    if signal.confidence >= risk_config.HIGH_CONFIDENCE and config.take_profit_roe_high:
        return config.take_profit_roe_high, dynamic_tp
    return (dynamic_tp or config.take_profit_roe), dynamic_tp
