"""
Signal inputs and orchestration results.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional

from exchange.models import OrderSide
from position.position import Position, PositionSide, Trade


class SignalType(str, Enum):
    LONG = "LONG"
    SHORT = "SHORT"

    @property
    def order_side(self) -> OrderSide:
        return OrderSide.BUY if self is SignalType.LONG else OrderSide.SELL

    @property
    def position_side(self) -> PositionSide:
        return PositionSide.LONG if self is SignalType.LONG else PositionSide.SHORT


@dataclass(frozen=True)
class SupportResistance:
    support: float
    resistance: float
    pivot_point: Optional[float] = None


@dataclass(frozen=True)
class Signal:
    symbol: str
    direction: SignalType
    confidence: float  # 0-100
    reasons: List[str] = field(default_factory=list)
    indicators: Dict[str, Any] = field(default_factory=dict)
    support_resistance: Optional[SupportResistance] = None

    @property
    def atr_percent(self) -> Optional[float]:
        value = self.indicators.get("atr_percent")
        return float(value) if value else None


@dataclass(frozen=True)
class SignalAnalysis:
    """Entry analysis carried onto the position for later review."""

    indicators: Dict[str, Any] = field(default_factory=dict)
    score: float = 0.0
    llm_agreed: bool = False


@dataclass(frozen=True)
class AccountSnapshot:
    equity: float
    current_exposure: float
    position_count: int


@dataclass(frozen=True)
class ExecutionResult:
    success: bool
    position: Optional[Position] = None
    trade: Optional[Trade] = None
    error: Optional[str] = None

    @classmethod
    def ok(cls, position: Position, trade: Trade) -> "ExecutionResult":
        return cls(True, position=position, trade=trade)

    @classmethod
    def failed(cls, error: str) -> "ExecutionResult":
        return cls(False, error=error)


@dataclass(frozen=True)
class CloseResult:
    success: bool
    trade: Optional[Trade] = None
    realized_pnl: Optional[float] = None
    roe: Optional[float] = None
    error: Optional[str] = None

    @classmethod
    def ok(cls, trade: Trade, realized_pnl: float, roe: float) -> "CloseResult":
        return cls(True, trade=trade, realized_pnl=realized_pnl, roe=roe)

    @classmethod
    def failed(cls, error: str) -> "CloseResult":
        return cls(False, error=error)
