"""
Position and trade-ledger models for leveraged futures positions.
"""

from __future__ import annotations

import time
import uuid
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional


class PositionSide(str, Enum):
    LONG = "long"
    SHORT = "short"


class TradeType(str, Enum):
    OPEN = "open"
    CLOSE = "close"


def now_ms() -> int:
    return int(time.time() * 1000)


def new_id() -> str:
    return str(uuid.uuid4())


def realized_pnl(side: PositionSide, entry_price: float, exit_price: float, size: float) -> float:
    if side is PositionSide.LONG:
        return (exit_price - entry_price) * size
    return (entry_price - exit_price) * size


def return_on_equity(pnl: float, margin: float) -> float:
    """P&L as a percent of margin; 0 when there is no margin."""
    return (pnl / margin) * 100 if margin > 0 else 0.0


@dataclass
class Position:
    id: str
    agent_id: str
    user_id: str
    symbol: str
    side: PositionSide
    size: float
    entry_price: float
    current_price: float
    leverage: float
    margin_used: float
    opened_at: int  # epoch ms
    updated_at: int  # epoch ms
    max_hold_time_ms: int
    original_size: float
    unrealized_pnl: float = 0.0
    unrealized_roe: float = 0.0
    highest_roe: float = 0.0
    lowest_roe: float = 0.0
    stop_loss: Optional[float] = None
    take_profit: Optional[float] = None
    trailing_activated: bool = False
    trailing_stop_price: Optional[float] = None
    partial_profit_taken: bool = False
    dynamic_tp: Optional[float] = None
    # Signal metadata kept for later learning/analysis.
    signal_confidence: float = 0.0
    llm_confidence: float = 0.0
    entry_reasons: List[str] = field(default_factory=list)
    entry_indicators: Dict[str, Any] = field(default_factory=dict)
    entry_signal_score: float = 0.0
    entry_llm_agreed: bool = False
    is_paper: bool = False

    @classmethod
    def open(
        cls,
        agent_id: str,
        user_id: str,
        symbol: str,
        side: PositionSide,
        size: float,
        entry_price: float,
        leverage: float,
        max_hold_time_ms: int,
        **metadata: Any,
    ) -> "Position":
        """New position at entry; margin is derived from size, price and leverage."""
        opened = now_ms()
        return cls(
            id=new_id(),
            agent_id=agent_id,
            user_id=user_id,
            symbol=symbol,
            side=side,
            size=size,
            entry_price=entry_price,
            current_price=entry_price,
            leverage=leverage,
            margin_used=size * entry_price / leverage,
            opened_at=opened,
            updated_at=opened,
            max_hold_time_ms=max_hold_time_ms,
            original_size=size,
            **metadata,
        )

    def pnl_at(self, price: float) -> float:
        return realized_pnl(self.side, self.entry_price, price, self.size)


@dataclass(frozen=True)
class Trade:
    id: str
    position_id: str
    agent_id: str
    user_id: str
    symbol: str
    side: str  # "buy" or "sell"
    type: TradeType
    quantity: float
    price: float
    realized_pnl: Optional[float]
    fees: float
    reason: str
    executed_at: int  # epoch ms

    def __post_init__(self) -> None:
        if self.type is TradeType.OPEN and self.realized_pnl != 0:
            raise ValueError("open trades carry realized_pnl == 0")
        if self.type is TradeType.CLOSE and self.realized_pnl is None:
            raise ValueError("close trades must carry realized_pnl")
