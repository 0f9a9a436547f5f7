"""
Position close: reduce-only market exit with realized P&L bookkeeping.
"""

from __future__ import annotations

import time
from typing import Callable, Optional

from config.settings import ExecutionConfig
from exchange.models import OrderSide
from exchange.paradex_client import ParadexClient
from execution.models import CloseResult
from execution.paper import paper_reason, should_paper_trade
from infra.logger import get_logger, log_trade
from infra.metrics import MetricsSink, emit
from infra.notifier import notify_paper_trade
from position.position import Position, PositionSide, Trade, TradeType, new_id, realized_pnl, return_on_equity


class PositionCloser:
    """Closes positions at market. Without a config, paper fallback stays on."""

    def __init__(
        self,
        client: ParadexClient,
        agent_id: str,
        user_id: str,
        config: Optional[ExecutionConfig] = None,
        metrics: Optional[MetricsSink] = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.client = client
        self.agent_id = agent_id
        self.user_id = user_id
        self.config = config
        self.metrics = metrics
        self._clock = clock
        self.logger = get_logger("PositionCloser")

    async def close(self, position: Position, reason: str) -> CloseResult:
        try:
            return await self._close(position, reason)
        except Exception as exc:
            self.logger.exception("Close position failed for %s %s: %s", position.side.value, position.symbol, exc)
            emit(
                self.metrics,
                "record_trade",
                self.agent_id,
                position.symbol,
                _close_side(position).value.lower(),
                "failure",
            )
            return CloseResult.failed(str(exc) or type(exc).__name__)

    async def _close(self, position: Position, reason: str) -> CloseResult:
        symbol = position.symbol
        close_side = _close_side(position)
        price = await self.client.get_price(symbol)

        result = await self.client.place_market_order(symbol, close_side, position.size, reduce_only=True)
        if not result.success:
            if should_paper_trade(result.error, self.config):
                self.logger.warning("Close order failed for %s, simulating in paper mode: %s", symbol, result.error)
                notify_paper_trade("CLOSE", symbol, close_side.value, result.error or "")
                return self._record(position, close_side, price, 0.0, paper_reason(reason), "paper")
            self.logger.error("Close order rejected for %s: %s", symbol, result.error)
            emit(self.metrics, "record_trade", self.agent_id, symbol, close_side.value.lower(), "failure")
            return CloseResult.failed(result.error or "Close order failed")

        exit_price = result.filled_price or price
        return self._record(position, close_side, exit_price, result.fees or 0.0, reason, "success")

    def _record(
        self,
        position: Position,
        close_side: OrderSide,
        exit_price: float,
        fees: float,
        reason: str,
        outcome: str,
    ) -> CloseResult:
        pnl = realized_pnl(position.side, position.entry_price, exit_price, position.size)
        roe = return_on_equity(pnl, position.margin_used)
        now = self._clock()
        duration_seconds = max(0.0, now - position.opened_at / 1000)

        trade = Trade(
            id=new_id(),
            position_id=position.id,
            agent_id=self.agent_id,
            user_id=self.user_id,
            symbol=position.symbol,
            side=close_side.value.lower(),
            type=TradeType.CLOSE,
            quantity=position.size,
            price=exit_price,
            realized_pnl=pnl,
            fees=fees,
            reason=reason,
            executed_at=int(now * 1000),
        )

        log_trade(
            self.agent_id,
            self.user_id,
            symbol=trade.symbol,
            side=trade.side,
            type=trade.type.value,
            quantity=trade.quantity,
            price=exit_price,
            pnl=round(pnl, 6),
            reason=reason,
        )
        emit(
            self.metrics,
            "record_trade",
            self.agent_id,
            trade.symbol,
            trade.side,
            outcome,
            pnl=pnl,
            roe=roe,
            duration_seconds=duration_seconds,
        )
        self.logger.info(
            "%sPosition closed: %s $%.2f %s %s entry=%.6f exit=%.6f roe=%.2f%% hold=%.1fmin reason=%s",
            "PAPER " if outcome == "paper" else "",
            "WIN" if pnl > 0 else "LOSS",
            pnl,
            position.side.value,
            position.symbol,
            position.entry_price,
            exit_price,
            roe,
            duration_seconds / 60,
            reason,
        )
        return CloseResult.ok(trade, pnl, roe)


def _close_side(position: Position) -> OrderSide:
    opened = OrderSide.BUY if position.side is PositionSide.LONG else OrderSide.SELL
    return opened.opposite
