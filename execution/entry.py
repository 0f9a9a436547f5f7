"""
Entry execution: size, gate and submit an order for a trading signal.
"""

from __future__ import annotations

import asyncio
from typing import Awaitable, Callable, Optional

from config import risk as risk_config
from config.settings import ExecutionConfig
from exchange.errors import ExchangeError
from exchange.models import OrderResult, OrderSide
from exchange.paradex_client import ParadexClient
from execution.models import AccountSnapshot, ExecutionResult, Signal, SignalAnalysis
from execution.paper import paper_reason, should_paper_trade
from execution.tp_sl import compute_take_profit
from infra.logger import get_logger, log_trade
from infra.metrics import MetricsSink, emit
from infra.notifier import notify_paper_trade
from position.position import Position, Trade, TradeType, new_id, now_ms
from risk.position_sizer import compute_position_size
from risk.risk_gate import can_open_position


class EntryExecutor:
    """
    Opens positions for signals.

    Every call returns an ExecutionResult; nothing raised below this class
    reaches the caller. Positions and trades are handed back, not retained.
    """

    def __init__(
        self,
        client: ParadexClient,
        config: ExecutionConfig,
        agent_id: str,
        user_id: str,
        metrics: Optional[MetricsSink] = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        self.client = client
        self.config = config
        self.agent_id = agent_id
        self.user_id = user_id
        self.metrics = metrics
        self._sleep = sleep
        self.logger = get_logger("EntryExecutor")

    async def execute(
        self,
        signal: Signal,
        account: AccountSnapshot,
        recent_win_rate: Optional[float] = None,
        analysis: Optional[SignalAnalysis] = None,
    ) -> ExecutionResult:
        side = signal.direction.order_side
        try:
            return await self._execute(signal, side, account, recent_win_rate, analysis)
        except Exception as exc:
            self.logger.exception("Order execution failed for %s %s: %s", side.value, signal.symbol, exc)
            emit(self.metrics, "record_trade", self.agent_id, signal.symbol, side.value.lower(), "failure")
            return ExecutionResult.failed(str(exc) or type(exc).__name__)

    async def _execute(
        self,
        signal: Signal,
        side: OrderSide,
        account: AccountSnapshot,
        recent_win_rate: Optional[float],
        analysis: Optional[SignalAnalysis],
    ) -> ExecutionResult:
        symbol = signal.symbol
        config = self.config

        # Warm the rules cache so quantity rounding uses the market's increment.
        await self.client.get_market_info(symbol)
        price = await self.client.get_price(symbol)
        if price <= 0:
            return ExecutionResult.failed(f"Invalid mark price for {symbol}: {price}")

        quantity = compute_position_size(
            account.equity,
            account.current_exposure,
            price,
            config,
            confidence=signal.confidence,
            recent_win_rate=recent_win_rate,
        )
        quantity = self.client.round_quantity(symbol, quantity)
        notional = quantity * price
        margin_required = notional / config.leverage

        decision = can_open_position(
            account.equity, account.current_exposure, account.position_count, margin_required, config
        )
        if not decision.allowed:
            self.logger.info("Entry denied for %s %s: %s", side.value, symbol, decision.reason)
            return ExecutionResult.failed(decision.reason)

        minimum, _ = self.client.min_qty_and_precision(symbol)
        if quantity < minimum:
            return ExecutionResult.failed(f"Quantity too small ({quantity} < {minimum})")

        await self.client.set_leverage(symbol, config.leverage)

        limit_price = self._limit_entry_price(signal, side, price)
        self.logger.info(
            "Executing %s %s %s qty=%s mark=%.6f entry=%.6f notional=%.2f margin=%.2f leverage=%s",
            "LIMIT" if limit_price is not None else "MARKET",
            side.value,
            symbol,
            quantity,
            price,
            limit_price if limit_price is not None else price,
            notional,
            margin_required,
            config.leverage,
        )

        if limit_price is not None:
            result = await self._submit_limit(symbol, side, quantity, limit_price, price)
        else:
            result = await self.client.place_market_order(symbol, side, quantity)

        if not result.success:
            if should_paper_trade(result.error, config):
                self.logger.warning("Execution failed for %s %s, simulating in paper mode: %s", side.value, symbol, result.error)
                notify_paper_trade("OPEN", symbol, side.value, result.error or "")
                return self._open(signal, side, quantity, price, 0.0, analysis, paper=True)
            self.logger.error("Order rejected for %s %s: %s", side.value, symbol, result.error)
            emit(self.metrics, "record_trade", self.agent_id, symbol, side.value.lower(), "failure")
            return ExecutionResult.failed(result.error or "Order failed")

        filled_price = result.filled_price or price
        filled_qty = result.filled_quantity or quantity
        return self._open(signal, side, filled_qty, filled_price, result.fees or 0.0, analysis, paper=False)

    def _limit_entry_price(self, signal: Signal, side: OrderSide, price: float) -> Optional[float]:
        """Limit just inside support (longs) or resistance (shorts), if close enough to mark."""
        levels = signal.support_resistance
        if levels is None:
            return None
        if side is OrderSide.BUY:
            target = levels.support * (1 + risk_config.LIMIT_ENTRY_OFFSET)
        else:
            target = levels.resistance * (1 - risk_config.LIMIT_ENTRY_OFFSET)
        if abs(target - price) / price < risk_config.LIMIT_PROXIMITY:
            return target
        return None

    async def _submit_limit(
        self, symbol: str, side: OrderSide, quantity: float, limit_price: float, mark_price: float
    ) -> OrderResult:
        result = await self.client.place_limit_order(symbol, side, quantity, limit_price)
        if not result.success:
            self.logger.warning("Limit order failed for %s %s, using market order: %s", side.value, symbol, result.error)
            return await self.client.place_market_order(symbol, side, quantity)

        await self._sleep(risk_config.LIMIT_FILL_GRACE_SECONDS)
        if not self.config.confirm_limit_fill:
            return result
        return await self._reconcile_limit(symbol, side, quantity, result, mark_price)

    async def _reconcile_limit(
        self, symbol: str, side: OrderSide, quantity: float, placed: OrderResult, mark_price: float
    ) -> OrderResult:
        """
        Check a resting limit order once after the grace window.

        Filled: use its fill. Still resting: cancel and take the rest at market.
        Status unknown or cancel refused: keep the resting order.
        """
        try:
            order = await self.client.get_order(placed.order_id)
        except ExchangeError as exc:
            self.logger.warning("Limit order %s status unavailable, keeping it: %s", placed.order_id, exc)
            return placed

        limit_fill = order.average_fill_price or placed.filled_price
        if order.is_filled:
            return OrderResult.filled(order.id, limit_fill, order.filled_size or quantity)

        if not await self.client.cancel_order(order.id):
            self.logger.warning("Could not cancel limit order %s, keeping it", order.id)
            return placed

        filled = order.filled_size
        remainder = order.remaining_size if order.size > 0 else quantity
        minimum, _ = self.client.min_qty_and_precision(symbol)
        if filled > 0 and remainder < minimum:
            return OrderResult.filled(order.id, limit_fill, filled)

        self.logger.info("Limit order %s unfilled after grace window, sending market for %s", order.id, remainder)
        market = await self.client.place_market_order(symbol, side, remainder)
        if filled <= 0:
            return market
        if not market.success:
            self.logger.warning("Market top-up failed for %s, keeping partial fill: %s", symbol, market.error)
            return OrderResult.filled(order.id, limit_fill, filled)

        market_qty = market.filled_quantity or remainder
        market_price = market.filled_price or mark_price
        total = filled + market_qty
        average = (filled * limit_fill + market_qty * market_price) / total
        return OrderResult.filled(market.order_id, average, total)

    def _open(
        self,
        signal: Signal,
        side: OrderSide,
        quantity: float,
        price: float,
        fees: float,
        analysis: Optional[SignalAnalysis],
        paper: bool,
    ) -> ExecutionResult:
        config = self.config
        take_profit, dynamic_tp = compute_take_profit(signal, config)
        indicators = analysis.indicators if analysis is not None and analysis.indicators else dict(signal.indicators)

        position = Position.open(
            self.agent_id,
            self.user_id,
            signal.symbol,
            signal.direction.position_side,
            quantity,
            price,
            config.leverage,
            int(config.max_hold_time_minutes * 60 * 1000),
            take_profit=take_profit,
            dynamic_tp=dynamic_tp,
            signal_confidence=signal.confidence,
            entry_reasons=list(signal.reasons),
            entry_indicators=indicators,
            entry_signal_score=analysis.score if analysis is not None else 0.0,
            entry_llm_agreed=analysis.llm_agreed if analysis is not None else False,
            is_paper=paper,
        )

        reason = ", ".join(signal.reasons)
        trade = Trade(
            id=new_id(),
            position_id=position.id,
            agent_id=self.agent_id,
            user_id=self.user_id,
            symbol=signal.symbol,
            side=side.value.lower(),
            type=TradeType.OPEN,
            quantity=quantity,
            price=price,
            realized_pnl=0.0,
            fees=fees,
            reason=paper_reason(reason) if paper else reason,
            executed_at=now_ms(),
        )

        log_trade(
            self.agent_id,
            self.user_id,
            symbol=trade.symbol,
            side=trade.side,
            type=trade.type.value,
            quantity=quantity,
            price=price,
            reason=trade.reason,
        )
        emit(self.metrics, "record_trade", self.agent_id, trade.symbol, trade.side, "paper" if paper else "success")
        self.logger.info(
            "%sPosition opened: %s %s qty=%s entry=%.6f tp_roe=%.2f margin=%.2f",
            "PAPER " if paper else "",
            position.side.value,
            position.symbol,
            position.size,
            position.entry_price,
            take_profit,
            position.margin_used,
        )
        return ExecutionResult.ok(position, trade)
