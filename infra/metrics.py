"""
Metrics observer port.

The exchange client and orchestrators report through a MetricsSink; a failing
sink is logged and ignored so it can never change trading outcomes.
"""

from __future__ import annotations

from collections import defaultdict
from typing import Any, Dict, List, Optional, Tuple

from infra.logger import get_logger

logger = get_logger("Metrics")


class MetricsSink:
    """No-op base sink; subclasses override what they collect."""

    def record_request(self, endpoint: str, status: str) -> None:
        pass

    def observe_latency(self, endpoint: str, latency_ms: float) -> None:
        pass

    def record_error(self, endpoint: str, error_type: str) -> None:
        pass

    def record_trade(
        self,
        agent_id: str,
        symbol: str,
        side: str,
        result: str,
        pnl: Optional[float] = None,
        roe: Optional[float] = None,
        duration_seconds: Optional[float] = None,
    ) -> None:
        pass


class InMemoryMetrics(MetricsSink):
    """Counters and latency samples kept in process memory."""

    def __init__(self) -> None:
        self.requests: Dict[Tuple[str, str], int] = defaultdict(int)
        self.latencies: Dict[str, List[float]] = defaultdict(list)
        self.errors: Dict[Tuple[str, str], int] = defaultdict(int)
        self.trades: Dict[Tuple[str, str, str, str], int] = defaultdict(int)
        self.trade_pnl: List[float] = []

    def record_request(self, endpoint: str, status: str) -> None:
        self.requests[(endpoint, status)] += 1

    def observe_latency(self, endpoint: str, latency_ms: float) -> None:
        self.latencies[endpoint].append(latency_ms)

    def record_error(self, endpoint: str, error_type: str) -> None:
        self.errors[(endpoint, error_type)] += 1

    def record_trade(self, agent_id, symbol, side, result, pnl=None, roe=None, duration_seconds=None) -> None:
        self.trades[(agent_id, symbol, side, result)] += 1
        if pnl is not None:
            self.trade_pnl.append(pnl)


class LoggingMetrics(MetricsSink):
    """Writes every observation to the log at debug level (trades at info)."""

    def __init__(self) -> None:
        self.logger = get_logger("Metrics")

    def record_request(self, endpoint: str, status: str) -> None:
        self.logger.debug("request endpoint=%s status=%s", endpoint, status)

    def observe_latency(self, endpoint: str, latency_ms: float) -> None:
        self.logger.debug("latency endpoint=%s ms=%.1f", endpoint, latency_ms)

    def record_error(self, endpoint: str, error_type: str) -> None:
        self.logger.debug("error endpoint=%s type=%s", endpoint, error_type)

    def record_trade(self, agent_id, symbol, side, result, pnl=None, roe=None, duration_seconds=None) -> None:
        self.logger.info(
            "trade agent=%s symbol=%s side=%s result=%s pnl=%s roe=%s duration=%s",
            agent_id,
            symbol,
            side,
            result,
            pnl,
            roe,
            duration_seconds,
        )


def emit(sink: Optional[MetricsSink], method: str, *args: Any, **kwargs: Any) -> None:
    """Call ``sink.<method>`` and log, rather than raise, any sink failure."""
    if sink is None:
        return
    try:
        getattr(sink, method)(*args, **kwargs)
    except Exception as exc:
        logger.warning("Metrics sink %s.%s failed: %s", type(sink).__name__, method, exc)
