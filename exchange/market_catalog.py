"""
Per-symbol trading rules cache and quantity/price quantisation.
"""

from __future__ import annotations

import asyncio
import time
from decimal import ROUND_DOWN, Decimal
from typing import Awaitable, Callable, Dict, List, Optional, Tuple

from config import risk as risk_config
from exchange.models import MarketRule
from infra.logger import get_logger

FALLBACK_MIN_QTY = 0.001
FALLBACK_QTY_PRECISION = 3
FALLBACK_PRICE_TICK = "0.01"

MarketFetcher = Callable[[], Awaitable[List[MarketRule]]]


def precision_from_increment(increment: str) -> int:
    """Digits after the decimal point of an increment; 0 when it is integral."""
    text = format(Decimal(str(increment)).normalize(), "f")
    if "." in text:
        return len(text.split(".")[1])
    return 0


def _decimal(value: float) -> Decimal:
    return Decimal(str(value))


class MarketCatalog:
    """
    Symbol -> MarketRule cache refreshed on a TTL.

    Reads that miss or find the cache stale refresh it first. The mapping is
    swapped in one assignment, so readers never see a half-built cache.
    """

    def __init__(
        self,
        fetch: MarketFetcher,
        ttl_seconds: float = risk_config.MARKET_CACHE_TTL_SECONDS,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._fetch = fetch
        self.ttl_seconds = ttl_seconds
        self._clock = clock
        self._rules: Dict[str, MarketRule] = {}
        self._fetched_at: Optional[float] = None
        self._refreshing: Optional[asyncio.Task] = None
        self.logger = get_logger("MarketCatalog")

    @property
    def is_stale(self) -> bool:
        return self._fetched_at is None or self._clock() - self._fetched_at > self.ttl_seconds

    async def refresh(self) -> None:
        """Replace the whole cache; concurrent callers share one fetch."""
        task = self._refreshing
        if task is None or task.done():
            task = asyncio.ensure_future(self._load())
            self._refreshing = task
        try:
            await asyncio.shield(task)
        finally:
            if self._refreshing is task and task.done():
                self._refreshing = None

    async def _load(self) -> None:
        rules = await self._fetch()
        self._rules = {rule.symbol: rule for rule in rules}
        self._fetched_at = self._clock()
        self.logger.info("Loaded %s markets", len(rules))

    async def get(self, symbol: str) -> Optional[MarketRule]:
        if symbol not in self._rules or self.is_stale:
            await self.refresh()
        return self._rules.get(symbol)

    async def all(self) -> List[MarketRule]:
        if self.is_stale:
            await self.refresh()
        return list(self._rules.values())

    def peek(self, symbol: str) -> Optional[MarketRule]:
        """Cached rule without refreshing."""
        return self._rules.get(symbol)

    def min_qty_and_precision(self, symbol: str) -> Tuple[float, int]:
        rule = self._rules.get(symbol)
        if rule is None:
            return FALLBACK_MIN_QTY, FALLBACK_QTY_PRECISION
        return float(rule.order_size_increment), precision_from_increment(rule.order_size_increment)

    def round_quantity(self, symbol: str, quantity: float) -> float:
        """Truncate toward zero at the symbol precision, never below the minimum."""
        minimum, precision = self.min_qty_and_precision(symbol)
        step = Decimal(1).scaleb(-precision)
        truncated = _decimal(quantity).quantize(step, rounding=ROUND_DOWN)
        return max(minimum, float(truncated))

    def format_quantity(self, symbol: str, quantity: float) -> str:
        _, precision = self.min_qty_and_precision(symbol)
        rounded = _decimal(self.round_quantity(symbol, quantity))
        if precision == 0:
            return str(int(rounded))
        return f"{rounded:.{precision}f}"

    def _tick(self, symbol: str) -> str:
        rule = self._rules.get(symbol)
        return rule.price_tick_size if rule is not None else FALLBACK_PRICE_TICK

    def round_price(self, symbol: str, price: float) -> float:
        return float(self._floor_to_tick(price, self._tick(symbol)))

    def format_price(self, symbol: str, price: float) -> str:
        tick = self._tick(symbol)
        precision = precision_from_increment(tick)
        return f"{self._floor_to_tick(price, tick):.{precision}f}"

    @staticmethod
    def _floor_to_tick(price: float, tick: str) -> Decimal:
        step = Decimal(tick)
        return (_decimal(price) // step) * step
