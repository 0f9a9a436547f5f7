"""
Typed views of exchange payloads and order messages.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple


class OrderSide(str, Enum):
    BUY = "BUY"
    SELL = "SELL"

    @property
    def opposite(self) -> "OrderSide":
        return OrderSide.SELL if self is OrderSide.BUY else OrderSide.BUY


class OrderType(str, Enum):
    MARKET = "MARKET"
    LIMIT = "LIMIT"


class AssetKind(str, Enum):
    PERP = "PERP"
    PERP_OPTION = "PERP_OPTION"


class MarginKind(str, Enum):
    CROSS = "cross"
    ISOLATED = "isolated"


class AuthState(str, Enum):
    UNAUTHENTICATED = "unauthenticated"
    AUTHENTICATING = "authenticating"
    AUTHENTICATED = "authenticated"
    ONBOARDING = "onboarding"


def _opt_float(value: Any) -> Optional[float]:
    if value is None or value == "":
        return None
    return float(value)


@dataclass(frozen=True)
class MarketRule:
    symbol: str
    base_currency: str
    quote_currency: str
    settlement_currency: str
    order_size_increment: str
    price_tick_size: str
    min_notional: float
    max_order_size: float
    position_limit: float
    asset_kind: AssetKind = AssetKind.PERP
    margin_kind: MarginKind = MarginKind.CROSS

    @classmethod
    def from_api(cls, raw: Dict[str, Any]) -> "MarketRule":
        return cls(
            symbol=raw["symbol"],
            base_currency=raw.get("base_currency", ""),
            quote_currency=raw.get("quote_currency", ""),
            settlement_currency=raw.get("settlement_currency", ""),
            order_size_increment=str(raw["order_size_increment"]),
            price_tick_size=str(raw["price_tick_size"]),
            min_notional=float(raw.get("min_notional") or 0),
            max_order_size=float(raw.get("max_order_size") or 0),
            position_limit=float(raw.get("position_limit") or 0),
            asset_kind=AssetKind(raw.get("asset_kind", "PERP")),
            margin_kind=MarginKind(str(raw.get("market_kind", "cross")).lower()),
        )


@dataclass(frozen=True)
class AuthSession:
    token: str
    expires_at: float  # epoch seconds

    def is_usable(self, now: float, margin: float = 60) -> bool:
        return now < self.expires_at - margin


@dataclass(frozen=True)
class OrderRequest:
    symbol: str
    side: OrderSide
    order_type: OrderType
    quantity: float
    price: Optional[float] = None
    reduce_only: bool = False
    time_in_force: Optional[str] = None

    def __post_init__(self) -> None:
        if self.order_type is OrderType.LIMIT and self.price is None:
            raise ValueError("LIMIT orders need a price")
        if self.order_type is OrderType.MARKET and self.time_in_force is not None:
            raise ValueError("time_in_force only applies to LIMIT orders")

    def to_payload(self, size: str, price: Optional[str] = None) -> Dict[str, Any]:
        """Wire body for POST /v1/orders; size/price already formatted for the market."""
        payload: Dict[str, Any] = {
            "market": self.symbol,
            "type": self.order_type.value,
            "side": self.side.value,
            "size": size,
        }
        if self.order_type is OrderType.LIMIT:
            payload["price"] = price
            payload["time_in_force"] = self.time_in_force or "GTC"
        payload["reduce_only"] = self.reduce_only
        return payload


@dataclass(frozen=True)
class OrderResult:
    success: bool
    order_id: Optional[str] = None
    filled_price: Optional[float] = None
    filled_quantity: Optional[float] = None
    fees: Optional[float] = None
    error: Optional[str] = None

    def __post_init__(self) -> None:
        if self.success and self.error is not None:
            raise ValueError("successful OrderResult cannot carry an error")
        if not self.success and (self.order_id is not None or self.filled_price is not None):
            raise ValueError("failed OrderResult cannot carry fill data")

    @classmethod
    def filled(cls, order_id: str, filled_price: float, filled_quantity: float) -> "OrderResult":
        # The venue charges no trading fees.
        return cls(True, order_id, filled_price, filled_quantity, 0.0)

    @classmethod
    def failure(cls, error: str) -> "OrderResult":
        return cls(False, error=error)


@dataclass(frozen=True)
class MarketSummary:
    symbol: str
    mark_price: float
    last_traded_price: Optional[float] = None
    bid: Optional[float] = None
    ask: Optional[float] = None
    funding_rate: Optional[float] = None

    @classmethod
    def from_api(cls, symbol: str, raw: Dict[str, Any]) -> "MarketSummary":
        return cls(
            symbol=raw.get("symbol", symbol),
            mark_price=float(raw["mark_price"]),
            last_traded_price=_opt_float(raw.get("last_traded_price")),
            bid=_opt_float(raw.get("bid")),
            ask=_opt_float(raw.get("ask")),
            funding_rate=_opt_float(raw.get("funding_rate")),
        )


@dataclass(frozen=True)
class OrderBook:
    symbol: str
    bids: List[Tuple[float, float]]
    asks: List[Tuple[float, float]]

    @classmethod
    def from_api(cls, symbol: str, raw: Dict[str, Any]) -> "OrderBook":
        def levels(rows: Any) -> List[Tuple[float, float]]:
            return [(float(price), float(size)) for price, size in rows or []]

        return cls(symbol=raw.get("market", symbol), bids=levels(raw.get("bids")), asks=levels(raw.get("asks")))


@dataclass(frozen=True)
class PublicTrade:
    id: str
    symbol: str
    side: str
    price: float
    size: float
    created_at: int

    @classmethod
    def from_api(cls, raw: Dict[str, Any]) -> "PublicTrade":
        return cls(
            id=str(raw.get("id", "")),
            symbol=raw.get("market", ""),
            side=raw.get("side", ""),
            price=float(raw["price"]),
            size=float(raw["size"]),
            created_at=int(raw.get("created_at", 0)),
        )


@dataclass(frozen=True)
class AccountSummary:
    account: str
    equity: float
    free_collateral: float
    used_margin: float
    unrealized_pnl: float

    @classmethod
    def from_api(cls, raw: Dict[str, Any]) -> "AccountSummary":
        return cls(
            account=raw.get("account", ""),
            equity=float(raw.get("equity") or 0),
            free_collateral=float(raw.get("free_collateral") or 0),
            used_margin=float(raw.get("used_margin") or 0),
            unrealized_pnl=float(raw.get("unrealized_pnl") or 0),
        )


@dataclass(frozen=True)
class ExchangePosition:
    market: str
    side: str  # "LONG" or "SHORT"
    size: float
    entry_price: float
    mark_price: Optional[float]
    liquidation_price: Optional[float]
    unrealized_pnl: float
    realized_pnl: float
    leverage: Optional[float]
    margin: Optional[float]

    @classmethod
    def from_api(cls, raw: Dict[str, Any]) -> "ExchangePosition":
        return cls(
            market=raw["market"],
            side=raw.get("side", ""),
            size=abs(float(raw.get("size") or 0)),
            entry_price=float(raw.get("entry_price") or raw.get("average_entry_price") or 0),
            mark_price=_opt_float(raw.get("mark_price")),
            liquidation_price=_opt_float(raw.get("liquidation_price")),
            unrealized_pnl=float(raw.get("unrealized_pnl") or 0),
            realized_pnl=float(raw.get("realized_pnl") or 0),
            leverage=_opt_float(raw.get("leverage")),
            margin=_opt_float(raw.get("margin")),
        )


@dataclass(frozen=True)
class ExchangeOrder:
    id: str
    market: str
    order_type: str
    side: str
    size: float
    status: str
    filled_size: float
    price: Optional[float] = None
    average_fill_price: Optional[float] = None
    time_in_force: Optional[str] = None
    created_at: Optional[int] = None

    @classmethod
    def from_api(cls, raw: Dict[str, Any]) -> "ExchangeOrder":
        return cls(
            id=str(raw["id"]),
            market=raw.get("market", ""),
            order_type=raw.get("type", ""),
            side=raw.get("side", ""),
            size=float(raw.get("size") or 0),
            status=raw.get("status", ""),
            filled_size=float(raw.get("filled_size") or 0),
            price=_opt_float(raw.get("price")),
            average_fill_price=_opt_float(raw.get("average_fill_price")),
            time_in_force=raw.get("time_in_force"),
            created_at=raw.get("created_at"),
        )

    @property
    def is_filled(self) -> bool:
        return self.status == "FILLED" or (self.size > 0 and self.filled_size >= self.size)

    @property
    def remaining_size(self) -> float:
        return max(0.0, self.size - self.filled_size)
