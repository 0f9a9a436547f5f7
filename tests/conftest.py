"""Shared fixtures: scripted exchange responses, client and market rules. No network calls."""

import asyncio
import json
import os
from types import SimpleNamespace
from typing import Any, Dict, List, Optional
from unittest.mock import AsyncMock, MagicMock

import pytest

# Console-only logging for the test run.
os.environ["LOG_DIR"] = ""

from config.settings import ExchangeSettings, load_exchange_settings  # noqa: E402
from exchange.market_catalog import MarketCatalog  # noqa: E402
from exchange.models import MarketRule, OrderResult  # noqa: E402
from exchange.paradex_client import ParadexClient  # noqa: E402
from infra.metrics import InMemoryMetrics  # noqa: E402

NOW = 1_700_000_000.0

BTC_MARKET = {
    "symbol": "BTC-USD-PERP",
    "base_currency": "BTC",
    "quote_currency": "USD",
    "settlement_currency": "USDC",
    "order_size_increment": "0.001",
    "price_tick_size": "0.1",
    "min_notional": "10",
    "max_order_size": "100",
    "position_limit": "500",
    "asset_kind": "PERP",
    "market_kind": "cross",
}

ETH_MARKET = dict(
    BTC_MARKET,
    symbol="ETH-USD-PERP",
    base_currency="ETH",
    order_size_increment="0.01",
    price_tick_size="0.01",
)


def make_response(status: int = 200, payload: Any = None, text: Optional[str] = None) -> MagicMock:
    """Stand-in for requests.Response."""
    if text is None:
        text = json.dumps(payload) if payload is not None else ""
    response = MagicMock()
    response.status_code = status
    response.text = text
    response.content = text.encode("utf-8")
    if payload is not None:
        response.json.return_value = payload
    else:
        response.json.side_effect = ValueError("No JSON object could be decoded")
    return response


class FakeExchange:
    """
    Replaces Session.request. Responses are queued per (method, path); the last
    one repeats. Queued exceptions are raised instead of returned.
    """

    def __init__(self, base_url: str) -> None:
        self.base_url = base_url
        self.routes: Dict[tuple, List[Any]] = {}
        self.calls: List[SimpleNamespace] = []

    def add(self, method: str, path: str, *responses: Any) -> None:
        self.routes[(method, path)] = list(responses)

    def __call__(self, method, url, params=None, data=None, headers=None, timeout=None):
        path = url[len(self.base_url):]
        self.calls.append(
            SimpleNamespace(method=method, path=path, params=params, data=data, headers=headers or {})
        )
        queue = self.routes.get((method, path))
        if not queue:
            return make_response(404, text=f"no route for {method} {path}")
        outcome = queue.pop(0) if len(queue) > 1 else queue[0]
        if isinstance(outcome, BaseException):
            raise outcome
        return outcome

    def calls_to(self, method: str, path: str) -> List[SimpleNamespace]:
        return [call for call in self.calls if call.method == method and call.path == path]


@pytest.fixture(autouse=True)
def _clean_env(monkeypatch):
    for key in list(os.environ):
        if key.startswith(("PARADEX_", "SCALPER_")) or key == "REQUEST_TIMEOUT":
            monkeypatch.delenv(key, raising=False)


@pytest.fixture(autouse=True)
def no_backoff(monkeypatch):
    sleep = AsyncMock()
    monkeypatch.setattr("infra.retry._sleep", sleep)
    return sleep


@pytest.fixture
def settings() -> ExchangeSettings:
    return load_exchange_settings(
        {
            "enabled": True,
            "environment": "testnet",
            "private_key": "0x" + "11" * 32,
            "account_address": "0xacc0",
            "ethereum_address": "0xeth0",
        }
    )


@pytest.fixture
def exchange(settings) -> FakeExchange:
    fake = FakeExchange(settings.api_base_url)
    fake.add("POST", "/v1/auth", make_response(200, {"jwt_token": "tok-1"}))
    fake.add("GET", "/v1/markets", make_response(200, {"results": [BTC_MARKET, ETH_MARKET]}))
    return fake


@pytest.fixture
def clock():
    now = [NOW]

    def read() -> float:
        return now[0]

    read.now = now
    return read


@pytest.fixture
def metrics() -> InMemoryMetrics:
    return InMemoryMetrics()


@pytest.fixture
def client(settings, exchange, clock, metrics):
    paradex = ParadexClient(settings, metrics=metrics, clock=clock)
    paradex.session.request = exchange
    yield paradex
    paradex.close()


@pytest.fixture
def btc_rule() -> MarketRule:
    return MarketRule.from_api(BTC_MARKET)


@pytest.fixture
def market_rules() -> List[MarketRule]:
    return [MarketRule.from_api(BTC_MARKET), MarketRule.from_api(ETH_MARKET)]


@pytest.fixture
def respond():
    return make_response


@pytest.fixture
def fake_client(market_rules):
    """ParadexClient double: async calls are AsyncMocks, quantisation uses real BTC/ETH rules."""
    catalog = MarketCatalog(AsyncMock(return_value=market_rules))
    asyncio.run(catalog.refresh())

    paradex = MagicMock(spec=ParadexClient)
    paradex.get_market_info = AsyncMock(return_value=market_rules[0])
    paradex.get_price = AsyncMock(return_value=100.0)
    paradex.set_leverage = AsyncMock(return_value=None)
    paradex.place_market_order = AsyncMock(return_value=OrderResult.filled("m-1", 100.5, 1.5))
    paradex.place_limit_order = AsyncMock(return_value=OrderResult.filled("l-1", 100.0, 0.0))
    paradex.get_order = AsyncMock()
    paradex.cancel_order = AsyncMock(return_value=True)
    paradex.round_quantity.side_effect = catalog.round_quantity
    paradex.min_qty_and_precision.side_effect = catalog.min_qty_and_precision
    return paradex
