"""Tests for the Paradex client: auth lifecycle, onboarding, retries and order payloads. No network calls."""

import asyncio
import json
from unittest.mock import call

import pytest
import requests

from exchange.errors import (
    AuthenticationError,
    ExchangeAPIError,
    MalformedResponseError,
    NotOnboardedError,
    RegistrationFundingError,
)
from exchange.models import AuthState, OrderRequest, OrderSide, OrderType

NOT_ONBOARDED_BODY = '{"error":"NOT_ONBOARDED","message":"User has never called /onboarding"}'
ACCOUNT_SUMMARY = {
    "account": "0xacc0",
    "equity": "1250.5",
    "free_collateral": "1000",
    "used_margin": "250.5",
    "unrealized_pnl": "-12.25",
}


def test_initialize_authenticates_and_loads_markets(client, exchange) -> None:
    asyncio.run(client.initialize())

    assert client.auth_state is AuthState.AUTHENTICATED
    assert client.markets.peek("BTC-USD-PERP") is not None
    auth_call = exchange.calls_to("POST", "/v1/auth")[0]
    assert auth_call.headers["PARADEX-STARKNET-ACCOUNT"] == "0xacc0"
    assert auth_call.headers["PARADEX-TIMESTAMP"] == "1700000000"
    assert auth_call.headers["PARADEX-SIGNATURE-EXPIRATION"] == str(1_700_000_000 + 7 * 24 * 3600)
    assert json.loads(auth_call.headers["PARADEX-STARKNET-SIGNATURE"])


def test_authenticated_calls_carry_bearer_token(client, exchange, respond) -> None:
    exchange.add("GET", "/v1/account/summary", respond(200, ACCOUNT_SUMMARY))

    summary = asyncio.run(client.get_account_summary())

    assert summary.equity == 1250.5
    assert summary.unrealized_pnl == -12.25
    call_ = exchange.calls_to("GET", "/v1/account/summary")[0]
    assert call_.headers["Authorization"] == "Bearer tok-1"


def test_token_is_reused_until_near_expiry(client, exchange, clock, respond) -> None:
    exchange.add("POST", "/v1/auth", respond(200, {"jwt_token": "tok-1"}), respond(200, {"jwt_token": "tok-2"}))
    exchange.add("GET", "/v1/account/summary", respond(200, ACCOUNT_SUMMARY))

    asyncio.run(client.get_account_summary())
    asyncio.run(client.get_account_summary())
    assert len(exchange.calls_to("POST", "/v1/auth")) == 1

    clock.now[0] += 7 * 24 * 3600 - 30
    asyncio.run(client.get_account_summary())

    assert len(exchange.calls_to("POST", "/v1/auth")) == 2
    assert exchange.calls_to("GET", "/v1/account/summary")[-1].headers["Authorization"] == "Bearer tok-2"


def test_concurrent_callers_share_one_authentication(client, exchange, respond) -> None:
    exchange.add("GET", "/v1/account/summary", respond(200, ACCOUNT_SUMMARY))
    exchange.add("GET", "/v1/positions", respond(200, {"results": []}))

    async def scenario():
        return await asyncio.gather(
            client.get_account_summary(), client.get_positions(), client.get_account_summary()
        )

    asyncio.run(scenario())
    assert len(exchange.calls_to("POST", "/v1/auth")) == 1


def test_not_onboarded_account_is_onboarded_then_authenticated(client, exchange, respond) -> None:
    exchange.add("POST", "/v1/auth", respond(400, text=NOT_ONBOARDED_BODY), respond(200, {"jwt_token": "tok-9"}))
    exchange.add("POST", "/v1/onboarding", respond(200, {}))

    asyncio.run(client.initialize())

    assert client.auth_state is AuthState.AUTHENTICATED
    assert len(exchange.calls_to("POST", "/v1/auth")) == 2
    onboarding = exchange.calls_to("POST", "/v1/onboarding")[0]
    assert onboarding.headers["PARADEX-ETHEREUM-ACCOUNT"] == "0xeth0"
    assert onboarding.headers["PARADEX-STARKNET-ACCOUNT"] == "0xacc0"
    assert json.loads(onboarding.data)["public_key"] == client.signer.public_key


def test_onboarding_retry_is_bounded(client, exchange, respond) -> None:
    exchange.add("POST", "/v1/auth", respond(400, text=NOT_ONBOARDED_BODY))
    exchange.add("POST", "/v1/onboarding", respond(200, {}))

    with pytest.raises(NotOnboardedError):
        asyncio.run(client.initialize())

    assert len(exchange.calls_to("POST", "/v1/auth")) == 2
    assert len(exchange.calls_to("POST", "/v1/onboarding")) == 1
    assert client.auth_state is AuthState.UNAUTHENTICATED


def test_unfunded_wallet_raises_registration_funding_error(client, exchange, respond) -> None:
    exchange.add("POST", "/v1/auth", respond(400, text=NOT_ONBOARDED_BODY))
    exchange.add(
        "POST",
        "/v1/onboarding",
        respond(400, text='{"error":"INSUFFICIENT_MIN_CHAIN_BALANCE","message":"balance too low"}'),
    )

    with pytest.raises(RegistrationFundingError) as info:
        asyncio.run(client.get_account_summary())

    message = str(info.value)
    assert "0xeth0" in message
    assert "0.001 ETH or 5 USDC" in message
    assert len(exchange.calls_to("POST", "/v1/auth")) == 1
    assert client.auth_state is AuthState.UNAUTHENTICATED


def test_rejected_credentials_are_not_retried(client, exchange, respond) -> None:
    exchange.add("POST", "/v1/auth", respond(401, text='{"error":"INVALID_SIGNATURE"}'))

    with pytest.raises(AuthenticationError):
        asyncio.run(client.get_positions())

    assert len(exchange.calls_to("POST", "/v1/auth")) == 1


def test_missing_private_key_fails_authentication(settings) -> None:
    from dataclasses import replace

    from exchange.paradex_client import ParadexClient

    paradex = ParadexClient(replace(settings, private_key=""))
    with pytest.raises(AuthenticationError):
        asyncio.run(paradex.get_positions())
    paradex.close()


def test_server_errors_retry_three_times_with_growing_backoff(client, exchange, respond, no_backoff) -> None:
    exchange.add("GET", "/v1/markets", respond(503, text="upstream unavailable"))

    with pytest.raises(ExchangeAPIError) as info:
        asyncio.run(client.get_markets())

    assert info.value.status == 503
    assert "upstream unavailable" in str(info.value)
    assert len(exchange.calls_to("GET", "/v1/markets")) == 4
    assert no_backoff.await_args_list == [call(1.0), call(2.0), call(3.0)]


def test_transport_error_is_retried(client, exchange, respond, market_rules) -> None:
    exchange.add(
        "GET",
        "/v1/markets",
        requests.ConnectionError("connection reset"),
        respond(200, {"results": [{"symbol": r.symbol, "order_size_increment": r.order_size_increment,
                                   "price_tick_size": r.price_tick_size} for r in market_rules]}),
    )

    markets = asyncio.run(client.get_markets())

    assert {m.symbol for m in markets} == {"BTC-USD-PERP", "ETH-USD-PERP"}
    assert len(exchange.calls_to("GET", "/v1/markets")) == 2


def test_limit_order_payload_uses_market_precision(client, exchange, respond) -> None:
    exchange.add("POST", "/v1/orders", respond(200, {"id": "o-1", "status": "NEW", "size": "0.123", "filled_size": "0"}))

    result = asyncio.run(client.place_limit_order("BTC-USD-PERP", OrderSide.BUY, 0.1234567, 95123.456))

    assert result.success
    assert result.order_id == "o-1"
    assert result.filled_price == 95123.4
    assert result.fees == 0.0
    body = json.loads(exchange.calls_to("POST", "/v1/orders")[0].data)
    assert body == {
        "market": "BTC-USD-PERP",
        "type": "LIMIT",
        "side": "BUY",
        "size": "0.123",
        "price": "95123.4",
        "time_in_force": "GTC",
        "reduce_only": False,
    }


def test_market_order_payload_has_no_price(client, exchange, respond) -> None:
    exchange.add(
        "POST",
        "/v1/orders",
        respond(200, {"id": "o-2", "status": "FILLED", "size": "1.5", "filled_size": "1.5", "average_fill_price": "101.25"}),
    )

    result = asyncio.run(client.place_market_order("ETH-USD-PERP", OrderSide.SELL, 1.5, reduce_only=True))

    assert result.filled_price == 101.25
    assert result.filled_quantity == 1.5
    body = json.loads(exchange.calls_to("POST", "/v1/orders")[0].data)
    assert body == {"market": "ETH-USD-PERP", "type": "MARKET", "side": "SELL", "size": "1.50", "reduce_only": True}


def test_rejected_order_returns_failure(client, exchange, respond, metrics) -> None:
    exchange.add("POST", "/v1/orders", respond(403, text="Service not available in your region"))

    result = asyncio.run(client.place_order(OrderRequest("BTC-USD-PERP", OrderSide.BUY, OrderType.MARKET, 0.01)))

    assert not result.success
    assert result.order_id is None
    assert "403" in result.error
    assert "region" in result.error
    assert metrics.requests[("/v1/orders", "error")] == 1
    assert metrics.errors[("/v1/orders", "ExchangeAPIError")] == 1


def test_limit_order_request_requires_price() -> None:
    with pytest.raises(ValueError):
        OrderRequest("BTC-USD-PERP", OrderSide.BUY, OrderType.LIMIT, 0.01)


def test_cancel_order(client, exchange, respond) -> None:
    exchange.add("DELETE", "/v1/orders/o-1", respond(204))
    exchange.add("DELETE", "/v1/orders/o-2", respond(404, text="order not found"))

    assert asyncio.run(client.cancel_order("o-1")) is True
    assert asyncio.run(client.cancel_order("o-2")) is False


def test_open_orders_and_single_order(client, exchange, respond) -> None:
    order = {"id": "o-5", "market": "BTC-USD-PERP", "type": "LIMIT", "side": "BUY", "size": "0.5",
             "filled_size": "0.2", "status": "OPEN", "price": "95000"}
    exchange.add("GET", "/v1/orders", respond(200, {"results": [order]}))
    exchange.add("GET", "/v1/orders/o-5", respond(200, order))

    open_orders = asyncio.run(client.get_open_orders())
    single = asyncio.run(client.get_order("o-5"))

    assert exchange.calls_to("GET", "/v1/orders")[0].params == {"status": "OPEN"}
    assert open_orders[0].id == "o-5"
    assert single.remaining_size == pytest.approx(0.3)
    assert not single.is_filled


def test_market_data_endpoints(client, exchange, respond) -> None:
    exchange.add(
        "GET",
        "/v1/markets/BTC-USD-PERP/summary",
        respond(200, {"results": [{"symbol": "BTC-USD-PERP", "mark_price": "95000.5", "bid": "94999", "ask": "95001"}]}),
    )
    exchange.add(
        "GET",
        "/v1/markets/BTC-USD-PERP/orderbook",
        respond(200, {"market": "BTC-USD-PERP", "bids": [["94999", "1.2"]], "asks": [["95001", "0.8"]]}),
    )
    exchange.add(
        "GET",
        "/v1/markets/BTC-USD-PERP/trades",
        respond(200, {"results": [{"id": "t1", "market": "BTC-USD-PERP", "side": "BUY", "price": "95000",
                                   "size": "0.1", "created_at": 1}]}),
    )

    assert asyncio.run(client.get_price("BTC-USD-PERP")) == 95000.5
    book = asyncio.run(client.get_orderbook("BTC-USD-PERP"))
    trades = asyncio.run(client.get_trades("BTC-USD-PERP", limit=10))

    assert book.bids == [(94999.0, 1.2)]
    assert book.asks == [(95001.0, 0.8)]
    assert trades[0].price == 95000.0
    assert exchange.calls_to("GET", "/v1/markets/BTC-USD-PERP/trades")[0].params == {"limit": 10}


def test_balance_and_positions(client, exchange, respond) -> None:
    exchange.add("GET", "/v1/account/summary", respond(200, ACCOUNT_SUMMARY))
    exchange.add(
        "GET",
        "/v1/positions",
        respond(200, {"results": [{"market": "ETH-USD-PERP", "side": "SHORT", "size": "-2", "average_entry_price": "3000",
                                   "unrealized_pnl": "5"}]}),
    )

    balance = asyncio.run(client.get_balance())
    position = asyncio.run(client.get_position("ETH-USD-PERP"))
    missing = asyncio.run(client.get_position("BTC-USD-PERP"))

    assert balance == {"balance": 1250.5, "unrealized_pnl": -12.25}
    assert position.size == 2.0
    assert position.entry_price == 3000.0
    assert missing is None


def test_set_leverage_ignores_unchanged_response(client, exchange, respond) -> None:
    exchange.add("POST", "/v1/account/margin/BTC-USD-PERP", respond(400, text="No need to change margin"))
    asyncio.run(client.set_leverage("BTC-USD-PERP", 10))

    body = json.loads(exchange.calls_to("POST", "/v1/account/margin/BTC-USD-PERP")[0].data)
    assert body == {"leverage": 10, "margin_type": "CROSS"}


def test_request_metrics_are_recorded(client, metrics) -> None:
    asyncio.run(client.get_markets())

    assert metrics.requests[("/v1/markets", "success")] == 1
    assert len(metrics.latencies["/v1/markets"]) == 1


def test_auth_server_error_is_retried(client, exchange, respond) -> None:
    exchange.add("POST", "/v1/auth", respond(503, text="upstream unavailable"), respond(200, {"jwt_token": "tok-3"}))
    exchange.add("GET", "/v1/account/summary", respond(200, ACCOUNT_SUMMARY))

    summary = asyncio.run(client.get_account_summary())

    assert summary.equity == 1250.5
    assert len(exchange.calls_to("POST", "/v1/auth")) == 2
    assert exchange.calls_to("GET", "/v1/account/summary")[0].headers["Authorization"] == "Bearer tok-3"
    assert client.auth_state is AuthState.AUTHENTICATED


def test_initialize_survives_transient_auth_failures(client, exchange, respond) -> None:
    exchange.add(
        "POST",
        "/v1/auth",
        requests.ConnectionError("connection reset"),
        respond(503, text="upstream unavailable"),
        respond(200, {"jwt_token": "tok-1"}),
    )

    asyncio.run(client.initialize())

    assert client.auth_state is AuthState.AUTHENTICATED
    assert len(exchange.calls_to("POST", "/v1/auth")) == 3
    assert client.markets.peek("BTC-USD-PERP") is not None


def test_exhausted_auth_retries_are_not_repeated_by_the_caller(client, exchange, respond, no_backoff) -> None:
    exchange.add("POST", "/v1/auth", respond(503, text="upstream unavailable"))

    with pytest.raises(AuthenticationError) as info:
        asyncio.run(client.get_account_summary())

    assert "503" in str(info.value)
    assert len(exchange.calls_to("POST", "/v1/auth")) == 4
    assert exchange.calls_to("GET", "/v1/account/summary") == []
    assert no_backoff.await_args_list == [call(1.0), call(2.0), call(3.0)]
    assert client.auth_state is AuthState.UNAUTHENTICATED


def test_onboarding_server_error_is_retried(client, exchange, respond) -> None:
    exchange.add("POST", "/v1/auth", respond(400, text=NOT_ONBOARDED_BODY), respond(200, {"jwt_token": "tok-9"}))
    exchange.add("POST", "/v1/onboarding", respond(503, text="upstream unavailable"), respond(200, {}))

    asyncio.run(client.initialize())

    assert client.auth_state is AuthState.AUTHENTICATED
    assert len(exchange.calls_to("POST", "/v1/onboarding")) == 2
    assert len(exchange.calls_to("POST", "/v1/auth")) == 2


def test_token_is_revalidated_before_each_retry(client, exchange, clock, respond, no_backoff) -> None:
    exchange.add("POST", "/v1/auth", respond(200, {"jwt_token": "tok-1"}), respond(200, {"jwt_token": "tok-2"}))
    exchange.add(
        "GET", "/v1/account/summary", respond(503, text="upstream unavailable"), respond(200, ACCOUNT_SUMMARY)
    )

    def expire_token(seconds):
        clock.now[0] += 7 * 24 * 3600

    no_backoff.side_effect = expire_token

    asyncio.run(client.get_account_summary())

    assert len(exchange.calls_to("POST", "/v1/auth")) == 2
    summaries = exchange.calls_to("GET", "/v1/account/summary")
    assert [c.headers["Authorization"] for c in summaries] == ["Bearer tok-1", "Bearer tok-2"]


def test_order_response_without_id_is_a_failure(client, exchange, respond, metrics) -> None:
    exchange.add("POST", "/v1/orders", respond(200, {"status": "NEW"}))

    result = asyncio.run(client.place_order(OrderRequest("BTC-USD-PERP", OrderSide.BUY, OrderType.MARKET, 0.01)))

    assert not result.success
    assert "Malformed response" in result.error
    assert len(exchange.calls_to("POST", "/v1/orders")) == 1
    assert metrics.errors[("/v1/orders", "MalformedResponseError")] == 1


def test_order_lookup_without_id_raises(client, exchange, respond) -> None:
    exchange.add("GET", "/v1/orders/o-1", respond(200, {"status": "OPEN"}))

    with pytest.raises(MalformedResponseError):
        asyncio.run(client.get_order("o-1"))

    assert len(exchange.calls_to("GET", "/v1/orders/o-1")) == 1


def test_auth_response_without_token_fails_authentication(client, exchange, respond) -> None:
    exchange.add("POST", "/v1/auth", respond(200, {"message": "ok"}))

    with pytest.raises(AuthenticationError) as info:
        asyncio.run(client.get_positions())

    assert "jwt_token" in str(info.value)
    assert len(exchange.calls_to("POST", "/v1/auth")) == 1
    assert client.auth_state is AuthState.UNAUTHENTICATED


def test_auth_and_onboarding_metrics_are_recorded(client, exchange, respond, metrics) -> None:
    exchange.add("POST", "/v1/auth", respond(400, text=NOT_ONBOARDED_BODY), respond(200, {"jwt_token": "tok-9"}))
    exchange.add("POST", "/v1/onboarding", respond(200, {}))

    asyncio.run(client.initialize())

    assert metrics.requests[("/v1/auth", "error")] == 1
    assert metrics.errors[("/v1/auth", "NotOnboardedError")] == 1
    assert metrics.requests[("/v1/auth", "success")] == 1
    assert metrics.requests[("/v1/onboarding", "success")] == 1
    assert len(metrics.latencies["/v1/auth"]) == 1
    assert len(metrics.latencies["/v1/onboarding"]) == 1


def test_rejected_credentials_are_recorded_as_auth_errors(client, exchange, respond, metrics) -> None:
    exchange.add("POST", "/v1/auth", respond(401, text='{"error":"INVALID_SIGNATURE"}'))

    with pytest.raises(AuthenticationError):
        asyncio.run(client.initialize())

    assert metrics.requests[("/v1/auth", "error")] == 1
    assert metrics.errors[("/v1/auth", "AuthenticationError")] == 1
