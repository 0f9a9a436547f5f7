"""
Paradex perpetuals REST client with bearer-token lifecycle.
"""

from __future__ import annotations

import asyncio
import json
import time
from typing import Any, Awaitable, Callable, Dict, List, Optional

import requests

from config import risk as risk_config
from config.settings import ExchangeSettings, load_exchange_settings
from exchange import signing
from exchange.errors import (
    AuthenticationError,
    ExchangeAPIError,
    ExchangeError,
    MalformedResponseError,
    NotOnboardedError,
    OnboardingError,
    RegistrationFundingError,
    TransportError,
)
from exchange.market_catalog import MarketCatalog
from exchange.models import (
    AccountSummary,
    AuthSession,
    AuthState,
    ExchangeOrder,
    ExchangePosition,
    MarketRule,
    MarketSummary,
    OrderBook,
    OrderRequest,
    OrderResult,
    OrderSide,
    OrderType,
    PublicTrade,
)
from infra.logger import get_logger
from infra.metrics import MetricsSink, emit
from infra.notifier import notify_funding_required
from infra.retry import retry

AUTH_PATH = "/v1/auth"
ONBOARDING_PATH = "/v1/onboarding"
NOT_ONBOARDED = "NOT_ONBOARDED"
INSUFFICIENT_BALANCE = "INSUFFICIENT_MIN_CHAIN_BALANCE"
LEVERAGE_UNCHANGED = ("no need to change", "unchanged")
CREDENTIAL_REJECTED = (401, 403)


class ParadexClient:
    """Async REST wrapper for Paradex perpetuals; blocking I/O runs in worker threads."""

    def __init__(
        self,
        settings: Optional[ExchangeSettings] = None,
        signer: Optional[signing.Signer] = None,
        metrics: Optional[MetricsSink] = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.settings = settings or load_exchange_settings()
        self.logger = get_logger("ParadexClient")
        self.base_url = self.settings.api_base_url
        self.timeout = self.settings.timeout
        self.metrics = metrics
        self._clock = clock
        if signer is None and self.settings.private_key:
            signer = signing.HmacSigner(
                self.settings.private_key,
                self.settings.account_address,
                self.settings.ethereum_address,
            )
        self.signer = signer
        self.session = requests.Session()
        self.auth_state = AuthState.UNAUTHENTICATED
        self._auth: Optional[AuthSession] = None
        self._auth_task: Optional[asyncio.Task] = None
        self.markets = MarketCatalog(self._fetch_market_rules)
        if not self.settings.enabled:
            self.logger.warning("Paradex is disabled in configuration")
        self.logger.info("Paradex client created (environment=%s)", self.settings.environment)

    async def __aenter__(self) -> "ParadexClient":
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        self.close()

    def close(self) -> None:
        self.session.close()

    async def initialize(self) -> None:
        """Authenticate (registering the account if needed) and load markets."""
        self.logger.info("Initializing Paradex client (environment=%s)", self.settings.environment)
        await self._ensure_authenticated()
        await self.markets.refresh()
        self.logger.info("Paradex client initialized for account %s", self.address)

    @property
    def address(self) -> str:
        return self.signer.account if self.signer else ""

    # -- market data -----------------------------------------------------------

    async def _fetch_market_rules(self) -> List[MarketRule]:
        data = await self._request("GET", "/v1/markets")
        return [MarketRule.from_api(raw) for raw in _results(data)]

    async def get_markets(self) -> List[MarketRule]:
        return await self.markets.all()

    async def get_market_info(self, symbol: str) -> Optional[MarketRule]:
        return await self.markets.get(symbol)

    async def get_market_summary(self, symbol: str) -> MarketSummary:
        data = await self._request("GET", f"/v1/markets/{symbol}/summary", label="/v1/markets/summary")
        rows = _results(data)
        return MarketSummary.from_api(symbol, rows[0] if rows else data)

    async def get_price(self, symbol: str) -> float:
        """Current mark price."""
        summary = await self.get_market_summary(symbol)
        return summary.mark_price

    async def get_orderbook(self, symbol: str) -> OrderBook:
        data = await self._request("GET", f"/v1/markets/{symbol}/orderbook", label="/v1/markets/orderbook")
        return OrderBook.from_api(symbol, data)

    async def get_trades(self, symbol: str, limit: int = 100) -> List[PublicTrade]:
        data = await self._request(
            "GET", f"/v1/markets/{symbol}/trades", params={"limit": limit}, label="/v1/markets/trades"
        )
        return [PublicTrade.from_api(raw) for raw in _results(data)]

    # -- account ---------------------------------------------------------------

    async def get_account_summary(self) -> AccountSummary:
        data = await self._request("GET", "/v1/account/summary", authenticated=True)
        return AccountSummary.from_api(data)

    async def get_balance(self) -> Dict[str, float]:
        summary = await self.get_account_summary()
        return {"balance": summary.equity, "unrealized_pnl": summary.unrealized_pnl}

    async def get_positions(self) -> List[ExchangePosition]:
        data = await self._request("GET", "/v1/positions", authenticated=True)
        return [ExchangePosition.from_api(raw) for raw in _results(data)]

    async def get_position(self, symbol: str) -> Optional[ExchangePosition]:
        for position in await self.get_positions():
            if position.market == symbol:
                return position
        return None

    async def set_leverage(self, symbol: str, leverage: float) -> None:
        body = {"leverage": leverage, "margin_type": "CROSS"}
        try:
            await self._request(
                "POST", f"/v1/account/margin/{symbol}", body=body, authenticated=True, label="/v1/account/margin"
            )
        except ExchangeAPIError as exc:
            if not any(marker in exc.body.lower() for marker in LEVERAGE_UNCHANGED):
                raise
        self.logger.debug("Leverage for %s set to %s", symbol, leverage)

    # -- orders ----------------------------------------------------------------

    async def place_order(self, order: OrderRequest) -> OrderResult:
        """
        Submit an order. Exchange failures come back as a failed OrderResult.
        """
        size: Any = order.quantity
        price = None
        try:
            await self.markets.get(order.symbol)
            size = self.format_quantity(order.symbol, order.quantity)
            if order.price is not None:
                price = self.format_price(order.symbol, order.price)
            data = await self._request(
                "POST", "/v1/orders", body=order.to_payload(size, price), authenticated=True, required="id"
            )
            placed = ExchangeOrder.from_api(data)
        except ExchangeError as exc:
            self.logger.error(
                "Paradex order failed: %s %s %s size=%s error=%s",
                order.order_type.value,
                order.side.value,
                order.symbol,
                size,
                exc,
            )
            return OrderResult.failure(str(exc))

        if placed.average_fill_price is not None:
            filled_price = placed.average_fill_price
        elif order.order_type is OrderType.LIMIT:
            filled_price = float(price)
        else:
            filled_price = 0.0
        self.logger.info(
            "Submitted %s %s %s size=%s id=%s status=%s",
            order.order_type.value,
            order.side.value,
            order.symbol,
            size,
            placed.id,
            placed.status,
        )
        return OrderResult.filled(placed.id, filled_price, placed.filled_size)

    async def place_market_order(
        self, symbol: str, side: OrderSide, quantity: float, reduce_only: bool = False
    ) -> OrderResult:
        return await self.place_order(OrderRequest(symbol, side, OrderType.MARKET, quantity, reduce_only=reduce_only))

    async def place_limit_order(
        self, symbol: str, side: OrderSide, quantity: float, price: float, reduce_only: bool = False
    ) -> OrderResult:
        return await self.place_order(
            OrderRequest(symbol, side, OrderType.LIMIT, quantity, price, reduce_only, time_in_force="GTC")
        )

    async def cancel_order(self, order_id: str) -> bool:
        try:
            await self._request("DELETE", f"/v1/orders/{order_id}", authenticated=True, label="/v1/orders/{id}")
        except ExchangeError as exc:
            self.logger.error("Failed to cancel order %s: %s", order_id, exc)
            return False
        self.logger.debug("Order %s cancelled", order_id)
        return True

    async def get_open_orders(self) -> List[ExchangeOrder]:
        data = await self._request("GET", "/v1/orders", params={"status": "OPEN"}, authenticated=True)
        return [ExchangeOrder.from_api(raw) for raw in _results(data)]

    async def get_order(self, order_id: str) -> ExchangeOrder:
        data = await self._request(
            "GET", f"/v1/orders/{order_id}", authenticated=True, label="/v1/orders/{id}", required="id"
        )
        return ExchangeOrder.from_api(data)

    # -- precision helpers -----------------------------------------------------

    def min_qty_and_precision(self, symbol: str):
        return self.markets.min_qty_and_precision(symbol)

    def round_quantity(self, symbol: str, quantity: float) -> float:
        return self.markets.round_quantity(symbol, quantity)

    def format_quantity(self, symbol: str, quantity: float) -> str:
        return self.markets.format_quantity(symbol, quantity)

    def format_price(self, symbol: str, price: float) -> str:
        return self.markets.format_price(symbol, price)

    # -- authentication --------------------------------------------------------

    async def _ensure_authenticated(self) -> AuthSession:
        """Return a usable token, joining any authentication already in flight."""
        if self._auth is not None and self._auth.is_usable(self._clock(), risk_config.AUTH_REFRESH_MARGIN_SECONDS):
            return self._auth
        task = self._auth_task
        if task is None or task.done():
            task = asyncio.ensure_future(self._authenticate())
            self._auth_task = task
        try:
            return await asyncio.shield(task)
        finally:
            if self._auth_task is task and task.done():
                self._auth_task = None

    async def _authenticate(self) -> AuthSession:
        if self.signer is None:
            raise AuthenticationError("Missing signing credentials (set PARADEX_PRIVATE_KEY)")
        self.auth_state = AuthState.AUTHENTICATING
        try:
            try:
                session = await self._request_token()
            except NotOnboardedError:
                self.logger.info("Account not onboarded, performing auto-onboarding")
                self.auth_state = AuthState.ONBOARDING
                await self._onboard()
                self.auth_state = AuthState.AUTHENTICATING
                session = await self._request_token()
        except (AuthenticationError, RegistrationFundingError) as exc:
            self._reset_auth(exc)
            raise
        except ExchangeError as exc:
            # Retries are spent; callers must not retry the round-trip again.
            self._reset_auth(exc)
            raise AuthenticationError(f"Authentication unavailable: {exc}") from exc
        except Exception as exc:
            self._reset_auth(exc)
            raise
        self._auth = session
        self.auth_state = AuthState.AUTHENTICATED
        self.logger.info("Paradex authentication successful")
        return session

    def _reset_auth(self, exc: BaseException) -> None:
        self.auth_state = AuthState.UNAUTHENTICATED
        self._auth = None
        self.logger.error("Paradex authentication failed: %s", exc)

    async def _request_token(self) -> AuthSession:
        now = int(self._clock())
        expiry = now + risk_config.AUTH_TOKEN_TTL_SECONDS
        payload = signing.auth_payload("POST", AUTH_PATH, "", now, expiry, self.settings.chain_id)
        headers = {
            "Content-Type": "application/json",
            "PARADEX-STARKNET-ACCOUNT": self.signer.account,
            "PARADEX-STARKNET-SIGNATURE": self.signer.sign(payload),
            "PARADEX-TIMESTAMP": str(now),
            "PARADEX-SIGNATURE-EXPIRATION": str(expiry),
        }
        data = await self._metered(
            AUTH_PATH, self._post_signed(AUTH_PATH, headers, None, _reject_auth, required="jwt_token")
        )
        return AuthSession(token=data["jwt_token"], expires_at=float(expiry))

    async def _onboard(self) -> None:
        payload = signing.onboarding_payload(self.settings.chain_id)
        headers = {
            "Content-Type": "application/json",
            "Accept": "application/json",
            "PARADEX-ETHEREUM-ACCOUNT": self.signer.ethereum_address,
            "PARADEX-STARKNET-ACCOUNT": self.signer.account,
            "PARADEX-STARKNET-SIGNATURE": self.signer.sign(payload),
            "PARADEX-TIMESTAMP": str(int(self._clock() * 1000)),
        }
        body = json.dumps({"public_key": self.signer.public_key})
        await self._metered(
            ONBOARDING_PATH, self._post_signed(ONBOARDING_PATH, headers, body, self._reject_onboarding)
        )
        self.logger.info("Paradex onboarding successful")

    def _reject_onboarding(self, response: requests.Response) -> None:
        text = response.text
        if INSUFFICIENT_BALANCE in text:
            error = RegistrationFundingError(self.signer.ethereum_address)
            notify_funding_required(str(error))
            raise error
        if response.status_code in CREDENTIAL_REJECTED:
            raise OnboardingError(f"Onboarding failed: {response.status_code} {text}", "POST", ONBOARDING_PATH)

    # -- transport -------------------------------------------------------------

    async def _request(
        self,
        method: str,
        path: str,
        body: Optional[Dict[str, Any]] = None,
        params: Optional[Dict[str, Any]] = None,
        authenticated: bool = False,
        label: Optional[str] = None,
        required: Optional[str] = None,
    ) -> Any:
        return await self._metered(label or path, self._send(method, path, body, params, authenticated, required))

    async def _metered(self, endpoint: str, call: Awaitable[Any]) -> Any:
        """Await one logical request (all its attempts) and report it to the metrics sink."""
        started = time.perf_counter()
        try:
            data = await call
        except Exception as exc:
            emit(self.metrics, "record_error", endpoint, type(exc).__name__)
            emit(self.metrics, "record_request", endpoint, "error")
            raise
        emit(self.metrics, "observe_latency", endpoint, (time.perf_counter() - started) * 1000)
        emit(self.metrics, "record_request", endpoint, "success")
        return data

    @retry(
        max_retries=3,
        backoff=1.0,
        retry_on=(TransportError, ExchangeAPIError),
        give_up_on=(AuthenticationError, RegistrationFundingError, MalformedResponseError),
    )
    async def _send(
        self,
        method: str,
        path: str,
        body: Optional[Dict[str, Any]],
        params: Optional[Dict[str, Any]],
        authenticated: bool,
        required: Optional[str] = None,
    ) -> Any:
        headers = {"Content-Type": "application/json"}
        if authenticated:
            auth = await self._ensure_authenticated()
            headers["Authorization"] = f"Bearer {auth.token}"
        data = json.dumps(body) if body is not None and method == "POST" else None
        response = await self._http(method, path, headers=headers, params=params, data=data)
        if not _is_success(response.status_code):
            self.logger.error("Paradex API error (%s) on %s %s: %s", response.status_code, method, path, response.text)
            raise ExchangeAPIError(response.status_code, response.text, method, path)
        return _decode(response, method, path, required)

    @retry(
        max_retries=3,
        backoff=1.0,
        retry_on=(TransportError, ExchangeAPIError),
        give_up_on=(AuthenticationError, RegistrationFundingError, MalformedResponseError),
    )
    async def _post_signed(
        self,
        path: str,
        headers: Dict[str, str],
        body: Optional[str],
        reject: Callable[[requests.Response], None],
        required: Optional[str] = None,
    ) -> Any:
        """POST with signature headers; ``reject`` raises for terminal failures, the rest are retried."""
        response = await self._http("POST", path, headers=headers, data=body)
        if not _is_success(response.status_code):
            reject(response)
            self.logger.error("Paradex API error (%s) on POST %s: %s", response.status_code, path, response.text)
            raise ExchangeAPIError(response.status_code, response.text, "POST", path)
        return _decode(response, "POST", path, required)

    async def _http(
        self,
        method: str,
        path: str,
        headers: Dict[str, str],
        params: Optional[Dict[str, Any]] = None,
        data: Optional[str] = None,
    ) -> requests.Response:
        url = f"{self.base_url}{path}"
        try:
            return await asyncio.to_thread(
                self.session.request,
                method,
                url,
                params=params,
                data=data,
                headers=headers,
                timeout=self.timeout,
            )
        except requests.RequestException as exc:
            raise TransportError(str(exc), method, path) from exc


def _is_success(status: int) -> bool:
    return 200 <= status < 300


def _reject_auth(response: requests.Response) -> None:
    body = response.text
    if response.status_code == 400 and NOT_ONBOARDED in body:
        raise NotOnboardedError(f"Account not onboarded: {body}", "POST", AUTH_PATH)
    if response.status_code in CREDENTIAL_REJECTED:
        raise AuthenticationError(f"Authentication failed: {response.status_code} {body}", "POST", AUTH_PATH)


def _decode(response: requests.Response, method: str, path: str, required: Optional[str] = None) -> Any:
    if not response.content:
        data: Any = {}
    else:
        try:
            data = response.json()
        except ValueError as exc:
            raise MalformedResponseError(response.status_code, "Invalid JSON response", method, path) from exc
    if required and not (isinstance(data, dict) and data.get(required)):
        raise MalformedResponseError(response.status_code, f"Malformed response: missing {required}", method, path)
    return data


def _results(data: Any) -> List[Dict[str, Any]]:
    if isinstance(data, dict):
        return data.get("results") or []
    if isinstance(data, list):
        return data
    return []
