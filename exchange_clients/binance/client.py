"""
Binance spot client: signs requests in-process and talks to the REST API.

Only used directly in testnet/demo deployments or inside the trusted
backend (``proxy_service``); production engines reach it through the proxy.
"""

from __future__ import annotations

import asyncio
import json
from decimal import Decimal
from typing import Any, List, Optional, Tuple

import aiohttp
from yarl import URL

from exchange_clients.base_client import ExchangeAccess
from exchange_clients.base_models import Balance, OrderInfo, OrderSide
from exchange_clients.credentials import Credentials
from exchange_clients.exceptions import (
    AuthenticationError,
    ExchangeTimeoutError,
    NetworkError,
    ProtocolError,
)
from exchange_clients.signing import build_canonical_query, signed_query
from helpers.unified_logger import get_exchange_logger

from .common import (
    ACCOUNT_PATH,
    API_KEY_HEADER,
    ORDER_PATH,
    PRICE_TIMEOUT,
    RECV_WINDOW_MS,
    REQUEST_TIMEOUT,
    TICKER_PRICE_PATH,
    base_url_for,
    format_symbol,
)
from .converters import build_balance, build_order_info, classify_error, parse_price


class BinanceSpotClient(ExchangeAccess):
    """Binance spot REST client implementing ``ExchangeAccess``."""

    def __init__(
        self,
        credentials: Credentials,
        *,
        base_asset: str,
        quote_asset: str,
        testnet: bool = True,
        base_url: Optional[str] = None,
        request_timeout: float = REQUEST_TIMEOUT,
        price_timeout: float = PRICE_TIMEOUT,
        session: Optional[aiohttp.ClientSession] = None,
    ):
        """
        Args:
            credentials: API key and secret; destroyed on ``disconnect()``
            base_asset: Asset reported as ``Balance.base`` (e.g. "BTC")
            quote_asset: Asset reported as ``Balance.quote`` (e.g. "USDT")
            testnet: Use the testnet endpoint unless ``base_url`` is given
            base_url: Explicit REST root, mainly for tests
            request_timeout: Budget for account and order calls, seconds
            price_timeout: Budget for ticker polls, seconds
            session: Optional shared aiohttp session (not closed by this client)
        """
        self.credentials = credentials
        self.base_asset = base_asset.upper()
        self.quote_asset = quote_asset.upper()
        self.testnet = testnet
        self.base_url = base_url_for(testnet, base_url)
        self.request_timeout = request_timeout
        self.price_timeout = price_timeout

        self._session = session
        self._owns_session = session is None
        self.logger = get_exchange_logger("binance", f"{self.base_asset}{self.quote_asset}")

    def get_exchange_name(self) -> str:
        return "binance"

    # ========================================================================
    # CONNECTION MANAGEMENT
    # ========================================================================

    async def connect(self) -> None:
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession(trust_env=True)
            self._owns_session = True
        self.logger.info(
            f"Connected to {self.base_url} (testnet={self.testnet}, key={self.credentials.masked_key()})"
        )

    async def disconnect(self) -> None:
        if self._session is not None and self._owns_session and not self._session.closed:
            await self._session.close()
        self._session = None
        self.credentials.destroy()
        self.logger.info("Disconnected; credentials released")

    # ========================================================================
    # HTTP
    # ========================================================================

    async def _request(
        self,
        method: str,
        path: str,
        params: List[Tuple[str, Any]],
        *,
        signed: bool,
        timeout: float,
    ) -> Any:
        """
        Send one request and return the decoded JSON body.

        For signed calls the timestamp is generated here, right before
        signing, and the signed string is sent byte-for-byte: as the URL
        query for GET/DELETE and as the form body for POST.
        """
        if self._session is None or self._session.closed:
            await self.connect()

        headers = {"Accept": "application/json"}
        if signed:
            query = signed_query(self.credentials.reveal_secret(), params, recv_window=RECV_WINDOW_MS)
            headers[API_KEY_HEADER] = self.credentials.api_key
        else:
            query = build_canonical_query(params)

        body = None
        url = f"{self.base_url}{path}"
        if method == "POST":
            body = query
            headers["Content-Type"] = "application/x-www-form-urlencoded"
        elif query:
            url = f"{url}?{query}"

        self.logger.debug(f"{method} {path} (signed={signed})")

        try:
            async with self._session.request(
                method,
                URL(url, encoded=True),
                data=body,
                headers=headers,
                timeout=aiohttp.ClientTimeout(total=timeout),
            ) as response:
                status = response.status
                raw = await response.read()
        except asyncio.TimeoutError as exc:
            raise ExchangeTimeoutError(f"{method} {path} exceeded {timeout}s") from exc
        except aiohttp.ClientError as exc:
            raise NetworkError(f"{method} {path} failed: {exc}") from exc

        try:
            payload = json.loads(raw) if raw else None
        except ValueError:
            payload = None

        if status >= 400:
            error = classify_error(status, payload)
            self.logger.warning(f"{method} {path} -> HTTP {status}: {error}")
            raise error

        if payload is None:
            raise ProtocolError(f"{method} {path} returned unparseable body")
        return payload

    # ========================================================================
    # MARKET DATA & ACCOUNT
    # ========================================================================

    async def get_price(self, symbol: str) -> Decimal:
        payload = await self._request(
            "GET",
            TICKER_PRICE_PATH,
            [("symbol", format_symbol(symbol))],
            signed=False,
            timeout=self.price_timeout,
        )
        return parse_price(payload)

    async def get_balance(self) -> Balance:
        payload = await self._request("GET", ACCOUNT_PATH, [], signed=True, timeout=self.request_timeout)
        balance = build_balance(payload, self.base_asset, self.quote_asset)
        if balance.base == 0 and balance.quote == 0:
            self.logger.warning(f"No {self.base_asset} or {self.quote_asset} balance found")
        return balance

    async def validate_credentials(self) -> bool:
        try:
            await self._request("GET", ACCOUNT_PATH, [], signed=True, timeout=self.request_timeout)
        except AuthenticationError as exc:
            self.logger.error(f"Credential validation failed: {exc}")
            return False
        return True

    # ========================================================================
    # ORDER MANAGEMENT
    # ========================================================================

    async def place_order(
        self,
        symbol: str,
        side: OrderSide,
        quantity: Decimal,
        price: Optional[Decimal] = None,
        client_order_id: Optional[str] = None,
    ) -> OrderInfo:
        params: List[Tuple[str, Any]] = [
            ("symbol", format_symbol(symbol)),
            ("side", OrderSide(side).value),
            ("type", "LIMIT" if price is not None else "MARKET"),
        ]
        if price is not None:
            params.append(("timeInForce", "GTC"))
        params.append(("quantity", quantity))
        if price is not None:
            params.append(("price", price))
        if client_order_id:
            params.append(("newClientOrderId", client_order_id))
        params.append(("newOrderRespType", "RESULT"))

        payload = await self._request("POST", ORDER_PATH, params, signed=True, timeout=self.request_timeout)
        info = build_order_info(payload, fallback_order_id=client_order_id)
        self.logger.log_transaction(info.order_id, info.side.value, info.quantity, info.price, info.status.value)
        return info

    async def cancel_order(self, symbol: str, order_id: str) -> OrderInfo:
        payload = await self._request(
            "DELETE",
            ORDER_PATH,
            [("symbol", format_symbol(symbol)), ("origClientOrderId", order_id)],
            signed=True,
            timeout=self.request_timeout,
        )
        info = build_order_info(payload, fallback_order_id=order_id)
        self.logger.log_transaction(info.order_id, info.side.value, info.quantity, info.price, info.status.value)
        return info

    async def get_order(self, symbol: str, order_id: str) -> OrderInfo:
        payload = await self._request(
            "GET",
            ORDER_PATH,
            [("symbol", format_symbol(symbol)), ("origClientOrderId", order_id)],
            signed=True,
            timeout=self.request_timeout,
        )
        return build_order_info(payload, fallback_order_id=order_id)
