"""
Exchange access through the trusted signing backend (``proxy_service``).

This process never sees the exchange secret: it sends high-level intents
with the API key in a header and receives typed results. Errors reported
by the backend are rebuilt into the same taxonomy the direct client raises.
"""

from __future__ import annotations

from decimal import Decimal
from typing import Any, Dict, Optional

import httpx

from exchange_clients.base_client import ExchangeAccess
from exchange_clients.base_models import Balance, OrderInfo, OrderSide, to_decimal, validate_credentials
from exchange_clients.exceptions import (
    AuthenticationError,
    ExchangeTimeoutError,
    NetworkError,
    ProtocolError,
    error_from_dict,
)
from helpers.unified_logger import get_exchange_logger

CLIENT_KEY_HEADER = "X-API-Key"


class RemoteExchangeClient(ExchangeAccess):
    """``ExchangeAccess`` backed by the proxy HTTP surface."""

    def __init__(
        self,
        base_url: str,
        api_key: str,
        *,
        request_timeout: float = 10.0,
        price_timeout: float = 5.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        """
        Args:
            base_url: Root URL of the proxy service
            api_key: Public API key identifying this caller; never a secret
            request_timeout: Budget for balance and order calls, seconds
            price_timeout: Budget for price polls, seconds
            transport: Optional httpx transport (tests use ASGITransport)
        """
        validate_credentials("PROXY_API_KEY", api_key)
        self.base_url = base_url.rstrip("/")
        self.api_key = api_key
        self.request_timeout = request_timeout
        self.price_timeout = price_timeout
        self._transport = transport
        self._client: Optional[httpx.AsyncClient] = None
        self.logger = get_exchange_logger("remote", base=self.base_url)

    def get_exchange_name(self) -> str:
        return "remote"

    async def connect(self) -> None:
        if self._client is None:
            self._client = httpx.AsyncClient(
                base_url=self.base_url,
                headers={CLIENT_KEY_HEADER: self.api_key, "Accept": "application/json"},
                timeout=httpx.Timeout(self.request_timeout),
                transport=self._transport,
            )
        self.logger.info(f"Using trusted backend at {self.base_url}")

    async def disconnect(self) -> None:
        if self._client is not None:
            await self._client.aclose()
            self._client = None

    async def _call(
        self,
        method: str,
        path: str,
        *,
        params: Optional[Dict[str, Any]] = None,
        json_body: Optional[Dict[str, Any]] = None,
        timeout: Optional[float] = None,
    ) -> Any:
        if self._client is None:
            await self.connect()

        try:
            response = await self._client.request(
                method,
                path,
                params=params,
                json=json_body,
                timeout=timeout or self.request_timeout,
            )
        except httpx.TimeoutException as exc:
            raise ExchangeTimeoutError(f"{method} {path} exceeded timeout") from exc
        except httpx.TransportError as exc:
            raise NetworkError(f"{method} {path} failed: {exc}") from exc

        try:
            payload = response.json()
        except ValueError:
            payload = None

        if response.is_error:
            if isinstance(payload, dict) and isinstance(payload.get("error"), dict):
                raise error_from_dict(payload["error"])
            if response.status_code == 401:
                raise AuthenticationError("Backend rejected the API key")
            raise ProtocolError(f"{method} {path} -> HTTP {response.status_code} without error body")

        if payload is None:
            raise ProtocolError(f"{method} {path} returned unparseable body")
        return payload

    async def get_price(self, symbol: str) -> Decimal:
        payload = await self._call("GET", f"/price/{symbol}", timeout=self.price_timeout)
        price = to_decimal(payload.get("price")) if isinstance(payload, dict) else None
        if price is None:
            raise ProtocolError(f"Price payload has no price: {payload!r}")
        return price

    async def get_balance(self) -> Balance:
        payload = await self._call("GET", "/balance")
        try:
            return Balance(base=Decimal(str(payload["base"])), quote=Decimal(str(payload["quote"])))
        except (KeyError, TypeError, ArithmeticError) as exc:
            raise ProtocolError(f"Balance payload malformed: {payload!r}") from exc

    async def validate_credentials(self) -> bool:
        try:
            payload = await self._call("GET", "/credentials/validate")
        except AuthenticationError:
            return False
        return bool(payload.get("valid")) if isinstance(payload, dict) else False

    async def place_order(
        self,
        symbol: str,
        side: OrderSide,
        quantity: Decimal,
        price: Optional[Decimal] = None,
        client_order_id: Optional[str] = None,
    ) -> OrderInfo:
        body = {
            "symbol": symbol,
            "side": OrderSide(side).value,
            "quantity": str(quantity),
            "price": str(price) if price is not None else None,
            "client_order_id": client_order_id,
        }
        return self._order_info(await self._call("POST", "/orders", json_body=body))

    async def cancel_order(self, symbol: str, order_id: str) -> OrderInfo:
        return self._order_info(await self._call("DELETE", f"/orders/{order_id}", params={"symbol": symbol}))

    async def get_order(self, symbol: str, order_id: str) -> OrderInfo:
        return self._order_info(await self._call("GET", f"/orders/{order_id}", params={"symbol": symbol}))

    @staticmethod
    def _order_info(payload: Any) -> OrderInfo:
        try:
            return OrderInfo.from_dict(payload)
        except (KeyError, TypeError, ValueError, ArithmeticError) as exc:
            raise ProtocolError(f"Order payload malformed: {payload!r}") from exc
