"""Abstract exchange capability consumed by the grid engine."""

from __future__ import annotations

from abc import ABC, abstractmethod
from decimal import Decimal
from typing import Optional

from .base_models import Balance, OrderInfo, OrderSide


class ExchangeAccess(ABC):
    """
    Operations the grid engine needs from a trading venue.

    The engine depends only on this interface, so it behaves the same whether
    requests are signed in this process (``BinanceSpotClient``, testnet only)
    or by a trusted backend (``RemoteExchangeClient``).

    All methods raise the typed errors from ``exchange_clients.exceptions``:

    - ``NetworkError`` / ``ExchangeTimeoutError`` for transport failures
    - ``AuthenticationError`` for rejected credentials (never retried)
    - ``ExchangeAPIError`` for other venue-reported failures
    - ``OrderNotFoundError`` when cancelling or querying an unknown order
    - ``ProtocolError`` for unparseable responses
    """

    # ========================================================================
    # CONNECTION MANAGEMENT
    # ========================================================================

    @abstractmethod
    async def connect(self) -> None:
        """Open HTTP sessions. Safe to call more than once."""

    @abstractmethod
    async def disconnect(self) -> None:
        """Close sessions and release credentials held by this client."""

    @abstractmethod
    def get_exchange_name(self) -> str:
        """Identifier used in logs (e.g. "binance", "remote")."""

    # ========================================================================
    # MARKET DATA & ACCOUNT
    # ========================================================================

    @abstractmethod
    async def get_price(self, symbol: str) -> Decimal:
        """Latest traded price for ``symbol`` (unauthenticated)."""

    @abstractmethod
    async def get_balance(self) -> Balance:
        """Free base/quote balance of the traded pair (authenticated)."""

    @abstractmethod
    async def validate_credentials(self) -> bool:
        """
        Check that the configured credentials are accepted.

        Returns False when the venue rejects them; transport errors propagate.
        """

    # ========================================================================
    # ORDER MANAGEMENT
    # ========================================================================

    @abstractmethod
    async def place_order(
        self,
        symbol: str,
        side: OrderSide,
        quantity: Decimal,
        price: Optional[Decimal] = None,
        client_order_id: Optional[str] = None,
    ) -> OrderInfo:
        """
        Submit a limit order (``price`` given) or a market order (``price`` None).

        The client does not deduplicate: callers pass a stable
        ``client_order_id`` when they may resubmit the same intent.
        """

    @abstractmethod
    async def cancel_order(self, symbol: str, order_id: str) -> OrderInfo:
        """Cancel by client order id; ``OrderNotFoundError`` is terminal."""

    @abstractmethod
    async def get_order(self, symbol: str, order_id: str) -> OrderInfo:
        """Exchange-confirmed state of one order, by client order id."""
