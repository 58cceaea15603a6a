"""
Dependency Injection for FastAPI

Manages the exchange client and settings and provides them to route handlers.
"""

from contextlib import asynccontextmanager
from typing import AsyncIterator, Optional, Set

from fastapi import HTTPException, Request

from exchange_clients.base_client import ExchangeAccess
from exchange_clients.exceptions import OperationInProgressError
from trading_config.settings import ProxySettings


class ServiceContainer:
    """Container for the service instances of one app"""

    def __init__(self, settings: ProxySettings, exchange: Optional[ExchangeAccess] = None):
        self.settings = settings
        self.exchange: Optional[ExchangeAccess] = exchange
        self._orders_in_flight: Set[str] = set()

    def set_exchange(self, exchange: Optional[ExchangeAccess]):
        """Set the exchange client instance"""
        self.exchange = exchange

    def get_exchange(self) -> ExchangeAccess:
        """Get the exchange client instance"""
        if self.exchange is None:
            raise HTTPException(
                status_code=503,
                detail="Exchange client not initialized. Service may still be starting up."
            )
        return self.exchange

    @asynccontextmanager
    async def order_operation(self, order_id: str) -> AsyncIterator[None]:
        """One status-changing exchange call per order id at a time."""
        if order_id in self._orders_in_flight:
            raise OperationInProgressError(f"An operation for order {order_id} is already in progress")
        self._orders_in_flight.add(order_id)
        try:
            yield
        finally:
            self._orders_in_flight.discard(order_id)


# Dependency functions for FastAPI
def get_services(request: Request) -> ServiceContainer:
    """FastAPI dependency to get the app's service container"""
    return request.app.state.services


def get_exchange(request: Request) -> ExchangeAccess:
    """FastAPI dependency to get the exchange client"""
    return get_services(request).get_exchange()


def get_settings(request: Request) -> ProxySettings:
    """FastAPI dependency to get the proxy settings"""
    return get_services(request).settings
