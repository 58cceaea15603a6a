"""
Exchange access factory: picks where request signing happens.

Exactly one implementation is created per process:

- ``backend``: ``RemoteExchangeClient``; the secret stays in ``proxy_service``
- ``direct``: ``BinanceSpotClient``; the secret lives in this process, so the
  mode is restricted to testnet deployments
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from exchange_clients.base_client import ExchangeAccess
from exchange_clients.credentials import Credentials
from exchange_clients.exceptions import CredentialBoundaryError
from helpers.unified_logger import get_core_logger

if TYPE_CHECKING:
    from trading_config.settings import BotSettings

logger = get_core_logger("exchange_factory")


class ExchangeFactory:
    """Creates the single ``ExchangeAccess`` of a deployment."""

    _modes = ("backend", "direct")

    @classmethod
    def create(cls, settings: "BotSettings") -> ExchangeAccess:
        """
        Build the exchange access for ``settings.mode``.

        Raises:
            CredentialBoundaryError: direct mode requested outside testnet
            MissingCredentialsError: required key/secret missing or placeholder
        """
        if settings.mode == "backend":
            return cls._create_backend(settings)
        if settings.mode == "direct":
            return cls._create_direct(settings)
        raise CredentialBoundaryError(
            f"Unsupported signing mode: {settings.mode}. Available modes: {', '.join(cls._modes)}"
        )

    @staticmethod
    def _create_backend(settings: "BotSettings") -> ExchangeAccess:
        from exchange_clients.remote import RemoteExchangeClient

        logger.info(f"Signing mode: trusted backend at {settings.proxy_url}")
        return RemoteExchangeClient(
            settings.proxy_url,
            settings.proxy_client_key or settings.api_key,
            request_timeout=settings.request_timeout,
            price_timeout=settings.price_timeout,
        )

    @staticmethod
    def _create_direct(settings: "BotSettings") -> ExchangeAccess:
        from exchange_clients.binance import BinanceSpotClient

        if not settings.testnet:
            raise CredentialBoundaryError(
                "Direct signing exposes the API secret to this process and is only allowed on testnet; "
                "use mode=backend for live trading"
            )

        credentials = Credentials.from_values(settings.api_key, settings.api_secret)
        logger.warning(
            "⚠️ Signing mode: DIRECT (non-production). The API secret is held by this process; "
            "use it for testnet/demo only."
        )
        return BinanceSpotClient(
            credentials,
            base_asset=settings.base_asset,
            quote_asset=settings.quote_asset,
            testnet=True,
            base_url=settings.exchange_base_url,
            request_timeout=settings.request_timeout,
            price_timeout=settings.price_timeout,
        )


def create_exchange_access(settings: "BotSettings") -> ExchangeAccess:
    return ExchangeFactory.create(settings)
