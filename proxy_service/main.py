"""
Signing Backend - FastAPI Application

The only process that holds the exchange API secret. Callers send intents
("get balance", "place order at price P") with their client key; requests
are signed here and results returned as JSON.
"""

from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from exchange_clients.base_client import ExchangeAccess
from exchange_clients.binance import BinanceSpotClient
from exchange_clients.credentials import Credentials
from exchange_clients.exceptions import (
    AuthenticationError,
    ExchangeTimeoutError,
    InvalidConfigurationError,
    OperationInProgressError,
    OperationNotAllowedError,
    OrderNotFoundError,
    TradingError,
)
from exchange_clients.remote import CLIENT_KEY_HEADER
from helpers.unified_logger import get_service_logger, log_stage
from trading_config.settings import ProxySettings

from . import routes
from .dependencies import ServiceContainer

logger = get_service_logger("proxy")

API_VERSION = "1.0.0"


def status_for_error(exc: TradingError) -> int:
    """HTTP status carried by a typed error."""
    if isinstance(exc, InvalidConfigurationError):
        return 400
    if isinstance(exc, AuthenticationError):
        return 401
    if isinstance(exc, OperationNotAllowedError):
        return 403
    if isinstance(exc, OrderNotFoundError):
        return 404
    if isinstance(exc, OperationInProgressError):
        return 409
    if isinstance(exc, ExchangeTimeoutError):
        return 504
    return 502


def build_exchange(settings: ProxySettings) -> ExchangeAccess:
    """Exchange client signing with the backend's own credentials."""
    credentials = Credentials.from_values(settings.api_key, settings.api_secret)
    return BinanceSpotClient(
        credentials,
        base_asset=settings.base_asset,
        quote_asset=settings.quote_asset,
        testnet=settings.testnet,
        base_url=settings.exchange_base_url,
        request_timeout=settings.request_timeout,
        price_timeout=settings.price_timeout,
    )


def create_app(
    settings: Optional[ProxySettings] = None,
    exchange: Optional[ExchangeAccess] = None,
) -> FastAPI:
    """
    Build the backend application.

    Args:
        settings: Proxy settings; read from the environment when omitted
        exchange: Pre-built exchange access (tests); otherwise a Binance
            client is created from ``settings`` at startup
    """
    settings = settings or ProxySettings()
    services = ServiceContainer(settings, exchange)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """
        Startup: create and connect the exchange client.
        Shutdown: disconnect it, which also wipes the credentials.
        """
        log_stage(logger, "Starting signing backend")
        created_here = services.exchange is None
        try:
            if created_here:
                services.set_exchange(build_exchange(settings))
            await services.get_exchange().connect()
            logger.info(
                f"✅ Exchange ready (testnet={settings.testnet}); "
                f"operations: {', '.join(sorted(settings.allowed_operation_set))}"
            )
            if not settings.client_key_set:
                logger.warning("⚠️ No client keys configured; every request will be rejected")
            yield
        except Exception as e:
            logger.error(f"Failed to start signing backend: {e}")
            raise
        finally:
            if services.exchange is not None:
                await services.exchange.disconnect()
                if created_here:
                    services.set_exchange(None)
            logger.info("👋 Signing backend stopped")

    app = FastAPI(
        title="Grid Bot Signing Backend",
        description="Trusted boundary holding the exchange secret",
        version=API_VERSION,
        lifespan=lifespan,
    )
    app.state.services = services

    # CORS middleware
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origin_list,
        allow_credentials=False,
        allow_methods=["GET", "POST", "DELETE"],
        allow_headers=["Content-Type", "Authorization", CLIENT_KEY_HEADER],
    )

    @app.exception_handler(TradingError)
    async def trading_error_handler(request: Request, exc: TradingError):
        status_code = status_for_error(exc)
        logger.warning(f"{request.method} {request.url.path} -> {status_code} [{exc.kind}] {exc}")
        return JSONResponse(status_code=status_code, content={"error": exc.to_dict()})

    @app.exception_handler(RequestValidationError)
    async def validation_error_handler(request: Request, exc: RequestValidationError):
        error = InvalidConfigurationError(f"Invalid request: {exc.errors()}")
        return JSONResponse(status_code=400, content={"error": error.to_dict()})

    @app.exception_handler(Exception)
    async def global_exception_handler(request: Request, exc: Exception):
        """Global exception handler"""
        logger.error(f"Unhandled exception on {request.url.path}: {exc}")
        return JSONResponse(
            status_code=500,
            content={"error": {"kind": "InternalError", "message": "Internal server error"}},
        )

    app.include_router(routes.router, tags=["Trading"])

    @app.get("/ping")
    async def ping():
        """Simple ping endpoint"""
        return {"status": "ok"}

    return app


if __name__ == "__main__":
    import uvicorn

    # Run with: python -m proxy_service.main
    proxy_settings = ProxySettings()
    if not proxy_settings.testnet:
        logger.warning("⚠️ LIVE exchange endpoint: orders use real funds")
    uvicorn.run(
        create_app(proxy_settings),
        host=proxy_settings.host,
        port=proxy_settings.port,
        log_level="info",
    )
