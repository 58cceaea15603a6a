"""
Grid Trading Bot - runs one grid engine session against one exchange access
"""

import asyncio
import signal
import traceback
from typing import Optional

from exchange_clients.base_client import ExchangeAccess
from exchange_clients.exceptions import AuthenticationError, TradingError
from exchange_clients.factory import create_exchange_access
from helpers.unified_logger import UnifiedLogger, get_logger, log_stage
from strategies.grid import GridConfiguration, GridEngine, HaltReport
from trading_config.settings import BotSettings


class TradingBot:
    """Grid Trading Bot - wires settings, exchange access and engine together."""

    def __init__(
        self,
        settings: BotSettings,
        grid_config: GridConfiguration,
        exchange_client: Optional[ExchangeAccess] = None,
    ):
        """
        Initialize Trading Bot.

        Args:
            settings: Deployment settings (signing mode, symbol, timers, retries)
            grid_config: Validated grid configuration
            exchange_client: Optional pre-built exchange access; by default one
                is created from ``settings`` by the exchange factory
        """
        self.settings = settings
        self.grid_config = grid_config
        self.logger = get_logger(
            "bot",
            "grid",
            context={"symbol": settings.symbol, "mode": settings.mode},
            log_level=settings.log_level,
        )

        try:
            self.exchange_client = exchange_client or create_exchange_access(settings)
        except TradingError as e:
            self.logger.error(f"Failed to create exchange client: {e}")
            raise

        self.engine = GridEngine(
            self.exchange_client,
            grid_config,
            symbol=settings.symbol,
            retry_policy=settings.retry_policy(),
            price_poll_seconds=settings.price_poll_seconds,
            balance_poll_seconds=settings.balance_poll_seconds,
            reconcile_poll_seconds=settings.reconcile_poll_seconds,
            liquidate_on_halt=settings.liquidate_on_halt,
        )

        # Trading state
        self.shutdown_requested = False
        self._shutdown_reason = "Shutdown requested"
        self._shutdown_event = asyncio.Event()
        self._force_shutdown = False  # Flag for immediate shutdown (double CTRL+C)
        self.halt_report: Optional[HaltReport] = None

    def _log_configuration(self):
        """Log the session configuration; credentials are never printed."""
        log_stage(self.logger, "Grid Trading Bot")
        self.logger.info(f"Symbol: {self.settings.symbol}")
        self.logger.info(f"Signing mode: {self.settings.mode} (testnet={self.settings.testnet})")
        self.logger.info(
            f"Range: {self.grid_config.lower_limit} - {self.grid_config.upper_limit}, "
            f"{self.grid_config.grid_number} grids"
        )
        self.logger.info(f"Investment: {self.grid_config.initial_investment}")
        self.logger.info(
            f"Stop loss: {self.grid_config.stop_loss} | Take profit: {self.grid_config.take_profit_level}"
        )
        self.logger.info(
            f"Polling: price {self.settings.price_poll_seconds}s, balance {self.settings.balance_poll_seconds}s, "
            f"orders {self.settings.reconcile_poll_seconds}s"
        )

    def request_shutdown(self, reason: str = "Shutdown requested") -> None:
        """Ask the run loop to stop; a second request skips graceful cleanup."""
        if self.shutdown_requested:
            self.logger.warning("⚠️ Second shutdown request - forcing exit")
            self._force_shutdown = True
        self.shutdown_requested = True
        self._shutdown_reason = reason
        self._shutdown_event.set()

    def _install_signal_handlers(self) -> None:
        loop = asyncio.get_running_loop()
        for sig in (signal.SIGINT, signal.SIGTERM):
            try:
                loop.add_signal_handler(sig, self.request_shutdown, f"Signal {sig.name}")
            except (NotImplementedError, RuntimeError):
                # Platforms without loop signal support fall back to KeyboardInterrupt
                pass

    async def _connect_exchange(self) -> None:
        await self.exchange_client.connect()
        if not await self.exchange_client.validate_credentials():
            raise AuthenticationError("Exchange rejected the configured credentials")
        self.logger.info(f"✅ Connected to {self.exchange_client.get_exchange_name()}")

    async def _wait_for_stop(self) -> str:
        """Block until a shutdown request or an engine halt; returns the reason."""
        halted = asyncio.create_task(self.engine.wait_until_halted())
        requested = asyncio.create_task(self._shutdown_event.wait())
        done, pending = await asyncio.wait({halted, requested}, return_when=asyncio.FIRST_COMPLETED)
        for task in pending:
            task.cancel()
        if requested in done:
            return self._shutdown_reason
        return f"Engine halted: {self.engine.halt_reason}"

    async def graceful_shutdown(self, reason: str = "Unknown") -> Optional[HaltReport]:
        """Stop the engine, cancel resting orders and disconnect."""
        if self._force_shutdown:
            self.logger.warning("⚠️ Force shutdown requested - skipping graceful cleanup")
            return None

        self.logger.info(f"🛑 Graceful shutdown initiated: {reason}")
        self.shutdown_requested = True

        try:
            try:
                self.halt_report = await asyncio.wait_for(self.engine.stop(), timeout=60.0)
            except asyncio.TimeoutError:
                self.logger.warning("⚠️ Engine stop timed out; some orders may still rest on the book")
            else:
                if self.halt_report.success:
                    self.logger.info(
                        f"✅ Cancelled {len(self.halt_report.cancelled_order_ids)} orders "
                        f"({self.halt_report.reason})"
                    )
                else:
                    self.logger.error(
                        f"❌ {len(self.halt_report.failures)} orders could not be cleaned up: "
                        f"{', '.join(order_id for order_id, _ in self.halt_report.failures)}"
                    )

            try:
                await asyncio.wait_for(self.exchange_client.disconnect(), timeout=10.0)
                self.logger.info(f"✅ Disconnected from: {self.exchange_client.get_exchange_name()}")
            except asyncio.TimeoutError:
                self.logger.warning("⚠️ Exchange disconnect timed out")

            self.logger.info("✅ Shutdown complete")
        except Exception as e:
            self.logger.error(f"Error during graceful shutdown: {e}")
        finally:
            UnifiedLogger.flush_all_handlers()
        return self.halt_report

    async def run(self) -> Optional[HaltReport]:
        """Main entry point: connect, trade until stopped or halted, clean up."""
        try:
            self._log_configuration()
            self._install_signal_handlers()

            await self._connect_exchange()
            await self.engine.start()

            reason = await self._wait_for_stop()
            return await self.graceful_shutdown(reason)

        except KeyboardInterrupt:
            return await self.graceful_shutdown("User interruption (Ctrl+C)")
        except Exception as e:
            self.logger.error(f"Critical error: {e}")
            self.logger.error(f"Traceback: {traceback.format_exc()}")
            await self.graceful_shutdown(f"Critical error: {e}")
            raise
