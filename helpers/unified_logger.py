"""
Unified logging for the grid bot

Every component (exchange clients, the grid engine, the proxy service,
launcher utilities) logs through the same loguru sink configuration:
- colored console output with the source location of the caller
- a shared history file and a per-session file under ``logs/``

Components are identified by ``TYPE:NAME[:key=value...]`` so one history file
can be filtered per component.
"""

import os
import sys
import time
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, Optional

from loguru import logger as _logger

LOGS_DIR = Path(__file__).parent.parent / "logs"

_CONSOLE_WIDTH = 48

_FILE_FORMAT = (
    "{time:YYYY-MM-DD HH:mm:ss} | "
    "{level:<8} | "
    "{extra[component_id]:<32} | "
    "{message}"
)


def _short_source(record) -> str:
    """Right-aligned ``module:function:line`` column that never cuts function:line."""
    module = record.get("module") or record.get("name", "")
    suffix = f":{record.get('function', '')}:{record.get('line', 0)}"
    room = _CONSOLE_WIDTH - len(suffix)
    if room <= 3:
        module = "..."
    elif len(module) > room:
        module = "..." + module[-(room - 3):]
    return f"{module}{suffix}"


def _ensure_component(record) -> bool:
    record["extra"].setdefault("component_id", "UNKNOWN")
    return True


def _console_filter(record) -> bool:
    if not record["extra"].get("component_id"):
        return False
    record["extra"]["short_name"] = f"{_short_source(record):>{_CONSOLE_WIDTH}}"
    return True


class UnifiedLogger:
    """
    Component-scoped wrapper around the shared loguru logger.

    Sinks are installed once per process; each instance only binds its
    ``component_id`` so records can be attributed in the shared files.
    """

    def __init__(
        self,
        component_type: str,
        component_name: str,
        context: Optional[Dict[str, Any]] = None,
        log_to_console: bool = True,
        log_level: str = "INFO",
    ):
        self.component_type = component_type.upper()
        self.component_name = component_name.upper()
        self.context = context or {}
        self.log_level = log_level.upper()
        self.log_to_console = log_to_console

        self.component_id = f"{self.component_type}:{self.component_name}"
        if self.context:
            context_str = ":".join(f"{k}={v}" for k, v in self.context.items())
            self.component_id = f"{self.component_id}:{context_str}"

        self._setup_sinks()
        self._logger = _logger.bind(component_id=self.component_id)

    def _setup_sinks(self) -> None:
        if not hasattr(_logger, "_grid_bot_console_setup"):
            _logger.remove()
            if self.log_to_console:
                _logger.add(
                    sys.stdout,
                    format=(
                        "<green>{time:YYYY-MM-DD HH:mm:ss}</green> | "
                        "<level>{level: <8}</level> | "
                        "<cyan>{extra[short_name]}</cyan> | "
                        "<level>{message}</level>"
                    ),
                    level=self.log_level,
                    colorize=True,
                    filter=_console_filter,
                    backtrace=True,
                    diagnose=False,
                )
            _logger._grid_bot_console_setup = True

        if not hasattr(_logger, "_grid_bot_file_setup"):
            LOGS_DIR.mkdir(exist_ok=True)
            session_ts = datetime.now().strftime("%Y%m%d_%H%M%S")
            for path in (LOGS_DIR / "unified_history.log", LOGS_DIR / f"session_{session_ts}.log"):
                _logger.add(
                    str(path),
                    format=_FILE_FORMAT,
                    level="DEBUG",
                    filter=_ensure_component,
                    backtrace=False,
                    diagnose=False,
                    enqueue=True,
                    catch=True,
                )
            _logger._grid_bot_file_setup = True

    def debug(self, message: str, **kwargs):
        self._logger.opt(depth=1).debug(message, **kwargs)

    def info(self, message: str, **kwargs):
        self._logger.opt(depth=1).info(message, **kwargs)

    def warning(self, message: str, **kwargs):
        self._logger.opt(depth=1).warning(message, **kwargs)

    def error(self, message: str, **kwargs):
        self._logger.opt(depth=1).error(message, **kwargs)

    def critical(self, message: str, **kwargs):
        self._logger.opt(depth=1).critical(message, **kwargs)

    def log(self, message: str, level: str = "INFO", **kwargs):
        """Level-by-name entry point; unknown levels log at INFO."""
        level = level.upper()
        if level not in {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}:
            level = "INFO"
        self._logger.opt(depth=1).log(level, message, **kwargs)

    def log_transaction(self, order_id: str, side: str, quantity: Any, price: Any, status: str):
        """Log an order lifecycle event as a single greppable line."""
        self._logger.opt(depth=1).bind(transaction=True).info(
            f"TRANSACTION: {side.upper()} {quantity} @ {price} | Order: {order_id} | Status: {status}"
        )

    def with_context(self, **context) -> "UnifiedLogger":
        """Return a logger for the same component with extra context (order id, symbol...)."""
        return UnifiedLogger(
            component_type=self.component_type.lower(),
            component_name=self.component_name.lower(),
            context={**self.context, **context},
            log_to_console=self.log_to_console,
            log_level=self.log_level,
        )

    @staticmethod
    def flush_all_handlers():
        """
        Wait for enqueued file writes before the process exits.

        ``enqueue=True`` sinks write from a background thread, so shutdown
        paths call this after their last log line.
        """
        try:
            _logger.complete()
        except Exception:  # pragma: no cover - shutdown path
            time.sleep(0.2)
        sys.stdout.flush()
        sys.stderr.flush()


def get_logger(
    component_type: str,
    component_name: str,
    context: Optional[Dict[str, Any]] = None,
    log_to_console: bool = True,
    log_level: Optional[str] = None,
) -> UnifiedLogger:
    """
    Factory for unified loggers.

    Examples:
        logger = get_logger("exchange", "binance", {"symbol": "BTCUSDT"})
        logger = get_logger("strategy", "grid")
        logger = get_logger("service", "proxy")
    """
    if log_level is None:
        log_level = os.getenv("LOG_LEVEL", "INFO")

    return UnifiedLogger(
        component_type=component_type,
        component_name=component_name,
        context=context,
        log_to_console=log_to_console,
        log_level=log_level,
    )


def get_exchange_logger(exchange_name: str, symbol: str = None, **context) -> UnifiedLogger:
    """Get logger for exchange clients."""
    ctx = {"symbol": symbol} if symbol else {}
    ctx.update(context)
    return get_logger("exchange", exchange_name, ctx)


def get_strategy_logger(strategy_name: str, **context) -> UnifiedLogger:
    """Get logger for trading strategies."""
    return get_logger("strategy", strategy_name, context)


def get_service_logger(service_name: str, **context) -> UnifiedLogger:
    """Get logger for services."""
    return get_logger("service", service_name, context)


def get_core_logger(module_name: str, **context) -> UnifiedLogger:
    """Get logger for core utilities."""
    return get_logger("core", module_name, context)


def log_stage(logger_obj: UnifiedLogger, title: str, *, border: str = "=", width: int = 55) -> None:
    """Log a separator block to highlight a lifecycle phase (startup, shutdown...)."""
    line = border * width
    logger_obj.info(line)
    logger_obj.info(title)
    logger_obj.info(line)
