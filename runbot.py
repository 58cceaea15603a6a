#!/usr/bin/env python3
"""
Grid Trading Bot - Config-driven launcher.

Usage:
    python runbot.py --config configs/grid.yml [--env-file .env] [--log-level INFO]

Generate an example config via:
    python -m trading_config.config_yaml
"""

import argparse
import asyncio
import logging
import os
import sys
from pathlib import Path

import dotenv
from pydantic import ValidationError

from exchange_clients.exceptions import TradingError
from trading_bot import TradingBot
from trading_config.config_yaml import load_grid_configuration_file
from trading_config.settings import BotSettings


def parse_arguments(argv=None):
    """Parse command line arguments (config-only workflow)."""
    parser = argparse.ArgumentParser(
        description="Run the grid trading engine using a YAML grid configuration."
    )

    parser.add_argument(
        "--config",
        "-c",
        type=str,
        required=True,
        help="Path to the YAML grid configuration.",
    )

    parser.add_argument(
        "--env-file",
        type=str,
        default=".env",
        help="Path to the environment file with GRID_BOT_* settings (default: .env).",
    )

    parser.add_argument(
        "--log-level",
        "-l",
        type=str,
        default=None,
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        help="Logging level (default: GRID_BOT_LOG_LEVEL or INFO).",
    )

    return parser.parse_args(argv)


def setup_logging(log_level: str):
    """Route standard-library loggers to the console and quiet noisy libraries."""
    level = getattr(logging, log_level.upper(), logging.INFO)
    os.environ["LOG_LEVEL"] = log_level.upper()

    root_logger = logging.getLogger()
    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)
    root_logger.setLevel(level)

    console_handler = logging.StreamHandler()
    console_handler.setLevel(level)
    console_handler.setFormatter(
        logging.Formatter('%(asctime)s.%(msecs)03d - %(levelname)s - %(message)s', datefmt='%Y-%m-%d %H:%M:%S')
    )
    root_logger.addHandler(console_handler)

    # These libraries are too verbose and don't provide useful trading info
    logging.getLogger('aiohttp').setLevel(logging.WARNING)
    logging.getLogger('httpx').setLevel(logging.WARNING)
    logging.getLogger('httpcore').setLevel(logging.WARNING)
    logging.getLogger('asyncio').setLevel(logging.WARNING)


async def main(argv=None) -> int:
    args = parse_arguments(argv)

    env_path = Path(args.env_file)
    if env_path.exists():
        dotenv.load_dotenv(env_path, override=False)
        print(f"✓ Loaded environment from {env_path}")
    else:
        print(f"⚠️ Env file not found: {env_path} (using process environment)")

    try:
        settings = BotSettings(_env_file=str(env_path) if env_path.exists() else None)
        if args.log_level:
            settings = settings.model_copy(update={"log_level": args.log_level})
        setup_logging(settings.log_level)
        grid_config = load_grid_configuration_file(args.config)
    except FileNotFoundError as e:
        print(f"❌ {e}")
        return 1
    except TradingError as e:
        print(f"❌ Invalid configuration [{e.kind}]: {e}")
        return 1
    except ValidationError as e:
        print(f"❌ Invalid settings: {e}")
        return 1

    print("\n" + "=" * 70)
    print("  Starting Grid Trading Bot")
    print("=" * 70)
    print(f"  Symbol:  {settings.symbol}")
    print(f"  Mode:    {settings.mode}{' (testnet)' if settings.testnet else ''}")
    print(f"  Range:   {grid_config.lower_limit} - {grid_config.upper_limit} ({grid_config.grid_number} grids)")
    print("=" * 70 + "\n")

    try:
        bot = TradingBot(settings, grid_config)
        report = await bot.run()
    except TradingError as e:
        print(f"Bot execution failed [{e.kind}]: {e}")
        return 1

    if report is not None and not report.success:
        return 2
    return 0


if __name__ == "__main__":
    sys.exit(asyncio.run(main()))
