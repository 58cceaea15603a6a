"""
Binance Exchange Client Module

Spot REST client with in-process HMAC signing.
"""

from .client import BinanceSpotClient
from .common import MAINNET_BASE_URL, TESTNET_BASE_URL, format_symbol

__all__ = [
    'BinanceSpotClient',
    'MAINNET_BASE_URL',
    'TESTNET_BASE_URL',
    'format_symbol',
]
