"""
Common constants and helpers for the Binance spot REST API.
"""

from typing import Optional

MAINNET_BASE_URL = "https://api.binance.com"
TESTNET_BASE_URL = "https://testnet.binance.vision"

TICKER_PRICE_PATH = "/api/v3/ticker/price"
ACCOUNT_PATH = "/api/v3/account"
ORDER_PATH = "/api/v3/order"

API_KEY_HEADER = "X-MBX-APIKEY"
RECV_WINDOW_MS = 5000

# Timeout budgets in seconds
PRICE_TIMEOUT = 5.0
REQUEST_TIMEOUT = 10.0

# -1002 unauthorized, -1021 timestamp outside recvWindow, -1022 bad signature,
# -2014 malformed API key, -2015 invalid key/IP/permissions
AUTH_ERROR_CODES = frozenset({-1002, -1021, -1022, -2014, -2015})

# -1003 too many requests
RATE_LIMIT_CODES = frozenset({-1003})
RATE_LIMIT_HTTP_STATUSES = frozenset({418, 429})

NO_SUCH_ORDER_CODE = -2013
CANCEL_REJECTED_CODE = -2011


def base_url_for(testnet: bool, override: Optional[str] = None) -> str:
    if override:
        return override.rstrip("/")
    return TESTNET_BASE_URL if testnet else MAINNET_BASE_URL


def format_symbol(symbol: str) -> str:
    """'btc/usdt', 'BTC-USDT' and 'BTCUSDT' all map to 'BTCUSDT'."""
    return symbol.upper().replace("/", "").replace("-", "").replace("_", "")
