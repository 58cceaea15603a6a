"""
API Key Authentication and operation allow-list for the signing backend
"""

import hmac
from typing import Callable, Optional

from fastapi import Depends, Request

from exchange_clients.exceptions import AuthenticationError, OperationNotAllowedError
from exchange_clients.remote import CLIENT_KEY_HEADER
from helpers.unified_logger import get_service_logger
from trading_config.settings import ProxySettings

from .dependencies import get_settings

logger = get_service_logger("proxy_auth")


def _extract_key(request: Request) -> Optional[str]:
    auth_header = request.headers.get("Authorization")
    if auth_header and auth_header.startswith("Bearer "):
        return auth_header[7:]
    return request.headers.get(CLIENT_KEY_HEADER)


class APIKeyAuth:
    """Checks the caller's API key against the configured client keys."""

    async def __call__(
        self,
        request: Request,
        settings: ProxySettings = Depends(get_settings),
    ) -> str:
        """
        Returns:
            The accepted client key

        Raises:
            AuthenticationError: missing or unknown key (HTTP 401)
        """
        api_key = _extract_key(request)
        if not api_key:
            raise AuthenticationError(
                f"Missing API key. Provide '{CLIENT_KEY_HEADER}' header or 'Authorization: Bearer <key>'"
            )

        # Constant-time comparison against every configured key
        presented = api_key.encode()
        if not any(hmac.compare_digest(presented, known.encode()) for known in settings.client_key_set):
            logger.warning(f"Rejected request to {request.url.path}: unknown API key")
            raise AuthenticationError("Invalid API key")

        return api_key


require_api_key = APIKeyAuth()


def require_operation(operation: str) -> Callable:
    """
    Dependency factory: authenticate the caller and check ``operation`` is allowed.

    Raises:
        OperationNotAllowedError: operation missing from ``allowed_operations`` (HTTP 403)
    """

    async def _check(
        api_key: str = Depends(require_api_key),
        settings: ProxySettings = Depends(get_settings),
    ) -> str:
        if operation not in settings.allowed_operation_set:
            logger.warning(f"Operation '{operation}' refused: not in allowed operations")
            raise OperationNotAllowedError(f"Operation '{operation}' is not allowed by this backend")
        return api_key

    return _check
