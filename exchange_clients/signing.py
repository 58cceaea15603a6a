"""
Request signing for HMAC-authenticated REST APIs.

The exchange recomputes the signature over the exact bytes it receives, so
the canonical query string built here is also the string sent on the wire.
"""

from __future__ import annotations

import hashlib
import hmac
import time
from decimal import Decimal
from typing import Any, Iterable, Mapping, Tuple, Union
from urllib.parse import urlencode

Params = Union[Mapping[str, Any], Iterable[Tuple[str, Any]]]


def _format_value(value: Any) -> str:
    if isinstance(value, Decimal):
        # Plain notation: the exchange rejects '1E-5'
        text = format(value, "f")
        if "." in text:
            text = text.rstrip("0").rstrip(".")
        return text or "0"
    if isinstance(value, bool):
        return "true" if value else "false"
    if hasattr(value, "value"):  # Enum members
        return str(value.value)
    return str(value)


def build_canonical_query(params: Params) -> str:
    """Encode parameters in insertion order, skipping ``None`` values."""
    items = params.items() if isinstance(params, Mapping) else params
    return urlencode([(key, _format_value(value)) for key, value in items if value is not None])


def sign_request(secret: str, canonical_query: str) -> str:
    """HMAC-SHA256 of ``canonical_query`` keyed by ``secret``, hex encoded."""
    return hmac.new(
        secret.encode("utf-8"),
        canonical_query.encode("utf-8"),
        hashlib.sha256,
    ).hexdigest()


def timestamp_ms() -> int:
    return int(time.time() * 1000)


def signed_query(secret: str, params: Params, recv_window: int = 5000) -> str:
    """
    Append a fresh ``timestamp`` and ``recvWindow``, sign, and append ``signature``.

    Call immediately before sending: the timestamp must not be cached.
    """
    items = list(params.items() if isinstance(params, Mapping) else params)
    items.append(("recvWindow", recv_window))
    items.append(("timestamp", timestamp_ms()))
    query = build_canonical_query(items)
    return f"{query}&signature={sign_request(secret, query)}"


__all__ = ["build_canonical_query", "sign_request", "signed_query", "timestamp_ms"]
