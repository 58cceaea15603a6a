"""
Remote exchange access through the trusted signing backend.
"""

from .client import CLIENT_KEY_HEADER, RemoteExchangeClient

__all__ = ['CLIENT_KEY_HEADER', 'RemoteExchangeClient']
