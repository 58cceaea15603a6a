"""
Trusted signing backend.

Holds the exchange secret and exposes high-level trading intents over HTTP
to callers identified by an API key. Run with ``python -m proxy_service.main``.
"""
