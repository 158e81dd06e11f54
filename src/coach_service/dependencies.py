"""Application-wide dependencies and state management.

This module is separate from main.py to avoid circular imports.
"""

from typing import Optional

import httpx

from coach_service.core.key_pool import KeyPool


# Shared outbound HTTP client
_http_client: Optional[httpx.AsyncClient] = None

# Generation credentials, loaded once per process
_key_pool: Optional[KeyPool] = None


def set_http_client(client: httpx.AsyncClient) -> None:
    """Set the shared HTTP client."""
    global _http_client
    _http_client = client


def clear_http_client() -> None:
    """Clear the shared HTTP client."""
    global _http_client
    _http_client = None


def get_http_client() -> httpx.AsyncClient:
    """Get the shared HTTP client."""
    if _http_client is None:
        raise RuntimeError("HTTP client not initialized")
    return _http_client


def set_key_pool(pool: KeyPool) -> None:
    """Set the generation key pool."""
    global _key_pool
    _key_pool = pool


def clear_key_pool() -> None:
    """Clear the generation key pool."""
    global _key_pool
    _key_pool = None


def get_key_pool() -> KeyPool:
    """Get the generation key pool."""
    if _key_pool is None:
        raise RuntimeError("Key pool not initialized")
    return _key_pool
