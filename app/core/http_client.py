"""
Shared HTTP client for provider adapters.

One httpx.AsyncClient per process keeps connection pools warm across
provider calls. The FastAPI lifespan closes it on shutdown; Celery tasks run
each job in a fresh event loop and therefore create and close their own
client through ``provider_http_client``.
"""
import asyncio
from contextlib import asynccontextmanager
from typing import AsyncIterator, Optional

import httpx

from app.core.config import settings
from app.core.logging_config import log_info

_client: Optional[httpx.AsyncClient] = None
_client_lock: Optional[asyncio.Lock] = None

_limits = httpx.Limits(max_connections=50, max_keepalive_connections=20)


def _get_lock() -> asyncio.Lock:
    global _client_lock
    if _client_lock is None:
        _client_lock = asyncio.Lock()
    return _client_lock


def build_http_client() -> httpx.AsyncClient:
    """Create a client configured for provider REST APIs."""
    return httpx.AsyncClient(
        timeout=httpx.Timeout(settings.provider_request_timeout_seconds, connect=5.0),
        limits=_limits,
        follow_redirects=True,
    )


async def get_http_client() -> httpx.AsyncClient:
    """
    Get the shared AsyncClient instance, creating it on first use or after close.
    """
    global _client
    if _client is None or _client.is_closed:
        async with _get_lock():
            if _client is None or _client.is_closed:
                _client = build_http_client()
                log_info("HTTP client created", timeout=settings.provider_request_timeout_seconds)
    return _client


async def close_http_client():
    """Close the shared client if it exists."""
    global _client
    async with _get_lock():
        if _client and not _client.is_closed:
            await _client.aclose()
            _client = None
            log_info("HTTP client closed")


@asynccontextmanager
async def provider_http_client() -> AsyncIterator[httpx.AsyncClient]:
    """Short-lived client for one worker job; closed on exit."""
    client = build_http_client()
    try:
        yield client
    finally:
        await client.aclose()
