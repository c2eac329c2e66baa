"""Connection pool shared by every call to the generation backend.

Opened once in the application lifespan and handed to the OpenAI SDK.
"""

from contextlib import asynccontextmanager
from typing import AsyncGenerator

import httpx

from buttonsynth.app.core.config import settings


_shared_http_client: httpx.AsyncClient | None = None


def get_http_client() -> httpx.AsyncClient:
    """Return the pool opened by the lifespan.

    Raises:
        RuntimeError: Outside the lifespan (e.g. in unit tests)
    """
    if _shared_http_client is None:
        raise RuntimeError("HTTP client not initialized")
    return _shared_http_client


def create_http_client() -> httpx.AsyncClient:
    """Build a pooled client from the ``httpx_*`` settings.

    The read timeout is at least ``generation_timeout``.
    """
    return httpx.AsyncClient(
        timeout=httpx.Timeout(
            connect=settings.httpx_connect_timeout,
            read=max(settings.httpx_read_timeout, settings.generation_timeout),
            write=settings.httpx_write_timeout,
            pool=settings.httpx_pool_timeout,
        ),
        limits=httpx.Limits(
            max_connections=settings.httpx_max_connections,
            max_keepalive_connections=settings.httpx_max_keepalive_connections,
            keepalive_expiry=settings.httpx_keepalive_expiry,
        ),
    )


@asynccontextmanager
async def init_http_client() -> AsyncGenerator[httpx.AsyncClient, None]:
    """Open the shared client for the duration of the block."""
    global _shared_http_client

    client = create_http_client()
    _shared_http_client = client
    try:
        yield client
    finally:
        _shared_http_client = None
        await client.aclose()
