"""Provider factory.

Builds the generation backend from settings and keeps one instance per
process so the shared HTTP connection pool is reused.
"""

from typing import Optional

import httpx

from buttonsynth.app.core.config import settings
from buttonsynth.app.core.logging import get_logger
from buttonsynth.app.providers.base import BaseProvider
from buttonsynth.app.providers.mock import MockProvider
from buttonsynth.app.providers.openai import OpenAIProvider

logger = get_logger(__name__)

_provider: Optional[BaseProvider] = None


def create_provider(http_client: Optional[httpx.AsyncClient] = None) -> BaseProvider:
    """Create a provider instance from settings."""
    if settings.mock_provider:
        logger.info("Using mock generation provider")
        return MockProvider()

    return OpenAIProvider(
        api_key=settings.openai_api_key,
        model=settings.openai_model,
        base_url=settings.openai_base_url,
        http_client=http_client,
        timeout=settings.generation_timeout,
        temperature=settings.generation_temperature,
        max_output_tokens=settings.generation_max_output_tokens,
    )


def get_provider(http_client: Optional[httpx.AsyncClient] = None) -> BaseProvider:
    """Get the process-wide provider, creating it on first use."""
    global _provider
    if _provider is None:
        _provider = create_provider(http_client)
    return _provider


def reset_provider() -> None:
    """Drop the cached provider (used on startup and in tests)."""
    global _provider
    _provider = None
