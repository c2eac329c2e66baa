"""Generation providers package.

This package provides:
- Base provider interface (BaseProvider, ProviderResponse)
- Provider implementations (OpenAIProvider, MockProvider)
- Provider factory (create_provider, get_provider, reset_provider)
"""

from buttonsynth.app.providers.base import BaseProvider, ProviderResponse
from buttonsynth.app.providers.factory import create_provider, get_provider, reset_provider
from buttonsynth.app.providers.mock import MockProvider
from buttonsynth.app.providers.openai import OpenAIProvider

__all__ = [
    "BaseProvider",
    "ProviderResponse",
    "MockProvider",
    "OpenAIProvider",
    "create_provider",
    "get_provider",
    "reset_provider",
]
