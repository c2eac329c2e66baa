from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Dict, Optional


@dataclass
class ProviderResponse:
    """Raw structured-output reply from a generation backend."""
    output_text: str
    usage: Optional[Dict[str, int]] = None
    model: Optional[str] = None


class BaseProvider(ABC):
    """Base class for structured-output generation backends.

    A provider takes a system instruction, a user message and a JSON
    schema, and returns the backend's JSON text unparsed. Providers raise
    ``UpstreamError`` (or ``UpstreamTimeoutError``) for every backend
    failure so callers never see SDK-specific exceptions.
    """

    name: str = "base"

    def __init__(self, model: str):
        self.model = model

    @abstractmethod
    async def generate(
        self,
        system_prompt: str,
        user_content: str,
        schema: Dict[str, Any],
        schema_name: str,
    ) -> ProviderResponse:
        """Request a completion constrained to ``schema``.

        Args:
            system_prompt: Fixed system instruction
            user_content: User message (a JSON document)
            schema: JSON schema the reply must validate against
            schema_name: Name reported to the backend for the schema

        Returns:
            ProviderResponse with the reply text and token usage
        """
        pass
