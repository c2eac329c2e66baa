"""OpenAI provider using the Responses API structured output mode."""

from typing import Any, Dict, Optional

import httpx
from openai import APIConnectionError, APIError, APITimeoutError, AsyncOpenAI

from buttonsynth.app.core.logging import get_logger
from buttonsynth.app.exceptions import UpstreamError, UpstreamTimeoutError
from buttonsynth.app.providers.base import BaseProvider, ProviderResponse

logger = get_logger(__name__)

USAGE_FIELDS = ("input_tokens", "output_tokens", "total_tokens")


def _usage_dict(usage: Any) -> Optional[Dict[str, int]]:
    if usage is None:
        return None
    return {name: int(getattr(usage, name, 0) or 0) for name in USAGE_FIELDS}


class OpenAIProvider(BaseProvider):
    """OpenAI provider with support for a shared HTTP client.

    The SDK's own retries are disabled: a failed call is reported once
    and retrying is left to the client.
    """

    name = "openai"

    def __init__(
        self,
        api_key: str,
        model: str,
        base_url: str = "https://api.openai.com/v1",
        http_client: Optional[httpx.AsyncClient] = None,
        timeout: float = 10.0,
        temperature: float = 0.2,
        max_output_tokens: int = 400,
    ):
        """Initialize OpenAI provider.

        Args:
            api_key: The OpenAI API key
            model: Model name, e.g. "gpt-4o-mini"
            base_url: The OpenAI API base URL
            http_client: Optional shared HTTP client
            timeout: Request timeout in seconds
            temperature: Sampling temperature
            max_output_tokens: Upper bound on reply length
        """
        super().__init__(model)
        self.timeout = timeout
        self.temperature = temperature
        self.max_output_tokens = max_output_tokens
        self._client = AsyncOpenAI(
            api_key=api_key,
            base_url=base_url,
            http_client=http_client,
            timeout=timeout,
            max_retries=0,
        )

    async def generate(
        self,
        system_prompt: str,
        user_content: str,
        schema: Dict[str, Any],
        schema_name: str,
    ) -> ProviderResponse:
        try:
            resp = await self._client.responses.create(
                model=self.model,
                temperature=self.temperature,
                max_output_tokens=self.max_output_tokens,
                text={
                    "format": {
                        "type": "json_schema",
                        "name": schema_name,
                        "schema": schema,
                        "strict": True,
                    }
                },
                input=[
                    {"role": "system", "content": system_prompt},
                    {"role": "user", "content": user_content},
                ],
            )
        except APITimeoutError as e:
            raise UpstreamTimeoutError(self.timeout) from e
        except APIConnectionError as e:
            raise UpstreamError(detail=f"OpenAI connection error: {e}") from e
        except APIError as e:
            raise UpstreamError(detail=f"OpenAI API error: {e}") from e

        return ProviderResponse(
            output_text=resp.output_text or "",
            usage=_usage_dict(resp.usage),
            model=getattr(resp, "model", None) or self.model,
        )
