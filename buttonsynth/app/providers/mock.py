"""Mock provider for development without an API key.

Enable by setting environment variable:
    MOCK_PROVIDER=true
"""

import asyncio
import json
from typing import Any, Dict

from buttonsynth.app.providers.base import BaseProvider, ProviderResponse

SIZE_FONT_PX = {
    "tiny": 11,
    "small": 14,
    "medium": 16,
    "large": 18,
    "huge": 24,
    "super huge": 32,
}

VARIANT_STYLES = {
    "minimal": "background-color: #ffffff; color: #111111; border: 1px solid #d0d0d0; border-radius: 4px",
    "modern": "background: linear-gradient(180deg, #4f7cff, #3a5fd9); color: #ffffff; border-radius: 10px; box-shadow: 0 2px 6px rgba(0,0,0,0.2)",
    "cute": "background-color: #ffd6e8; color: #5a1037; border-radius: 999px",
}


class MockProvider(BaseProvider):
    """Provider that builds a plausible button without any network call.

    The reply echoes the request fields the way the real model is asked
    to, which makes it useful for UI work and smoke tests.
    """

    name = "mock"

    def __init__(self, model: str = "mock-model", delay: float = 0.0):
        super().__init__(model)
        self.delay = delay

    def _build_button(self, fields: Dict[str, Any]) -> str:
        variant = fields.get("styleVariant")
        if variant in VARIANT_STYLES:
            style = VARIANT_STYLES[variant] + "; padding: 10px 18px"
        else:
            color = fields.get("color") or "#4f46e5"
            font_px = SIZE_FONT_PX.get(str(fields.get("size") or "medium").lower(), 16)
            style = (
                f"background-color: {color}; color: #ffffff; font-size: {font_px}px; "
                "padding: 10px 16px; border-radius: 8px"
            )
        text = str(fields.get("text") or "")
        return f'<button type="button" style="{style}" data-variant="{variant or "custom"}">{text}</button>'

    async def generate(
        self,
        system_prompt: str,
        user_content: str,
        schema: Dict[str, Any],
        schema_name: str,
    ) -> ProviderResponse:
        if self.delay:
            await asyncio.sleep(self.delay)

        fields = json.loads(user_content)
        reply = {
            "html": self._build_button(fields),
            "reasoning": "Mock provider output.",
        }
        output_text = json.dumps(reply)
        input_tokens = len(system_prompt.split()) + len(user_content.split())
        output_tokens = len(output_text.split())
        return ProviderResponse(
            output_text=output_text,
            usage={
                "input_tokens": input_tokens,
                "output_tokens": output_tokens,
                "total_tokens": input_tokens + output_tokens,
            },
            model=self.model,
        )
