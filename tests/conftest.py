"""Shared fixtures for ButtonSynth tests."""

import asyncio
from typing import Any, Dict, List, Optional

import pytest
from fastapi.testclient import TestClient

from buttonsynth.app.api.generate import get_provider_dependency
from buttonsynth.app.main import create_app
from buttonsynth.app.providers.base import BaseProvider, ProviderResponse


class FakeClock:
    """Millisecond clock that only moves when told to."""

    def __init__(self, start: int = 1_000_000):
        self.now = start

    def __call__(self) -> int:
        return self.now

    def advance(self, ms: int) -> None:
        self.now += ms


class StubProvider(BaseProvider):
    """Provider returning a fixed reply and recording every call."""

    name = "stub"

    def __init__(
        self,
        output_text: str = '{"html": "<button>x</button>", "reasoning": "stub"}',
        usage: Optional[Dict[str, int]] = None,
        exc: Optional[Exception] = None,
        delay: float = 0.0,
    ):
        super().__init__("stub-model")
        self.output_text = output_text
        self.usage = usage
        self.exc = exc
        self.delay = delay
        self.calls: List[Dict[str, Any]] = []

    async def generate(self, system_prompt, user_content, schema, schema_name) -> ProviderResponse:
        self.calls.append({
            "system_prompt": system_prompt,
            "user_content": user_content,
            "schema": schema,
            "schema_name": schema_name,
        })
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.exc is not None:
            raise self.exc
        return ProviderResponse(output_text=self.output_text, usage=self.usage, model=self.model)


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def stub_provider():
    return StubProvider()


@pytest.fixture
def app(stub_provider, clock):
    """Fresh application with frozen limiter clocks and a stub provider."""
    application = create_app()
    application.state.global_limiter._clock = clock
    application.state.generate_limiter._clock = clock
    application.dependency_overrides[get_provider_dependency] = lambda: stub_provider
    return application


@pytest.fixture
def client(app):
    return TestClient(app)
