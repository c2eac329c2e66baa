"""Tests for the button generation pipeline."""

import json

import pytest

from buttonsynth.app.exceptions import ErrorKind, UpstreamError, UpstreamTimeoutError
from buttonsynth.app.services.coercer import EmptyLabelStyle
from buttonsynth.app.services.generator import (
    BUTTON_SCHEMA,
    BUTTON_SCHEMA_NAME,
    SYSTEM_PROMPT,
    ButtonGenerator,
    parse_model_reply,
)
from buttonsynth.app.services.normalizer import GenerationRequest
from tests.conftest import StubProvider


def _reply(html, reasoning="ok"):
    return json.dumps({"html": html, "reasoning": reasoning})


class TestParseModelReply:
    """Tests for decoding the backend's JSON text."""

    def test_valid_reply(self):
        assert parse_model_reply(_reply("<button>x</button>")) == {
            "html": "<button>x</button>",
            "reasoning": "ok",
        }

    @pytest.mark.parametrize("text", ["", "   ", "not json", "[1, 2]", '"html"', '{"reasoning": "x"}', '{"html": 5}'])
    def test_unusable_reply(self, text):
        with pytest.raises(UpstreamError) as exc_info:
            parse_model_reply(text)
        # Client sees the generic message only
        assert exc_info.value.message == "Generation failed"
        assert exc_info.value.detail != exc_info.value.message


class TestButtonGenerator:
    """Tests for ButtonGenerator."""

    @pytest.mark.asyncio
    async def test_success(self):
        provider = StubProvider(
            output_text=_reply(
                '<button onclick="x()" style="background-color: #E51BFC; font-size: 34px">launch</button>',
                reasoning="super huge maps to 34px",
            ),
            usage={"input_tokens": 10, "output_tokens": 5, "total_tokens": 15},
        )
        result = await ButtonGenerator(provider, timeout=1).generate(
            GenerationRequest(text="LAUNCH", color="#E51BFC", size="super huge")
        )

        assert result.html == (
            '<button style="background-color: #E51BFC; font-size: 34px" type="button">LAUNCH</button>'
        )
        assert result.reasoning == "super huge maps to 34px"
        assert result.usage == {"input_tokens": 10, "output_tokens": 5, "total_tokens": 15}

    @pytest.mark.asyncio
    async def test_sends_prompt_schema_and_payload(self):
        provider = StubProvider()
        await ButtonGenerator(provider, timeout=1).generate(
            GenerationRequest(text="Go", color="red", size="huge", style_descriptor="cute")
        )

        call = provider.calls[0]
        assert call["system_prompt"] == SYSTEM_PROMPT
        assert call["schema"] == BUTTON_SCHEMA
        assert call["schema_name"] == BUTTON_SCHEMA_NAME
        assert json.loads(call["user_content"]) == {
            "component": "button",
            "text": "Go",
            "color": None,
            "size": None,
            "styleVariant": "cute",
        }

    @pytest.mark.asyncio
    async def test_usage_may_be_missing(self):
        result = await ButtonGenerator(StubProvider(), timeout=1).generate(GenerationRequest(text="x"))
        assert result.usage is None

    @pytest.mark.asyncio
    async def test_missing_reasoning_is_empty_string(self):
        provider = StubProvider(output_text='{"html": "<button>x</button>"}')
        result = await ButtonGenerator(provider, timeout=1).generate(GenerationRequest(text="x"))
        assert result.reasoning == ""

    @pytest.mark.asyncio
    async def test_timeout_is_distinct_failure(self):
        provider = StubProvider(delay=0.5)
        with pytest.raises(UpstreamTimeoutError) as exc_info:
            await ButtonGenerator(provider, timeout=0.05).generate(GenerationRequest(text="x"))

        assert exc_info.value.kind is ErrorKind.UPSTREAM_TIMEOUT
        assert exc_info.value.message == "Generation timed out"
        assert exc_info.value.status_code == 400

    @pytest.mark.asyncio
    async def test_provider_upstream_error_passes_through(self):
        error = UpstreamError(detail="OpenAI API error: boom")
        provider = StubProvider(exc=error)
        with pytest.raises(UpstreamError) as exc_info:
            await ButtonGenerator(provider, timeout=1).generate(GenerationRequest(text="x"))
        assert exc_info.value is error

    @pytest.mark.asyncio
    async def test_unexpected_provider_error_is_wrapped(self):
        provider = StubProvider(exc=ConnectionResetError("reset by peer"))
        with pytest.raises(UpstreamError) as exc_info:
            await ButtonGenerator(provider, timeout=1).generate(GenerationRequest(text="x"))

        assert exc_info.value.kind is ErrorKind.UPSTREAM
        assert "ConnectionResetError" in exc_info.value.detail
        assert isinstance(exc_info.value.__cause__, ConnectionResetError)

    @pytest.mark.asyncio
    async def test_malformed_json(self):
        provider = StubProvider(output_text="<button>not json</button>")
        with pytest.raises(UpstreamError):
            await ButtonGenerator(provider, timeout=1).generate(GenerationRequest(text="x"))

    @pytest.mark.asyncio
    async def test_no_button_in_reply(self):
        provider = StubProvider(output_text=_reply("<a href='#'>x</a>"))
        with pytest.raises(UpstreamError) as exc_info:
            await ButtonGenerator(provider, timeout=1).generate(GenerationRequest(text="x"))
        assert exc_info.value.message == "Model did not return a <button>"

    @pytest.mark.asyncio
    async def test_empty_label_uses_given_fallback(self):
        provider = StubProvider(output_text=_reply("<button>x</button>"))
        generator = ButtonGenerator(
            provider,
            timeout=1,
            empty_label_style=EmptyLabelStyle(padding="2px", border="none", background_color=""),
        )
        result = await generator.generate(GenerationRequest(text=""))
        assert result.html == '<button style="padding: 2px; border: none" type="button"></button>'

    def test_timeout_defaults_to_settings(self, monkeypatch):
        from buttonsynth.app.core.config import settings

        monkeypatch.setattr(settings, "generation_timeout", 7.5)
        assert ButtonGenerator(StubProvider()).timeout == 7.5


def test_schema_requires_both_fields():
    assert BUTTON_SCHEMA["required"] == ["html", "reasoning"]
    assert BUTTON_SCHEMA["additionalProperties"] is False
    assert BUTTON_SCHEMA_NAME == "ButtonJSON"
