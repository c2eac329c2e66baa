"""Client input normalization and validation.

Every field sent by the browser is cleaned, length-limited and checked
against a deny-list of script-injection patterns before it is placed in
a prompt.
"""

import re
import unicodedata
from typing import Any, Mapping, Optional

from pydantic import BaseModel, Field, model_validator

from buttonsynth.app.exceptions import ValidationError

SUPPORTED_COMPONENTS = ("button",)

TEXT_MAX_LENGTH = 200
COLOR_MAX_LENGTH = 50
SIZE_MAX_LENGTH = 50
STYLE_MAX_LENGTH = 80

_LAYOUT_WHITESPACE_RE = re.compile(r"[\n\r\t]")
_CONTROL_CHARS_RE = re.compile(r"[\x00-\x1f\x7f-\x9f]")

DENY_PATTERNS = (
    re.compile(r"<\s*script", re.IGNORECASE),
    re.compile(r"on\w+\s*=", re.IGNORECASE),
    re.compile(r"javascript:", re.IGNORECASE),
    re.compile(r"data:\s*text/html", re.IGNORECASE),
    re.compile(r"url\(", re.IGNORECASE),
    re.compile(r"expression\s*\(", re.IGNORECASE),
)


class GenerationRequest(BaseModel):
    """Normalized parameters for one button generation.

    A non-empty ``style_descriptor`` takes precedence: ``color`` and
    ``size`` are always ``None`` when it is set.
    """

    text: str = Field(default="", max_length=TEXT_MAX_LENGTH)
    color: Optional[str] = Field(default=None, max_length=COLOR_MAX_LENGTH)
    size: Optional[str] = Field(default=None, max_length=SIZE_MAX_LENGTH)
    style_descriptor: Optional[str] = Field(default=None, max_length=STYLE_MAX_LENGTH)

    model_config = {"frozen": True}

    @model_validator(mode="before")
    @classmethod
    def descriptor_wins(cls, data: Any) -> Any:
        if isinstance(data, dict) and data.get("style_descriptor"):
            data = {**data, "color": None, "size": None}
        return data

    def to_prompt_payload(self) -> dict:
        """Serialize for the user message sent to the model."""
        return {
            "component": "button",
            "text": self.text,
            "color": self.color,
            "size": self.size,
            "styleVariant": self.style_descriptor,
        }


def clean_text(value: Any, max_length: int) -> str:
    """Clean one client-supplied value.

    Tabs and line breaks become spaces, the string is NFKC-normalized,
    remaining control characters become spaces, then it is trimmed and
    truncated.
    """
    if value is None:
        return ""
    if isinstance(value, (dict, list)):
        raise ValidationError("Fields must be plain strings")

    s = _LAYOUT_WHITESPACE_RE.sub(" ", str(value))
    s = unicodedata.normalize("NFKC", s)
    s = _CONTROL_CHARS_RE.sub(" ", s)
    return s.strip()[:max_length]


def assert_clean(label: str, value: str) -> str:
    """Reject values matching any deny pattern.

    Raises:
        ValidationError: If the value looks like markup or script injection
    """
    for pattern in DENY_PATTERNS:
        if pattern.search(value):
            raise ValidationError(f"Rejected {label}")
    return value


def _clean_optional(label: str, value: Any, max_length: int) -> Optional[str]:
    if value is None:
        return None
    cleaned = assert_clean(label, clean_text(value, max_length))
    return cleaned or None


def normalize_request(body: Any) -> GenerationRequest:
    """Turn a raw JSON body into a ``GenerationRequest``.

    Args:
        body: Decoded JSON body with ``component``, ``text``, ``color``,
            ``size`` and ``styleVariant`` keys

    Raises:
        ValidationError: If the body is malformed or any field is unsafe
    """
    if not isinstance(body, Mapping):
        raise ValidationError("Request body must be a JSON object")

    component = body.get("component")
    if component not in SUPPORTED_COMPONENTS:
        raise ValidationError('component must be "button"')

    text = assert_clean("text", clean_text(body.get("text"), TEXT_MAX_LENGTH))

    color = _clean_optional("color", body.get("color"), COLOR_MAX_LENGTH)
    size = _clean_optional("size", body.get("size"), SIZE_MAX_LENGTH)
    style = _clean_optional("styleVariant", body.get("styleVariant"), STYLE_MAX_LENGTH)
    if style:
        style = style.lower()[:STYLE_MAX_LENGTH]
        color = size = None

    return GenerationRequest(text=text, color=color, size=size, style_descriptor=style)
