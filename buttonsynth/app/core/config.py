import json
import re
from typing import Annotated, Any

from pydantic import field_validator, model_validator
from pydantic_settings import BaseSettings, NoDecode, SettingsConfigDict


def _parse_cors_origins(raw: Any) -> list[str]:
    if raw is None:
        return []
    if isinstance(raw, list):
        items = [str(v).strip() for v in raw]
        return [v for v in items if v]

    raw = str(raw).strip()
    if not raw or raw == "[]":
        return []
    if raw == "*":
        return ["*"]

    # Prefer JSON, but tolerate a plain comma/space separated list.
    if raw.startswith(("[", '"')):
        try:
            parsed = json.loads(raw)
        except json.JSONDecodeError:
            parsed = None
        if isinstance(parsed, list):
            items = [str(v).strip() for v in parsed]
            return [v for v in items if v]
        if isinstance(parsed, str):
            raw = parsed.strip()
            if not raw or raw == "[]":
                return []
            if raw == "*":
                return ["*"]

    origins: list[str] = []
    for part in re.split(r"[,\s]+", raw):
        if not part:
            continue
        if part == "*":
            return ["*"]
        if part not in origins:
            origins.append(part)
    return origins


class Settings(BaseSettings):
    """Application settings loaded from environment variables.

    All settings can be configured via environment variables or .env file.
    """

    # Debug mode - enables exception details in 500 responses
    debug: bool = False

    # OpenAI settings
    openai_api_key: str = ""
    openai_base_url: str = "https://api.openai.com/v1"
    openai_model: str = "gpt-4o-mini"

    # Generation settings
    generation_temperature: float = 0.2
    generation_max_output_tokens: int = 400
    generation_timeout: float = 10.0  # Seconds before the call counts as timed out

    # Serve canned model output instead of calling OpenAI
    mock_provider: bool = False

    # HTTP client connection pool settings
    httpx_connect_timeout: float = 5.0
    httpx_read_timeout: float = 10.0
    httpx_write_timeout: float = 5.0
    httpx_pool_timeout: float = 5.0
    httpx_max_connections: int = 20
    httpx_max_keepalive_connections: int = 10
    httpx_keepalive_expiry: float = 30.0

    # Server settings
    api_host: str = "127.0.0.1"
    api_port: int = 8787
    ui_origin: str = "http://localhost:3000"
    max_body_bytes: int = 32 * 1024

    # CORS settings; empty means "only ui_origin"
    cors_origins: Annotated[list[str], NoDecode] = []

    # Rate limiting settings
    rate_limit_global_capacity: int = 60
    rate_limit_generate_capacity: int = 20
    rate_limit_window_seconds: int = 60
    rate_limit_max_buckets: int = 50_000
    rate_limit_ttl_windows: int = 5  # Buckets idle this many windows are swept
    # Only enable behind one proxy that appends the peer address to X-Forwarded-For
    rate_limit_trust_forwarded: bool = False

    # Fallback styles for buttons with an empty label; "" disables one
    empty_label_padding: str = "10px 16px"
    empty_label_border: str = "1px solid #ccc"
    empty_label_background: str = "#f7f7f7"

    # Logging settings
    log_level: str = "INFO"
    log_format: str = "text"  # text | structured | json

    @field_validator("cors_origins", mode="before")
    @classmethod
    def decode_cors_origins(cls, v: Any) -> list[str]:
        return _parse_cors_origins(v)

    @model_validator(mode="after")
    def default_cors_to_ui_origin(self) -> "Settings":
        if not self.cors_origins:
            self.cors_origins = [self.ui_origin]
        return self

    @field_validator(
        "rate_limit_global_capacity",
        "rate_limit_generate_capacity",
        "rate_limit_window_seconds",
        "rate_limit_max_buckets",
        "rate_limit_ttl_windows",
    )
    @classmethod
    def validate_rate_limit_positive(cls, v: int) -> int:
        """Validate rate limit values are positive."""
        if v < 1:
            raise ValueError("Rate limit values must be at least 1")
        return v

    @field_validator("generation_timeout", "httpx_connect_timeout", "httpx_read_timeout")
    @classmethod
    def validate_timeout_positive(cls, v: float) -> float:
        """Validate timeout values are positive."""
        if v <= 0:
            raise ValueError("Timeout values must be positive")
        return v

    @field_validator("log_format")
    @classmethod
    def validate_log_format(cls, v: str) -> str:
        v = v.strip().lower()
        if v not in ("text", "structured", "json"):
            raise ValueError("log_format must be one of: text, structured, json")
        return v

    @property
    def api_key_configured(self) -> bool:
        return bool(self.openai_api_key.strip())

    model_config = SettingsConfigDict(env_file=(".env", ".env.local"), extra="ignore")


# Global settings instance
settings = Settings()
