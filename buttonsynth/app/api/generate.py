"""Button generation endpoint."""

from typing import Any, Dict

from fastapi import APIRouter, Depends, Request, Response

from buttonsynth.app.core.http_client import get_http_client
from buttonsynth.app.core.logging import get_logger
from buttonsynth.app.exceptions import ValidationError
from buttonsynth.app.middleware.rate_limit import enforce_generate_rate_limit
from buttonsynth.app.middleware.request_id import get_request_id
from buttonsynth.app.providers.base import BaseProvider
from buttonsynth.app.providers.factory import get_provider
from buttonsynth.app.services.generator import ButtonGenerator
from buttonsynth.app.services.normalizer import normalize_request


def get_provider_dependency() -> BaseProvider:
    """Get the generation provider as a FastAPI dependency."""
    try:
        http_client = get_http_client()
    except RuntimeError:
        # HTTP client not initialized, let the SDK manage its own
        http_client = None
    return get_provider(http_client)


router = APIRouter()
logger = get_logger(__name__)


@router.post("/api/generate")
async def generate_button(
    request: Request,
    response: Response,
    provider: BaseProvider = Depends(get_provider_dependency),
) -> Dict[str, Any]:
    """Generate one sanitized button from the client's styling fields.

    Steps:
    1. Decode and normalize the body (400 on malformed or unsafe input)
    2. Spend a token from the client's generation bucket (429 when empty)
    3. Call the model and coerce its HTML into a safe button (400 on failure)

    Errors are raised as ``ButtonSynthError`` subclasses and turned into
    ``{ok: false, error}`` responses by the application's handlers.
    """
    try:
        body = await request.json()
    except ValueError:
        raise ValidationError("Bad request")

    gen_request = normalize_request(body)

    await enforce_generate_rate_limit(request, response)

    result = await ButtonGenerator(provider).generate(gen_request)

    logger.info(
        "Button generated",
        extra={
            "request_id": get_request_id(request),
            "model": provider.model,
            "styled_by": "descriptor" if gen_request.style_descriptor else "fields",
        },
    )
    return {
        "ok": True,
        "html": result.html,
        "reasoning": result.reasoning,
        "usage": result.usage,
    }
