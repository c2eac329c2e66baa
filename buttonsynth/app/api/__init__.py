"""API endpoints package for the service."""

from buttonsynth.app.api.generate import router as generate_router

__all__ = [
    "generate_router",
]
