"""Core utilities for the service."""

from buttonsynth.app.core.config import settings

__all__ = ["settings"]
