"""Completion clients used by the council pipeline.

All standard model IDs (e.g. "anthropic/claude-sonnet-4.5") are routed
through OpenRouter. The default client is created on first use and shared
across requests; it holds no per-run state.
"""

from typing import Optional

from ..config import get_client_settings
from .base import CompletionClient, CompletionError
from .openrouter_provider import OpenRouterProvider

_default_client: Optional[CompletionClient] = None


def get_default_client() -> CompletionClient:
    """Get the shared OpenRouter client, creating it from env settings."""
    global _default_client
    if _default_client is None:
        _default_client = OpenRouterProvider(**get_client_settings())
    return _default_client


async def close_default_client() -> None:
    global _default_client
    if _default_client is not None:
        await _default_client.aclose()
        _default_client = None


__all__ = [
    "CompletionClient",
    "CompletionError",
    "OpenRouterProvider",
    "get_default_client",
    "close_default_client",
]
