"""Generative backend interface and provider selection."""

from __future__ import annotations

from typing import Protocol

from models import RecordSchema


class GenerativeBackend(Protocol):
    """One generative content provider.

    ``generate`` returns the raw response text. Failures are raised as
    ``errors.BackendError`` carrying a ``FailureKind`` so callers never
    inspect provider-specific wording.
    """

    name: str

    async def generate(
        self,
        credential: str,
        backend: str,
        prompt: str,
        schema: RecordSchema | None = None,
    ) -> str: ...


def build_backend(provider: str, timeout_seconds: float = 60.0) -> GenerativeBackend:
    """Return the adapter for ``provider`` (gemini, openai or anthropic)."""
    if provider == "gemini":
        from gemini_client import GeminiBackend  # noqa: PLC0415

        return GeminiBackend(timeout_seconds=timeout_seconds)
    if provider == "openai":
        from llm_client import OpenAIBackend  # noqa: PLC0415

        return OpenAIBackend(timeout_seconds=timeout_seconds)
    if provider == "anthropic":
        from anthropic_client import AnthropicBackend  # noqa: PLC0415

        return AnthropicBackend(timeout_seconds=timeout_seconds)
    raise RuntimeError(f"Unsupported generative provider: {provider!r}")
