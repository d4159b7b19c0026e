"""Anthropic Messages API adapter."""

from __future__ import annotations

import logging
from typing import Any

import anthropic

from errors import BackendError, FailureKind
from models import RecordSchema

LOGGER = logging.getLogger(__name__)

_JSON_SYSTEM_PROMPT = "Respond ONLY with a valid JSON array. No prose, no markdown."
_OVERLOADED_STATUS = 529


def classify_anthropic_error(exc: anthropic.AnthropicError) -> BackendError:
    """Map an Anthropic SDK exception onto a FailureKind."""
    status_code = getattr(exc, "status_code", None)
    if isinstance(exc, anthropic.RateLimitError):
        return BackendError(FailureKind.QUOTA_EXCEEDED, str(exc), status_code=status_code)
    if isinstance(exc, (anthropic.APIConnectionError, anthropic.InternalServerError)):
        return BackendError(FailureKind.TRANSIENT, str(exc), status_code=status_code)
    if status_code == _OVERLOADED_STATUS:
        return BackendError(FailureKind.TRANSIENT, str(exc), status_code=status_code)
    return BackendError(FailureKind.OTHER, str(exc), status_code=status_code)


class AnthropicBackend:
    """Messages API backend. SDK retries are off; the invoker owns retries."""

    name = "anthropic"

    def __init__(self, timeout_seconds: float = 60.0, max_tokens: int = 4096) -> None:
        self.timeout_seconds = timeout_seconds
        self.max_tokens = max_tokens

    async def generate(
        self,
        credential: str,
        backend: str,
        prompt: str,
        schema: RecordSchema | None = None,
    ) -> str:
        if not credential:
            # The SDK has no anonymous mode; fail fast instead of a TypeError at send time.
            raise BackendError(FailureKind.OTHER, "Anthropic requires an API key")

        kwargs: dict[str, Any] = {
            "model": backend,
            "max_tokens": self.max_tokens,
            "messages": [{"role": "user", "content": prompt}],
        }
        if schema is not None:
            kwargs["system"] = _JSON_SYSTEM_PROMPT

        LOGGER.debug("Calling Claude model=%s max_tokens=%s", backend, self.max_tokens)
        try:
            client = anthropic.AsyncAnthropic(api_key=credential, max_retries=0, timeout=self.timeout_seconds)
            response = await client.messages.create(**kwargs)
        except anthropic.AnthropicError as exc:
            raise classify_anthropic_error(exc) from exc

        return "".join(block.text for block in response.content if getattr(block, "type", None) == "text")
