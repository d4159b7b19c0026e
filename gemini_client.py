"""Gemini adapter built on the google-genai async client."""

from __future__ import annotations

import asyncio
import logging

import httpx
from google import genai
from google.genai import errors as genai_errors
from google.genai import types

from errors import BackendError, FailureKind
from models import RecordSchema

LOGGER = logging.getLogger(__name__)

_QUOTA_STATUSES = frozenset({"RESOURCE_EXHAUSTED"})

# Only Gemini 3 models accept a response schema alongside tools.
_STRUCTURED_WITH_TOOLS_PREFIXES = ("gemini-3",)


def supports_structured_with_tools(model: str) -> bool:
    return model.startswith(_STRUCTURED_WITH_TOOLS_PREFIXES)


def classify_gemini_error(exc: Exception) -> BackendError:
    """Map a google-genai / transport exception onto a FailureKind."""
    if isinstance(exc, genai_errors.APIError):
        code = exc.code if isinstance(exc.code, int) else None
        if code == 429 or exc.status in _QUOTA_STATUSES:
            return BackendError(FailureKind.QUOTA_EXCEEDED, str(exc), status_code=code)
        if isinstance(exc, genai_errors.ServerError) or code == 408:
            return BackendError(FailureKind.TRANSIENT, str(exc), status_code=code)
        return BackendError(FailureKind.OTHER, str(exc), status_code=code)
    if isinstance(exc, (httpx.TransportError, TimeoutError)):
        return BackendError(FailureKind.TRANSIENT, f"{type(exc).__name__}: {exc}")
    return BackendError(FailureKind.OTHER, f"{type(exc).__name__}: {exc}")


class GeminiBackend:
    """Calls ``client.aio.models.generate_content`` with Google Search grounding."""

    name = "gemini"

    def __init__(self, timeout_seconds: float = 60.0, use_search: bool = True) -> None:
        self.timeout_seconds = timeout_seconds
        self.use_search = use_search

    def _config(self, model: str, schema: RecordSchema | None) -> types.GenerateContentConfig:
        options: dict = {}
        if self.use_search:
            options["tools"] = [types.Tool(google_search=types.GoogleSearch())]
        # Older models get grounding only; the prompt carries the schema and the decoder validates it.
        if schema is not None and (not self.use_search or supports_structured_with_tools(model)):
            options["response_mime_type"] = "application/json"
            options["response_json_schema"] = schema.as_json_schema()
        return types.GenerateContentConfig(**options)

    async def generate(
        self,
        credential: str,
        backend: str,
        prompt: str,
        schema: RecordSchema | None = None,
    ) -> str:
        try:
            client = genai.Client(api_key=credential or None)
        except ValueError as exc:
            # Raised when no key is given and none is set in the environment.
            raise BackendError(FailureKind.TRANSIENT, f"Gemini client setup failed: {exc}") from exc

        LOGGER.debug("Calling Gemini model=%s structured=%s", backend, schema is not None)
        try:
            response = await asyncio.wait_for(
                client.aio.models.generate_content(
                    model=backend,
                    contents=prompt,
                    config=self._config(backend, schema),
                ),
                timeout=self.timeout_seconds,
            )
        except (genai_errors.APIError, httpx.TransportError, TimeoutError) as exc:
            raise classify_gemini_error(exc) from exc

        return response.text or ""
