"""OpenAI adapter for the paper lookup layer."""

from __future__ import annotations

import logging

import openai
from openai import AsyncOpenAI

from errors import BackendError, FailureKind
from models import RecordSchema

LOGGER = logging.getLogger(__name__)

# json_object mode only accepts a top-level object, so the array is wrapped.
_JSON_SYSTEM_PROMPT = (
    "Respond ONLY with valid JSON. No prose, no markdown. "
    'Wrap the requested array in an object under the key "papers".'
)
_TEXT_SYSTEM_PROMPT = "You are an expert academic mentor and reading assistant."


def classify_openai_error(exc: openai.OpenAIError) -> BackendError:
    """Map an OpenAI SDK exception onto a FailureKind."""
    status_code = getattr(exc, "status_code", None)
    if isinstance(exc, openai.RateLimitError):
        return BackendError(FailureKind.QUOTA_EXCEEDED, str(exc), status_code=status_code)
    if isinstance(exc, (openai.APIConnectionError, openai.InternalServerError)):
        return BackendError(FailureKind.TRANSIENT, str(exc), status_code=status_code)
    return BackendError(FailureKind.OTHER, str(exc), status_code=status_code)


class OpenAIBackend:
    """Chat-completions backend. SDK retries are off; the invoker owns retries."""

    name = "openai"

    def __init__(self, timeout_seconds: float = 60.0, temperature: float | None = None) -> None:
        self.timeout_seconds = timeout_seconds
        self.temperature = temperature

    async def generate(
        self,
        credential: str,
        backend: str,
        prompt: str,
        schema: RecordSchema | None = None,
    ) -> str:
        try:
            client = AsyncOpenAI(api_key=credential or None, max_retries=0, timeout=self.timeout_seconds)
            content = await _call_openai(client, backend, prompt, schema, self.temperature)
        except openai.OpenAIError as exc:
            raise classify_openai_error(exc) from exc
        return content


async def _call_openai(
    client: AsyncOpenAI,
    model: str,
    prompt: str,
    schema: RecordSchema | None,
    temperature: float | None,
) -> str:
    system_prompt = _JSON_SYSTEM_PROMPT if schema is not None else _TEXT_SYSTEM_PROMPT
    kwargs: dict = {
        "model": model,
        "messages": [
            {"role": "system", "content": system_prompt},
            {"role": "user", "content": prompt},
        ],
    }
    if schema is not None:
        kwargs["response_format"] = {"type": "json_object"}
    if temperature is not None:
        kwargs["temperature"] = temperature

    LOGGER.debug("Calling OpenAI model=%s structured=%s", model, schema is not None)
    response = await client.chat.completions.create(**kwargs)
    if not response.choices:
        raise BackendError(FailureKind.OTHER, f"OpenAI model {model} returned no choices")
    return response.choices[0].message.content or ""
