"""Explicit runtime configuration for the paper lookup layer."""

from __future__ import annotations

import os
from collections.abc import Mapping
from dataclasses import dataclass, field
from pathlib import Path

DEFAULT_PROVIDER = "gemini"

# Fast models for discovery, stronger models for rewrites and Q&A.
DEFAULT_SEARCH_LADDERS: dict[str, tuple[str, ...]] = {
    "gemini": ("gemini-3-flash-preview", "gemini-2.5-flash", "gemini-2.5-flash-lite"),
    "openai": ("gpt-5.2", "gpt-5-mini", "gpt-4.1-mini"),
    "anthropic": ("claude-haiku-4-5", "claude-sonnet-4-5"),
}
DEFAULT_EXPLAIN_LADDERS: dict[str, tuple[str, ...]] = {
    "gemini": ("gemini-3-pro-preview", "gemini-2.5-pro", "gemini-2.5-flash"),
    "openai": ("gpt-5.2", "gpt-5-mini"),
    "anthropic": ("claude-opus-4-6", "claude-sonnet-4-5"),
}

DEFAULT_KEY_CACHE_PATH = str(Path.home() / ".cache" / "paper-lookup" / "keys.json")


def _split_models(raw: str | None) -> tuple[str, ...]:
    if not raw:
        return ()
    return tuple(part.strip() for part in raw.split(",") if part.strip())


@dataclass(frozen=True, slots=True)
class ServiceConfig:
    """Settings for one service instance.

    Built explicitly (tests) or from the process environment via
    ``from_env``. Nothing in the lookup layer reads the environment directly
    once a config exists.
    """

    provider: str = DEFAULT_PROVIDER
    search_ladder: tuple[str, ...] = DEFAULT_SEARCH_LADDERS[DEFAULT_PROVIDER]
    explain_ladder: tuple[str, ...] = DEFAULT_EXPLAIN_LADDERS[DEFAULT_PROVIDER]
    quota_backoff_seconds: float = 1.0
    quota_backoff_step_seconds: float = 0.5
    transient_delay_seconds: float = 0.25
    description_max_words: int = 30
    papers_per_category: int = 3
    request_timeout_seconds: float = 60.0
    key_cache_path: str = DEFAULT_KEY_CACHE_PATH
    remote_keys_url: str | None = None
    remote_keys_token: str | None = field(default=None, repr=False)

    @classmethod
    def from_env(cls, environ: Mapping[str, str] | None = None) -> ServiceConfig:
        env = os.environ if environ is None else environ
        provider = env.get("GENAI_PROVIDER", DEFAULT_PROVIDER).strip().lower()
        if provider not in DEFAULT_SEARCH_LADDERS:
            raise RuntimeError(
                f"Unsupported GENAI_PROVIDER={provider!r}; expected one of {sorted(DEFAULT_SEARCH_LADDERS)}"
            )

        return cls(
            provider=provider,
            search_ladder=_split_models(env.get("SEARCH_MODELS")) or DEFAULT_SEARCH_LADDERS[provider],
            explain_ladder=_split_models(env.get("EXPLAIN_MODELS")) or DEFAULT_EXPLAIN_LADDERS[provider],
            quota_backoff_seconds=float(env.get("QUOTA_BACKOFF_SECONDS", "1.0")),
            quota_backoff_step_seconds=float(env.get("QUOTA_BACKOFF_STEP_SECONDS", "0.5")),
            transient_delay_seconds=float(env.get("TRANSIENT_DELAY_SECONDS", "0.25")),
            description_max_words=int(env.get("DESCRIPTION_MAX_WORDS", "30")),
            papers_per_category=int(env.get("PAPERS_PER_CATEGORY", "3")),
            request_timeout_seconds=float(env.get("REQUEST_TIMEOUT_SECONDS", "60")),
            key_cache_path=env.get("KEY_CACHE_PATH", DEFAULT_KEY_CACHE_PATH),
            remote_keys_url=env.get("REMOTE_KEYS_URL") or None,
            remote_keys_token=env.get("REMOTE_KEYS_TOKEN") or None,
        )

    def quota_backoff(self, credential_index: int, backend_index: int) -> float:
        """Delay after a quota failure; grows with both positions."""
        return self.quota_backoff_seconds + self.quota_backoff_step_seconds * (credential_index + backend_index)
