"""Credential gathering with a fixed source precedence."""

from __future__ import annotations

import logging
import os
from collections.abc import Mapping, Sequence
from typing import Protocol

from credential_cache import LocalKeyCache
from models import Credential, CredentialSource
from remote_keys import RemoteKeyStore
from settings import ServiceConfig

LOGGER = logging.getLogger(__name__)

ENV_KEY_NAMES: tuple[str, ...] = ("API_KEY", "API_KEY_2", "API_KEY_3", "API_KEY_4", "API_KEY_5")
PROVIDER_ENV_KEYS: dict[str, str] = {
    "gemini": "GEMINI_API_KEY",
    "openai": "OPENAI_API_KEY",
    "anthropic": "ANTHROPIC_API_KEY",
}

SENTINEL_CREDENTIAL = Credential(secret="", source=CredentialSource.SENTINEL, rank=0)


class CredentialProvider(Protocol):
    source: CredentialSource

    def list_credentials(self) -> list[str]: ...


class EnvKeys:
    """Keys from process configuration (environment variables)."""

    source = CredentialSource.PROCESS_CONFIG

    def __init__(self, names: Sequence[str] = ENV_KEY_NAMES, environ: Mapping[str, str] | None = None) -> None:
        self.names = tuple(names)
        self.environ = environ

    def list_credentials(self) -> list[str]:
        env = os.environ if self.environ is None else self.environ
        return [env[name] for name in self.names if env.get(name)]


class CredentialPool:
    """Ordered, deduplicated credentials from several providers.

    Providers are consulted in the order given; with ``from_config`` that is
    local cache, then the remote shared store, then process configuration.
    """

    def __init__(self, providers: Sequence[CredentialProvider]) -> None:
        self.providers = list(providers)

    @classmethod
    def from_config(cls, config: ServiceConfig, environ: Mapping[str, str] | None = None) -> CredentialPool:
        providers: list[CredentialProvider] = [LocalKeyCache(config.key_cache_path)]
        if config.remote_keys_url:
            providers.append(RemoteKeyStore(config.remote_keys_url, config.remote_keys_token))

        env_names = list(ENV_KEY_NAMES)
        native = PROVIDER_ENV_KEYS.get(config.provider)
        if native:
            env_names.append(native)
        providers.append(EnvKeys(env_names, environ=environ))
        return cls(providers)

    def collect(self) -> list[Credential]:
        """Return credentials in priority order. Never raises, never empty."""
        seen: set[str] = set()
        credentials: list[Credential] = []
        rank = 0

        for provider in self.providers:
            try:
                secrets = provider.list_credentials()
            except Exception as exc:  # a broken source must not block the others
                LOGGER.warning("Credential source %s failed, skipping: %s", provider.source.value, exc)
                continue

            for secret in secrets:
                value = secret.strip() if isinstance(secret, str) else ""
                if not value:
                    continue
                if value not in seen:
                    seen.add(value)
                    credentials.append(Credential(secret=value, source=provider.source, rank=rank))
                rank += 1

        if not credentials:
            LOGGER.warning("No API keys found in any source; falling back to anonymous access.")
            return [SENTINEL_CREDENTIAL]

        LOGGER.info(
            "Credential pool: %s key(s) [%s]",
            len(credentials),
            ", ".join(f"{c.source.value}:{c.masked}" for c in credentials),
        )
        return credentials
