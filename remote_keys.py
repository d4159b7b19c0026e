"""Shared API keys published through a remote configuration table."""

from __future__ import annotations

import logging
from typing import Any

import requests

from models import CredentialSource

REQUEST_TIMEOUT_SECONDS = 10

LOGGER = logging.getLogger(__name__)


class RemoteKeyStore:
    """Fetch shared keys from a REST endpoint returning a JSON list.

    The endpoint may return plain strings or row objects carrying the secret
    under ``api_key`` or ``key`` (the shape a hosted table export produces).
    Rows flagged ``"active": false`` are skipped.
    """

    source = CredentialSource.REMOTE_SHARED

    def __init__(self, url: str, token: str | None = None, timeout: float = REQUEST_TIMEOUT_SECONDS) -> None:
        self.url = url
        self.token = token
        self.timeout = timeout

    def list_credentials(self) -> list[str]:
        headers = {"Accept": "application/json"}
        if self.token:
            headers["apikey"] = self.token
            headers["Authorization"] = f"Bearer {self.token}"

        try:
            response = requests.get(self.url, headers=headers, timeout=self.timeout)
            response.raise_for_status()
            payload = response.json()
        except requests.RequestException as exc:
            LOGGER.warning("Remote key fetch failed for %s: %s", self.url, exc)
            return []
        except ValueError as exc:
            LOGGER.warning("Remote key payload from %s is not JSON: %s", self.url, exc)
            return []

        keys = _parse_keys_payload(payload)
        LOGGER.info("Remote key fetch: %s key(s) from %s", len(keys), self.url)
        return keys


def _parse_keys_payload(payload: Any) -> list[str]:
    if not isinstance(payload, list):
        LOGGER.warning("Unexpected remote key payload shape: expected a list")
        return []

    keys: list[str] = []
    for item in payload:
        if isinstance(item, str):
            key = _as_str(item)
        elif isinstance(item, dict):
            if item.get("active") is False:
                continue
            key = _as_str(item.get("api_key")) or _as_str(item.get("key"))
        else:
            key = None
        if key:
            keys.append(key)
    return keys


def _as_str(value: Any) -> str | None:
    return value.strip() if isinstance(value, str) and value.strip() else None
