"""File-backed cache of user-supplied API keys.

Keys live in a small JSON document with ordered slots ``key_1`` .. ``key_5``.
An older single ``key`` field is still honoured on read and dropped on the
next save.
"""

from __future__ import annotations

import json
import logging
from json import JSONDecodeError
from pathlib import Path
from typing import Any

from models import CredentialSource

MAX_SLOTS = 5
LEGACY_FIELD = "key"

LOGGER = logging.getLogger(__name__)


def load_keys(path: str | Path) -> list[str]:
    """Return cached keys in slot order, legacy key first. Missing file -> []."""
    cache_path = Path(path)
    if not cache_path.exists():
        return []

    try:
        payload = json.loads(cache_path.read_text(encoding="utf-8"))
    except (OSError, JSONDecodeError) as exc:
        LOGGER.warning("Key cache unreadable at %s: %s", cache_path, exc)
        return []

    if not isinstance(payload, dict):
        LOGGER.warning("Key cache at %s is not a JSON object, ignoring", cache_path)
        return []

    keys: list[str] = []
    legacy = _as_key(payload.get(LEGACY_FIELD))
    if legacy:
        keys.append(legacy)
    for slot in range(1, MAX_SLOTS + 1):
        key = _as_key(payload.get(f"key_{slot}"))
        if key:
            keys.append(key)
    return keys


def save_keys(keys: list[str], path: str | Path) -> list[str]:
    """Persist up to MAX_SLOTS keys in order, replacing any legacy key.

    Blank entries are skipped. Returns the keys actually written.
    """
    cleaned = [key.strip() for key in keys if key and key.strip()]
    if len(cleaned) > MAX_SLOTS:
        LOGGER.warning("Only the first %s keys are kept (got %s)", MAX_SLOTS, len(cleaned))
        cleaned = cleaned[:MAX_SLOTS]

    payload = {f"key_{index}": key for index, key in enumerate(cleaned, start=1)}
    cache_path = Path(path)
    cache_path.parent.mkdir(parents=True, exist_ok=True)
    cache_path.write_text(json.dumps(payload, indent=2), encoding="utf-8")
    LOGGER.info("Saved %s key(s) to %s", len(cleaned), cache_path)
    return cleaned


class LocalKeyCache:
    """Credential provider backed by the local key cache file."""

    source = CredentialSource.LOCAL_CACHE

    def __init__(self, path: str | Path) -> None:
        self.path = Path(path)

    def list_credentials(self) -> list[str]:
        return load_keys(self.path)


def _as_key(value: Any) -> str | None:
    return value.strip() if isinstance(value, str) and value.strip() else None
