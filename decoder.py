"""Decode and validate structured payloads returned by a generative backend."""

from __future__ import annotations

import json
import logging
from json import JSONDecodeError
from typing import Any

from errors import DecodeFailure
from models import Record, RecordSchema

LOGGER = logging.getLogger(__name__)

_FENCE = "```"


def strip_fences(raw: str) -> str:
    """Remove a leading ```/```json line and a trailing ``` line, if present."""
    lines = raw.strip().splitlines()
    if lines and lines[0].strip().startswith(_FENCE):
        lines = lines[1:]
    if lines and lines[-1].strip() == _FENCE:
        lines = lines[:-1]
    return "\n".join(lines).strip()


def decode(raw: str, schema: RecordSchema) -> list[Record]:
    """Parse ``raw`` into validated Records. Raises DecodeFailure on any mismatch."""
    payload = _parse_payload(strip_fences(raw or ""))
    items = _unwrap_items(payload)

    records = [_to_record(index, item, schema) for index, item in enumerate(items)]
    LOGGER.debug("Decoded %s record(s)", len(records))
    return records


def decode_text(raw: str) -> str:
    """Return a free-text answer, rejecting an empty one."""
    text = (raw or "").strip()
    if not text:
        raise DecodeFailure("Backend returned an empty response")
    return text


def _parse_payload(content: str) -> Any:
    """Parse possibly noisy model output into JSON."""
    if not content:
        raise DecodeFailure("Backend returned an empty payload")
    try:
        return json.loads(content)
    except JSONDecodeError:
        return _extract_first_json_value(content)


def _extract_first_json_value(content: str) -> Any:
    """Extract the first decodable JSON array or object from an arbitrary string."""
    decoder = json.JSONDecoder()
    for index, char in enumerate(content):
        if char not in "[{":
            continue
        try:
            candidate, _ = decoder.raw_decode(content[index:])
        except JSONDecodeError:
            continue
        if isinstance(candidate, (list, dict)):
            return candidate
    raise DecodeFailure("Could not extract valid JSON from backend output")


def _unwrap_items(payload: Any) -> list[Any]:
    if isinstance(payload, list):
        return payload
    if isinstance(payload, dict):
        lists = [value for value in payload.values() if isinstance(value, list)]
        if len(payload) == 1 and len(lists) == 1:
            return lists[0]
    raise DecodeFailure(f"Expected a JSON array of records, got {type(payload).__name__}")


def _to_record(index: int, item: Any, schema: RecordSchema) -> Record:
    if not isinstance(item, dict):
        raise DecodeFailure(f"Record {index} is not an object")

    missing = [name for name in schema.required_fields if name not in item]
    if missing:
        raise DecodeFailure(f"Record {index} missing required fields: {missing}")

    values: dict[str, str] = {}
    for name in schema.required_fields:
        value = item[name]
        if name == "year" and isinstance(value, int) and not isinstance(value, bool):
            value = str(value)
        if not isinstance(value, str):
            raise DecodeFailure(f"Record {index} field {name!r} must be a string, got {type(value).__name__}")
        values[name] = value.strip()

    if not values.get("title"):
        raise DecodeFailure(f"Record {index} has an empty title")

    status = values.get("status")
    if status not in schema.status_values:
        raise DecodeFailure(f"Record {index} has invalid status {status!r}")

    description = values.get("description", "")
    word_count = len(description.split())
    if word_count > schema.description_max_words:
        raise DecodeFailure(
            f"Record {index} description has {word_count} words (limit {schema.description_max_words})"
        )

    return Record(
        title=values["title"],
        authors=values.get("authors", ""),
        year=values.get("year", ""),
        description=description,
        source=values.get("source", ""),
        status=values.get("status", ""),
    )
