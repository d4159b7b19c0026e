"""Shared typed models for the paper lookup layer."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any


class CredentialSource(str, Enum):
    """Where a credential was found."""

    LOCAL_CACHE = "local_cache"
    REMOTE_SHARED = "remote_shared"
    PROCESS_CONFIG = "process_config"
    SENTINEL = "sentinel"


@dataclass(frozen=True, slots=True)
class Credential:
    """One API secret tagged with its source and priority rank."""

    secret: str = field(repr=False)
    source: CredentialSource
    rank: int

    @property
    def masked(self) -> str:
        if not self.secret:
            return "<anonymous>"
        return f"...{self.secret[-4:]}"


@dataclass(frozen=True, slots=True)
class SearchFilters:
    """Advisory constraints folded into the search prompt."""

    start_year: str | None = None
    end_year: str | None = None
    source: str | None = None


@dataclass(frozen=True, slots=True)
class Category:
    """Scope of one fan-out branch (e.g. peer-reviewed journals)."""

    name: str
    focus: str
    status: str | None = None
    count: int | None = None


@dataclass(frozen=True, slots=True)
class RecordSchema:
    """Expected shape of a search payload element."""

    required_fields: tuple[str, ...] = ("title", "authors", "year", "description", "source", "status")
    status_values: tuple[str, ...] = ("Preprint", "Peer Reviewed")
    description_max_words: int = 30

    def describe(self, status: str | None = None) -> str:
        """Render the schema as prompt instructions."""
        if status:
            status_line = f'strictly "{status}"'
        else:
            status_line = "strictly either " + " or ".join(f'"{value}"' for value in self.status_values)
        lines = [
            "Return a strictly valid JSON array. Each object must have:",
            "- title (string)",
            "- authors (string)",
            "- year (string)",
            f"- description (string, max {self.description_max_words} words, helping the user decide to read it)",
            '- source (string, e.g. "arXiv", "Nature", "ICLR")',
            f"- status (string, {status_line})",
        ]
        return "\n".join(lines)

    def as_json_schema(self) -> dict[str, Any]:
        """Render the schema as a JSON-schema array definition."""
        properties: dict[str, Any] = {name: {"type": "string"} for name in self.required_fields}
        if "status" in properties:
            properties["status"] = {"type": "string", "enum": list(self.status_values)}
        return {
            "type": "array",
            "items": {
                "type": "object",
                "properties": properties,
                "required": list(self.required_fields),
            },
        }


@dataclass(frozen=True, slots=True)
class QueryRequest:
    """A prompt plus the schema its answer must satisfy (None for free text)."""

    prompt: str
    schema: RecordSchema | None = None


@dataclass(frozen=True, slots=True)
class Record:
    """Normalized paper record returned by a search."""

    title: str
    authors: str
    year: str
    description: str
    source: str
    status: str
    paper_id: str = ""

    @property
    def dedup_key(self) -> str:
        return self.title.strip().casefold()


@dataclass(frozen=True, slots=True)
class Attempt:
    """Outcome of one (credential, backend) invocation."""

    credential_index: int
    backend: str
    outcome: str
    error: str | None = None


@dataclass(frozen=True, slots=True)
class BranchOk:
    category: Category
    records: list[Record]


@dataclass(frozen=True, slots=True)
class BranchErr:
    category: Category
    cause: Exception


BranchResult = BranchOk | BranchErr
