"""Failure classification and terminal errors for the lookup layer.

Only ``DecodeFailure``, ``ExhaustionFailure`` and ``NoResultsFailure`` reach
callers. ``BackendError`` is raised by provider adapters and absorbed by the
invoker.
"""

from __future__ import annotations

from enum import Enum
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from models import Attempt


class FailureKind(str, Enum):
    QUOTA_EXCEEDED = "quota_exceeded"
    TRANSIENT = "transient"
    OTHER = "other"


class BackendError(Exception):
    """Classified failure of a single generative backend call."""

    def __init__(self, kind: FailureKind, message: str, status_code: int | None = None) -> None:
        self.kind = kind
        self.status_code = status_code
        super().__init__(message)


class PaperLookupError(RuntimeError):
    """Base class for errors surfaced to callers."""


class DecodeFailure(PaperLookupError):
    """The upstream payload did not match the expected schema."""


class ExhaustionFailure(PaperLookupError):
    """Every (credential, backend) combination failed."""

    def __init__(self, last_error: Exception | None, attempts: list[Attempt] | None = None) -> None:
        self.last_error = last_error
        self.attempts = list(attempts or [])
        super().__init__(
            f"All {len(self.attempts)} backend attempts failed. Last error: {last_error}"
        )


class NoResultsFailure(PaperLookupError):
    """Every fan-out branch failed or came back empty."""

    def __init__(self, branch_errors: dict[str, Exception] | None = None) -> None:
        self.branch_errors = dict(branch_errors or {})
        super().__init__("No papers found. Please check your API usage or try different keywords.")
