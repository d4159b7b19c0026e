"""Fold advisory search filters into prompt text (no server-side filtering)."""

from __future__ import annotations

from models import SearchFilters


def build_constraint(filters: SearchFilters | None) -> str:
    """Return a STRICT SEARCH CONSTRAINTS sentence, or "" when nothing is set.

    The backend is asked to honour the constraints, but results are not
    re-checked afterwards: filters narrow, they do not guarantee.
    """
    if filters is None:
        return ""

    parts: list[str] = []
    start_year = _clean(filters.start_year)
    end_year = _clean(filters.end_year)
    source = _clean(filters.source)

    if start_year:
        parts.append(f"published on or after {start_year}")
    if end_year:
        parts.append(f"published on or before {end_year}")
    if source:
        parts.append(f'from sources/journals strictly matching or related to "{source}"')

    if not parts:
        return ""
    return f"STRICT SEARCH CONSTRAINTS: Only include papers that are {' AND '.join(parts)}."


def _clean(value: str | None) -> str:
    return value.strip() if isinstance(value, str) else ""
