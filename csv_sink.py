"""Reading-list CSV export for search results."""

from __future__ import annotations

import csv
import logging
import os
from datetime import UTC, datetime
from pathlib import Path

from models import Record

CSV_OUTPUT_PATH = os.getenv("CSV_OUTPUT_PATH", "reading_list.csv")

LOGGER = logging.getLogger(__name__)

CSV_COLUMNS = [
    "paper_id",
    "title",
    "authors",
    "year",
    "source",
    "status",       # Preprint | Peer Reviewed
    "description",
    "query",        # search that surfaced the paper
    "created_at",
]


def existing_titles(csv_path: str | None = None) -> set[str]:
    """Return the dedup keys (normalized titles) already in the CSV."""
    path = Path(csv_path or CSV_OUTPUT_PATH)
    if not path.exists():
        return set()

    with path.open(newline="", encoding="utf-8") as fh:
        reader = csv.DictReader(fh)
        return {row["title"].strip().casefold() for row in reader if row.get("title")}


def record_already_exists(record: Record, csv_path: str | None = None) -> bool:
    return record.dedup_key in existing_titles(csv_path)


def write_records(records: list[Record], query: str = "", csv_path: str | None = None) -> int:
    """Append records not yet in the CSV (creating it with a header if needed).

    Returns the number of rows written.
    """
    path = Path(csv_path or CSV_OUTPUT_PATH)
    write_header = not path.exists() or path.stat().st_size == 0
    seen = existing_titles(str(path))
    created_at = datetime.now(UTC).isoformat()

    rows = []
    for record in records:
        if record.dedup_key in seen:
            LOGGER.info("Skipping saved paper: %s", record.title)
            continue
        seen.add(record.dedup_key)
        rows.append({
            "paper_id": record.paper_id,
            "title": record.title,
            "authors": record.authors,
            "year": record.year,
            "source": record.source,
            "status": record.status,
            "description": record.description,
            "query": query,
            "created_at": created_at,
        })

    if not rows:
        return 0

    with path.open("a", newline="", encoding="utf-8") as fh:
        writer = csv.DictWriter(fh, fieldnames=CSV_COLUMNS)
        if write_header:
            writer.writeheader()
        writer.writerows(rows)

    LOGGER.info("Wrote %s row(s) to %s", len(rows), path)
    return len(rows)
