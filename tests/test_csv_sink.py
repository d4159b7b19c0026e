from __future__ import annotations

import csv
from pathlib import Path

import pytest

import csv_sink
from models import Record

SAMPLE_RECORD = Record(
    title="Attention Is All You Need",
    authors="Vaswani et al.",
    year="2017",
    description="Introduces the Transformer.",
    source="NeurIPS",
    status="Peer Reviewed",
    paper_id="paper-1-0",
)


@pytest.fixture(autouse=True)
def patch_csv_path(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    """Point CSV_OUTPUT_PATH at a temp file for every test."""
    output = tmp_path / "reading_list.csv"
    monkeypatch.setattr(csv_sink, "CSV_OUTPUT_PATH", str(output))


def _rows() -> list[dict[str, str]]:
    with Path(csv_sink.CSV_OUTPUT_PATH).open(newline="", encoding="utf-8") as fh:
        return list(csv.DictReader(fh))


def test_record_already_exists_false_when_no_file() -> None:
    assert csv_sink.record_already_exists(SAMPLE_RECORD) is False


def test_write_records_creates_file_with_header() -> None:
    written = csv_sink.write_records([SAMPLE_RECORD], query="transformers")

    assert written == 1
    rows = _rows()
    assert list(rows[0].keys()) == csv_sink.CSV_COLUMNS
    assert rows[0]["title"] == "Attention Is All You Need"
    assert rows[0]["query"] == "transformers"
    assert rows[0]["status"] == "Peer Reviewed"


def test_write_records_skips_titles_already_saved() -> None:
    csv_sink.write_records([SAMPLE_RECORD])
    again = Record(
        title="attention is all you need ",
        authors="Someone else",
        year="2018",
        description="",
        source="arXiv",
        status="Preprint",
    )

    written = csv_sink.write_records([again])

    assert written == 0
    assert len(_rows()) == 1
    assert csv_sink.record_already_exists(again) is True


def test_write_records_dedups_within_batch_and_appends() -> None:
    other = Record(
        title="BERT",
        authors="Devlin et al.",
        year="2018",
        description="",
        source="NAACL",
        status="Peer Reviewed",
    )

    csv_sink.write_records([SAMPLE_RECORD])
    written = csv_sink.write_records([other, other])

    assert written == 1
    assert [row["title"] for row in _rows()] == ["Attention Is All You Need", "BERT"]


def test_write_records_empty_batch_creates_nothing() -> None:
    assert csv_sink.write_records([]) == 0
    assert not Path(csv_sink.CSV_OUTPUT_PATH).exists()
