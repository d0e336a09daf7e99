"""Tests for documentation coverage."""

from __future__ import annotations

import json
import logging
from pathlib import Path

import pytest

from tjsdoc.coverage import CoverageCalculator
from tjsdoc.models import DocumentRecord


def _records():
    return [
        DocumentRecord(kind="file", fields={"name": "a.py"}),
        DocumentRecord(kind="function", fields={"name": "f", "longname": "a.f", "file_path": "a.py"}),
        DocumentRecord(
            kind="function", fields={"name": "g", "longname": "a.g", "file_path": "a.py", "undocument": True}
        ),
        DocumentRecord(
            kind="class", fields={"name": "C", "longname": "b.C", "file_path": "b.py", "undocument": True}
        ),
        DocumentRecord(kind="method", fields={"name": "_h", "file_path": "b.py", "undocument": True, "ignore": True}),
        DocumentRecord(kind="external", fields={"name": "str"}),
        DocumentRecord(kind="class", fields={"name": "V", "undocument": True}, builtin_virtual=True),
        DocumentRecord(kind="test", fields={"name": "test_f"}),
    ]


def test_evaluate_counts_documented_identifiers() -> None:
    report = CoverageCalculator().evaluate(_records())

    assert report.expect_count == 3
    assert report.actual_count == 1
    assert report.coverage == "33.33%"
    assert report.files["a.py"].undocumented == ["a.g"]
    assert report.files["b.py"].undocumented == ["b.C"]


def test_empty_report_is_fully_covered() -> None:
    report = CoverageCalculator().evaluate([])

    assert report.ratio == 1.0
    assert report.coverage == "100.00%"


def test_log_and_save(tmp_path: Path, caplog: pytest.LogCaptureFixture) -> None:
    calculator = CoverageCalculator()
    report = calculator.evaluate(_records())

    with caplog.at_level(logging.INFO, logger="tjsdoc"):
        calculator.log(report)
    output = calculator.save(tmp_path / "docs", report)

    assert "documentation coverage: 33.33% (1/3)" in caplog.text
    payload = json.loads(output.read_text(encoding="utf-8"))
    assert payload["coverage"] == "33.33%"
    assert payload["files"]["b.py"]["undocumented"] == ["b.C"]
