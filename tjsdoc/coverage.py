"""Documentation coverage computation."""

from __future__ import annotations

import json
from dataclasses import asdict, dataclass, field
from pathlib import Path
from typing import Dict, Iterable, List

from .logging import get_logger
from .models import FILE_KINDS, DocumentRecord

_SKIPPED_KINDS = set(FILE_KINDS) | {"external", "typedef", "test", "testDescribe", "testIt"}


@dataclass
class FileCoverage:
    expect_count: int = 0
    actual_count: int = 0
    undocumented: List[str] = field(default_factory=list)


@dataclass
class CoverageReport:
    """Ratio of documented identifiers over every identifier the parser emitted."""

    expect_count: int
    actual_count: int
    files: Dict[str, FileCoverage]

    @property
    def ratio(self) -> float:
        if self.expect_count == 0:
            return 1.0
        return self.actual_count / self.expect_count

    @property
    def coverage(self) -> str:
        return f"{self.ratio * 100:.2f}%"

    def to_dict(self) -> Dict[str, object]:
        return {
            "coverage": self.coverage,
            "expect_count": self.expect_count,
            "actual_count": self.actual_count,
            "files": {path: asdict(item) for path, item in self.files.items()},
        }


class CoverageCalculator:
    """Counts documented vs. undocumented identifiers per file."""

    def evaluate(self, records: Iterable[DocumentRecord]) -> CoverageReport:
        files: Dict[str, FileCoverage] = {}
        expect = 0
        actual = 0
        for record in records:
            if record.kind in _SKIPPED_KINDS or record.builtin_virtual:
                continue
            if record.get("ignore"):
                continue
            file_path = str(record.get("file_path") or "<unknown>")
            entry = files.setdefault(file_path, FileCoverage())
            entry.expect_count += 1
            expect += 1
            if record.get("undocument"):
                entry.undocumented.append(str(record.get("longname") or record.get("name") or "?"))
            else:
                entry.actual_count += 1
                actual += 1
        return CoverageReport(expect_count=expect, actual_count=actual, files=files)

    def log(self, report: CoverageReport) -> None:
        logger = get_logger("coverage")
        logger.info(
            "documentation coverage: %s (%d/%d)",
            report.coverage,
            report.actual_count,
            report.expect_count,
        )
        for path, entry in sorted(report.files.items()):
            for name in entry.undocumented:
                logger.debug("undocumented: %s (%s)", name, path)

    def save(self, destination: Path, report: CoverageReport) -> Path:
        output = destination / "coverage.json"
        output.parent.mkdir(parents=True, exist_ok=True)
        output.write_text(json.dumps(report.to_dict(), indent=2, sort_keys=True), encoding="utf-8")
        return output


__all__ = ["CoverageCalculator", "CoverageReport", "FileCoverage"]
