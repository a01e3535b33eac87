"""Parse lcov tracefiles into per-file line hit counts."""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, List, Optional


class LcovError(ValueError):
    """Raised when a tracefile cannot be parsed."""


@dataclass(slots=True)
class LcovFile:
    path: str
    lines: Dict[int, int] = field(default_factory=dict)

    @property
    def lines_total(self) -> int:
        return len(self.lines)

    @property
    def lines_covered(self) -> int:
        return sum(1 for hits in self.lines.values() if hits > 0)

    def coverage_array(self, line_count: Optional[int] = None) -> List[Optional[int]]:
        """Coveralls-style array: index = line - 1, ``None`` for lines without data."""

        length = max([line_count or 0, *self.lines.keys()], default=0)
        array: List[Optional[int]] = [None] * length
        for line, hits in self.lines.items():
            array[line - 1] = hits
        return array


@dataclass(slots=True)
class LcovReport:
    files: List[LcovFile] = field(default_factory=list)

    @property
    def lines_total(self) -> int:
        return sum(item.lines_total for item in self.files)

    @property
    def lines_covered(self) -> int:
        return sum(item.lines_covered for item in self.files)

    @property
    def line_rate(self) -> Optional[float]:
        total = self.lines_total
        if not total:
            return None
        return self.lines_covered / total


def parse_lcov(text: str) -> LcovReport:
    report = LcovReport()
    current: Optional[LcovFile] = None
    for idx, raw in enumerate(text.splitlines(), start=1):
        line = raw.strip()
        if not line:
            continue
        if line.startswith("SF:"):
            current = LcovFile(path=line[3:].strip())
            continue
        if line == "end_of_record":
            if current is None:
                raise LcovError(f"line {idx}: end_of_record without SF")
            report.files.append(current)
            current = None
            continue
        if line.startswith("DA:"):
            if current is None:
                raise LcovError(f"line {idx}: DA outside of a file record")
            parts = line[3:].split(",")
            if len(parts) < 2:
                raise LcovError(f"line {idx}: malformed DA entry '{line}'")
            try:
                number = int(parts[0])
                hits = int(parts[1])
            except ValueError as exc:
                raise LcovError(f"line {idx}: malformed DA entry '{line}'") from exc
            if number < 1:
                raise LcovError(f"line {idx}: line numbers start at 1")
            # grcov can emit the same line twice for generic instantiations.
            current.lines[number] = current.lines.get(number, 0) + max(hits, 0)
    if current is not None:
        raise LcovError(f"record for {current.path} is missing end_of_record")
    return report


def load_lcov(path: Path) -> LcovReport:
    try:
        text = path.read_text(encoding="utf-8")
    except OSError as exc:
        raise LcovError(f"Unable to read coverage report {path}: {exc}") from exc
    return parse_lcov(text)
