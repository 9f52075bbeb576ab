"""Merge ApexCodeCoverage rows into per-artifact and per-test bitmaps."""

from __future__ import annotations

from collections.abc import Iterable

from apexcov.coverage.models import Apex, Test, merge_coverage
from apexcov.sfapi.records import CoverageRecord


def line_vector(record: CoverageRecord) -> list[bool]:
    """Vector as long as the highest line the record mentions, True where covered."""
    max_line = max((*record.covered_lines, *record.uncovered_lines), default=0)
    vector = [False] * max_line
    for line in record.covered_lines:
        vector[line - 1] = True
    return vector


def _pad(vector: list[bool], length: int) -> list[bool]:
    if len(vector) >= length:
        return vector
    return vector + [False] * (length - len(vector))


def parse_coverage(records: Iterable[CoverageRecord]) -> tuple[dict[str, Test], dict[str, Apex]]:
    tests: dict[str, Test] = {}
    apexes: dict[str, Apex] = {}

    for record in records:
        vector = line_vector(record)

        apex = apexes.get(record.apex_id)
        if apex is None:
            # The first row seen carries the artifact's full instrumented line count.
            apex = Apex(
                id=record.apex_id,
                name=record.apex_name,
                is_trigger=record.is_trigger,
                lines=len(record.covered_lines) + len(record.uncovered_lines),
            )
            apexes[record.apex_id] = apex
        apex.coverage[record.test_id] = merge_coverage(
            apex.coverage.get(record.test_id, []), vector
        )

        test = tests.get(record.test_id)
        if test is None:
            test = Test(id=record.test_id, name=record.test_name)
            tests[record.test_id] = test
        test.coverage[record.apex_id] = merge_coverage(
            test.coverage.get(record.apex_id, []), vector
        )

    # Every vector of an artifact spans the highest line seen for that artifact.
    for apex in apexes.values():
        width = apex.max_line
        for test_id, vector in apex.coverage.items():
            apex.coverage[test_id] = _pad(vector, width)
            tests[test_id].coverage[apex.id] = _pad(tests[test_id].coverage[apex.id], width)

    return tests, apexes
