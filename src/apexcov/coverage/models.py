"""Aggregated coverage views, one per artifact and one per test class."""

from __future__ import annotations

from dataclasses import dataclass, field


def merge_coverage(first: list[bool], second: list[bool]) -> list[bool]:
    """Element-wise OR; the shorter vector is treated as uncovered past its end."""
    if len(first) < len(second):
        first, second = second, first
    merged = list(first)
    for index, covered in enumerate(second):
        if covered:
            merged[index] = True
    return merged


@dataclass(slots=True)
class Apex:
    """A class or trigger and the lines each test covers in it, keyed by test id."""

    id: str
    name: str
    is_trigger: bool
    lines: int
    coverage: dict[str, list[bool]] = field(default_factory=dict)

    @property
    def max_line(self) -> int:
        return max((len(vector) for vector in self.coverage.values()), default=0)

    @property
    def lines_covered(self) -> int:
        total: list[bool] = []
        for vector in self.coverage.values():
            total = merge_coverage(total, vector)
        return sum(total)


@dataclass(slots=True)
class Test:
    """A test class and the lines it covers, keyed by artifact id."""

    id: str
    name: str
    coverage: dict[str, list[bool]] = field(default_factory=dict)