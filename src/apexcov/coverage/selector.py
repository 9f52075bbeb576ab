"""Test selection and the 75% coverage gate.

Two strategies share one validator. ``MaxCoverage`` fetches coverage for the
requested classes and triggers only; ``MaxCoverageWithDeps`` first expands
them through their dependency closure, so the selected tests also exercise
what the requested code calls. Deficiencies always refer to the requested
names, never to the expansion.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Collection, Sequence
from enum import Enum
from typing import Protocol

from apexcov.coverage.aggregator import parse_coverage
from apexcov.coverage.dependencies import resolve_dependency_components
from apexcov.coverage.models import Apex, Test
from apexcov.errors import CoverageDeficiencyError, StrategyError
from apexcov.sfapi.records import (
    APEX_CLASS,
    APEX_TRIGGER,
    ApexClassInfo,
    CoverageRecord,
    DependencyEdge,
)

logger = logging.getLogger(__name__)

THRESHOLD_PERCENT = 75
DEPENDENCY_COMPONENT_TYPES = (APEX_TRIGGER, APEX_CLASS)


class CoverageRequester(Protocol):
    async def request_coverage(self, apex_names: Sequence[str]) -> list[CoverageRecord]: ...

    async def request_apex_dependencies(
        self, component_types: Sequence[str]
    ) -> list[DependencyEdge]: ...

    async def request_apex_classes(self, names: Sequence[str]) -> list[ApexClassInfo]: ...


def coverage_percent(lines_covered: int, lines: int) -> int:
    """Covered share in whole percent, rounded up like the platform does."""
    return -(-lines_covered * 100 // lines)


def _unique(names: Sequence[str]) -> list[str]:
    return list(dict.fromkeys(names))


def _fetch_names(
    classes: Sequence[str], triggers: Sequence[str], dependencies: Sequence[tuple[bool, str]]
) -> list[str]:
    return _unique([*classes, *triggers, *(name for _, name in dependencies)])


def get_tests_max_coverage(
    tests: dict[str, Test],
    apexes: dict[str, Apex],
    classes: Sequence[str],
    triggers: Sequence[str],
    *,
    dependencies: Collection[tuple[bool, str]] = (),
    test_classes: Collection[str] = (),
    include_test_classes_in_total: bool = True,
) -> list[str]:
    """Return the names of every test covering a requested artifact or a dependency.

    Artifacts are matched by kind and name; ``dependencies`` holds the
    ``(is_trigger, name)`` pairs the dependency expansion added.

    Raises CoverageDeficiencyError listing each requested trigger or class
    that is untested or under the threshold. The overall ratio across the
    requested targets is checked only when every target passed on its own.
    Test classes skip the individual check; ``include_test_classes_in_total``
    decides whether their lines still count toward the overall ratio.
    """
    by_name: dict[tuple[bool, str], Apex] = {
        (apex.is_trigger, apex.name): apex for apex in apexes.values()
    }

    selectable = {(True, name) for name in triggers} | {(False, name) for name in classes}
    selectable.update(dependencies)
    selected = sorted(
        {
            tests[test_id].name
            for apex in apexes.values()
            if (apex.is_trigger, apex.name) in selectable
            for test_id in apex.coverage
        }
    )

    deficiencies: list[str] = []
    lines_total = 0
    lines_covered_total = 0
    targets = [(True, name) for name in _unique(triggers)] + [
        (False, name) for name in _unique(classes)
    ]
    for is_trigger, name in targets:
        kind = "trigger" if is_trigger else "class"
        is_test_class = not is_trigger and name in test_classes
        apex = by_name.get((is_trigger, name))
        if apex is None or apex.lines == 0:
            if not is_test_class:
                deficiencies.append(f"untested {kind} {name}")
            continue

        covered = apex.lines_covered
        if not is_test_class or include_test_classes_in_total:
            lines_total += apex.lines
            lines_covered_total += covered
        if is_test_class:
            continue

        percent = coverage_percent(covered, apex.lines)
        logger.debug("%s %s coverage %d%%", kind, name, percent)
        if percent < THRESHOLD_PERCENT:
            deficiencies.append(
                f"coverage of {kind} {name} is less than {THRESHOLD_PERCENT}%: {percent:.2f}%"
            )

    if not deficiencies and lines_total > 0:
        total_percent = coverage_percent(lines_covered_total, lines_total)
        if total_percent < THRESHOLD_PERCENT:
            deficiencies.append(
                f"total coverage is less than {THRESHOLD_PERCENT}%: {total_percent:.2f}%"
            )

    if deficiencies:
        raise CoverageDeficiencyError(deficiencies, tests=selected)
    return selected


async def fetch_coverage_and_classes(
    requester: CoverageRequester,
    apex_names: Sequence[str],
    class_names: Sequence[str],
) -> tuple[list[CoverageRecord], list[ApexClassInfo]]:
    """Run both fetches concurrently; the first failure cancels the other."""
    coverage_task = asyncio.create_task(requester.request_coverage(apex_names))
    classes_task = asyncio.create_task(requester.request_apex_classes(class_names))
    tasks = (coverage_task, classes_task)
    try:
        done, _ = await asyncio.wait(tasks, return_when=asyncio.FIRST_EXCEPTION)
        for task in tasks:
            if task in done and not task.cancelled():
                error = task.exception()
                if error is not None:
                    raise error
    finally:
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)
    return coverage_task.result(), classes_task.result()


class Strategy(str, Enum):
    MAX_COVERAGE = "MaxCoverage"
    MAX_COVERAGE_WITH_DEPS = "MaxCoverageWithDeps"

    @classmethod
    def parse(cls, value: str) -> Strategy:
        aliases = {
            "maxcoverage": cls.MAX_COVERAGE,
            "maxcoveragewithdeps": cls.MAX_COVERAGE_WITH_DEPS,
            "maxcoveragewithdependencies": cls.MAX_COVERAGE_WITH_DEPS,
        }
        strategy = aliases.get(value.strip().replace("_", "").replace("-", "").lower())
        if strategy is None:
            supported = ", ".join(item.value for item in cls)
            raise StrategyError(
                f"unsupported strategy provided: {value}; supported values: {supported}"
            )
        return strategy

    async def _expand(
        self,
        requester: CoverageRequester,
        classes: Sequence[str],
        triggers: Sequence[str],
    ) -> list[tuple[bool, str]]:
        if self is Strategy.MAX_COVERAGE:
            return []
        edges = await requester.request_apex_dependencies(DEPENDENCY_COMPONENT_TYPES)
        dependencies = resolve_dependency_components(edges, classes, triggers)
        logger.info(
            "resolved %d dependencies from %d edges", len(dependencies), len(edges)
        )
        return dependencies

    async def resolve_targets(
        self,
        requester: CoverageRequester,
        classes: Sequence[str],
        triggers: Sequence[str],
    ) -> list[str]:
        """Names whose coverage is fetched for this strategy."""
        dependencies = await self._expand(requester, classes, triggers)
        return _fetch_names(classes, triggers, dependencies)

    async def select_tests(
        self,
        requester: CoverageRequester,
        classes: Sequence[str],
        triggers: Sequence[str],
        *,
        include_test_classes_in_total: bool = True,
    ) -> list[str]:
        if not classes and not triggers:
            return []
        dependencies = await self._expand(requester, classes, triggers)
        targets = _fetch_names(classes, triggers, dependencies)
        records, class_infos = await fetch_coverage_and_classes(
            requester, targets, _unique(classes)
        )
        tests, apexes = parse_coverage(records)
        logger.info(
            "aggregated %d coverage records into %d artifacts and %d tests",
            len(records),
            len(apexes),
            len(tests),
        )
        return get_tests_max_coverage(
            tests,
            apexes,
            classes,
            triggers,
            dependencies=dependencies,
            test_classes={info.name for info in class_infos if info.is_test},
            include_test_classes_in_total=include_test_classes_in_total,
        )


async def request_tests_with_strategy(
    strategy: Strategy | str,
    requester: CoverageRequester,
    classes: Sequence[str],
    triggers: Sequence[str],
) -> list[str]:
    if not isinstance(strategy, Strategy):
        strategy = Strategy.parse(strategy)
    return await strategy.select_tests(requester, classes, triggers)
