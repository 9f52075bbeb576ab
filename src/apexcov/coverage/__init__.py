"""Coverage aggregation, dependency closure and test selection."""

from apexcov.coverage.aggregator import parse_coverage
from apexcov.coverage.dependencies import resolve_dependencies
from apexcov.coverage.models import Apex, Test
from apexcov.coverage.selector import (
    Strategy,
    get_tests_max_coverage,
    request_tests_with_strategy,
)

__all__ = [
    "Apex",
    "Strategy",
    "Test",
    "get_tests_max_coverage",
    "parse_coverage",
    "request_tests_with_strategy",
    "resolve_dependencies",
]
