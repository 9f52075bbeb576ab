"""apexcov exception hierarchy.

All apexcov-specific exceptions inherit from ApexCovError,
enabling structured error handling and cleaner catch clauses.
"""

from __future__ import annotations

from collections.abc import Sequence


class ApexCovError(Exception):
    """Base exception for all apexcov errors."""

    def __init__(self, message: str = "", *, retryable: bool = False) -> None:
        super().__init__(message)
        self.retryable = retryable


class ConfigError(ApexCovError):
    """Invalid or missing credentials, manifest or input."""


class StrategyError(ConfigError):
    """Unsupported coverage strategy name."""


class AuthError(ApexCovError):
    """Access token could not be acquired."""


class ApiError(ApexCovError):
    """Non-success response or transport failure talking to the org.

    ``status_code`` is None when the request never produced a response.
    """

    def __init__(
        self,
        message: str = "",
        *,
        status_code: int | None = None,
        body: bytes = b"",
        retryable: bool = False,
    ) -> None:
        super().__init__(message, retryable=retryable)
        self.status_code = status_code
        self.body = body


class ApexExecutionError(ApexCovError):
    """Anonymous Apex failed to compile or threw at runtime."""


class CoverageDeficiencyError(ApexCovError):
    """One or more requested artifacts are untested or under the threshold.

    ``tests`` carries the test names collected before the verdict so a caller
    can inspect them; they do not satisfy the failed checks.
    """

    def __init__(self, deficiencies: Sequence[str], tests: Sequence[str] = ()) -> None:
        self.deficiencies = list(deficiencies)
        self.tests = list(tests)
        super().__init__("\n".join(self.deficiencies))


class BatchError(ApexCovError):
    """One entry per bulk-write batch that failed outright."""

    def __init__(self, failures: Sequence[str]) -> None:
        self.failures = list(failures)
        count = len(self.failures)
        header = f"{count} batch{'es' if count != 1 else ''} failed"
        super().__init__("\n".join([header, *(f"  * {item}" for item in self.failures)]))
