"""Tooling API queries for coverage, dependencies and class metadata."""

from __future__ import annotations

import logging
from collections.abc import Callable, Mapping, Sequence
from typing import Any, TypeVar

from apexcov.errors import ApexExecutionError, ApiError
from apexcov.sfapi.connection import Connection
from apexcov.sfapi.records import (
    APEX_CLASS,
    APEX_TRIGGER,
    ApexClassInfo,
    CoverageRecord,
    DependencyEdge,
)

logger = logging.getLogger(__name__)

T = TypeVar("T")

_COVERAGE_FIELDS = (
    "ApexTestClass.Name",
    "ApexTestClass.Id",
    "ApexClassOrTrigger.Name",
    "ApexClassOrTrigger.Id",
    "Coverage",
)
_DEPENDENCY_FIELDS = (
    "MetadataComponentName",
    "MetadataComponentId",
    "MetadataComponentType",
    "RefMetadataComponentType",
    "RefMetadataComponentName",
    "RefMetadataComponentId",
)
_CLASS_FIELDS = ("Id", "Name", "SymbolTable")


def soql_in(values: Sequence[str]) -> str:
    """Render ``values`` as a SOQL ``IN`` list; an empty list matches nothing."""
    if not values:
        return "('')"
    quoted = (
        "'" + value.replace("\\", "\\\\").replace("'", "\\'") + "'" for value in values
    )
    return "(" + ",".join(quoted) + ")"


def decode_records(
    payload: Any, decoder: Callable[[Mapping[str, Any]], T], url: str
) -> tuple[list[T], str | None]:
    """Decode one query page into typed records plus the next page path, if any."""
    if not isinstance(payload, Mapping):
        raise ApiError(f"query response from {url} is not an object")
    raw = payload.get("records")
    if not isinstance(raw, list):
        raise ApiError(f"query response from {url} has no records array")
    try:
        records = [decoder(item) for item in raw]
    except ValueError as exc:
        raise ApiError(f"query response from {url} has a malformed record: {exc}") from exc
    next_url = payload.get("nextRecordsUrl")
    if payload.get("done", True) is False and isinstance(next_url, str) and next_url:
        return records, next_url
    return records, None


async def query_all(
    connection: Connection,
    url: str,
    soql: str,
    decoder: Callable[[Mapping[str, Any]], T],
) -> list[T]:
    """Run ``soql`` against a query endpoint and follow ``nextRecordsUrl`` to the end."""
    payload = await connection.get_json(url, params={"q": soql})
    records, next_url = decode_records(payload, decoder, url)
    while next_url is not None:
        page_url = f"{connection.base_url}{next_url}"
        payload = await connection.get_json(page_url)
        page, next_url = decode_records(payload, decoder, page_url)
        records.extend(page)
    return records


class ToolingClient:
    """Typed access to the tooling API objects the coverage engine reads."""

    def __init__(self, connection: Connection) -> None:
        self.connection = connection

    async def _query(self, soql: str, decoder: Callable[[Mapping[str, Any]], T]) -> list[T]:
        url = self.connection.data_url("tooling/query/")
        records = await query_all(self.connection, url, soql, decoder)
        logger.debug("tooling query returned %d records", len(records), extra={"soql": soql})
        return records

    async def request_coverage(self, apex_names: Sequence[str]) -> list[CoverageRecord]:
        soql = (
            f"SELECT {','.join(_COVERAGE_FIELDS)} FROM ApexCodeCoverage "
            f"WHERE ApexClassOrTrigger.Name IN {soql_in(apex_names)}"
        )
        return await self._query(soql, CoverageRecord.from_json)

    async def request_apex_dependencies(
        self, component_types: Sequence[str]
    ) -> list[DependencyEdge]:
        soql = (
            f"SELECT {','.join(_DEPENDENCY_FIELDS)} FROM MetadataComponentDependency "
            f"WHERE RefMetadataComponentType IN {soql_in([APEX_CLASS, APEX_TRIGGER])} "
            f"AND MetadataComponentType IN {soql_in(component_types)}"
        )
        return await self._query(soql, DependencyEdge.from_json)

    async def request_apex_classes(self, names: Sequence[str]) -> list[ApexClassInfo]:
        soql = f"SELECT {','.join(_CLASS_FIELDS)} FROM ApexClass WHERE Name IN {soql_in(names)}"
        return await self._query(soql, ApexClassInfo.from_json)

    async def execute_anonymous(self, body: str) -> None:
        """Run anonymous Apex; raise ApexExecutionError when it fails."""
        url = self.connection.data_url("tooling/executeAnonymous/")
        result = await self.connection.get_json(
            url, params={"anonymousBody": body.replace("\n", " ")}
        )
        if not isinstance(result, Mapping):
            raise ApiError(f"executeAnonymous response from {url} is not an object")
        if result.get("success") is True:
            return
        if result.get("compiled") is True:
            detail = " ".join(
                str(part)
                for part in (result.get("exceptionMessage"), result.get("exceptionStackTrace"))
                if part
            )
            raise ApexExecutionError(
                f"error on line {result.get('line')}:{result.get('column')} - {detail}"
            )
        raise ApexExecutionError(f"didn't compile: {result.get('compileProblem') or ''}")
