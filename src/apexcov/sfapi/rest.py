"""REST data API: SOQL queries and batched sObject Collections writes."""

from __future__ import annotations

import asyncio
import json
import logging
from collections.abc import Sequence
from typing import Any

from apexcov.config import MAX_BATCH_SIZE
from apexcov.errors import ApexCovError, ApiError, BatchError
from apexcov.sfapi.connection import Connection
from apexcov.sfapi.records import CollectionsResponse, Record
from apexcov.sfapi.tooling import query_all

logger = logging.getLogger(__name__)


def _query_error_detail(error: ApiError) -> str | None:
    """Return ``errorCode: message`` from a data API error body, if it has one."""
    try:
        payload = json.loads(error.body)
    except ValueError:
        return None
    if not isinstance(payload, list) or not payload or not isinstance(payload[0], dict):
        return None
    first = payload[0]
    return f"{first.get('errorCode', '')}: {first.get('message', '')}"


async def query(connection: Connection, soql: str) -> list[Record]:
    url = connection.data_url("query/")
    try:
        return await query_all(connection, url, soql, Record.from_json)
    except ApiError as exc:
        if exc.status_code is None:
            raise
        detail = _query_error_detail(exc)
        if detail is None:
            raise
        raise ApiError(
            f"query failed: {detail}", status_code=exc.status_code, body=exc.body
        ) from exc


def split_batches(records: Sequence[Record], batch_size: int) -> list[tuple[int, int]]:
    """Contiguous ``[start, end)`` ranges of at most ``batch_size`` records."""
    if batch_size < 1:
        raise ValueError("batch_size must be >= 1")
    return [
        (start, min(start + batch_size, len(records)))
        for start in range(0, len(records), batch_size)
    ]


async def collections_create(
    connection: Connection,
    records: Sequence[Record],
    *,
    all_or_none: bool = False,
    batch_size: int = MAX_BATCH_SIZE,
) -> tuple[list[list[CollectionsResponse]], BatchError | None]:
    """Create ``records`` through sObject Collections, one concurrent request per batch.

    ``all_or_none`` is applied by the org within each batch only: batches that
    succeeded are not rolled back when another batch fails. Slot ``i`` of the
    returned list holds batch ``i``'s responses and stays empty if it failed.
    """
    batch_size = min(batch_size, MAX_BATCH_SIZE)
    ranges = split_batches(records, batch_size)
    responses: list[list[CollectionsResponse]] = [[] for _ in ranges]
    failures: list[tuple[int, str]] = []
    url = connection.data_url("composite/sobjects")

    async def _create_batch(index: int, start: int, end: int) -> None:
        body: dict[str, Any] = {
            "allOrNone": all_or_none,
            "records": [record.to_json() for record in records[start:end]],
        }
        try:
            payload = await connection.post_json(url, body)
            if not isinstance(payload, list):
                raise ApiError("collections response is not a list")
            try:
                batch = [CollectionsResponse.from_json(item) for item in payload]
            except ValueError as exc:
                raise ApiError(f"collections response decode failed: {exc}") from exc
        except ApexCovError as exc:
            logger.warning(
                "collections batch failed",
                extra={"batch": index, "start": start, "end": end, "error": str(exc)},
            )
            failures.append((index, f"batch {index} (records {start} to {end}) failed: {exc}"))
            return
        responses[index] = batch
        logger.debug("collections batch created", extra={"batch": index, "count": len(batch)})

    await asyncio.gather(*(_create_batch(i, start, end) for i, (start, end) in enumerate(ranges)))

    if not failures:
        return responses, None
    return responses, BatchError([message for _, message in sorted(failures)])
