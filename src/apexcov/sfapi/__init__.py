"""Salesforce API access: authenticated requests, queries and bulk writes."""

from apexcov.sfapi.connection import Connection
from apexcov.sfapi.records import (
    ApexClassInfo,
    CollectionsError,
    CollectionsResponse,
    CoverageRecord,
    DependencyEdge,
    Record,
)
from apexcov.sfapi.rest import collections_create, query
from apexcov.sfapi.tooling import ToolingClient

__all__ = [
    "ApexClassInfo",
    "CollectionsError",
    "CollectionsResponse",
    "Connection",
    "CoverageRecord",
    "DependencyEdge",
    "Record",
    "ToolingClient",
    "collections_create",
    "query",
]
