"""Record shapes returned by the tooling and data APIs."""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Any, Union

APEX_CLASS = "ApexClass"
APEX_TRIGGER = "ApexTrigger"

FieldValue = Union[None, bool, int, float, str, list[Any], dict[str, Any], "Record"]


def _mapping(payload: Mapping[str, Any], key: str) -> Mapping[str, Any]:
    value = payload.get(key)
    if value is None:
        return {}
    if not isinstance(value, Mapping):
        raise ValueError(f"field {key!r} must be an object")
    return value


def _text(payload: Mapping[str, Any], key: str) -> str:
    value = payload.get(key)
    if value is None:
        return ""
    if not isinstance(value, str):
        raise ValueError(f"field {key!r} must be a string")
    return value


def _lines(payload: Mapping[str, Any], key: str) -> tuple[int, ...]:
    value = payload.get(key)
    if value is None:
        return ()
    if not isinstance(value, list) or not all(
        isinstance(item, int) and not isinstance(item, bool) and item > 0 for item in value
    ):
        raise ValueError(f"field {key!r} must be a list of positive line numbers")
    return tuple(value)


@dataclass(slots=True)
class Record:
    """An sObject: a type tag plus its fields in server order.

    Field values that are themselves sObjects (relationship traversal) are
    nested ``Record`` instances.
    """

    type: str
    fields: dict[str, FieldValue] = field(default_factory=dict)
    url: str = ""

    def __getitem__(self, key: str) -> FieldValue:
        return self.fields[key]

    def get(self, key: str, default: FieldValue = None) -> FieldValue:
        return self.fields.get(key, default)

    @staticmethod
    def _is_record_payload(value: object) -> bool:
        return isinstance(value, Mapping) and isinstance(value.get("attributes"), Mapping)

    @classmethod
    def from_json(cls, payload: Mapping[str, Any]) -> Record:
        if not isinstance(payload, Mapping):
            raise ValueError("record must be an object")
        attributes = _mapping(payload, "attributes")
        fields: dict[str, FieldValue] = {}
        for key, value in payload.items():
            if key == "attributes":
                continue
            if cls._is_record_payload(value):
                fields[key] = cls.from_json(value)
            else:
                fields[key] = value
        return cls(type=_text(attributes, "type"), fields=fields, url=_text(attributes, "url"))

    def to_json(self) -> dict[str, Any]:
        output: dict[str, Any] = {"attributes": {"type": self.type}}
        for key, value in self.fields.items():
            output[key] = value.to_json() if isinstance(value, Record) else value
        return output


@dataclass(slots=True, frozen=True)
class CoverageRecord:
    """One ApexCodeCoverage row: the lines one test touched in one class or trigger."""

    test_id: str
    test_name: str
    apex_id: str
    apex_name: str
    apex_type: str
    covered_lines: tuple[int, ...] = ()
    uncovered_lines: tuple[int, ...] = ()

    @property
    def is_trigger(self) -> bool:
        return self.apex_type == APEX_TRIGGER

    @classmethod
    def from_json(cls, payload: Mapping[str, Any]) -> CoverageRecord:
        if not isinstance(payload, Mapping):
            raise ValueError("coverage record must be an object")
        test = _mapping(payload, "ApexTestClass")
        apex = _mapping(payload, "ApexClassOrTrigger")
        coverage = _mapping(payload, "Coverage")
        return cls(
            test_id=_text(test, "Id"),
            test_name=_text(test, "Name"),
            apex_id=_text(apex, "Id"),
            apex_name=_text(apex, "Name"),
            apex_type=_text(_mapping(apex, "attributes"), "type"),
            covered_lines=_lines(coverage, "coveredLines"),
            uncovered_lines=_lines(coverage, "uncoveredLines"),
        )


@dataclass(slots=True, frozen=True)
class DependencyEdge:
    """Component ``id`` references component ``ref_id``."""

    id: str
    name: str
    type: str
    ref_id: str
    ref_name: str
    ref_type: str

    @classmethod
    def from_json(cls, payload: Mapping[str, Any]) -> DependencyEdge:
        if not isinstance(payload, Mapping):
            raise ValueError("dependency record must be an object")
        return cls(
            id=_text(payload, "MetadataComponentId"),
            name=_text(payload, "MetadataComponentName"),
            type=_text(payload, "MetadataComponentType"),
            ref_id=_text(payload, "RefMetadataComponentId"),
            ref_name=_text(payload, "RefMetadataComponentName"),
            ref_type=_text(payload, "RefMetadataComponentType"),
        )


@dataclass(slots=True, frozen=True)
class ApexClassInfo:
    id: str
    name: str
    annotations: tuple[str, ...] = ()
    modifiers: tuple[str, ...] = ()

    @property
    def is_test(self) -> bool:
        return any(item.lower() == "istest" for item in self.annotations) or any(
            item.lower() == "testmethod" for item in self.modifiers
        )

    @classmethod
    def from_json(cls, payload: Mapping[str, Any]) -> ApexClassInfo:
        if not isinstance(payload, Mapping):
            raise ValueError("class record must be an object")
        # SymbolTable is null for classes that do not currently compile.
        declaration = _mapping(_mapping(payload, "SymbolTable"), "tableDeclaration")
        annotations: list[str] = []
        for item in declaration.get("annotations") or []:
            if isinstance(item, Mapping) and isinstance(item.get("name"), str):
                annotations.append(item["name"])
        modifiers = [item for item in declaration.get("modifiers") or [] if isinstance(item, str)]
        return cls(
            id=_text(payload, "Id"),
            name=_text(payload, "Name"),
            annotations=tuple(annotations),
            modifiers=tuple(modifiers),
        )


@dataclass(slots=True, frozen=True)
class CollectionsError:
    status_code: str
    message: str
    fields: tuple[str, ...] = ()

    @classmethod
    def from_json(cls, payload: Mapping[str, Any]) -> CollectionsError:
        if not isinstance(payload, Mapping):
            raise ValueError("collections error must be an object")
        raw_fields = payload.get("fields") or []
        return cls(
            status_code=_text(payload, "statusCode"),
            message=_text(payload, "message"),
            fields=tuple(item for item in raw_fields if isinstance(item, str)),
        )


@dataclass(slots=True, frozen=True)
class CollectionsResponse:
    """Outcome of creating one record through sObject Collections."""

    id: str
    success: bool
    errors: tuple[CollectionsError, ...] = ()

    @classmethod
    def from_json(cls, payload: Mapping[str, Any]) -> CollectionsResponse:
        if not isinstance(payload, Mapping):
            raise ValueError("collections response must be an object")
        success = payload.get("success")
        if not isinstance(success, bool):
            raise ValueError("collections response missing success flag")
        return cls(
            id=_text(payload, "id"),
            success=success,
            errors=tuple(CollectionsError.from_json(item) for item in payload.get("errors") or []),
        )
