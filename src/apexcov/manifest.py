"""Read Apex class and trigger names from package.xml manifests."""

from __future__ import annotations

import xml.etree.ElementTree as ET
from collections.abc import Iterable
from pathlib import Path

from apexcov.errors import ConfigError
from apexcov.sfapi.records import APEX_CLASS, APEX_TRIGGER


def _local(tag: str) -> str:
    return tag.rsplit("}", 1)[-1]


def _split_paths(paths: str | Iterable[str | Path]) -> list[Path]:
    if isinstance(paths, str):
        return [Path(item.strip()) for item in paths.split(",") if item.strip()]
    return [Path(item) for item in paths]


def load_apex(paths: str | Iterable[str | Path]) -> tuple[list[str], list[str]]:
    """Return sorted, de-duplicated (classes, triggers) across all manifests.

    ``paths`` is either an iterable of paths or a comma-separated string.
    """
    classes: set[str] = set()
    triggers: set[str] = set()
    for path in _split_paths(paths):
        try:
            root = ET.parse(path).getroot()
        except OSError as exc:
            raise ConfigError(f"failed to read manifest {path}: {exc}") from exc
        except ET.ParseError as exc:
            raise ConfigError(f"manifest {path} is not valid XML: {exc}") from exc
        for types in root:
            if _local(types.tag) != "types":
                continue
            name = ""
            members: list[str] = []
            for child in types:
                text = (child.text or "").strip()
                if _local(child.tag) == "name":
                    name = text
                elif _local(child.tag) == "members" and text:
                    members.append(text)
            if name == APEX_CLASS:
                classes.update(members)
            elif name == APEX_TRIGGER:
                triggers.update(members)
    return sorted(classes), sorted(triggers)
