"""Transitive reference closure over MetadataComponentDependency edges."""

from __future__ import annotations

from collections.abc import Iterable, Sequence
from dataclasses import dataclass, field

from apexcov.sfapi.records import APEX_TRIGGER, DependencyEdge


@dataclass(slots=True)
class DependencyNode:
    id: str
    name: str
    is_trigger: bool
    is_root: bool = False
    refs: list[str] = field(default_factory=list)


def build_graph(
    edges: Iterable[DependencyEdge], classes: Sequence[str], triggers: Sequence[str]
) -> dict[str, DependencyNode]:
    class_set = set(classes)
    trigger_set = set(triggers)
    graph: dict[str, DependencyNode] = {}

    def _node(node_id: str, name: str, component_type: str) -> DependencyNode:
        node = graph.get(node_id)
        if node is None:
            is_trigger = component_type == APEX_TRIGGER
            requested = trigger_set if is_trigger else class_set
            node = DependencyNode(
                id=node_id, name=name, is_trigger=is_trigger, is_root=name in requested
            )
            graph[node_id] = node
        return node

    for edge in edges:
        _node(edge.ref_id, edge.ref_name, edge.ref_type)
        _node(edge.id, edge.name, edge.type).refs.append(edge.ref_id)
    return graph


def walk(graph: dict[str, DependencyNode], start: str, seen: set[str]) -> None:
    """Depth-first walk from ``start`` adding every reachable id to ``seen``."""
    stack = [start]
    while stack:
        node_id = stack.pop()
        if node_id in seen:
            continue
        seen.add(node_id)
        node = graph.get(node_id)
        if node is not None:
            stack.extend(ref for ref in reversed(node.refs) if ref not in seen)


def resolve_dependency_components(
    edges: Iterable[DependencyEdge], classes: Sequence[str], triggers: Sequence[str]
) -> list[tuple[bool, str]]:
    """``(is_trigger, name)`` of every component the requested ones reach, roots excluded."""
    graph = build_graph(edges, classes, triggers)
    seen: set[str] = set()
    for node in graph.values():
        if node.is_root:
            walk(graph, node.id, seen)
    return sorted(
        {
            (graph[node_id].is_trigger, graph[node_id].name)
            for node_id in seen
            if not graph[node_id].is_root
        }
    )


def resolve_dependencies(
    edges: Iterable[DependencyEdge], classes: Sequence[str], triggers: Sequence[str]
) -> list[str]:
    """Names of every component a requested class or trigger reaches, roots excluded."""
    return sorted({name for _, name in resolve_dependency_components(edges, classes, triggers)})
