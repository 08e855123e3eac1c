"""Graph, spatial and duration values exchanged with the database."""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass, field
from typing import Any


@dataclass
class Node:
    """A node in the graph."""

    id: int = 0
    labels: list[str] = field(default_factory=list)
    props: dict[str, Any] = field(default_factory=dict)


@dataclass
class Relationship:
    """A relationship between two nodes."""

    id: int = 0
    start_id: int = 0
    end_id: int = 0
    type: str = ""
    props: dict[str, Any] = field(default_factory=dict)


@dataclass
class RelNode:
    """A relationship inside a path, before its direction is known."""

    id: int = 0
    name: str = ""
    props: dict[str, Any] = field(default_factory=dict)


@dataclass
class Path:
    """An alternating sequence of nodes and relationships."""

    nodes: list[Node] = field(default_factory=list)
    relationships: list[Relationship] = field(default_factory=list)


@dataclass(frozen=True)
class Point2D:
    """A point in a two dimensional coordinate system."""

    spatial_ref_id: int = 0
    x: float = 0.0
    y: float = 0.0


@dataclass(frozen=True)
class Point3D:
    """A point in a three dimensional coordinate system."""

    spatial_ref_id: int = 0
    x: float = 0.0
    y: float = 0.0
    z: float = 0.0


@dataclass(frozen=True)
class Duration:
    """A temporal amount split into months, days, seconds and nanoseconds."""

    months: int = 0
    days: int = 0
    seconds: int = 0
    nanos: int = 0


def _checked_index(index: int, size: int, what: str) -> int:
    if not 0 <= index < size:
        raise IndexError(f"Path {what} index {index} out of range")
    return index


def build_path(
    nodes: Sequence[Node], rel_nodes: Sequence[RelNode], indexes: Sequence[int]
) -> Path:
    """Build a path from its Bolt representation.

    ``indexes`` holds pairs of a one based relationship index, negative when
    the relationship is traversed backwards, and the index of the next node.
    """
    if len(indexes) // 2 == 0:
        return Path()

    relationships = []
    current = nodes[0]
    for rel_index, node_index in zip(indexes[0::2], indexes[1::2]):
        forward = rel_index > 0
        position = rel_index - 1 if forward else -rel_index - 1
        rel_node = rel_nodes[_checked_index(position, len(rel_nodes), "relationship")]
        following = nodes[_checked_index(node_index, len(nodes), "node")]
        start, end = (current, following) if forward else (following, current)
        relationships.append(
            Relationship(
                id=rel_node.id,
                start_id=start.id,
                end_id=end.id,
                type=rel_node.name,
                props=rel_node.props,
            )
        )
        current = following
    return Path(nodes=list(nodes), relationships=relationships)