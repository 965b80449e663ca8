"""Lineage element types — immutable vertex and edge records."""

from __future__ import annotations

import hashlib
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Any

CHILD_VERTEX_KEY = "childVertexHash"
"""Pseudo-annotation key addressing an edge's child endpoint in predicates."""

PARENT_VERTEX_KEY = "parentVertexHash"
"""Pseudo-annotation key addressing an edge's parent endpoint in predicates."""

NETWORK_SUBTYPE = "network socket"


@dataclass(frozen=True, slots=True)
class Vertex:
    """A provenance vertex.  Equality and hashing use the id only."""

    id: str
    annotations: MappingProxyType[str, str] = field(
        default_factory=lambda: MappingProxyType({}), compare=False, hash=False
    )

    def get(self, key: str, default: str | None = None) -> str | None:
        return self.annotations.get(key, default)


@dataclass(frozen=True, slots=True)
class Edge:
    """A provenance edge from *child_id* to *parent_id*."""

    id: str
    child_id: str
    parent_id: str
    annotations: MappingProxyType[str, str] = field(
        default_factory=lambda: MappingProxyType({}), compare=False, hash=False
    )

    def get(self, key: str, default: str | None = None) -> str | None:
        return self.annotations.get(key, default)


def content_hash(annotations: dict[str, Any]) -> str:
    """32-character hex digest of *annotations*, independent of key order."""
    digest = hashlib.md5(usedforsecurity=False)
    for key in sorted(annotations):
        digest.update(f"{key}:{annotations[key]}|".encode())
    return digest.hexdigest()


def vertex(annotations: dict[str, Any] | None = None, *, id: str | None = None) -> Vertex:
    """Convenience factory — ids default to the annotations' content hash."""
    values = {k: str(v) for k, v in (annotations or {}).items() if v is not None}
    return Vertex(id=id or content_hash(values), annotations=MappingProxyType(values))


def edge(
    child_id: str,
    parent_id: str,
    annotations: dict[str, Any] | None = None,
    *,
    id: str | None = None,
) -> Edge:
    """Convenience factory — ids default to a hash over endpoints and annotations."""
    values = {k: str(v) for k, v in (annotations or {}).items() if v is not None}
    resolved = id or content_hash(
        {**values, CHILD_VERTEX_KEY: child_id, PARENT_VERTEX_KEY: parent_id}
    )
    return Edge(resolved, child_id, parent_id, MappingProxyType(values))


def is_network_vertex(v: Vertex) -> bool:
    """Return ``True`` for vertices that stand for a remote host's endpoint."""
    return v.get("subtype") == NETWORK_SUBTYPE
