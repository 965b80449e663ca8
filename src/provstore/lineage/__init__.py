"""Generic lineage — vertex-at-a-time traversal over pluggable backends."""

from provstore.lineage.backends import (
    MemoryLineageBackend,
    SQLLineageBackend,
    create_lineage_backend,
)
from provstore.lineage.graph import LineageGraph
from provstore.lineage.protocols import LineageBackend
from provstore.lineage.traversal import LineageTraversal
from provstore.lineage.types import (
    CHILD_VERTEX_KEY,
    PARENT_VERTEX_KEY,
    Edge,
    Vertex,
    content_hash,
    edge,
    is_network_vertex,
    vertex,
)

__all__ = [
    "CHILD_VERTEX_KEY",
    "PARENT_VERTEX_KEY",
    "Edge",
    "LineageBackend",
    "LineageGraph",
    "LineageTraversal",
    "MemoryLineageBackend",
    "SQLLineageBackend",
    "Vertex",
    "content_hash",
    "create_lineage_backend",
    "edge",
    "is_network_vertex",
    "vertex",
]
