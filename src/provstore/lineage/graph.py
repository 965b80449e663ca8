"""LineageGraph — rustworkx-backed result of a generic lineage traversal."""

from __future__ import annotations

from collections import Counter
from datetime import UTC, datetime
from types import MappingProxyType
from typing import TYPE_CHECKING

import rustworkx

from provstore.query.types import ElementType, histogram

from .types import Vertex

if TYPE_CHECKING:
    from collections.abc import Iterable

    from provstore.query.types import Histogram

    from .types import Edge

COMPUTE_TIME_FORMAT = "%Y-%m-%d %H:%M:%S %Z"


class LineageGraph:
    """In-memory provenance graph produced by vertex-at-a-time traversal.

    Wraps a ``rustworkx.PyDiGraph`` whose edges point child → parent, keyed
    by vertex id.  Parallel edges between the same pair are kept apart by
    edge id.  Besides the elements it records the traversal's bookkeeping:
    root vertex, per-vertex depth, depth bound, network vertices awaiting
    remote resolution, and when the result was computed.
    """

    def __init__(self, *, max_depth: int | None = None) -> None:
        self._graph: rustworkx.PyDiGraph = rustworkx.PyDiGraph()
        self._id_to_idx: dict[str, int] = {}
        self._edge_to_idx: dict[str, int] = {}
        self._depths: dict[str, int] = {}
        self.root_id: str | None = None
        self.max_depth = max_depth
        self.network_vertices: dict[str, int] = {}
        self.compute_time: str | None = None

    # ------------------------------------------------------------------
    # Vertex operations
    # ------------------------------------------------------------------

    def add_vertex(self, v: Vertex, *, depth: int | None = None) -> None:
        """Add *v*, or merge its annotations into the existing vertex.

        A vertex reached at several depths keeps the smallest.
        """
        if v.id in self._id_to_idx:
            idx = self._id_to_idx[v.id]
            existing: Vertex = self._graph[idx]
            if v.annotations and v.annotations != existing.annotations:
                merged = Vertex(v.id, MappingProxyType({**existing.annotations, **v.annotations}))
                self._graph[idx] = merged
        else:
            self._id_to_idx[v.id] = self._graph.add_node(v)
        if depth is not None:
            current = self._depths.get(v.id)
            if current is None or depth < current:
                self._depths[v.id] = depth

    def has_vertex(self, vertex_id: str) -> bool:
        return vertex_id in self._id_to_idx

    def get_vertex(self, vertex_id: str) -> Vertex:
        """Return the vertex.  Raises ``KeyError`` if missing."""
        return self._graph[self._require_vertex(vertex_id)]

    def vertices(self) -> list[Vertex]:
        return [self._graph[idx] for idx in self._id_to_idx.values()]

    def depth(self, vertex_id: str) -> int | None:
        """Hops from the root at which *vertex_id* was first reached."""
        return self._depths.get(vertex_id)

    # ------------------------------------------------------------------
    # Edge operations
    # ------------------------------------------------------------------

    def add_edge(self, e: Edge) -> None:
        """Add *e*, auto-creating missing endpoints.  Re-adding an id is a no-op."""
        if e.id in self._edge_to_idx:
            return
        for endpoint in (e.child_id, e.parent_id):
            if endpoint not in self._id_to_idx:
                self.add_vertex(Vertex(endpoint))
        self._edge_to_idx[e.id] = self._graph.add_edge(
            self._id_to_idx[e.child_id], self._id_to_idx[e.parent_id], e
        )

    def has_edge(self, edge_id: str) -> bool:
        return edge_id in self._edge_to_idx

    def get_edge(self, edge_id: str) -> Edge:
        """Return the edge.  Raises ``KeyError`` if missing."""
        try:
            return self._graph.get_edge_data_by_index(self._edge_to_idx[edge_id])
        except KeyError:
            raise KeyError(f"Edge not found: {edge_id!r}") from None

    def edges(self) -> list[Edge]:
        return [self._graph.get_edge_data_by_index(idx) for idx in self._edge_to_idx.values()]

    def parents(self, vertex_id: str) -> list[Vertex]:
        """Vertices that *vertex_id*'s edges point to."""
        idx = self._require_vertex(vertex_id)
        return [self._graph[i] for i in dict.fromkeys(self._graph.successor_indices(idx))]

    def children(self, vertex_id: str) -> list[Vertex]:
        """Vertices whose edges point to *vertex_id*."""
        idx = self._require_vertex(vertex_id)
        return [self._graph[i] for i in dict.fromkeys(self._graph.predecessor_indices(idx))]

    def edges_between(self, child_id: str, parent_id: str) -> list[Edge]:
        child_idx = self._id_to_idx.get(child_id)
        parent_idx = self._id_to_idx.get(parent_id)
        if child_idx is None or parent_idx is None:
            return []
        return [
            data
            for _, tgt, data in self._graph.out_edges(child_idx)
            if tgt == parent_idx
        ]

    # ------------------------------------------------------------------
    # Remote resolution
    # ------------------------------------------------------------------

    def put_network_vertex(self, v: Vertex, depth: int) -> None:
        """Record *v* as needing resolution on the remote host it stands for."""
        self.add_vertex(v)
        current = self.network_vertices.get(v.id)
        if current is None or depth < current:
            self.network_vertices[v.id] = depth

    @property
    def remote_resolution_required(self) -> bool:
        return bool(self.network_vertices)

    def mark_computed(self) -> None:
        self.compute_time = datetime.now(UTC).strftime(COMPUTE_TIME_FORMAT)

    # ------------------------------------------------------------------
    # Graph-level
    # ------------------------------------------------------------------

    @property
    def vertex_count(self) -> int:
        return self._graph.num_nodes()

    @property
    def edge_count(self) -> int:
        return self._graph.num_edges()

    def merge(self, other: LineageGraph) -> None:
        """Union *other* into this graph, keeping the smaller depth per vertex."""
        for v in other.vertices():
            self.add_vertex(v, depth=other.depth(v.id))
        for e in other.edges():
            self.add_edge(e)
        for vertex_id, depth in other.network_vertices.items():
            self.put_network_vertex(other.get_vertex(vertex_id), depth)
        if self.root_id is None:
            self.root_id = other.root_id

    def compute_histogram(self, key: str, element_type: ElementType) -> Histogram:
        """Value → count of *key* over vertices or edges, ascending by count.

        Elements without the annotation are counted under ``None``.
        """
        elements: Iterable[Vertex | Edge]
        if element_type is ElementType.VERTEX:
            elements = self.vertices()
        else:
            elements = self.edges()
        counts = Counter(element.get(key) for element in elements)
        ordered = sorted(
            counts.items(), key=lambda item: (item[1], item[0] is None, item[0] or "")
        )
        return histogram(dict(ordered))

    def _require_vertex(self, vertex_id: str) -> int:
        try:
            return self._id_to_idx[vertex_id]
        except KeyError:
            raise KeyError(f"Vertex not found: {vertex_id!r}") from None

    def __repr__(self) -> str:
        return (
            f"LineageGraph(root={self.root_id!r}, vertices={self.vertex_count}, "
            f"edges={self.edge_count}, max_depth={self.max_depth})"
        )
