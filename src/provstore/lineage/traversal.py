"""LineageTraversal — vertex-at-a-time lineage over a :class:`LineageBackend`."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from provstore.exceptions import ConfigurationError, NoRootVertexError
from provstore.query.types import Direction, Predicate, PredicateOperator

from .graph import LineageGraph
from .types import CHILD_VERTEX_KEY, PARENT_VERTEX_KEY, is_network_vertex

if TYPE_CHECKING:
    from collections.abc import Callable, Sequence

    from .protocols import LineageBackend
    from .types import Vertex

logger = logging.getLogger(__name__)


class LineageTraversal:
    """Breadth-first lineage built from the four backend primitives.

    Issues one neighbour lookup per visited vertex and one edge lookup per
    (vertex, neighbour) pair, so it suits small graphs and backends that
    cannot run bulk instructions.  Vertices for which *is_remote* holds are
    recorded for remote resolution and not expanded locally.
    """

    def __init__(
        self,
        backend: LineageBackend | None,
        *,
        is_remote: Callable[[Vertex], bool] = is_network_vertex,
    ) -> None:
        if backend is None:
            raise ConfigurationError("LineageTraversal requires a backend")
        self.backend = backend
        self.is_remote = is_remote

    async def get_lineage(
        self,
        predicates: Sequence[Predicate],
        max_depth: int,
        direction: Direction,
    ) -> LineageGraph:
        """Lineage of the vertices matching *predicates*, up to *max_depth* hops.

        Raises :class:`NoRootVertexError` when no vertex matches.
        """
        if max_depth < 0:
            raise ValueError(f"max_depth must be >= 0, got {max_depth}")
        start = await self.backend.lookup_vertices(predicates)
        if not start:
            raise NoRootVertexError(f"No vertex matches {list(predicates)!r}")

        result = LineageGraph(max_depth=max_depth)
        result.root_id = start[0].id
        for single in direction.expand():
            result.merge(await self._traverse(start, max_depth, single))
        result.mark_computed()
        logger.debug("Lineage computed: %r", result)
        return result

    async def _traverse(
        self, start: Sequence[Vertex], max_depth: int, direction: Direction
    ) -> LineageGraph:
        ancestors = direction is Direction.ANCESTOR
        result = LineageGraph(max_depth=max_depth)
        result.root_id = start[0].id
        remaining: set[str] = set()
        for v in start:
            result.add_vertex(v, depth=0)
            if self.is_remote(v):
                result.put_network_vertex(v, 0)
            else:
                remaining.add(v.id)

        visited: set[str] = set()
        current_depth = 0
        while remaining and current_depth < max_depth:
            visited |= remaining
            frontier: set[str] = set()
            for vertex_id in sorted(remaining):
                if ancestors:
                    neighbours = await self.backend.get_parents(vertex_id)
                else:
                    neighbours = await self.backend.get_children(vertex_id)
                for neighbour in neighbours:
                    result.add_vertex(neighbour, depth=current_depth + 1)
                    if self.is_remote(neighbour):
                        result.put_network_vertex(neighbour, current_depth)
                    elif neighbour.id not in visited:
                        frontier.add(neighbour.id)
                    child_id, parent_id = (
                        (vertex_id, neighbour.id) if ancestors else (neighbour.id, vertex_id)
                    )
                    for e in await self.backend.lookup_edges(
                        [
                            Predicate(CHILD_VERTEX_KEY, PredicateOperator.EQUAL, child_id),
                            Predicate(PARENT_VERTEX_KEY, PredicateOperator.EQUAL, parent_id),
                        ]
                    ):
                        result.add_edge(e)
            logger.debug(
                "Lineage %s depth %d: frontier=%d", direction.value, current_depth + 1, len(frontier)
            )
            remaining = frontier
            current_depth += 1
        return result
