"""InstructionExecutor — bulk graph instructions over id-set tables."""

from __future__ import annotations

import logging
from types import MappingProxyType
from typing import TYPE_CHECKING, Any

from provstore.dialect import limit_clause
from provstore.exceptions import ConfigurationError, UnsupportedOperationError

from . import filters, statistics, traversal
from .handles import is_base
from .types import (
    EdgeEndpoint,
    ElementType,
    GraphComponent,
    QueriedEdge,
    ResultTable,
)

if TYPE_CHECKING:
    from collections.abc import Sequence

    from .environment import QueryEnvironment
    from .handles import Graph, GraphMetadata
    from .store import BackingStore
    from .types import (
        Count,
        Direction,
        Distribution,
        GraphDescription,
        Histogram,
        Mean,
        Predicate,
        StandardDeviation,
    )

logger = logging.getLogger(__name__)

# Content-derived ids are 32-character digests.
MAX_LITERAL_ID_LENGTH = 32


class InstructionExecutor:
    """Executes one instruction at a time against a single backing store.

    Every instruction reads from already-populated source handles and
    writes into its target handle, which must have been created with
    :meth:`create_empty_graph`.  Instructions are not reentrant: run them
    sequentially, one pipeline per session.

    Algorithms live in :mod:`~provstore.query.filters`,
    :mod:`~provstore.query.traversal` and :mod:`~provstore.query.statistics`;
    this class holds the collaborators and validates handles.
    """

    def __init__(self, store: BackingStore | None, environment: QueryEnvironment | None) -> None:
        if environment is None:
            raise ConfigurationError("NULL query environment")
        if store is None:
            raise ConfigurationError("NULL backing store")
        self.store = store
        self.environment = environment

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _writable(self, target: Graph) -> Graph:
        if is_base(target):
            raise UnsupportedOperationError("The base graph is read-only")
        # Resolve eagerly so unknown handles fail before any statement runs.
        self.environment.resolve_vertex_table(target)
        return target

    def _tables(self, graph: Graph) -> tuple[str, str]:
        env = self.environment
        return env.resolve_vertex_table(graph), env.resolve_edge_table(graph)

    async def _insert_ids(
        self, target_table: str, select_sql: str, params: dict[str, Any] | None = None
    ) -> None:
        store = self.store
        await store.execute(
            f"INSERT INTO {store.quote(target_table)} ({store.id}) {select_sql}", params
        )

    # ------------------------------------------------------------------
    # Graph lifecycle and set algebra
    # ------------------------------------------------------------------

    async def create_empty_graph(self, target: Graph) -> None:
        """(Re)create empty vertex and edge id tables for *target*."""
        self._writable(target)
        for table in self._tables(target):
            await self.store.create_id_table(table)
        logger.debug("Created empty graph %s", target)

    async def distinctify_graph(self, target: Graph, source: Graph) -> None:
        self._writable(target)
        store = self.store
        for target_table, source_table in zip(self._tables(target), self._tables(source)):
            await self._insert_ids(
                target_table,
                f"SELECT {store.id} FROM {store.quote(source_table)} GROUP BY {store.id}",
            )

    async def union_graph(self, target: Graph, source: Graph) -> None:
        """Add *source*'s ids to *target*, skipping ids already present."""
        self._writable(target)
        store = self.store
        for target_table, source_table in zip(self._tables(target), self._tables(source)):
            await self._insert_ids(
                target_table,
                f"SELECT {store.id} FROM {store.quote(source_table)} "
                f"WHERE {store.not_in_set(store.id, target_table)} GROUP BY {store.id}",
            )

    async def intersect_graph(self, target: Graph, lhs: Graph, rhs: Graph) -> None:
        self._writable(target)
        store = self.store
        for target_table, lhs_table, rhs_table in zip(
            self._tables(target), self._tables(lhs), self._tables(rhs)
        ):
            await self._insert_ids(
                target_table,
                f"SELECT {store.id} FROM {store.quote(lhs_table)} "
                f"WHERE {store.in_set(store.id, rhs_table)} GROUP BY {store.id}",
            )

    async def subtract_graph(
        self,
        target: Graph,
        minuend: Graph,
        subtrahend: Graph,
        component: GraphComponent = GraphComponent.BOTH,
    ) -> None:
        """``minuend - subtrahend``, on vertices, edges, or both."""
        self._writable(target)
        store = self.store
        selected = {
            GraphComponent.VERTEX: (0,),
            GraphComponent.EDGE: (1,),
            GraphComponent.BOTH: (0, 1),
        }[component]
        targets, minuends, subtrahends = (
            self._tables(target),
            self._tables(minuend),
            self._tables(subtrahend),
        )
        for i in selected:
            await self._insert_ids(
                targets[i],
                f"SELECT {store.id} FROM {store.quote(minuends[i])} "
                f"WHERE {store.not_in_set(store.id, subtrahends[i])} GROUP BY {store.id}",
            )

    async def limit_graph(self, target: Graph, source: Graph, limit: int) -> None:
        """Copy at most *limit* ids (lowest first) from each id set.

        Empty id sets are skipped without scanning.
        """
        if limit < 0:
            raise ValueError(f"limit must be >= 0, got {limit}")
        self._writable(target)
        store = self.store
        count = await self.get_graph_count(source)
        sizes = (count.vertices, count.edges)
        for size, target_table, source_table in zip(
            sizes, self._tables(target), self._tables(source)
        ):
            if size <= 0:
                continue
            await self._insert_ids(
                target_table,
                f"SELECT {store.id} FROM {store.quote(source_table)} GROUP BY {store.id} "
                f"ORDER BY {store.id} {limit_clause(store.dialect, limit)}",
            )

    # ------------------------------------------------------------------
    # Literal ids
    # ------------------------------------------------------------------

    async def insert_literal_vertex(self, target: Graph, ids: Sequence[str]) -> None:
        await self._insert_literal(target, ids, ElementType.VERTEX)

    async def insert_literal_edge(self, target: Graph, ids: Sequence[str]) -> None:
        await self._insert_literal(target, ids, ElementType.EDGE)

    async def _insert_literal(
        self, target: Graph, ids: Sequence[str], element: ElementType
    ) -> None:
        """Insert the given ids that exist in the annotation table."""
        self._writable(target)
        wanted = [value for value in ids if len(value) <= MAX_LITERAL_ID_LENGTH]
        if not wanted:
            return
        store = self.store
        target_table = filters.id_table(self.environment, target, element)
        annotations = filters.annotation_table(self.environment, element)
        async with store.scratch("literal") as s:
            await store.create_id_table(s.literal)
            await store.execute(
                f"INSERT INTO {store.quote(s.literal)} ({store.id}) VALUES (:id)",
                [{"id": value} for value in wanted],
            )
            await self._insert_ids(
                target_table,
                f"SELECT {store.id} FROM {store.quote(annotations)} "
                f"WHERE {store.in_set(store.id, s.literal)} "
                f"AND {store.not_in_set(store.id, target_table)} GROUP BY {store.id}",
            )

    # ------------------------------------------------------------------
    # Predicate filters
    # ------------------------------------------------------------------

    async def get_vertex(
        self, target: Graph, subject: Graph, predicate: Predicate | None = None
    ) -> None:
        """Subject vertices matching *predicate* (all of them when ``None``)."""
        self._writable(target)
        await filters.get_elements(
            self.store, self.environment, ElementType.VERTEX, target, subject, predicate
        )

    async def get_edge(
        self, target: Graph, subject: Graph, predicate: Predicate | None = None
    ) -> None:
        """Subject edges matching *predicate* (all of them when ``None``)."""
        self._writable(target)
        await filters.get_elements(
            self.store, self.environment, ElementType.EDGE, target, subject, predicate
        )

    async def get_where_annotations_exist(
        self, target: Graph, subject: Graph, keys: Sequence[str]
    ) -> None:
        self._writable(target)
        await filters.insert_where_annotations_exist(
            self.store,
            self.environment,
            self.environment.resolve_vertex_table(target),
            self.environment.resolve_vertex_table(subject),
            keys,
        )

    async def get_match(
        self, target: Graph, lhs: Graph, rhs: Graph, keys: Sequence[str]
    ) -> None:
        """Vertices of *lhs* and *rhs* whose values agree on every key."""
        self._writable(target)
        await filters.get_match(self.store, self.environment, target, lhs, rhs, keys)

    # ------------------------------------------------------------------
    # Structure
    # ------------------------------------------------------------------

    async def get_edge_endpoint(
        self, target: Graph, subject: Graph, component: EdgeEndpoint = EdgeEndpoint.BOTH
    ) -> None:
        """Endpoint vertices of *subject*'s edges.  Source = child, destination = parent."""
        self._writable(target)
        store = self.store
        annotations = store.quote(self.environment.schema.edge_table)
        subject_edges = self.environment.resolve_edge_table(subject)
        columns = []
        if component in (EdgeEndpoint.SOURCE, EdgeEndpoint.BOTH):
            columns.append(store.child)
        if component in (EdgeEndpoint.DESTINATION, EdgeEndpoint.BOTH):
            columns.append(store.parent)

        async with store.scratch("answer") as s:
            await store.create_id_table(s.answer)
            for column in columns:
                await self._insert_ids(
                    s.answer,
                    f"SELECT e.{column} FROM {annotations} e "
                    f"WHERE {store.in_set('e.' + store.id, subject_edges)}",
                )
            target_table = self.environment.resolve_vertex_table(target)
            await self._insert_ids(
                target_table,
                f"SELECT {store.id} FROM {store.quote(s.answer)} "
                f"WHERE {store.not_in_set(store.id, target_table)} GROUP BY {store.id}",
            )

    async def get_subgraph(self, target: Graph, subject: Graph, skeleton: Graph) -> None:
        """Subgraph of *subject* induced by *skeleton*'s vertices and edge endpoints."""
        self._writable(target)
        store = self.store
        annotations = store.quote(self.environment.schema.edge_table)
        subject_vertices, subject_edges = self._tables(subject)
        skeleton_vertices, skeleton_edges = self._tables(skeleton)
        target_vertices, target_edges = self._tables(target)

        async with store.scratch("answer") as s:
            await store.create_id_table(s.answer)
            await self._insert_ids(
                s.answer,
                f"SELECT {store.id} FROM {store.quote(skeleton_vertices)} "
                f"WHERE {store.in_set(store.id, subject_vertices)}",
            )
            for column in (store.child, store.parent):
                await self._insert_ids(
                    s.answer,
                    f"SELECT e.{column} FROM {annotations} e "
                    f"WHERE {store.in_set('e.' + store.id, skeleton_edges)} "
                    f"AND {store.in_set('e.' + column, subject_vertices)}",
                )
            await self._insert_ids(
                target_vertices,
                f"SELECT {store.id} FROM {store.quote(s.answer)} "
                f"WHERE {store.not_in_set(store.id, target_vertices)} GROUP BY {store.id}",
            )
            await self._insert_ids(
                target_edges,
                f"SELECT g.{store.id} FROM {store.quote(subject_edges)} g, {annotations} e "
                f"WHERE g.{store.id} = e.{store.id} "
                f"AND {store.in_set('e.' + store.child, s.answer)} "
                f"AND {store.in_set('e.' + store.parent, s.answer)} "
                f"AND {store.not_in_set('g.' + store.id, target_edges)} GROUP BY g.{store.id}",
            )

    async def collapse_edge(self, target: Graph, source: Graph, fields: Sequence[str]) -> None:
        """Keep one edge (the smallest id) per (child, parent, *fields*) group.

        Fields that are not edge columns are null everywhere and do not
        split any group.
        """
        self._writable(target)
        store = self.store
        schema = self.environment.schema
        existing = set(await store.column_names(schema.edge_table))
        group_by = [f"e.{store.child}", f"e.{store.parent}"]
        group_by.extend(f"e.{store.quote(field)}" for field in fields if field in existing)

        source_vertices, source_edges = self._tables(source)
        target_vertices, target_edges = self._tables(target)
        await self._insert_ids(
            target_vertices,
            f"SELECT {store.id} FROM {store.quote(source_vertices)} GROUP BY {store.id}",
        )
        await self._insert_ids(
            target_edges,
            f"SELECT MIN(e.{store.id}) FROM {store.quote(schema.edge_table)} e "
            f"WHERE {store.in_set('e.' + store.id, source_edges)} "
            f"GROUP BY {', '.join(group_by)}",
        )

    # ------------------------------------------------------------------
    # Traversal
    # ------------------------------------------------------------------

    async def get_adjacent_vertex(
        self, target: Graph, subject: Graph, source: Graph, direction: Direction
    ) -> None:
        self._writable(target)
        await traversal.get_adjacent_vertex(
            self.store, self.environment, target, subject, source, direction
        )

    async def get_lineage(
        self, target: Graph, subject: Graph, start: Graph, depth: int, direction: Direction
    ) -> None:
        self._writable(target)
        await traversal.get_lineage(
            self.store, self.environment, target, subject, start, depth, direction
        )

    async def get_shortest_path(
        self, target: Graph, subject: Graph, src: Graph, dst: Graph, max_depth: int
    ) -> None:
        self._writable(target)
        await traversal.get_shortest_path(
            self.store, self.environment, target, subject, src, dst, max_depth
        )

    async def get_simple_path(
        self, target: Graph, subject: Graph, src: Graph, dst: Graph, max_depth: int
    ) -> None:
        self._writable(target)
        await traversal.get_simple_path(
            self.store, self.environment, target, subject, src, dst, max_depth
        )

    async def get_link(
        self, target: Graph, subject: Graph, src: Graph, dst: Graph, max_depth: int
    ) -> None:
        self._writable(target)
        await traversal.get_link(
            self.store, self.environment, target, subject, src, dst, max_depth
        )

    # ------------------------------------------------------------------
    # Statistics
    # ------------------------------------------------------------------

    async def describe_graph(self, graph: Graph) -> GraphDescription:
        return await statistics.describe_graph(self.store, self.environment, graph)

    async def get_graph_count(self, graph: Graph) -> Count:
        return await statistics.get_graph_count(self.store, self.environment, graph)

    async def get_graph_statistic_size(
        self, graph: Graph, element: ElementType, key: str
    ) -> int:
        return await statistics.get_graph_statistic_size(
            self.store, self.environment, graph, element, key
        )

    async def get_graph_mean(self, graph: Graph, element: ElementType, key: str) -> Mean:
        return await statistics.get_graph_mean(self.store, self.environment, graph, element, key)

    async def get_graph_standard_deviation(
        self, graph: Graph, element: ElementType, key: str
    ) -> StandardDeviation:
        return await statistics.get_graph_standard_deviation(
            self.store, self.environment, graph, element, key
        )

    async def get_graph_histogram(
        self, graph: Graph, element: ElementType, key: str
    ) -> Histogram:
        return await statistics.get_graph_histogram(
            self.store, self.environment, graph, element, key
        )

    async def get_graph_distribution(
        self, graph: Graph, element: ElementType, key: str, bin_count: int
    ) -> Distribution:
        return await statistics.get_graph_distribution(
            self.store, self.environment, graph, element, key, bin_count
        )

    # ------------------------------------------------------------------
    # Export and native queries
    # ------------------------------------------------------------------

    async def evaluate_query(self, native_query: str) -> ResultTable:
        """Run a native statement and return its header and rows as text."""
        rows = await self.store.fetch(native_query, header=True)
        header = tuple(str(name) for name in rows[0])
        body = tuple(
            tuple(None if value is None else str(value) for value in row) for row in rows[1:]
        )
        return ResultTable(header=header, rows=body)

    async def _export_rows(self, graph: Graph, element: ElementType) -> list[dict[str, Any]]:
        store = self.store
        annotations = store.quote(filters.annotation_table(self.environment, element))
        sql = f"SELECT * FROM {annotations}"
        if not is_base(graph):
            sql += f" WHERE {store.in_set(store.id, filters.id_table(self.environment, graph, element))}"
        rows = await store.fetch(sql, header=True)
        header = rows[0]
        return [dict(zip(header, row)) for row in rows[1:]]

    async def export_vertices(self, graph: Graph) -> dict[str, dict[str, str]]:
        """Vertex id → non-null annotations for every vertex in *graph*."""
        id_column = self.environment.schema.id_column
        vertices: dict[str, dict[str, str]] = {}
        for row in await self._export_rows(graph, ElementType.VERTEX):
            vertex_id = str(row.pop(id_column))
            vertices[vertex_id] = {k: str(v) for k, v in row.items() if v is not None}
        return vertices

    async def export_edges(self, graph: Graph) -> set[QueriedEdge]:
        schema = self.environment.schema
        edges: set[QueriedEdge] = set()
        for row in await self._export_rows(graph, ElementType.EDGE):
            edge_id = str(row.pop(schema.id_column))
            child_id = str(row.pop(schema.child_column))
            parent_id = str(row.pop(schema.parent_column))
            annotations = {k: str(v) for k, v in row.items() if v is not None}
            edges.add(QueriedEdge(edge_id, child_id, parent_id, MappingProxyType(annotations)))
        return edges

    # ------------------------------------------------------------------
    # Graph metadata
    # ------------------------------------------------------------------

    async def create_empty_graph_metadata(self, metadata: GraphMetadata) -> None:
        store = self.store
        env = self.environment
        columns = {"id": store.schema.id_type, "name": "VARCHAR(64)", "value": "VARCHAR(256)"}
        await store.create_table(env.resolve_metadata_vertex_table(metadata), columns)
        await store.create_table(env.resolve_metadata_edge_table(metadata), columns)

    async def overwrite_graph_metadata(
        self, target: GraphMetadata, lhs: GraphMetadata, rhs: GraphMetadata
    ) -> None:
        """``target = lhs`` overridden by ``rhs`` on matching (id, name)."""
        store = self.store
        env = self.environment
        resolvers = (env.resolve_metadata_vertex_table, env.resolve_metadata_edge_table)
        for resolve in resolvers:
            target_table = store.quote(resolve(target))
            lhs_table = store.quote(resolve(lhs))
            rhs_table = store.quote(resolve(rhs))
            await store.execute(
                f"INSERT INTO {target_table} (id, name, value) "
                f"SELECT l.id, l.name, l.value FROM {lhs_table} l "
                f"WHERE NOT EXISTS (SELECT 1 FROM {rhs_table} r "
                f"WHERE l.id = r.id AND l.name = r.name)"
            )
            await store.execute(
                f"INSERT INTO {target_table} (id, name, value) "
                f"SELECT id, name, value FROM {rhs_table}"
            )

    async def set_graph_metadata(
        self,
        target: GraphMetadata,
        component: GraphComponent,
        source: Graph,
        name: str,
        value: str,
    ) -> None:
        raise UnsupportedOperationError("Setting graph metadata is not supported")

    def __repr__(self) -> str:
        return f"InstructionExecutor({self.store!r}, {self.environment!r})"
