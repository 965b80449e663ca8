"""QueryEnvironment and StoreSchema — handle names to physical tables."""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from typing import TYPE_CHECKING

from provstore.exceptions import ConfigurationError, UnknownHandleError

from .handles import BaseGraph, Graph, GraphMetadata, NamedGraph, is_base

if TYPE_CHECKING:
    from sqlalchemy.ext.asyncio import AsyncSession

logger = logging.getLogger(__name__)

_NAME_RE = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*$")

GRAPH_KIND = "graph"
METADATA_KIND = "metadata"


@dataclass(frozen=True)
class StoreSchema:
    """Names of the annotation tables and their distinguished columns."""

    vertex_table: str = "vertex"
    """Wide vertex annotation table (one row per vertex id)."""

    edge_table: str = "edge"
    """Wide edge annotation table (one row per edge id, plus endpoints)."""

    id_column: str = "hash"
    """Element id column, shared by both annotation tables and all id sets."""

    child_column: str = "childhash"
    """Edge column holding the child (source) vertex id."""

    parent_column: str = "parenthash"
    """Edge column holding the parent (destination) vertex id."""

    id_type: str = "VARCHAR(64)"
    """Column type used when creating id-set and scratch tables."""

    def __post_init__(self) -> None:
        for attr in (
            "vertex_table",
            "edge_table",
            "id_column",
            "child_column",
            "parent_column",
            "id_type",
        ):
            value = getattr(self, attr)
            if not value or not str(value).strip():
                raise ConfigurationError(f"NULL/Empty {attr.replace('_', ' ')}: {value!r}")

    @property
    def reserved_edge_columns(self) -> frozenset[str]:
        return frozenset({self.id_column, self.child_column, self.parent_column})


class QueryEnvironment:
    """Registry of graph and metadata handles.

    Resolves a handle to its vertex/edge table names.  The base graph
    resolves to the annotation tables themselves, which expose the same
    id column as every id-set table.

    Handle creation here is bookkeeping only; the executor creates the
    physical tables (``create_empty_graph``).
    """

    def __init__(
        self,
        schema: StoreSchema | None = None,
        *,
        table_prefix: str = "provstore",
    ) -> None:
        if not table_prefix or not _NAME_RE.match(table_prefix):
            raise ConfigurationError(f"Invalid table prefix: {table_prefix!r}")
        self.schema = schema or StoreSchema()
        self.table_prefix = table_prefix
        self._graphs: dict[str, tuple[str, str]] = {}
        self._metadata: dict[str, tuple[str, str]] = {}
        self._base = BaseGraph()

    # ------------------------------------------------------------------
    # Handles
    # ------------------------------------------------------------------

    @property
    def base_graph(self) -> BaseGraph:
        return self._base

    def is_base_graph(self, graph: Graph) -> bool:
        return is_base(graph)

    def register_graph(self, name: str) -> NamedGraph:
        """Register *name* as a graph handle.  Idempotent."""
        self._validate_name(name)
        if name not in self._graphs:
            self._graphs[name] = (
                f"{self.table_prefix}_graph_{name}_vertex",
                f"{self.table_prefix}_graph_{name}_edge",
            )
        return NamedGraph(name)

    def new_graph(self) -> NamedGraph:
        """Register a fresh, uniquely named graph handle."""
        return self.register_graph(self._next_name("g", self._graphs))

    def register_graph_metadata(self, name: str) -> GraphMetadata:
        """Register *name* as a graph-metadata handle.  Idempotent."""
        self._validate_name(name)
        if name not in self._metadata:
            self._metadata[name] = (
                f"{self.table_prefix}_meta_{name}_vertex",
                f"{self.table_prefix}_meta_{name}_edge",
            )
        return GraphMetadata(name)

    def new_graph_metadata(self) -> GraphMetadata:
        return self.register_graph_metadata(self._next_name("m", self._metadata))

    def remove_graph(self, graph: NamedGraph) -> None:
        """Forget *graph*.  Dropping its tables is the caller's concern."""
        self._graphs.pop(graph.name, None)

    def graphs(self) -> list[NamedGraph]:
        return [NamedGraph(name) for name in self._graphs]

    def has_graph(self, graph: Graph) -> bool:
        return is_base(graph) or graph.name in self._graphs

    # ------------------------------------------------------------------
    # Resolution
    # ------------------------------------------------------------------

    def resolve_vertex_table(self, graph: Graph) -> str:
        if is_base(graph):
            return self.schema.vertex_table
        return self._lookup(self._graphs, graph.name, "graph")[0]

    def resolve_edge_table(self, graph: Graph) -> str:
        if is_base(graph):
            return self.schema.edge_table
        return self._lookup(self._graphs, graph.name, "graph")[1]

    def resolve_metadata_vertex_table(self, metadata: GraphMetadata) -> str:
        return self._lookup(self._metadata, metadata.name, "graph metadata")[0]

    def resolve_metadata_edge_table(self, metadata: GraphMetadata) -> str:
        return self._lookup(self._metadata, metadata.name, "graph metadata")[1]

    # ------------------------------------------------------------------
    # Persistence
    # ------------------------------------------------------------------

    async def to_sql(self, session: AsyncSession) -> None:
        """Persist the handle registry to ``provstore_graph_handles``.

        Full-sync strategy: merge every registered handle, delete rows for
        handles no longer registered.  Caller manages the transaction.
        """
        from sqlmodel import select

        from provstore.models.handles import GraphHandleRecord

        wanted: dict[tuple[str, str], GraphHandleRecord] = {}
        for kind, registry in ((GRAPH_KIND, self._graphs), (METADATA_KIND, self._metadata)):
            for name, (vertex_table, edge_table) in registry.items():
                wanted[(name, kind)] = GraphHandleRecord(
                    name=name, kind=kind, vertex_table=vertex_table, edge_table=edge_table
                )

        result = await session.execute(select(GraphHandleRecord))
        for row in result.scalars().all():
            if (row.name, row.kind) not in wanted:
                await session.delete(row)

        for record in wanted.values():
            await session.merge(record)
        await session.flush()

    async def from_sql(self, session: AsyncSession) -> None:
        """Load the handle registry from the database, replacing in-memory state."""
        from sqlmodel import select

        from provstore.models.handles import GraphHandleRecord

        self._graphs = {}
        self._metadata = {}
        result = await session.execute(select(GraphHandleRecord))
        for row in result.scalars().all():
            registry = self._graphs if row.kind == GRAPH_KIND else self._metadata
            registry[row.name] = (row.vertex_table, row.edge_table)
        logger.debug(
            "Loaded %d graph and %d metadata handles", len(self._graphs), len(self._metadata)
        )

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    @staticmethod
    def _validate_name(name: str) -> None:
        if not name or not _NAME_RE.match(name):
            raise ConfigurationError(f"Invalid handle name: {name!r}")

    @staticmethod
    def _lookup(
        registry: dict[str, tuple[str, str]], name: str, what: str
    ) -> tuple[str, str]:
        try:
            return registry[name]
        except KeyError:
            raise UnknownHandleError(f"Unknown {what} handle: {name!r}") from None

    @staticmethod
    def _next_name(stem: str, registry: dict[str, tuple[str, str]]) -> str:
        n = len(registry)
        while f"{stem}{n}" in registry:
            n += 1
        return f"{stem}{n}"

    def __repr__(self) -> str:
        return f"QueryEnvironment(graphs={len(self._graphs)}, metadata={len(self._metadata)})"
