"""Lineage backends — SQL annotation tables and in-memory graphs."""

from __future__ import annotations

import logging
import re
from types import MappingProxyType
from typing import TYPE_CHECKING, Any

from provstore.exceptions import ConfigurationError
from provstore.query.filters import build_comparison
from provstore.query.types import PredicateOperator

from .graph import LineageGraph
from .types import CHILD_VERTEX_KEY, PARENT_VERTEX_KEY, Edge, Vertex

if TYPE_CHECKING:
    from collections.abc import Mapping, Sequence

    from provstore.query.store import BackingStore
    from provstore.query.types import Predicate

    from .protocols import LineageBackend

logger = logging.getLogger(__name__)


def _annotations(row: Mapping[str, Any], reserved: set[str]) -> MappingProxyType[str, str]:
    return MappingProxyType(
        {k: str(v) for k, v in row.items() if k not in reserved and v is not None}
    )


class SQLLineageBackend:
    """Lineage lookups issued one statement at a time against a backing store."""

    def __init__(self, store: BackingStore | None) -> None:
        if store is None:
            raise ConfigurationError("SQLLineageBackend requires a backing store")
        self.store = store
        self.schema = store.schema

    async def _where(
        self, table: str, predicates: Sequence[Predicate], aliases: Mapping[str, str]
    ) -> tuple[str, dict[str, str]] | None:
        """Render conjunctive *predicates*; ``None`` when nothing can match."""
        existing = set(await self.store.column_names(table))
        conditions: list[str] = []
        params: dict[str, str] = {}
        for i, predicate in enumerate(predicates):
            if predicate.is_wildcard:
                columns = sorted(existing)
            else:
                column = aliases.get(predicate.key, predicate.key)
                columns = [column] if column in existing else []
            if not columns:
                if predicate.operator is PredicateOperator.NOT_EQUAL:
                    continue
                return None
            param = f"p{i}"
            params[param] = predicate.value
            conditions.append(
                "("
                + " OR ".join(
                    build_comparison(self.store, column, predicate.operator, param)
                    for column in columns
                )
                + ")"
            )
        return " AND ".join(conditions) or "1 = 1", params

    async def _rows(self, sql: str, params: dict[str, Any] | None = None) -> list[dict[str, Any]]:
        rows = await self.store.fetch(sql, params, header=True)
        header = rows[0]
        return [dict(zip(header, row)) for row in rows[1:]]

    def _vertex(self, row: Mapping[str, Any]) -> Vertex:
        return Vertex(str(row[self.schema.id_column]), _annotations(row, {self.schema.id_column}))

    def _edge(self, row: Mapping[str, Any]) -> Edge:
        schema = self.schema
        return Edge(
            str(row[schema.id_column]),
            str(row[schema.child_column]),
            str(row[schema.parent_column]),
            _annotations(row, set(schema.reserved_edge_columns)),
        )

    async def lookup_vertices(self, predicates: Sequence[Predicate]) -> list[Vertex]:
        where = await self._where(self.schema.vertex_table, predicates, {})
        if where is None:
            return []
        condition, params = where
        rows = await self._rows(
            f"SELECT * FROM {self.store.quote(self.schema.vertex_table)} WHERE {condition}", params
        )
        return [self._vertex(row) for row in rows]

    async def lookup_edges(self, predicates: Sequence[Predicate]) -> list[Edge]:
        aliases = {
            CHILD_VERTEX_KEY: self.schema.child_column,
            PARENT_VERTEX_KEY: self.schema.parent_column,
        }
        where = await self._where(self.schema.edge_table, predicates, aliases)
        if where is None:
            return []
        condition, params = where
        rows = await self._rows(
            f"SELECT * FROM {self.store.quote(self.schema.edge_table)} WHERE {condition}", params
        )
        return [self._edge(row) for row in rows]

    async def _neighbours(self, vertex_id: str, matched: str, reached: str) -> list[Vertex]:
        store = self.store
        rows = await self._rows(
            f"SELECT * FROM {store.quote(self.schema.vertex_table)} "
            f"WHERE {store.id} IN (SELECT e.{reached} FROM {store.quote(self.schema.edge_table)} e "
            f"WHERE e.{matched} = :vertex_id)",
            {"vertex_id": vertex_id},
        )
        return [self._vertex(row) for row in rows]

    async def get_children(self, vertex_id: str) -> list[Vertex]:
        return await self._neighbours(vertex_id, self.store.parent, self.store.child)

    async def get_parents(self, vertex_id: str) -> list[Vertex]:
        return await self._neighbours(vertex_id, self.store.child, self.store.parent)

    def __repr__(self) -> str:
        return f"SQLLineageBackend({self.store!r})"


# =====================================================================
# In-memory backend
# =====================================================================


def like_to_regex(pattern: str) -> re.Pattern[str]:
    """Translate a SQL ``LIKE`` pattern (``%`` and ``_``) to a regex."""
    parts = []
    for char in pattern:
        if char == "%":
            parts.append(".*")
        elif char == "_":
            parts.append(".")
        else:
            parts.append(re.escape(char))
    return re.compile("".join(parts), re.DOTALL)


def _compare(actual: str, operator: PredicateOperator, expected: str) -> bool:
    if operator is PredicateOperator.REGEX:
        return re.search(expected, actual) is not None
    if operator is PredicateOperator.LIKE:
        return like_to_regex(expected).fullmatch(actual) is not None
    if operator is PredicateOperator.EQUAL:
        return actual == expected
    if operator is PredicateOperator.NOT_EQUAL:
        return actual != expected
    left: Any = actual
    right: Any = expected
    try:
        left, right = float(actual), float(expected)
    except ValueError:
        pass
    if operator is PredicateOperator.GREATER:
        return left > right
    if operator is PredicateOperator.GREATER_EQUAL:
        return left >= right
    if operator is PredicateOperator.LESS:
        return left < right
    return left <= right


def matches(values: Mapping[str, str], predicate: Predicate) -> bool:
    """Evaluate *predicate* against one element's values.

    A missing key behaves like a null column: only ``NOT_EQUAL`` holds.
    """
    if predicate.is_wildcard:
        return any(_compare(v, predicate.operator, predicate.value) for v in values.values())
    actual = values.get(predicate.key)
    if actual is None:
        return predicate.operator is PredicateOperator.NOT_EQUAL
    return _compare(actual, predicate.operator, predicate.value)


class MemoryLineageBackend:
    """Lineage lookups over an in-memory :class:`LineageGraph`."""

    def __init__(self, graph: LineageGraph | None = None) -> None:
        self.graph = graph if graph is not None else LineageGraph()

    async def lookup_vertices(self, predicates: Sequence[Predicate]) -> list[Vertex]:
        return [
            v
            for v in self.graph.vertices()
            if all(matches(v.annotations, p) for p in predicates)
        ]

    async def lookup_edges(self, predicates: Sequence[Predicate]) -> list[Edge]:
        found = []
        for e in self.graph.edges():
            values = {**e.annotations, CHILD_VERTEX_KEY: e.child_id, PARENT_VERTEX_KEY: e.parent_id}
            if all(matches(values, p) for p in predicates):
                found.append(e)
        return found

    async def get_children(self, vertex_id: str) -> list[Vertex]:
        if not self.graph.has_vertex(vertex_id):
            return []
        return self.graph.children(vertex_id)

    async def get_parents(self, vertex_id: str) -> list[Vertex]:
        if not self.graph.has_vertex(vertex_id):
            return []
        return self.graph.parents(vertex_id)

    def __repr__(self) -> str:
        return f"MemoryLineageBackend({self.graph!r})"


def create_lineage_backend(kind: str, **options: Any) -> LineageBackend:
    """Build a lineage backend by name.

    - ``"sql"``: requires ``store=`` (a :class:`BackingStore`).
    - ``"memory"``: accepts an optional ``graph=`` (a :class:`LineageGraph`).
    """
    if kind == "sql":
        return SQLLineageBackend(options.get("store"))
    if kind == "memory":
        return MemoryLineageBackend(options.get("graph"))
    raise ConfigurationError(f"Unknown lineage backend: {kind!r}")
