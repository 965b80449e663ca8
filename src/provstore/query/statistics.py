"""Aggregate statistics scoped to a graph handle.

Every numeric statistic first checks the statistic size; an unknown key or
a graph with no values yields the empty sentinel of the result type rather
than an error.
"""

from __future__ import annotations

import logging
import math
from typing import TYPE_CHECKING

from provstore.dialect import numeric_cast

from .filters import annotation_table, id_table
from .handles import is_base
from .types import (
    Count,
    Distribution,
    ElementType,
    GraphDescription,
    Histogram,
    Interval,
    Mean,
    StandardDeviation,
    distribution,
    histogram,
)

if TYPE_CHECKING:
    from .environment import QueryEnvironment
    from .handles import Graph
    from .store import BackingStore

logger = logging.getLogger(__name__)


def _scope(store: BackingStore, env: QueryEnvironment, graph: Graph, element: ElementType) -> str:
    """``FROM annotations WHERE id IN (graph ids)`` for *element*."""
    annotations = store.quote(annotation_table(env, element))
    if is_base(graph):
        return f"FROM {annotations} WHERE 1 = 1"
    return f"FROM {annotations} WHERE {store.in_set(store.id, id_table(env, graph, element))}"


def _present(store: BackingStore, key: str) -> str:
    column = store.quote(key)
    return f"{column} IS NOT NULL AND {column} <> ''"


async def get_graph_count(store: BackingStore, env: QueryEnvironment, graph: Graph) -> Count:
    vertices = await store.count(env.resolve_vertex_table(graph))
    edges = await store.count(env.resolve_edge_table(graph))
    return Count(vertices=vertices, edges=edges)


async def get_graph_statistic_size(
    store: BackingStore,
    env: QueryEnvironment,
    graph: Graph,
    element: ElementType,
    key: str,
) -> int:
    """Number of elements with a non-null, non-empty value for *key*."""
    columns = await store.column_names(annotation_table(env, element))
    if key not in columns:
        return 0
    size = await store.fetch_scalar(
        f"SELECT COUNT(*) {_scope(store, env, graph, element)} AND {_present(store, key)}"
    )
    return int(size or 0)


async def get_graph_mean(
    store: BackingStore,
    env: QueryEnvironment,
    graph: Graph,
    element: ElementType,
    key: str,
) -> Mean:
    if await get_graph_statistic_size(store, env, graph, element, key) <= 0:
        return Mean()
    value = numeric_cast(store.dialect, store.quote(key))
    mean = await store.fetch_scalar(
        f"SELECT AVG({value}) {_scope(store, env, graph, element)} AND {_present(store, key)}"
    )
    return Mean(None if mean is None else float(mean))


async def get_graph_standard_deviation(
    store: BackingStore,
    env: QueryEnvironment,
    graph: Graph,
    element: ElementType,
    key: str,
) -> StandardDeviation:
    """Sample standard deviation (n - 1 denominator).

    Computed from count, sum and sum of squares, which every dialect
    supports, so SQLite needs no extension aggregate.
    """
    if await get_graph_statistic_size(store, env, graph, element, key) <= 0:
        return StandardDeviation()
    value = numeric_cast(store.dialect, store.quote(key))
    rows = await store.fetch(
        f"SELECT COUNT({value}), SUM({value}), SUM({value} * {value}) "
        f"{_scope(store, env, graph, element)} AND {_present(store, key)}"
    )
    n, total, squares = rows[0]
    n = int(n or 0)
    if n < 2:
        return StandardDeviation()
    total = float(total)
    variance = (float(squares) - total * total / n) / (n - 1)
    return StandardDeviation(math.sqrt(max(variance, 0.0)))


async def get_graph_histogram(
    store: BackingStore,
    env: QueryEnvironment,
    graph: Graph,
    element: ElementType,
    key: str,
) -> Histogram:
    """Value → count, ascending by count (ties by value)."""
    if await get_graph_statistic_size(store, env, graph, element, key) <= 0:
        return Histogram()
    column = store.quote(key)
    rows = await store.fetch(
        f"SELECT {column}, COUNT(*) {_scope(store, env, graph, element)} "
        f"GROUP BY {column} ORDER BY COUNT(*), {column}"
    )
    return histogram({(None if value is None else str(value)): int(count) for value, count in rows})


async def get_graph_distribution(
    store: BackingStore,
    env: QueryEnvironment,
    graph: Graph,
    element: ElementType,
    key: str,
    bin_count: int,
) -> Distribution:
    """Counts over *bin_count* equal-width bins spanning min..max.

    Bins are ``[begin, end)`` except the last, which is closed so the
    maximum lands in it.  A single observed value yields one bin.
    """
    if bin_count <= 0:
        raise ValueError(f"bin_count must be > 0, got {bin_count}")
    if await get_graph_statistic_size(store, env, graph, element, key) <= 0:
        return Distribution()

    value = numeric_cast(store.dialect, store.quote(key))
    scope = f"{_scope(store, env, graph, element)} AND {_present(store, key)}"
    low, high = (await store.fetch(f"SELECT MIN({value}), MAX({value}) {scope}"))[0]
    low, high = float(low), float(high)

    if high == low:
        intervals = [Interval(low, high)]
    else:
        step = (high - low) / bin_count
        intervals = [
            Interval(low + i * step, high if i == bin_count - 1 else low + (i + 1) * step)
            for i in range(bin_count)
        ]

    params: dict[str, float] = {}
    cases = []
    last = len(intervals) - 1
    for i, interval in enumerate(intervals):
        params[f"b{i}"] = interval.begin
        params[f"e{i}"] = interval.end
        upper = "<=" if i == last else "<"
        cases.append(f"COUNT(CASE WHEN {value} >= :b{i} AND {value} {upper} :e{i} THEN 1 END)")

    rows = await store.fetch(f"SELECT {', '.join(cases)} {scope}", params)
    return distribution({interval: int(count or 0) for interval, count in zip(intervals, rows[0])})


async def describe_graph(
    store: BackingStore, env: QueryEnvironment, graph: Graph
) -> GraphDescription:
    """Annotation keys that hold at least one value within *graph*.

    The base graph reports every annotation column; other graphs are
    checked key by key against the base graph's columns.
    """
    schema = env.schema
    vertex_keys = [
        key for key in await store.column_names(schema.vertex_table) if key != schema.id_column
    ]
    edge_keys = [
        key
        for key in await store.column_names(schema.edge_table)
        if key not in schema.reserved_edge_columns
    ]
    if is_base(graph):
        return GraphDescription(frozenset(vertex_keys), frozenset(edge_keys))

    found: dict[ElementType, set[str]] = {ElementType.VERTEX: set(), ElementType.EDGE: set()}
    for element, keys in ((ElementType.VERTEX, vertex_keys), (ElementType.EDGE, edge_keys)):
        scope = _scope(store, env, graph, element)
        for key in keys:
            count = await store.fetch_scalar(
                f"SELECT COUNT(*) {scope} AND {store.quote(key)} IS NOT NULL"
            )
            if int(count or 0) > 0:
                found[element].add(key)
    logger.debug("Described %s: %s", graph, found)
    return GraphDescription(
        frozenset(found[ElementType.VERTEX]), frozenset(found[ElementType.EDGE])
    )
