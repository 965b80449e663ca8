"""Bulk graph traversal — lineage BFS and bidirectional path discovery.

Every algorithm works entirely on id-set tables: a frontier (``cur``), the
hop just computed (``next``), and an accumulated answer.  Each loop stops
as soon as the frontier is empty, so depth is an upper bound, not a cost.

Edges point from child to parent.  Ancestors are reached by moving from
the child column to the parent column; descendants the other way round.

The path algorithms run in two phases.  Phase 1 walks backward from the
destination set and records a reachability relation ``(child, parent,
depth)`` where ``depth`` is the hop count from the child side of the edge
to the destination.  Phase 2 walks forward from the source set through
that relation only, keeping an edge at step ``i`` while
``depth + i <= max_depth``.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from .handles import is_base
from .types import Direction

if TYPE_CHECKING:
    from .environment import QueryEnvironment
    from .handles import Graph
    from .store import BackingStore, ScratchTables

logger = logging.getLogger(__name__)

_RELATION_COLUMNS = ("child_id", "parent_id")


def _edge_filter(store: BackingStore, env: QueryEnvironment, subject: Graph) -> str:
    """``AND e.id IN (subject edges)``, or nothing for the base graph."""
    if is_base(subject):
        return ""
    return " AND " + store.in_set(f"e.{store.id}", env.resolve_edge_table(subject))


def _step_columns(store: BackingStore, direction: Direction) -> tuple[str, str]:
    """(column matched against the frontier, column reached)."""
    if direction is Direction.ANCESTOR:
        return store.child, store.parent
    return store.parent, store.child


async def _advance(store: BackingStore, s: ScratchTables) -> int:
    """Move ``next - answer`` into ``cur`` and ``answer``; return frontier size."""
    await store.clear_table(s.cur)
    await store.execute(
        f"INSERT INTO {store.quote(s.cur)} ({store.id}) "
        f"SELECT {store.id} FROM {store.quote(s.next)} "
        f"WHERE {store.not_in_set(store.id, s.answer)} GROUP BY {store.id}"
    )
    await store.execute(
        f"INSERT INTO {store.quote(s.answer)} ({store.id}) "
        f"SELECT {store.id} FROM {store.quote(s.cur)}"
    )
    return await store.count(s.cur)


async def _copy_into(store: BackingStore, target_table: str, source_table: str) -> None:
    """Insert ids of *source_table* not already in *target_table*."""
    await store.execute(
        f"INSERT INTO {store.quote(target_table)} ({store.id}) "
        f"SELECT {store.id} FROM {store.quote(source_table)} "
        f"WHERE {store.not_in_set(store.id, target_table)} GROUP BY {store.id}"
    )


# =====================================================================
# Lineage
# =====================================================================


async def get_lineage(
    store: BackingStore,
    env: QueryEnvironment,
    target: Graph,
    subject: Graph,
    start: Graph,
    depth: int,
    direction: Direction,
) -> None:
    """Bounded BFS from *start* over *subject*'s edges.

    Visited vertices never re-enter the frontier, so cycles and self-loops
    terminate before *depth* is exhausted.
    """
    if depth < 0:
        raise ValueError(f"depth must be >= 0, got {depth}")
    edge_filter = _edge_filter(store, env, subject)
    annotations = store.quote(env.schema.edge_table)
    start_table = env.resolve_vertex_table(start)
    target_vertices = env.resolve_vertex_table(target)
    target_edges = env.resolve_edge_table(target)

    async with store.scratch("cur", "next", "answer", "answer_edge") as s:
        for single in direction.expand():
            src, dst = _step_columns(store, single)
            for table in s:
                await store.create_id_table(table)

            await store.execute(
                f"INSERT INTO {store.quote(s.cur)} ({store.id}) "
                f"SELECT {store.id} FROM {store.quote(start_table)} GROUP BY {store.id}"
            )
            await store.execute(
                f"INSERT INTO {store.quote(s.answer)} ({store.id}) "
                f"SELECT {store.id} FROM {store.quote(s.cur)}"
            )

            for i in range(depth):
                await store.clear_table(s.next)
                await store.execute(
                    f"INSERT INTO {store.quote(s.next)} ({store.id}) "
                    f"SELECT e.{dst} FROM {annotations} e "
                    f"WHERE {store.in_set('e.' + src, s.cur)}{edge_filter} GROUP BY e.{dst}"
                )
                await store.execute(
                    f"INSERT INTO {store.quote(s.answer_edge)} ({store.id}) "
                    f"SELECT e.{store.id} FROM {annotations} e "
                    f"WHERE {store.in_set('e.' + src, s.cur)}{edge_filter}"
                )
                frontier = await _advance(store, s)
                logger.debug("Lineage %s hop %d: frontier=%d", single.value, i + 1, frontier)
                if frontier == 0:
                    break

            await _copy_into(store, target_vertices, s.answer)
            await _copy_into(store, target_edges, s.answer_edge)


async def get_adjacent_vertex(
    store: BackingStore,
    env: QueryEnvironment,
    target: Graph,
    subject: Graph,
    source: Graph,
    direction: Direction,
) -> None:
    """Single-hop expansion: the source vertices, their neighbours, and the edges used."""
    await get_lineage(store, env, target, subject, source, 1, direction)


# =====================================================================
# Paths
# =====================================================================


async def _build_connectivity(
    store: BackingStore, env: QueryEnvironment, edge_filter: str, table: str
) -> None:
    """Distinct (child, parent) pairs of the subject's edges."""
    id_type = store.schema.id_type
    await store.create_table(table, {"child_id": id_type, "parent_id": id_type})
    await store.execute(
        f"INSERT INTO {store.quote(table)} (child_id, parent_id) "
        f"SELECT e.{store.child}, e.{store.parent} FROM {store.quote(env.schema.edge_table)} e "
        f"WHERE 1 = 1{edge_filter} "
        f"GROUP BY e.{store.child}, e.{store.parent}"
    )


async def _create_relation(store: BackingStore, table: str, *, reaching: bool = False) -> None:
    """Phase-1 reachability relation ``(child_id, parent_id[, reaching], depth)``."""
    id_type = store.schema.id_type
    columns = {name: id_type for name in _RELATION_COLUMNS}
    if reaching:
        columns["reaching"] = id_type
    columns["depth"] = "INTEGER"
    await store.create_table(table, columns)


async def _seed(store: BackingStore, s: ScratchTables, vertex_table: str) -> None:
    """Fresh ``cur``/``next``/``answer`` with ``cur = answer = vertex_table``."""
    for table in (s.cur, s.next, s.answer):
        await store.create_id_table(table)
    await store.execute(
        f"INSERT INTO {store.quote(s.cur)} ({store.id}) "
        f"SELECT {store.id} FROM {store.quote(vertex_table)} GROUP BY {store.id}"
    )
    await store.execute(
        f"INSERT INTO {store.quote(s.answer)} ({store.id}) "
        f"SELECT {store.id} FROM {store.quote(s.cur)}"
    )


async def _seed_sources(store: BackingStore, s: ScratchTables, src_table: str) -> None:
    """Restart ``cur``/``answer`` at the sources that phase 1 reached."""
    await store.create_id_table(s.cur)
    await store.create_id_table(s.next)
    await store.execute(
        f"INSERT INTO {store.quote(s.cur)} ({store.id}) "
        f"SELECT {store.id} FROM {store.quote(src_table)} "
        f"WHERE {store.in_set(store.id, s.answer)} GROUP BY {store.id}"
    )
    await store.create_id_table(s.answer)
    await store.execute(
        f"INSERT INTO {store.quote(s.answer)} ({store.id}) "
        f"SELECT {store.id} FROM {store.quote(s.cur)}"
    )


async def _insert_induced_edges(
    store: BackingStore,
    env: QueryEnvironment,
    edge_filter: str,
    target_edges: str,
    vertex_table: str,
) -> None:
    """Subject edges whose endpoints are both in *vertex_table*."""
    await store.execute(
        f"INSERT INTO {store.quote(target_edges)} ({store.id}) "
        f"SELECT e.{store.id} FROM {store.quote(env.schema.edge_table)} e "
        f"WHERE {store.in_set('e.' + store.child, vertex_table)} "
        f"AND {store.in_set('e.' + store.parent, vertex_table)}"
        f"{edge_filter} "
        f"AND {store.not_in_set('e.' + store.id, target_edges)} GROUP BY e.{store.id}"
    )


async def get_shortest_path(
    store: BackingStore,
    env: QueryEnvironment,
    target: Graph,
    subject: Graph,
    src: Graph,
    dst: Graph,
    max_depth: int,
) -> None:
    """Vertices and edges on short directed paths from *src* to *dst*.

    Phase 2 keeps one parent per (child, reaching destination) among the
    edges whose depth still fits the remaining budget.
    """
    if max_depth < 0:
        raise ValueError(f"max_depth must be >= 0, got {max_depth}")
    id_type = store.schema.id_type
    edge_filter = _edge_filter(store, env, subject)
    src_table = env.resolve_vertex_table(src)
    dst_table = env.resolve_vertex_table(dst)
    target_vertices = env.resolve_vertex_table(target)
    target_edges = env.resolve_edge_table(target)

    async with store.scratch(
        "conn", "relation", "cur", "next", "answer", "rcur", "rnext"
    ) as s:
        await _build_connectivity(store, env, edge_filter, s.conn)
        await _create_relation(store, s.relation, reaching=True)
        for table in (s.rcur, s.rnext):
            await store.create_table(table, {env.schema.id_column: id_type, "reaching": id_type})
        await store.create_id_table(s.answer)

        # Phase 1: backward from dst, tagging each frontier row with the
        # destination it reaches.
        await store.execute(
            f"INSERT INTO {store.quote(s.rcur)} ({store.id}, reaching) "
            f"SELECT {store.id}, {store.id} FROM {store.quote(dst_table)} "
            f"GROUP BY {store.id}"
        )
        await store.execute(
            f"INSERT INTO {store.quote(s.answer)} ({store.id}) "
            f"SELECT {store.id} FROM {store.quote(s.rcur)} GROUP BY {store.id}"
        )
        join = f"FROM {store.quote(s.rcur)} r, {store.quote(s.conn)} c WHERE r.{store.id} = c.parent_id"
        for i in range(max_depth):
            await store.execute(
                f"INSERT INTO {store.quote(s.relation)} (child_id, parent_id, reaching, depth) "
                f"SELECT c.child_id, c.parent_id, r.reaching, :depth {join}",
                {"depth": i + 1},
            )
            await store.clear_table(s.rnext)
            await store.execute(
                f"INSERT INTO {store.quote(s.rnext)} ({store.id}, reaching) "
                f"SELECT c.child_id, r.reaching {join}"
            )
            await store.clear_table(s.rcur)
            await store.execute(
                f"INSERT INTO {store.quote(s.rcur)} ({store.id}, reaching) "
                f"SELECT {store.id}, reaching FROM {store.quote(s.rnext)} "
                f"WHERE {store.not_in_set(store.id, s.answer)} GROUP BY {store.id}, reaching"
            )
            await store.execute(
                f"INSERT INTO {store.quote(s.answer)} ({store.id}) "
                f"SELECT {store.id} FROM {store.quote(s.rcur)} GROUP BY {store.id}"
            )
            if await store.count(s.rcur) == 0:
                break

        # Phase 2: forward from src through the relation only.
        await _seed_sources(store, s, src_table)
        for i in range(max_depth):
            await store.clear_table(s.next)
            await store.execute(
                f"INSERT INTO {store.quote(s.next)} ({store.id}) "
                f"SELECT MIN(g.parent_id) FROM {store.quote(s.cur)} cur, {store.quote(s.relation)} g "
                f"WHERE cur.{store.id} = g.child_id AND g.depth + :hops <= :max_depth "
                f"GROUP BY g.child_id, g.reaching",
                {"hops": i, "max_depth": max_depth},
            )
            frontier = await _advance(store, s)
            logger.debug("Shortest path hop %d: frontier=%d", i + 1, frontier)
            if frontier == 0:
                break

        await _copy_into(store, target_vertices, s.answer)
        await _insert_induced_edges(store, env, edge_filter, target_edges, s.answer)


async def get_simple_path(
    store: BackingStore,
    env: QueryEnvironment,
    target: Graph,
    subject: Graph,
    src: Graph,
    dst: Graph,
    max_depth: int,
) -> None:
    """All vertices and edges on directed paths from *src* to *dst* within *max_depth*."""
    if max_depth < 0:
        raise ValueError(f"max_depth must be >= 0, got {max_depth}")
    edge_filter = _edge_filter(store, env, subject)
    annotations = store.quote(env.schema.edge_table)
    target_edges = env.resolve_edge_table(target)
    src_table = env.resolve_vertex_table(src)
    dst_table = env.resolve_vertex_table(dst)
    target_vertices = env.resolve_vertex_table(target)

    async with store.scratch("relation", "cur", "next", "answer") as s:
        await _create_relation(store, s.relation)
        await _seed(store, s, dst_table)

        # Phase 1: edges whose parent is in the frontier, walking to children.
        for i in range(max_depth):
            await store.execute(
                f"INSERT INTO {store.quote(s.relation)} (child_id, parent_id, depth) "
                f"SELECT e.{store.child}, e.{store.parent}, :depth FROM {annotations} e "
                f"WHERE {store.in_set('e.' + store.parent, s.cur)}{edge_filter}",
                {"depth": i + 1},
            )
            await store.clear_table(s.next)
            await store.execute(
                f"INSERT INTO {store.quote(s.next)} ({store.id}) "
                f"SELECT e.{store.child} FROM {annotations} e "
                f"WHERE {store.in_set('e.' + store.parent, s.cur)}{edge_filter} "
                f"GROUP BY e.{store.child}"
            )
            if await _advance(store, s) == 0:
                break

        # Phase 2: forward from src, recording the edges taken.
        await _seed_sources(store, s, src_table)
        for i in range(max_depth):
            await store.clear_table(s.next)
            await store.execute(
                f"INSERT INTO {store.quote(s.next)} ({store.id}) "
                f"SELECT g.parent_id FROM {store.quote(s.relation)} g "
                f"WHERE {store.in_set('g.child_id', s.cur)} AND g.depth + :hops <= :max_depth "
                f"GROUP BY g.parent_id",
                {"hops": i, "max_depth": max_depth},
            )
            await store.execute(
                f"INSERT INTO {store.quote(target_edges)} ({store.id}) "
                f"SELECT e.{store.id} FROM {annotations} e "
                f"WHERE {store.in_set('e.' + store.child, s.cur)} "
                f"AND {store.in_set('e.' + store.parent, s.next)}{edge_filter} "
                f"AND {store.not_in_set('e.' + store.id, target_edges)} GROUP BY e.{store.id}"
            )
            frontier = await _advance(store, s)
            logger.debug("Simple path hop %d: frontier=%d", i + 1, frontier)
            if frontier == 0:
                break

        await _copy_into(store, target_vertices, s.answer)


async def get_link(
    store: BackingStore,
    env: QueryEnvironment,
    target: Graph,
    subject: Graph,
    src: Graph,
    dst: Graph,
    max_depth: int,
) -> None:
    """Undirected connecting structure between *src* and *dst*.

    The join between the two frontiers is an extra hop that is never
    expanded explicitly, so one hop is taken off the budget up front.
    """
    if max_depth <= 0:
        return
    max_depth -= 1
    edge_filter = _edge_filter(store, env, subject)
    annotations = store.quote(env.schema.edge_table)
    src_table = env.resolve_vertex_table(src)
    dst_table = env.resolve_vertex_table(dst)
    target_vertices = env.resolve_vertex_table(target)
    target_edges = env.resolve_edge_table(target)

    async with store.scratch("relation", "cur", "next", "answer") as s:
        await _create_relation(store, s.relation)
        await _seed(store, s, dst_table)

        for i in range(max_depth):
            for matched in (store.parent, store.child):
                await store.execute(
                    f"INSERT INTO {store.quote(s.relation)} (child_id, parent_id, depth) "
                    f"SELECT e.{store.child}, e.{store.parent}, :depth FROM {annotations} e "
                    f"WHERE {store.in_set('e.' + matched, s.cur)}{edge_filter}",
                    {"depth": i + 1},
                )
            await store.clear_table(s.next)
            for matched, reached in ((store.parent, store.child), (store.child, store.parent)):
                await store.execute(
                    f"INSERT INTO {store.quote(s.next)} ({store.id}) "
                    f"SELECT e.{reached} FROM {annotations} e "
                    f"WHERE {store.in_set('e.' + matched, s.cur)}{edge_filter} "
                    f"GROUP BY e.{reached}"
                )
            if await _advance(store, s) == 0:
                break

        await _seed_sources(store, s, src_table)
        for i in range(max_depth):
            await store.clear_table(s.next)
            for matched, reached in (("child_id", "parent_id"), ("parent_id", "child_id")):
                await store.execute(
                    f"INSERT INTO {store.quote(s.next)} ({store.id}) "
                    f"SELECT g.{reached} FROM {store.quote(s.relation)} g "
                    f"WHERE {store.in_set('g.' + matched, s.cur)} "
                    f"AND g.depth + :hops <= :max_depth GROUP BY g.{reached}",
                    {"hops": i, "max_depth": max_depth},
                )
            frontier = await _advance(store, s)
            logger.debug("Link hop %d: frontier=%d", i + 1, frontier)
            if frontier == 0:
                break

        await _copy_into(store, target_vertices, s.answer)
        await _insert_induced_edges(store, env, edge_filter, target_edges, s.answer)
