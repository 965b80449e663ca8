"""Predicate filters over annotation tables.

Each function inserts matching ids into a target id-set table.  A key that
is not a column of the relevant annotation table is treated as a column
that is null everywhere, never as an error.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from provstore.dialect import regex_operator, text_cast

from .handles import is_base
from .types import ElementType, PredicateOperator

if TYPE_CHECKING:
    from collections.abc import Sequence

    from .environment import QueryEnvironment
    from .handles import Graph
    from .store import BackingStore
    from .types import Predicate

logger = logging.getLogger(__name__)

_SQL_OPERATORS = {
    PredicateOperator.EQUAL: "=",
    PredicateOperator.NOT_EQUAL: "<>",
    PredicateOperator.GREATER: ">",
    PredicateOperator.GREATER_EQUAL: ">=",
    PredicateOperator.LESS: "<",
    PredicateOperator.LESS_EQUAL: "<=",
    PredicateOperator.LIKE: "LIKE",
}


def build_comparison(
    store: BackingStore,
    column: str,
    operator: PredicateOperator,
    param: str,
) -> str:
    """Render ``column <op> :param``.  Id columns are compared as text."""
    expression = store.quote(column)
    if column in store.schema.reserved_edge_columns:
        expression = text_cast(store.dialect, expression)
    if operator is PredicateOperator.REGEX:
        sql_operator = regex_operator(store.dialect)
    else:
        sql_operator = _SQL_OPERATORS[operator]
    return f"{expression} {sql_operator} :{param}"


def build_column(store: BackingStore, alias: str, key: str) -> str:
    """Qualified column reference; id columns are cast to text."""
    expression = f"{alias}.{store.quote(key)}"
    if key in store.schema.reserved_edge_columns:
        return text_cast(store.dialect, expression)
    return expression


def annotation_table(env: QueryEnvironment, element: ElementType) -> str:
    if element is ElementType.VERTEX:
        return env.schema.vertex_table
    return env.schema.edge_table


def id_table(env: QueryEnvironment, graph: Graph, element: ElementType) -> str:
    if element is ElementType.VERTEX:
        return env.resolve_vertex_table(graph)
    return env.resolve_edge_table(graph)


async def get_elements(
    store: BackingStore,
    env: QueryEnvironment,
    element: ElementType,
    target: Graph,
    subject: Graph,
    predicate: Predicate | None,
) -> None:
    """Shared body of ``get_vertex`` and ``get_edge``."""
    target_table = store.quote(id_table(env, target, element))
    subject_table = id_table(env, subject, element)
    annotations = annotation_table(env, element)
    restriction = "" if is_base(subject) else " AND " + store.in_set(store.id, subject_table)

    if predicate is None:
        await store.execute(
            f"INSERT INTO {target_table} ({store.id}) "
            f"SELECT {store.id} FROM {store.quote(subject_table)} GROUP BY {store.id}"
        )
        return

    existing = await store.column_names(annotations)
    if not predicate.is_wildcard and predicate.key not in existing:
        if predicate.operator is not PredicateOperator.NOT_EQUAL:
            logger.debug("Column %r absent from %s; nothing matches", predicate.key, annotations)
            return
        # The column is null everywhere, so it is never equal to the value.
        await store.execute(
            f"INSERT INTO {target_table} ({store.id}) "
            f"SELECT {store.id} FROM {store.quote(annotations)} WHERE 1 = 1{restriction} "
            f"GROUP BY {store.id}"
        )
        return

    columns = existing if predicate.is_wildcard else [predicate.key]
    condition = " OR ".join(
        build_comparison(store, column, predicate.operator, "value") for column in columns
    )
    await store.execute(
        f"INSERT INTO {target_table} ({store.id}) "
        f"SELECT {store.id} FROM {store.quote(annotations)} "
        f"WHERE ({condition}){restriction} GROUP BY {store.id}",
        {"value": predicate.value},
    )


async def insert_where_annotations_exist(
    store: BackingStore,
    env: QueryEnvironment,
    target_table: str,
    subject_table: str,
    keys: Sequence[str],
) -> bool:
    """Insert subject vertex ids whose annotations are non-null for every key.

    Returns ``False`` (inserting nothing) when any key is not a column.
    """
    if not keys:
        raise ValueError("At least one annotation key is required")
    annotations = env.schema.vertex_table
    missing = set(keys) - set(await store.column_names(annotations))
    if missing:
        logger.debug("Annotation keys %s do not exist for vertices", sorted(missing))
        return False

    conditions = " AND ".join(f"v.{store.quote(key)} IS NOT NULL" for key in keys)
    await store.execute(
        f"INSERT INTO {store.quote(target_table)} ({store.id}) "
        f"SELECT v.{store.id} FROM {store.quote(annotations)} v "
        f"WHERE {store.in_set('v.' + store.id, subject_table)} AND {conditions} "
        f"GROUP BY v.{store.id}"
    )
    return True


async def get_match(
    store: BackingStore,
    env: QueryEnvironment,
    target: Graph,
    lhs: Graph,
    rhs: Graph,
    keys: Sequence[str],
) -> None:
    """Vertices of *lhs* and *rhs* that agree (non-null) on every key."""
    annotations = store.quote(env.schema.vertex_table)
    id_column = store.id

    async with store.scratch("lhs", "rhs", "pairs", "matched") as s:
        await store.create_id_table(s.lhs)
        await store.create_id_table(s.rhs)
        found = await insert_where_annotations_exist(
            store, env, s.lhs, env.resolve_vertex_table(lhs), keys
        )
        if not found:
            return
        await insert_where_annotations_exist(
            store, env, s.rhs, env.resolve_vertex_table(rhs), keys
        )

        id_type = store.schema.id_type
        await store.create_table(s.pairs, {"lhs_id": id_type, "rhs_id": id_type})
        await store.create_id_table(s.matched)

        conditions = []
        for key in keys:
            left = build_column(store, "a1", key)
            right = build_column(store, "a2", key)
            conditions.append(f"({left} = {right} AND {left} IS NOT NULL AND {right} IS NOT NULL)")

        await store.execute(
            f"INSERT INTO {store.quote(s.pairs)} (lhs_id, rhs_id) "
            f"SELECT a1.{id_column}, a2.{id_column} "
            f"FROM {store.quote(s.lhs)} g1, {annotations} a1, {store.quote(s.rhs)} g2, {annotations} a2 "
            f"WHERE g1.{id_column} = a1.{id_column} AND g2.{id_column} = a2.{id_column} "
            f"AND {' AND '.join(conditions)}"
        )
        await store.execute(
            f"INSERT INTO {store.quote(s.matched)} ({id_column}) "
            f"SELECT lhs_id FROM {store.quote(s.pairs)} GROUP BY lhs_id"
        )
        await store.execute(
            f"INSERT INTO {store.quote(s.matched)} ({id_column}) "
            f"SELECT rhs_id FROM {store.quote(s.pairs)} GROUP BY rhs_id"
        )
        target_table = env.resolve_vertex_table(target)
        await store.execute(
            f"INSERT INTO {store.quote(target_table)} ({id_column}) "
            f"SELECT {id_column} FROM {store.quote(s.matched)} "
            f"WHERE {store.not_in_set(id_column, target_table)} GROUP BY {id_column}"
        )

