"""Shared fixtures for provstore tests.

The ``provenance`` fixture loads a small graph into the annotation tables.
Edges point child → parent::

    a2 --e3--> p2 --e1--> p1 --e5--> n1
               p2 --e2--> a1
               p2 --e4--> a1
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

import pytest
from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlmodel import SQLModel

from provstore.dialect import install_sqlite_functions
from provstore.lineage import LineageGraph, edge, vertex
from provstore.query import BackingStore, InstructionExecutor, QueryEnvironment, StoreSchema

if TYPE_CHECKING:
    from collections.abc import AsyncIterator, Awaitable, Callable, Sequence

    from sqlalchemy.ext.asyncio import AsyncEngine

    from provstore.query import NamedGraph


VERTICES: dict[str, dict[str, str]] = {
    "p1": {"type": "Process", "name": "bash", "pid": "10"},
    "p2": {"type": "Process", "name": "cat", "pid": "20"},
    "a1": {"type": "Artifact", "path": "/etc/passwd", "size": "100"},
    "a2": {"type": "Artifact", "path": "/tmp/out", "size": "300"},
    "n1": {"type": "Artifact", "subtype": "network socket", "remote address": "10.0.0.2"},
}

# id → (child, parent, annotations)
EDGES: dict[str, tuple[str, str, dict[str, str]]] = {
    "e1": ("p2", "p1", {"type": "WasTriggeredBy", "operation": "fork"}),
    "e2": ("p2", "a1", {"type": "Used", "operation": "read"}),
    "e3": ("a2", "p2", {"type": "WasGeneratedBy", "operation": "write"}),
    "e4": ("p2", "a1", {"type": "Used", "operation": "read"}),
    "e5": ("p1", "n1", {"type": "Used", "operation": "recv"}),
}


async def load_provenance(
    session: AsyncSession,
    schema: StoreSchema,
    vertices: dict[str, dict[str, str]],
    edges: dict[str, tuple[str, str, dict[str, str]]],
) -> None:
    """Create both annotation tables and insert one row per element."""
    store = BackingStore(session, schema)
    vertex_keys = sorted({key for values in vertices.values() for key in values})
    edge_keys = sorted({key for _, _, values in edges.values() for key in values})

    await store.create_table(
        schema.vertex_table,
        {schema.id_column: schema.id_type, **{key: "TEXT" for key in vertex_keys}},
    )
    await store.create_table(
        schema.edge_table,
        {
            schema.id_column: schema.id_type,
            schema.child_column: schema.id_type,
            schema.parent_column: schema.id_type,
            **{key: "TEXT" for key in edge_keys},
        },
    )

    async def insert(table: str, columns: list[str], rows: list[list[Any]]) -> None:
        names = ", ".join(store.quote(column) for column in columns)
        params = ", ".join(f":c{i}" for i in range(len(columns)))
        await session.execute(
            text(f"INSERT INTO {store.quote(table)} ({names}) VALUES ({params})"),
            [{f"c{i}": value for i, value in enumerate(row)} for row in rows],
        )

    await insert(
        schema.vertex_table,
        [schema.id_column, *vertex_keys],
        [[vid, *(values.get(key) for key in vertex_keys)] for vid, values in vertices.items()],
    )
    await insert(
        schema.edge_table,
        [schema.id_column, schema.child_column, schema.parent_column, *edge_keys],
        [
            [eid, child, parent, *(values.get(key) for key in edge_keys)]
            for eid, (child, parent, values) in edges.items()
        ],
    )


@pytest.fixture
async def async_engine() -> AsyncIterator[AsyncEngine]:
    """Async in-memory SQLite engine with REGEXP support and all tables created."""
    eng = create_async_engine("sqlite+aiosqlite://", echo=False)
    install_sqlite_functions(eng)
    async with eng.begin() as conn:
        await conn.run_sync(SQLModel.metadata.create_all)
    yield eng
    await eng.dispose()


@pytest.fixture
async def async_session(async_engine: AsyncEngine) -> AsyncIterator[AsyncSession]:
    """Async SQLModel session, rolled back after each test."""
    factory = async_sessionmaker(
        async_engine,
        class_=AsyncSession,
        expire_on_commit=False,
    )
    async with factory() as session:
        yield session


@pytest.fixture
def schema() -> StoreSchema:
    return StoreSchema()


@pytest.fixture
async def provenance(async_session: AsyncSession, schema: StoreSchema) -> AsyncSession:
    """Session whose annotation tables hold the example graph."""
    await load_provenance(async_session, schema, VERTICES, EDGES)
    return async_session


@pytest.fixture
def store(provenance: AsyncSession, schema: StoreSchema) -> BackingStore:
    return BackingStore(provenance, schema)


@pytest.fixture
def env(schema: StoreSchema) -> QueryEnvironment:
    return QueryEnvironment(schema)


@pytest.fixture
def executor(store: BackingStore, env: QueryEnvironment) -> InstructionExecutor:
    return InstructionExecutor(store, env)


@pytest.fixture
def memory_graph() -> LineageGraph:
    """The example graph held in memory."""
    graph = LineageGraph()
    for vertex_id, values in VERTICES.items():
        graph.add_vertex(vertex(values, id=vertex_id))
    for edge_id, (child, parent, values) in EDGES.items():
        graph.add_edge(edge(child, parent, values, id=edge_id))
    return graph


@pytest.fixture
def make_graph(
    executor: InstructionExecutor,
) -> Callable[..., Awaitable[NamedGraph]]:
    """Create a fresh graph handle holding the given literal ids."""

    async def _make(
        vertices: Sequence[str] = (), edges: Sequence[str] = ()
    ) -> NamedGraph:
        graph = executor.environment.new_graph()
        await executor.create_empty_graph(graph)
        await executor.insert_literal_vertex(graph, list(vertices))
        await executor.insert_literal_edge(graph, list(edges))
        return graph

    return _make


@pytest.fixture
def ids(
    executor: InstructionExecutor,
) -> Callable[[NamedGraph], Awaitable[tuple[set[str], set[str]]]]:
    """Read a graph's (vertex ids, edge ids)."""

    async def _ids(graph: NamedGraph) -> tuple[set[str], set[str]]:
        store = executor.store
        env = executor.environment
        vertex_rows = await store.fetch(
            f"SELECT {store.id} FROM {store.quote(env.resolve_vertex_table(graph))}"
        )
        edge_rows = await store.fetch(
            f"SELECT {store.id} FROM {store.quote(env.resolve_edge_table(graph))}"
        )
        return {row[0] for row in vertex_rows}, {row[0] for row in edge_rows}

    return _ids
