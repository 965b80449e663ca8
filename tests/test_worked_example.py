"""A two-vertex process/artifact graph run through the bulk executor.

Edge ``e1`` points from ``v1`` (child) to ``v2`` (parent)::

    v1 --e1--> v2
"""

from __future__ import annotations

import pytest

from provstore.query import Direction, Predicate, PredicateOperator

from conftest import load_provenance

VERTICES = {
    "v1": {"type": "process"},
    "v2": {"type": "artifact"},
}
EDGES = {"e1": ("v1", "v2", {"relation": "read"})}


@pytest.fixture
async def provenance(async_session, schema):
    await load_provenance(async_session, schema, VERTICES, EDGES)
    return async_session


async def _new(executor):
    graph = executor.environment.new_graph()
    await executor.create_empty_graph(graph)
    return graph


class TestProcessArtifactGraph:
    async def test_get_vertex_by_type(self, executor, env, ids) -> None:
        target = await _new(executor)
        await executor.get_vertex(
            target, env.base_graph, Predicate("type", PredicateOperator.EQUAL, "process")
        )
        assert await ids(target) == ({"v1"}, set())

    async def test_lineage_one_hop(self, executor, env, make_graph, ids) -> None:
        start = await make_graph(["v1"])
        target = await _new(executor)
        await executor.get_lineage(target, env.base_graph, start, 1, Direction.ANCESTOR)
        assert await ids(target) == ({"v1", "v2"}, {"e1"})

    async def test_shortest_path_one_hop(self, executor, env, make_graph, ids) -> None:
        src = await make_graph(["v1"])
        dst = await make_graph(["v2"])
        target = await _new(executor)
        await executor.get_shortest_path(target, env.base_graph, src, dst, 1)
        assert await ids(target) == ({"v1", "v2"}, {"e1"})

    async def test_shortest_path_zero_depth(self, executor, env, make_graph, ids) -> None:
        src = await make_graph(["v1"])
        dst = await make_graph(["v2"])
        target = await _new(executor)
        await executor.get_shortest_path(target, env.base_graph, src, dst, 0)
        assert await ids(target) == (set(), set())
