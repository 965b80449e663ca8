"""Tests for lineage backends and the vertex-at-a-time LineageTraversal."""

from __future__ import annotations

import pytest

from provstore.exceptions import ConfigurationError, NoRootVertexError
from provstore.lineage import (
    CHILD_VERTEX_KEY,
    PARENT_VERTEX_KEY,
    LineageBackend,
    LineageTraversal,
    MemoryLineageBackend,
    SQLLineageBackend,
    create_lineage_backend,
)
from provstore.lineage.backends import like_to_regex
from provstore.query import Direction, Predicate, PredicateOperator

EQ = PredicateOperator.EQUAL


@pytest.fixture(params=["sql", "memory"])
def backend(request, store, memory_graph) -> LineageBackend:
    if request.param == "sql":
        return create_lineage_backend("sql", store=store)
    return create_lineage_backend("memory", graph=memory_graph)


class TestFactory:
    def test_kinds(self, store) -> None:
        assert isinstance(create_lineage_backend("sql", store=store), SQLLineageBackend)
        assert isinstance(create_lineage_backend("memory"), MemoryLineageBackend)

    def test_protocol(self, store) -> None:
        assert isinstance(SQLLineageBackend(store), LineageBackend)
        assert isinstance(MemoryLineageBackend(), LineageBackend)

    def test_unknown_kind(self) -> None:
        with pytest.raises(ConfigurationError):
            create_lineage_backend("neo4j")

    def test_sql_requires_store(self) -> None:
        with pytest.raises(ConfigurationError):
            create_lineage_backend("sql")


class TestBackendLookups:
    async def test_lookup_vertices_conjunctive(self, backend) -> None:
        found = await backend.lookup_vertices(
            [Predicate("type", EQ, "Process"), Predicate("name", EQ, "cat")]
        )
        assert [v.id for v in found] == ["p2"]
        assert found[0].get("pid") == "20"

    async def test_lookup_vertices_like(self, backend) -> None:
        found = await backend.lookup_vertices(
            [Predicate("path", PredicateOperator.LIKE, "/etc/%")]
        )
        assert {v.id for v in found} == {"a1"}

    async def test_missing_key_policy(self, backend) -> None:
        assert await backend.lookup_vertices([Predicate("colour", EQ, "red")]) == []
        everything = await backend.lookup_vertices(
            [Predicate("colour", PredicateOperator.NOT_EQUAL, "red")]
        )
        assert len(everything) == 5

    async def test_lookup_edges_by_endpoints(self, backend) -> None:
        found = await backend.lookup_edges(
            [Predicate(CHILD_VERTEX_KEY, EQ, "p2"), Predicate(PARENT_VERTEX_KEY, EQ, "a1")]
        )
        assert {e.id for e in found} == {"e2", "e4"}
        assert all(e.get("operation") == "read" for e in found)

    async def test_neighbours(self, backend) -> None:
        assert {v.id for v in await backend.get_parents("p2")} == {"p1", "a1"}
        assert {v.id for v in await backend.get_children("p2")} == {"a2"}
        assert await backend.get_parents("n1") == []


class TestLikeToRegex:
    def test_wildcards(self) -> None:
        assert like_to_regex("a%b_").fullmatch("aXYZbQ")
        assert not like_to_regex("a%b_").fullmatch("ab")

    def test_escapes_regex_characters(self) -> None:
        assert like_to_regex("1.0%").fullmatch("1.0.2")
        assert not like_to_regex("1.0%").fullmatch("100")


class TestLineageTraversal:
    async def test_ancestors(self, backend) -> None:
        traversal = LineageTraversal(backend)
        result = await traversal.get_lineage(
            [Predicate("path", EQ, "/tmp/out")], 5, Direction.ANCESTOR
        )
        assert {v.id for v in result.vertices()} == {"a2", "p2", "p1", "a1", "n1"}
        assert {e.id for e in result.edges()} == {"e1", "e2", "e3", "e4", "e5"}
        assert result.root_id == "a2"
        assert result.max_depth == 5
        assert [result.depth(v) for v in ("a2", "p2", "p1", "n1")] == [0, 1, 2, 3]
        assert result.compute_time is not None

    async def test_network_vertex_flagged(self, backend) -> None:
        result = await LineageTraversal(backend).get_lineage(
            [Predicate("path", EQ, "/tmp/out")], 5, Direction.ANCESTOR
        )
        assert result.remote_resolution_required
        assert result.network_vertices == {"n1": 2}

    async def test_remote_root_not_expanded(self, backend) -> None:
        result = await LineageTraversal(backend).get_lineage(
            [Predicate("remote address", EQ, "10.0.0.2")], 3, Direction.DESCENDANT
        )
        assert [v.id for v in result.vertices()] == ["n1"]
        assert result.edges() == []
        assert result.network_vertices == {"n1": 0}
        assert result.root_id == "n1"

    async def test_custom_remote_check(self, backend) -> None:
        traversal = LineageTraversal(backend, is_remote=lambda v: False)
        result = await traversal.get_lineage(
            [Predicate("path", EQ, "/tmp/out")], 5, Direction.ANCESTOR
        )
        assert not result.remote_resolution_required
        assert result.has_vertex("n1")

    async def test_depth_bound(self, backend) -> None:
        result = await LineageTraversal(backend).get_lineage(
            [Predicate("path", EQ, "/tmp/out")], 1, Direction.ANCESTOR
        )
        assert {v.id for v in result.vertices()} == {"a2", "p2"}
        assert {e.id for e in result.edges()} == {"e3"}

    async def test_depth_zero(self, backend) -> None:
        result = await LineageTraversal(backend).get_lineage(
            [Predicate("name", EQ, "bash")], 0, Direction.ANCESTOR
        )
        assert [v.id for v in result.vertices()] == ["p1"]
        assert result.edges() == []

    async def test_descendants(self, backend) -> None:
        result = await LineageTraversal(backend).get_lineage(
            [Predicate("path", EQ, "/etc/passwd")], 2, Direction.DESCENDANT
        )
        assert {v.id for v in result.vertices()} == {"a1", "p2", "a2"}
        assert {e.id for e in result.edges()} == {"e2", "e4", "e3"}

    async def test_both_directions(self, backend) -> None:
        result = await LineageTraversal(backend).get_lineage(
            [Predicate("name", EQ, "cat")], 1, Direction.BOTH
        )
        assert {v.id for v in result.vertices()} == {"p2", "p1", "a1", "a2"}
        assert {e.id for e in result.edges()} == {"e1", "e2", "e3", "e4"}
        assert result.root_id == "p2"

    async def test_no_root(self, backend) -> None:
        with pytest.raises(NoRootVertexError):
            await LineageTraversal(backend).get_lineage(
                [Predicate("name", EQ, "vim")], 3, Direction.ANCESTOR
            )

    async def test_negative_depth(self, backend) -> None:
        with pytest.raises(ValueError):
            await LineageTraversal(backend).get_lineage(
                [Predicate("name", EQ, "bash")], -1, Direction.ANCESTOR
            )

    def test_requires_backend(self) -> None:
        with pytest.raises(ConfigurationError):
            LineageTraversal(None)


class TestConsistencyWithBulkLineage:
    async def test_same_elements(self, executor, env, make_graph, ids, store) -> None:
        start = await make_graph(["a2"])
        target = env.new_graph()
        await executor.create_empty_graph(target)
        await executor.get_lineage(target, env.base_graph, start, 4, Direction.ANCESTOR)

        traversal = LineageTraversal(SQLLineageBackend(store), is_remote=lambda v: False)
        result = await traversal.get_lineage(
            [Predicate("hash", EQ, "a2")], 4, Direction.ANCESTOR
        )
        assert await ids(target) == (
            {v.id for v in result.vertices()},
            {e.id for e in result.edges()},
        )
