"""Tests for exports, native queries, and graph metadata."""

from __future__ import annotations

import pytest

from provstore.exceptions import BackingStoreError, UnsupportedOperationError
from provstore.query import GraphComponent, QueriedEdge


class TestExportVertices:
    async def test_named_graph(self, executor, make_graph) -> None:
        graph = await make_graph(["p1", "n1"])
        vertices = await executor.export_vertices(graph)
        assert vertices == {
            "p1": {"type": "Process", "name": "bash", "pid": "10"},
            "n1": {"type": "Artifact", "subtype": "network socket", "remote address": "10.0.0.2"},
        }

    async def test_base_graph(self, executor, env) -> None:
        vertices = await executor.export_vertices(env.base_graph)
        assert set(vertices) == {"p1", "p2", "a1", "a2", "n1"}

    async def test_empty_graph(self, executor, make_graph) -> None:
        assert await executor.export_vertices(await make_graph()) == {}


class TestExportEdges:
    async def test_named_graph(self, executor, make_graph) -> None:
        graph = await make_graph([], ["e3"])
        (edge,) = await executor.export_edges(graph)
        assert edge == QueriedEdge("e3", "a2", "p2")
        assert dict(edge.annotations) == {"type": "WasGeneratedBy", "operation": "write"}

    async def test_base_graph(self, executor, env) -> None:
        edges = await executor.export_edges(env.base_graph)
        assert {e.id for e in edges} == {"e1", "e2", "e3", "e4", "e5"}


class TestEvaluateQuery:
    async def test_header_and_rows(self, executor) -> None:
        result = await executor.evaluate_query(
            "SELECT hash, name FROM vertex WHERE type = 'Process' ORDER BY hash"
        )
        assert result.header == ("hash", "name")
        assert result.rows == (("p1", "bash"), ("p2", "cat"))
        assert len(result) == 2

    async def test_nulls_preserved(self, executor) -> None:
        result = await executor.evaluate_query("SELECT size FROM vertex WHERE hash = 'p1'")
        assert result.rows == ((None,),)

    async def test_numbers_as_text(self, executor) -> None:
        result = await executor.evaluate_query("SELECT COUNT(*) AS n FROM edge")
        assert result.rows == (("5",),)

    async def test_invalid_statement(self, executor) -> None:
        with pytest.raises(BackingStoreError):
            await executor.evaluate_query("SELECT * FROM no_such_table")

    async def test_statement_without_rows(self, executor) -> None:
        result = await executor.evaluate_query("DELETE FROM vertex WHERE hash = 'zzz'")
        assert result.header == ()
        assert result.rows == ()

    async def test_update_applies(self, executor) -> None:
        await executor.evaluate_query("UPDATE vertex SET name = 'zsh' WHERE hash = 'p1'")
        result = await executor.evaluate_query("SELECT name FROM vertex WHERE hash = 'p1'")
        assert result.rows == (("zsh",),)


class TestGraphMetadata:
    async def _rows(self, executor, meta) -> set[tuple[str, str, str]]:
        table = executor.environment.resolve_metadata_vertex_table(meta)
        rows = await executor.store.fetch(f"SELECT id, name, value FROM {table}")
        return {tuple(row) for row in rows}

    async def test_overwrite(self, executor, env) -> None:
        lhs, rhs, target = env.new_graph_metadata(), env.new_graph_metadata(), env.new_graph_metadata()
        for meta in (lhs, rhs, target):
            await executor.create_empty_graph_metadata(meta)
        store = executor.store
        await store.execute(
            f"INSERT INTO {env.resolve_metadata_vertex_table(lhs)} (id, name, value) "
            "VALUES (:id, :name, :value)",
            [
                {"id": "p1", "name": "label", "value": "old"},
                {"id": "p2", "name": "label", "value": "kept"},
            ],
        )
        await store.execute(
            f"INSERT INTO {env.resolve_metadata_vertex_table(rhs)} (id, name, value) "
            "VALUES ('p1', 'label', 'new')"
        )
        await executor.overwrite_graph_metadata(target, lhs, rhs)
        assert await self._rows(executor, target) == {
            ("p1", "label", "new"),
            ("p2", "label", "kept"),
        }

    async def test_set_graph_metadata_unsupported(self, executor, env) -> None:
        meta = env.new_graph_metadata()
        with pytest.raises(UnsupportedOperationError):
            await executor.set_graph_metadata(
                meta, GraphComponent.VERTEX, env.base_graph, "label", "x"
            )
