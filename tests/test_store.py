"""Tests for query/store.py — BackingStore execution and scratch tables."""

from __future__ import annotations

import asyncio
import logging
from unittest.mock import MagicMock

import pytest
from sqlalchemy.exc import UnboundExecutionError

from provstore.exceptions import BackingStoreError, ConfigurationError
from provstore.query import BackingStore, StoreSchema
from provstore.query.store import ScratchTables


class TestConstruction:
    def test_missing_session(self) -> None:
        with pytest.raises(ConfigurationError):
            BackingStore(None, StoreSchema())

    def test_empty_scratch_prefix(self, async_session) -> None:
        with pytest.raises(ConfigurationError):
            BackingStore(async_session, StoreSchema(), scratch_prefix="")

    def test_unbound_session(self) -> None:
        session = MagicMock()
        session.get_bind.side_effect = UnboundExecutionError("no bind")
        with pytest.raises(ConfigurationError):
            BackingStore(session, StoreSchema())

    def test_dialect(self, store) -> None:
        assert store.dialect == "sqlite"
        assert repr(store) == "BackingStore(dialect='sqlite')"


class TestQuoting:
    def test_distinguished_columns(self, store) -> None:
        assert store.id == '"hash"'
        assert store.child == '"childhash"'
        assert store.parent == '"parenthash"'

    def test_colon_escaped(self, store) -> None:
        assert store.quote("a:b") == '"a\\:b"'

    async def test_colon_column_round_trip(self, store) -> None:
        await store.create_table("odd", {"time:stamp": "TEXT"})
        await store.execute(f"INSERT INTO odd ({store.quote('time:stamp')}) VALUES (:v)", {"v": "t0"})
        assert await store.column_names("odd") == ["time:stamp"]
        assert await store.fetch_scalar(f"SELECT {store.quote('time:stamp')} FROM odd") == "t0"


class TestExecution:
    async def test_fetch_with_header(self, store) -> None:
        rows = await store.fetch(
            "SELECT hash, type FROM vertex WHERE hash = :id", {"id": "p1"}, header=True
        )
        assert rows == [("hash", "type"), ("p1", "Process")]

    async def test_count(self, store) -> None:
        assert await store.count("edge") == 5

    async def test_column_names(self, store) -> None:
        assert await store.column_names("edge") == [
            "hash",
            "childhash",
            "parenthash",
            "operation",
            "type",
        ]

    async def test_failure_wrapped(self, store, caplog) -> None:
        with caplog.at_level(logging.ERROR, logger="provstore.query.store"):
            with pytest.raises(BackingStoreError):
                await store.execute("DROP TABLE no_such_table")
        assert "Statement failed" in caplog.text

    async def test_statement_without_rows(self, store) -> None:
        assert await store.fetch("DELETE FROM vertex WHERE hash = 'zzz'") == []
        assert await store.fetch("DELETE FROM vertex WHERE hash = 'zzz'", header=True) == [()]

    async def test_create_and_drop(self, store) -> None:
        await store.create_id_table("ids")
        await store.execute("INSERT INTO ids (hash) VALUES ('x')")
        await store.create_id_table("ids")
        assert await store.count("ids") == 0
        await store.drop_table("ids")
        await store.drop_table("ids")


class TestScratch:
    def test_names(self) -> None:
        tables = ScratchTables("tmp", "abc123", ["cur", "next"])
        assert tables.cur == "tmp_cur_abc123"
        assert list(tables) == ["tmp_cur_abc123", "tmp_next_abc123"]
        with pytest.raises(AttributeError):
            _ = tables.answer

    async def test_dropped_on_exit(self, store) -> None:
        async with store.scratch("cur") as s:
            await store.create_id_table(s.cur)
            name = s.cur
        rows = await store.fetch(
            "SELECT name FROM sqlite_master WHERE name = :name", {"name": name}
        )
        assert rows == []

    async def test_unique_per_invocation(self, store) -> None:
        async with store.scratch("cur") as first, store.scratch("cur") as second:
            assert first.cur != second.cur

    async def test_kept_on_error(self, store, caplog) -> None:
        with caplog.at_level(logging.WARNING, logger="provstore.query.store"):
            with pytest.raises(RuntimeError):
                async with store.scratch("cur") as s:
                    await store.create_id_table(s.cur)
                    name = s.cur
                    raise RuntimeError("boom")
        assert name in caplog.text
        rows = await store.fetch(
            "SELECT name FROM sqlite_master WHERE name = :name", {"name": name}
        )
        assert rows == [(name,)]

    async def test_kept_on_cancellation(self, store, caplog) -> None:
        with caplog.at_level(logging.WARNING, logger="provstore.query.store"):
            with pytest.raises(asyncio.CancelledError):
                async with store.scratch("cur") as s:
                    await store.create_id_table(s.cur)
                    name = s.cur
                    raise asyncio.CancelledError
        assert name in caplog.text
