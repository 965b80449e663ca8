"""BackingStore — statement execution over an async SQLAlchemy session."""

from __future__ import annotations

import logging
import uuid
from contextlib import asynccontextmanager
from typing import TYPE_CHECKING, Any

from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError, UnboundExecutionError

from provstore.dialect import get_dialect, quote_identifier
from provstore.exceptions import BackingStoreError, ConfigurationError

if TYPE_CHECKING:
    from collections.abc import AsyncIterator, Iterator, Mapping, Sequence

    from sqlalchemy.ext.asyncio import AsyncSession

    from .environment import StoreSchema

logger = logging.getLogger(__name__)


class ScratchTables:
    """Per-invocation scratch table names, addressed by role.

    ``tables.cur`` → ``"provstore_tmp_cur_1f3a9c0e2b7d"``.  The request id
    suffix keeps two concurrent instructions from sharing a table.
    """

    def __init__(self, prefix: str, request_id: str, roles: Sequence[str]) -> None:
        self.request_id = request_id
        self._names = {role: f"{prefix}_{role}_{request_id}" for role in roles}

    def __getattr__(self, role: str) -> str:
        try:
            return self._names[role]
        except KeyError:
            raise AttributeError(role) from None

    def __iter__(self) -> Iterator[str]:
        return iter(self._names.values())

    def __repr__(self) -> str:
        return f"ScratchTables({self.request_id!r}, roles={list(self._names)})"


class BackingStore:
    """Executes SQL statements against one session and returns rows.

    Holds the session for the lifetime of a pipeline: instructions run
    sequentially against it.  Every failure is re-raised as
    :class:`BackingStoreError`.
    """

    def __init__(
        self,
        session: AsyncSession | None,
        schema: StoreSchema,
        *,
        scratch_prefix: str = "provstore_tmp",
    ) -> None:
        if session is None:
            raise ConfigurationError("BackingStore requires a session")
        if schema is None:
            raise ConfigurationError("BackingStore requires a schema")
        if not scratch_prefix:
            raise ConfigurationError("NULL/Empty scratch table prefix")
        try:
            self._bind = session.get_bind()
        except UnboundExecutionError as e:
            raise ConfigurationError("BackingStore session is not bound to an engine") from e
        self.session = session
        self.schema = schema
        self.scratch_prefix = scratch_prefix
        self.dialect = get_dialect(self._bind)

    # ------------------------------------------------------------------
    # Quoting
    # ------------------------------------------------------------------

    def quote(self, name: str) -> str:
        """Quote an identifier; colons are escaped for ``text()``."""
        return quote_identifier(self._bind, name).replace(":", "\\:")

    @property
    def id(self) -> str:
        return self.quote(self.schema.id_column)

    @property
    def child(self) -> str:
        return self.quote(self.schema.child_column)

    @property
    def parent(self) -> str:
        return self.quote(self.schema.parent_column)

    def in_set(self, expression: str, table: str) -> str:
        """``expression IN (SELECT id FROM table)``."""
        return f"{expression} IN (SELECT {self.id} FROM {self.quote(table)})"

    def not_in_set(self, expression: str, table: str) -> str:
        return f"{expression} NOT IN (SELECT {self.id} FROM {self.quote(table)})"

    # ------------------------------------------------------------------
    # Execution
    # ------------------------------------------------------------------

    async def execute(
        self,
        statement: str,
        params: Mapping[str, Any] | Sequence[Mapping[str, Any]] | None = None,
    ) -> None:
        """Execute a statement that returns no rows."""
        await self._run(statement, params)

    async def fetch(
        self,
        statement: str,
        params: Mapping[str, Any] | None = None,
        *,
        header: bool = False,
    ) -> list[tuple[Any, ...]]:
        """Execute *statement* and return its rows.

        With ``header=True`` the first row is the tuple of column names.
        A statement that returns no rows (DML, DDL) yields an empty header.
        """
        result = await self._run(statement, params)
        if not result.returns_rows:
            return [()] if header else []
        rows = [tuple(row) for row in result.all()]
        if header:
            rows.insert(0, tuple(result.keys()))
        return rows

    async def fetch_scalar(self, statement: str, params: Mapping[str, Any] | None = None) -> Any:
        result = await self._run(statement, params)
        return result.scalar()

    async def count(self, table: str) -> int:
        return int(await self.fetch_scalar(f"SELECT COUNT(*) FROM {self.quote(table)}") or 0)

    async def column_names(self, table: str) -> list[str]:
        """Column names of *table*, read from an empty result's header."""
        rows = await self.fetch(f"SELECT * FROM {self.quote(table)} WHERE 1 = 0", header=True)
        return list(rows[0])

    async def _run(
        self,
        statement: str,
        params: Mapping[str, Any] | Sequence[Mapping[str, Any]] | None,
    ) -> Any:
        logger.debug("SQL: %s", statement)
        try:
            if params is None:
                return await self.session.execute(text(statement))
            return await self.session.execute(text(statement), params)
        except SQLAlchemyError as e:
            logger.error("Statement failed: %s", statement, exc_info=True)
            raise BackingStoreError(f"Failed to execute statement: {e}") from e

    # ------------------------------------------------------------------
    # Tables
    # ------------------------------------------------------------------

    async def create_id_table(self, table: str, *, replace: bool = True) -> None:
        """Create a single-column id-set table."""
        await self.create_table(table, {self.schema.id_column: self.schema.id_type}, replace=replace)

    async def create_table(
        self, table: str, columns: Mapping[str, str], *, replace: bool = True
    ) -> None:
        if replace:
            await self.drop_table(table)
        column_sql = ", ".join(f"{self.quote(name)} {kind}" for name, kind in columns.items())
        await self.execute(f"CREATE TABLE {self.quote(table)} ({column_sql})")

    async def drop_table(self, table: str) -> None:
        await self.execute(f"DROP TABLE IF EXISTS {self.quote(table)}")

    async def clear_table(self, table: str) -> None:
        await self.execute(f"DELETE FROM {self.quote(table)}")

    @asynccontextmanager
    async def scratch(self, *roles: str) -> AsyncIterator[ScratchTables]:
        """Allocate uniquely named scratch tables for one instruction.

        The tables are dropped when the block exits normally.  After a
        failure they are left in place: the statement that failed may have
        left the session unusable, and the target handle is suspect anyway.
        """
        tables = ScratchTables(self.scratch_prefix, uuid.uuid4().hex[:12], roles)
        try:
            yield tables
        except BaseException:
            logger.warning("Instruction failed; scratch tables left behind: %s", ", ".join(tables))
            raise
        for name in tables:
            await self.drop_table(name)

    def __repr__(self) -> str:
        return f"BackingStore(dialect={self.dialect!r})"
