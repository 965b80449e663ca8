"""Dialect-aware SQL helpers — quoting, casts, regex, row limits."""

from __future__ import annotations

import re
from typing import TYPE_CHECKING, Any

from sqlalchemy import event

from .exceptions import UnsupportedOperationError

if TYPE_CHECKING:
    from sqlalchemy import Connection, Engine
    from sqlalchemy.ext.asyncio import AsyncEngine


def get_dialect(engine: Engine | AsyncEngine | Connection) -> str:
    """Return 'sqlite', 'postgresql', or 'mssql'."""
    # AsyncEngine wraps a sync engine
    sync_engine = getattr(engine, "sync_engine", engine)
    name = sync_engine.dialect.name
    if name == "sqlite":
        return "sqlite"
    if name in ("postgresql", "postgres"):
        return "postgresql"
    if name in ("mssql", "pyodbc"):
        return "mssql"
    return name


def quote_identifier(engine: Engine | AsyncEngine | Connection, name: str) -> str:
    """Quote *name* unconditionally using the engine's identifier preparer.

    Annotation keys are free-form (``"event id"``, ``"sub-type"``) so every
    column reference goes through here.
    """
    sync_engine = getattr(engine, "sync_engine", engine)
    return sync_engine.dialect.identifier_preparer.quote_identifier(name)


def regex_operator(dialect: str) -> str:
    """Return the infix regex-match operator for *dialect*.

    - PostgreSQL: ``~``
    - SQLite: ``REGEXP`` (needs :func:`install_sqlite_functions`)
    """
    if dialect == "postgresql":
        return "~"
    if dialect == "sqlite":
        return "REGEXP"
    raise UnsupportedOperationError(f"Regex predicates are not supported on {dialect!r}")


def numeric_cast(dialect: str, expression: str) -> str:
    """Cast a text expression to a decimal number."""
    if dialect == "mssql":
        return f"CAST({expression} AS DECIMAL(38, 10))"
    return f"CAST({expression} AS NUMERIC)"


def text_cast(dialect: str, expression: str) -> str:
    """Cast an expression (typically an id column) to text."""
    if dialect == "mssql":
        return f"CAST({expression} AS NVARCHAR(MAX))"
    return f"CAST({expression} AS TEXT)"


def limit_clause(dialect: str, limit: int) -> str:
    """Return a row-limit suffix.  Must follow an ``ORDER BY`` on MSSQL."""
    if dialect == "mssql":
        return f"OFFSET 0 ROWS FETCH NEXT {int(limit)} ROWS ONLY"
    return f"LIMIT {int(limit)}"


def _sqlite_regexp(pattern: str, value: Any) -> int:
    if value is None or pattern is None:
        return 0
    return 1 if re.search(pattern, str(value)) else 0


def install_sqlite_functions(engine: Engine | AsyncEngine) -> None:
    """Register Python-side SQL functions on every new SQLite connection.

    SQLite parses ``x REGEXP y`` but ships no implementation; this installs
    ``regexp(pattern, value)`` backed by :func:`re.search`.  No-op on other
    dialects.
    """
    if get_dialect(engine) != "sqlite":
        return
    sync_engine = getattr(engine, "sync_engine", engine)

    @event.listens_for(sync_engine, "connect")
    def _on_connect(dbapi_connection: Any, _record: Any) -> None:
        dbapi_connection.create_function("regexp", 2, _sqlite_regexp)
