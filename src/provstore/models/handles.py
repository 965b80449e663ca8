"""GraphHandleRecord model — persisted handle → table mapping."""

from __future__ import annotations

from datetime import UTC, datetime

from sqlmodel import Field, SQLModel


class GraphHandleRecord(SQLModel, table=True):
    """One registered graph or graph-metadata handle.

    ``kind`` is ``"graph"`` or ``"metadata"``.  The table names are stored
    rather than recomputed so a prefix change never orphans old handles.
    """

    __tablename__ = "provstore_graph_handles"

    name: str = Field(primary_key=True)
    kind: str = Field(default="graph", primary_key=True)
    vertex_table: str
    edge_table: str
    created_at: datetime = Field(default_factory=lambda: datetime.now(UTC))
