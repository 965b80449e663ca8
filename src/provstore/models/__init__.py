"""SQLModel database models for provstore."""

from provstore.models.handles import GraphHandleRecord

__all__ = [
    "GraphHandleRecord",
]
