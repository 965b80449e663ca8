"""Lineage backend protocol — the four lookups a generic traversal needs.

Backends that cannot run bulk instructions (remote stores, in-memory
graphs) implement just these primitives; :class:`LineageTraversal`
builds lineage one vertex at a time on top of them.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Protocol, runtime_checkable

if TYPE_CHECKING:
    from collections.abc import Sequence

    from provstore.query.types import Predicate

    from .types import Edge, Vertex


@runtime_checkable
class LineageBackend(Protocol):
    """Per-element lookup primitives.

    Predicates are conjunctive.  Edge predicates may address the
    endpoints through ``CHILD_VERTEX_KEY`` / ``PARENT_VERTEX_KEY``.
    """

    async def lookup_vertices(self, predicates: Sequence[Predicate]) -> list[Vertex]: ...
    async def lookup_edges(self, predicates: Sequence[Predicate]) -> list[Edge]: ...
    async def get_children(self, vertex_id: str) -> list[Vertex]: ...
    async def get_parents(self, vertex_id: str) -> list[Vertex]: ...
