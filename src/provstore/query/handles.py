"""Graph handles — the base graph sentinel and named id-set graphs."""

from __future__ import annotations

from dataclasses import dataclass
from typing import TypeAlias


@dataclass(frozen=True, slots=True)
class BaseGraph:
    """The universal graph: every vertex and edge in the annotation tables.

    No id-set table bounds it, so operations that read it scan the
    annotation tables directly.
    """

    name: str = "base"


@dataclass(frozen=True, slots=True)
class NamedGraph:
    """A named subset of the base graph backed by two id-set tables."""

    name: str


Graph: TypeAlias = BaseGraph | NamedGraph


@dataclass(frozen=True, slots=True)
class GraphMetadata:
    """A named pair of ``(id, name, value)`` tables tagging graph elements."""

    name: str


def is_base(graph: Graph) -> bool:
    """Return ``True`` when *graph* is the unrestricted base graph."""
    match graph:
        case BaseGraph():
            return True
        case _:
            return False
