"""Query value types — predicates, directions, components, statistics.

Deeply immutable where practical: statistic maps are exposed as
``MappingProxyType`` so results can be shared between callers.
"""

from __future__ import annotations

import enum
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Any

WILDCARD = "*"


class PredicateOperator(enum.Enum):
    EQUAL = "="
    NOT_EQUAL = "<>"
    GREATER = ">"
    GREATER_EQUAL = ">="
    LESS = "<"
    LESS_EQUAL = "<="
    REGEX = "~"
    LIKE = "like"


@dataclass(frozen=True, slots=True)
class Predicate:
    """``key operator value`` over annotation columns.

    ``key == "*"`` matches against every existing annotation column, OR'd.
    """

    key: str
    operator: PredicateOperator
    value: str

    @property
    def is_wildcard(self) -> bool:
        return self.key == WILDCARD


class Direction(enum.Enum):
    """Traversal direction.  Ancestors are reached by following parent ids."""

    ANCESTOR = "ancestor"
    DESCENDANT = "descendant"
    BOTH = "both"

    def expand(self) -> tuple[Direction, ...]:
        """Split ``BOTH`` into its two single directions."""
        if self is Direction.BOTH:
            return (Direction.ANCESTOR, Direction.DESCENDANT)
        return (self,)

    @classmethod
    def parse(cls, text: str) -> Direction:
        """Accept any prefix of a direction name (``"a"``, ``"desc"``, ...)."""
        lowered = text.strip().lower()
        if lowered:
            for member in cls:
                if member.value.startswith(lowered):
                    return member
        raise ValueError(f"Unknown direction: {text!r}")


class GraphComponent(enum.Enum):
    """Which id set an instruction applies to."""

    VERTEX = "vertex"
    EDGE = "edge"
    BOTH = "both"


class EdgeEndpoint(enum.Enum):
    """Endpoint selector.  Source is the child id, destination the parent id."""

    SOURCE = "source"
    DESTINATION = "destination"
    BOTH = "both"


class ElementType(enum.Enum):
    VERTEX = "vertex"
    EDGE = "edge"


# =====================================================================
# Statistics
# =====================================================================


@dataclass(frozen=True, slots=True)
class Count:
    vertices: int = 0
    edges: int = 0


@dataclass(frozen=True, slots=True)
class Mean:
    """Mean of a numeric annotation.  ``value is None`` means no data."""

    value: float | None = None

    @property
    def is_empty(self) -> bool:
        return self.value is None


@dataclass(frozen=True, slots=True)
class StandardDeviation:
    """Sample standard deviation.  ``value is None`` means no data."""

    value: float | None = None

    @property
    def is_empty(self) -> bool:
        return self.value is None


@dataclass(frozen=True, slots=True, order=True)
class Interval:
    """A half-open ``[begin, end)`` bin; the last bin of a distribution is closed."""

    begin: float
    end: float

    def __str__(self) -> str:
        return f"[{self.begin}, {self.end}]"


@dataclass(frozen=True, slots=True)
class Histogram:
    """Value → count, in ascending count order."""

    counts: MappingProxyType[str | None, int] = field(
        default_factory=lambda: MappingProxyType({})
    )

    @property
    def is_empty(self) -> bool:
        return not self.counts


@dataclass(frozen=True, slots=True)
class Distribution:
    """Equal-width interval → count, ordered by interval."""

    counts: MappingProxyType[Interval, int] = field(
        default_factory=lambda: MappingProxyType({})
    )

    @property
    def is_empty(self) -> bool:
        return not self.counts


# =====================================================================
# Descriptions and exports
# =====================================================================


@dataclass(frozen=True, slots=True)
class GraphDescription:
    """Annotation keys that carry at least one value within a graph."""

    vertex_annotations: frozenset[str] = frozenset()
    edge_annotations: frozenset[str] = frozenset()


@dataclass(frozen=True, slots=True)
class QueriedEdge:
    """An exported edge row: id, endpoints, and its non-null annotations."""

    id: str
    child_id: str
    parent_id: str
    annotations: MappingProxyType[str, str] = field(
        default_factory=lambda: MappingProxyType({}), compare=False, hash=False
    )


@dataclass(frozen=True, slots=True)
class ResultTable:
    """Header plus string rows from a native query."""

    header: tuple[str, ...] = ()
    rows: tuple[tuple[str | None, ...], ...] = ()

    def __len__(self) -> int:
        return len(self.rows)


def histogram(counts: dict[Any, int]) -> Histogram:
    """Convenience factory — freezes *counts* preserving insertion order."""
    return Histogram(counts=MappingProxyType(dict(counts)))


def distribution(counts: dict[Interval, int]) -> Distribution:
    """Convenience factory — freezes *counts* sorted by interval."""
    return Distribution(counts=MappingProxyType(dict(sorted(counts.items()))))
