"""Bulk query layer — graph handles, id-set tables, and the instruction executor."""

from provstore.query.environment import QueryEnvironment, StoreSchema
from provstore.query.executor import InstructionExecutor
from provstore.query.handles import BaseGraph, Graph, GraphMetadata, NamedGraph, is_base
from provstore.query.store import BackingStore, ScratchTables
from provstore.query.types import (
    Count,
    Direction,
    Distribution,
    EdgeEndpoint,
    ElementType,
    GraphComponent,
    GraphDescription,
    Histogram,
    Interval,
    Mean,
    Predicate,
    PredicateOperator,
    QueriedEdge,
    ResultTable,
    StandardDeviation,
)

__all__ = [
    "BackingStore",
    "BaseGraph",
    "Count",
    "Direction",
    "Distribution",
    "EdgeEndpoint",
    "ElementType",
    "Graph",
    "GraphComponent",
    "GraphDescription",
    "GraphMetadata",
    "Histogram",
    "InstructionExecutor",
    "Interval",
    "Mean",
    "NamedGraph",
    "Predicate",
    "PredicateOperator",
    "QueriedEdge",
    "QueryEnvironment",
    "ResultTable",
    "ScratchTables",
    "StandardDeviation",
    "StoreSchema",
    "is_base",
]
