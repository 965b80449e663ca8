"""provstore: query execution for provenance graphs stored in relational tables.

Bulk set, filter, traversal and statistics instructions over named graph
handles, plus a vertex-at-a-time lineage traversal for backends that
cannot run them.
"""

__version__ = "0.1.0"

from provstore.dialect import install_sqlite_functions
from provstore.exceptions import (
    BackingStoreError,
    ConfigurationError,
    NoRootVertexError,
    ProvStoreError,
    UnknownHandleError,
    UnsupportedOperationError,
)
from provstore.lineage import (
    LineageBackend,
    LineageGraph,
    LineageTraversal,
    create_lineage_backend,
)
from provstore.query import (
    BackingStore,
    BaseGraph,
    Direction,
    InstructionExecutor,
    NamedGraph,
    Predicate,
    PredicateOperator,
    QueryEnvironment,
    StoreSchema,
)

__all__ = [
    "BackingStore",
    "BackingStoreError",
    "BaseGraph",
    "ConfigurationError",
    "Direction",
    "InstructionExecutor",
    "LineageBackend",
    "LineageGraph",
    "LineageTraversal",
    "NamedGraph",
    "NoRootVertexError",
    "Predicate",
    "PredicateOperator",
    "ProvStoreError",
    "QueryEnvironment",
    "StoreSchema",
    "UnknownHandleError",
    "UnsupportedOperationError",
    "__version__",
    "create_lineage_backend",
    "install_sqlite_functions",
]
