"""Custom exception hierarchy for the provstore query layer."""


class ProvStoreError(Exception):
    """Base exception for all provstore errors."""


class ConfigurationError(ProvStoreError):
    """Raised when a collaborator is missing or an identifier is null/empty."""


class UnknownHandleError(ProvStoreError):
    """Raised when a graph or metadata handle was never created."""


class UnsupportedOperationError(ProvStoreError):
    """Raised for instructions the current backend does not support."""


class BackingStoreError(ProvStoreError):
    """Raised when a statement fails against the backing store."""


class NoRootVertexError(ProvStoreError):
    """Raised when a lineage start predicate matches no vertex."""
