"""
Yanuka - Data Layer Errors.

Every failure the data layer surfaces has its own exception type so callers
can tell "no such document" apart from "table not created yet" apart from
"network is down". Vendor error codes are translated into these kinds by the
store adapters (see yanuka.db.client); nothing above the adapter looks at
vendor codes.
"""

from typing import Any


class DataLayerError(Exception):
    """Base class for all data layer errors."""


# =============================================================================
# Configuration errors (static mistakes, raised before the store is touched)
# =============================================================================


class ConfigurationError(DataLayerError):
    """The collection/relation configuration or a query spec is invalid."""


class UnsupportedOperator(ConfigurationError):
    """A where clause uses an operator the compiler does not implement."""

    def __init__(self, operator: Any):
        self.operator = operator
        super().__init__(f"Unsupported query operator: {operator!r}")


class UnregisteredSubcollection(ConfigurationError):
    """A (parent, subcollection) pair that is not in the relation registry."""

    def __init__(self, parent_collection: str, subcollection: str):
        self.parent_collection = parent_collection
        self.subcollection = subcollection
        super().__init__(
            f"Subcollection not registered: {parent_collection}/{subcollection}"
        )


# =============================================================================
# Runtime errors
# =============================================================================


class NotFound(DataLayerError):
    """No document with the given id exists in the collection."""

    def __init__(self, collection: str, doc_id: str):
        self.collection = collection
        self.doc_id = doc_id
        super().__init__(f"Document not found: {collection}/{doc_id}")


class RelationNotProvisioned(DataLayerError):
    """The physical table backing a collection does not exist (yet)."""

    def __init__(self, table: str):
        self.table = table
        super().__init__(f"Relation '{table}' is not provisioned in the store")


class StoreTransportError(DataLayerError):
    """
    Network, auth or server failure reported by the store.

    The original exception is always chained as __cause__; its code and
    details are copied here so callers don't need vendor imports.
    """

    def __init__(self, message: str, code: str | None = None, details: Any = None):
        self.code = code
        self.details = details
        super().__init__(message)


# =============================================================================
# Blob store errors
# =============================================================================


class BucketNotFound(DataLayerError):
    """The target storage bucket does not exist. Recoverable: try another."""

    def __init__(self, bucket: str):
        self.bucket = bucket
        super().__init__(f"Storage bucket not found: {bucket}")


class UploadError(DataLayerError):
    """Upload failed for a reason other than a missing bucket."""

    def __init__(self, bucket: str, path: str, reason: str = ""):
        self.bucket = bucket
        self.path = path
        message = f"Upload to {bucket}/{path} failed"
        super().__init__(f"{message}: {reason}" if reason else message)
