"""
Yanuka - Document Data Layer.

Document-store vocabulary (collections, where/orderBy/limit, subcollections,
array ops, live changes) over a relational store.
"""

from yanuka.db.changes import ChangeEvent, ChangeFeed, Subscription
from yanuka.db.codec import DocumentCodec, generate_id
from yanuka.db.collections import (
    CollectionDescriptor,
    CollectionRegistry,
    Encoding,
    default_registry,
)
from yanuka.db.errors import (
    BucketNotFound,
    ConfigurationError,
    DataLayerError,
    NotFound,
    RelationNotProvisioned,
    StoreTransportError,
    UnregisteredSubcollection,
    UnsupportedOperator,
    UploadError,
)
from yanuka.db.names import NameTranslator, default_translator
from yanuka.db.query import OrderBy, QuerySpec, WhereClause, compile_query
from yanuka.db.repository import DocumentRepository
from yanuka.db.subcollections import SubcollectionEmulator

__all__ = [
    "BucketNotFound",
    "ChangeEvent",
    "ChangeFeed",
    "CollectionDescriptor",
    "CollectionRegistry",
    "ConfigurationError",
    "DataLayerError",
    "DocumentCodec",
    "DocumentRepository",
    "Encoding",
    "NameTranslator",
    "NotFound",
    "OrderBy",
    "QuerySpec",
    "RelationNotProvisioned",
    "StoreTransportError",
    "SubcollectionEmulator",
    "Subscription",
    "UnregisteredSubcollection",
    "UnsupportedOperator",
    "UploadError",
    "WhereClause",
    "compile_query",
    "default_registry",
    "default_translator",
    "generate_id",
]
