"""
Yanuka - Document Repository.

The CRUD surface the app and admin code use. Callers speak logical
collection and field names and get plain documents back:

    repo = DocumentRepository(store)
    doc = await repo.insert("books", {"title": "Likutei Moharan", "isActive": True})
    books = await repo.list("books", QuerySpec(where=[("isActive", "==", True)], limit=10))
    await repo.update("books", doc["id"], {"title": "Likutei Moharan I"})

Inserts stamp created_at/updated_at unless the caller supplied them (only
dated collections accept that); updates always refresh updated_at.

Concurrency: increment(), array_union() and array_remove() are
read-modify-write helpers with no locking or version check, and so is every
update() of a JSON-encoded collection (the blob is merged in process).
Concurrent writers to the same document can silently overwrite each
other's changes. A high-write deployment should push these down to native
atomic operations (e.g. an RPC doing ``data || jsonb``) instead.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Any, Callable

from yanuka.db.adapter import StoreClient
from yanuka.db.codec import DocumentCodec
from yanuka.db.collections import (
    APP_CONFIG_COLLECTION,
    CREATED_AT_COLUMN,
    ID_COLUMN,
    UPDATED_AT_COLUMN,
    CollectionDescriptor,
    CollectionRegistry,
    default_registry,
)
from yanuka.db.errors import NotFound, RelationNotProvisioned
from yanuka.db.query import (
    NativeFilter,
    Operator,
    QuerySpec,
    WhereClause,
    compile_filters,
    compile_query,
)

logger = logging.getLogger(__name__)


def utc_now() -> str:
    return datetime.now(timezone.utc).isoformat()


class DocumentRepository:
    """
    Document-store style CRUD over a relational StoreClient.

    Args:
        store: The relational store client (injected, never global)
        registry: Collection descriptors; defaults to the application registry
        codec: Row <-> document codec; defaults to one sharing the registry's translator
        clock: Returns the timestamp written to created_at/updated_at
        app_config_id: Primary key of the singleton configuration row
    """

    def __init__(
        self,
        store: StoreClient,
        registry: CollectionRegistry | None = None,
        codec: DocumentCodec | None = None,
        clock: Callable[[], Any] | None = None,
        app_config_id: str = "config",
    ):
        self._store = store
        self.registry = registry or default_registry()
        self.codec = codec or DocumentCodec(self.registry.translator)
        self._clock = clock or utc_now
        self.app_config_id = app_config_id

    @property
    def store(self) -> StoreClient:
        return self._store

    def descriptor(self, collection: str) -> CollectionDescriptor:
        return self.registry.get(collection)

    # =========================================================================
    # Reads
    # =========================================================================

    async def get(self, collection: str, doc_id: str) -> dict:
        """Fetch one document. Raises NotFound if the id doesn't exist."""
        descriptor = self.descriptor(collection)
        rows = await self._store.select(
            descriptor.table,
            [NativeFilter(column=ID_COLUMN, op=Operator.EQ, value=doc_id)],
            limit=1,
        )
        if not rows:
            raise NotFound(collection, doc_id)
        return self.codec.decode(rows[0], descriptor)

    async def list(self, collection: str, spec: QuerySpec | dict | None = None) -> list[dict]:
        """
        Fetch all documents matching the QuerySpec (materialized, not a cursor).

        A missing table reads as [] for optional collections only.
        """
        descriptor = self.descriptor(collection)
        query = compile_query(descriptor, spec, self.registry.translator)
        try:
            rows = await self._store.select(
                descriptor.table,
                query.filters,
                order=query.order,
                limit=query.limit,
                offset=query.offset,
            )
        except RelationNotProvisioned:
            if not descriptor.optional:
                raise
            logger.warning(f"Relation '{descriptor.table}' not provisioned, reading {collection} as empty")
            return []
        return [self.codec.decode(row, descriptor) for row in rows]

    async def count(
        self,
        collection: str,
        where: list[WhereClause | tuple] | None = None,
    ) -> int:
        """
        Count matching documents.

        Uses the store's count-only path when it has one, otherwise counts
        the materialized list.
        """
        where = where or []
        descriptor = self.descriptor(collection)
        count_rows = getattr(self._store, "count", None)
        if count_rows is None:
            return len(await self.list(collection, QuerySpec(where=where)))

        filters = compile_filters(descriptor, where, self.registry.translator)
        try:
            return await count_rows(descriptor.table, filters)
        except RelationNotProvisioned:
            if not descriptor.optional:
                raise
            return 0

    # =========================================================================
    # Writes
    # =========================================================================

    async def insert(self, collection: str, fields: dict) -> dict:
        """Create a document, generating an id when fields has none."""
        descriptor = self.descriptor(collection)
        doc_id, row = self.codec.encode_insert(fields, descriptor)

        now = self._clock()
        row.setdefault(CREATED_AT_COLUMN, now)
        row.setdefault(UPDATED_AT_COLUMN, now)

        stored = await self._store.insert(descriptor.table, row)
        logger.info(f"Inserted {collection}/{doc_id}")
        return self.codec.decode(stored or row, descriptor)

    async def update(self, collection: str, doc_id: str, partial: dict) -> dict:
        """
        Merge-update: only the given fields change, all others are kept.

        JSON-encoded collections read the document first (see module notes
        on lost updates). Raises NotFound if the id doesn't exist.
        """
        descriptor = self.descriptor(collection)
        current = await self.get(collection, doc_id) if descriptor.is_json else None
        return await self._write_update(descriptor, doc_id, partial, current)

    async def delete(self, collection: str, doc_id: str) -> None:
        """Hard delete. Deleting a missing id is not an error."""
        descriptor = self.descriptor(collection)
        await self._store.delete(descriptor.table, doc_id)
        logger.info(f"Deleted {collection}/{doc_id}")

    async def _write_update(
        self,
        descriptor: CollectionDescriptor,
        doc_id: str,
        partial: dict,
        current: dict | None,
    ) -> dict:
        row = self.codec.encode_update(partial, descriptor, current)
        row[UPDATED_AT_COLUMN] = self._clock()

        stored = await self._store.update(descriptor.table, doc_id, row)
        if stored is None:
            raise NotFound(descriptor.logical_name, doc_id)
        logger.info(f"Updated {descriptor.logical_name}/{doc_id}: {sorted(partial)}")
        return self.codec.decode(stored, descriptor)

    # =========================================================================
    # Derived mutations (read-modify-write, not atomic)
    # =========================================================================

    async def increment(self, collection: str, doc_id: str, field: str, delta: int | float = 1) -> dict:
        """Add delta to a numeric field (missing counts as 0)."""
        descriptor = self.descriptor(collection)
        current = await self.get(collection, doc_id)
        value = (current.get(field) or 0) + delta
        return await self._write_update(descriptor, doc_id, {field: value}, current)

    async def array_union(self, collection: str, doc_id: str, field: str, value: Any) -> dict:
        """Append value to an array field unless it's already there."""
        descriptor = self.descriptor(collection)
        current = await self.get(collection, doc_id)
        items = list(current.get(field) or [])
        if value in items:
            return current
        return await self._write_update(descriptor, doc_id, {field: [*items, value]}, current)

    async def array_remove(self, collection: str, doc_id: str, field: str, value: Any) -> dict:
        """Drop every occurrence of value from an array field."""
        descriptor = self.descriptor(collection)
        current = await self.get(collection, doc_id)
        items = list(current.get(field) or [])
        remaining = [item for item in items if item != value]
        if len(remaining) == len(items):
            return current
        return await self._write_update(descriptor, doc_id, {field: remaining}, current)

    # =========================================================================
    # Singleton configuration
    # =========================================================================

    async def get_app_config(self) -> dict | None:
        """
        The app's configuration row, or None.

        A table that hasn't been created yet (common mid-migration) reads as
        "no config" rather than an error.
        """
        descriptor = self.descriptor(APP_CONFIG_COLLECTION)
        try:
            return await self.get(APP_CONFIG_COLLECTION, self.app_config_id)
        except RelationNotProvisioned:
            if not descriptor.optional:
                raise
            logger.warning(f"Relation '{descriptor.table}' not provisioned, no app config")
            return None
        except NotFound:
            return None

    async def update_app_config(self, updates: dict) -> dict:
        """Strict: a missing table or row propagates."""
        return await self.update(APP_CONFIG_COLLECTION, self.app_config_id, updates)
