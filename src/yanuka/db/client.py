"""
Yanuka - Supabase Client.

Concrete StoreClient and BlobStore on the Supabase async client. This is the
only module that knows PostgREST / Storage error codes; they are translated
into the data layer's error kinds here.
"""

import inspect
import logging

import httpx
from postgrest.exceptions import APIError
from postgrest.types import CountMethod
from storage3.utils import StorageException
from supabase import AsyncClient, acreate_client

from yanuka.config import settings
from yanuka.db.adapter import ChangeKind, RowChange, RowChangeCallback, Unsubscribe
from yanuka.db.changes import ChangeFeed
from yanuka.db.collections import ID_COLUMN, Encoding, default_registry
from yanuka.db.errors import (
    BucketNotFound,
    DataLayerError,
    RelationNotProvisioned,
    StoreTransportError,
    UnsupportedOperator,
    UploadError,
)
from yanuka.db.query import DEFAULT_PAGE_SIZE, NativeFilter, NativeOrder, Operator
from yanuka.db.repository import DocumentRepository

logger = logging.getLogger(__name__)

# PostgREST "table not in schema cache" and PostgreSQL undefined_table
MISSING_RELATION_CODES = {"PGRST205", "42P01"}

# Operator -> PostgREST query builder method
FILTER_METHODS = {
    Operator.EQ: "eq",
    Operator.NEQ: "neq",
    Operator.GT: "gt",
    Operator.GTE: "gte",
    Operator.LT: "lt",
    Operator.LTE: "lte",
}

# Singleton client instance
_client: AsyncClient | None = None


async def get_client() -> AsyncClient:
    """
    Get the Supabase async client.

    Uses singleton pattern to reuse connection. Only wiring code should call
    this; the data layer receives a StoreClient explicitly.
    """
    global _client

    if _client is None:
        _client = await acreate_client(
            settings.supabase_url,
            settings.supabase_anon_key,
        )

    return _client


async def build_repository() -> DocumentRepository:
    """Repository wired to Supabase with the application's registry."""
    client = await get_client()
    registry = default_registry(Encoding(settings.default_encoding))
    return DocumentRepository(
        SupabaseStoreClient(client),
        registry=registry,
        app_config_id=settings.app_config_id,
    )


async def build_change_feed() -> ChangeFeed:
    client = await get_client()
    return ChangeFeed(
        SupabaseStoreClient(client),
        registry=default_registry(Encoding(settings.default_encoding)),
    )


# =============================================================================
# Error translation
# =============================================================================


def translate_error(exc: Exception, table: str) -> DataLayerError:
    """Map a PostgREST / transport exception onto a data layer error kind."""
    if isinstance(exc, APIError):
        if exc.code in MISSING_RELATION_CODES:
            return RelationNotProvisioned(table)
        return StoreTransportError(
            exc.message or str(exc),
            code=exc.code,
            details=exc.details,
        )
    return StoreTransportError(f"{type(exc).__name__}: {exc}")


def parse_realtime_payload(payload: dict) -> RowChange | None:
    """
    Normalize a postgres_changes payload.

    Accepts the realtime-py shape ({"data": {"type", "record", "old_record"}})
    and the JS-style shape ({"eventType", "new", "old"}).
    """
    data = payload.get("data", payload)
    kind = data.get("type") or data.get("eventType")
    try:
        kind = ChangeKind(str(kind).upper())
    except ValueError:
        logger.warning(f"Ignoring realtime payload with unknown event type: {kind!r}")
        return None
    new = data.get("record") or data.get("new") or None
    old = data.get("old_record") or data.get("old") or None
    return RowChange(kind=kind, new=new, old=old)


# =============================================================================
# StoreClient
# =============================================================================


class SupabaseStoreClient:
    """StoreClient over supabase-py's async PostgREST + Realtime clients."""

    def __init__(self, client: AsyncClient, schema: str = "public"):
        self._client = client
        self.schema = schema

    async def _execute(self, table: str, request):
        try:
            return await request.execute()
        except (APIError, httpx.HTTPError) as exc:
            error = translate_error(exc, table)
            if isinstance(error, RelationNotProvisioned):
                logger.warning(f"Relation '{table}' is not provisioned")
            else:
                logger.error(f"Database error on {table}: {exc}")
            raise error from exc

    @staticmethod
    def _apply_filters(query, filters: list[NativeFilter]):
        for f in filters:
            method = FILTER_METHODS.get(f.op)
            if method is None:
                raise UnsupportedOperator(f.op)
            query = getattr(query, method)(f.column, f.value)
        return query

    async def select(
        self,
        table: str,
        filters: list[NativeFilter],
        order: NativeOrder | None = None,
        limit: int | None = None,
        offset: int | None = None,
    ) -> list[dict]:
        if limit == 0:
            return []

        query = self._apply_filters(self._client.table(table).select("*"), filters)

        if order:
            query = query.order(order.column, desc=order.descending)

        if offset is not None:
            page = limit or DEFAULT_PAGE_SIZE
            query = query.range(offset, offset + page - 1)
        elif limit is not None:
            query = query.limit(limit)

        response = await self._execute(table, query)
        return response.data or []

    async def insert(self, table: str, row: dict) -> dict:
        response = await self._execute(table, self._client.table(table).insert(row))
        return response.data[0] if response.data else row

    async def update(self, table: str, row_id: str, partial_row: dict) -> dict | None:
        query = self._client.table(table).update(partial_row).eq(ID_COLUMN, row_id)
        response = await self._execute(table, query)
        return response.data[0] if response.data else None

    async def delete(self, table: str, row_id: str) -> None:
        query = self._client.table(table).delete().eq(ID_COLUMN, row_id)
        await self._execute(table, query)

    async def count(self, table: str, filters: list[NativeFilter]) -> int:
        query = self._client.table(table).select("*", count=CountMethod.exact, head=True)
        response = await self._execute(table, self._apply_filters(query, filters))
        return response.count or 0

    async def subscribe(self, table: str, callback: RowChangeCallback) -> Unsubscribe:
        channel = self._client.channel(f"{table}_changes")

        def handle(payload: dict) -> None:
            change = parse_realtime_payload(payload)
            if change is not None:
                callback(change)

        channel.on_postgres_changes("*", schema=self.schema, table=table, callback=handle)
        await channel.subscribe()

        async def unsubscribe() -> None:
            await self._client.remove_channel(channel)

        return unsubscribe


# =============================================================================
# BlobStore
# =============================================================================


def is_missing_bucket(exc: Exception) -> bool:
    detail = exc.args[0] if exc.args else exc
    if isinstance(detail, dict):
        text = f"{detail.get('error', '')} {detail.get('message', '')}"
    else:
        text = str(detail)
    return "bucket not found" in text.lower()


class SupabaseBlobStore:
    """BlobStore over Supabase Storage."""

    def __init__(self, client: AsyncClient):
        self._client = client

    async def upload(self, bucket: str, path: str, data: bytes, content_type: str) -> str:
        bucket_api = self._client.storage.from_(bucket)
        try:
            await bucket_api.upload(path, data, {"content-type": content_type, "upsert": "true"})
        except (StorageException, httpx.HTTPError) as exc:
            if is_missing_bucket(exc):
                raise BucketNotFound(bucket) from exc
            raise UploadError(bucket, path, str(exc)) from exc

        url = bucket_api.get_public_url(path)
        if inspect.isawaitable(url):
            url = await url
        logger.info(f"Uploaded {bucket}/{path}")
        return url
