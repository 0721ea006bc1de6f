"""
Store Adapter Protocols.

Defines the abstract collaborators the data layer runs on:

- StoreClient: table-scoped select/insert/update/delete/count plus realtime
  row-change subscriptions. Queries arrive already compiled (physical
  columns / JSON paths, native operators), so an implementation only maps
  NativeFilter/NativeOrder onto its own query builder.
- BlobStore: bucket-scoped uploads returning a public URL.

The Supabase implementations live in yanuka.db.client; tests use an
in-memory StoreClient.

Implementations must raise RelationNotProvisioned for a missing table and
StoreTransportError for network/auth/server failures, so nothing above this
layer depends on a vendor's error codes.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import TYPE_CHECKING, Any, Awaitable, Callable, Protocol, runtime_checkable

if TYPE_CHECKING:
    from yanuka.db.query import NativeFilter, NativeOrder


class ChangeKind(str, Enum):
    INSERT = "INSERT"
    UPDATE = "UPDATE"
    DELETE = "DELETE"


@dataclass(frozen=True)
class RowChange:
    """A physical row mutation as delivered by the store."""

    kind: ChangeKind
    new: dict | None = None
    old: dict | None = None


RowChangeCallback = Callable[[RowChange], Any]
Unsubscribe = Callable[[], Awaitable[None]]


@runtime_checkable
class StoreClient(Protocol):
    """
    Abstract relational store for the document layer.

    count() is optional in practice: the repository falls back to
    len(select(...)) when an implementation lacks it.
    """

    async def select(
        self,
        table: str,
        filters: list[NativeFilter],
        order: NativeOrder | None = None,
        limit: int | None = None,
        offset: int | None = None,
    ) -> list[dict]:
        """Rows matching all filters (AND), sorted and ranged."""
        ...

    async def insert(self, table: str, row: dict) -> dict:
        """Insert one row, returning the stored representation."""
        ...

    async def update(self, table: str, row_id: str, partial_row: dict) -> dict | None:
        """Write only the given columns. Returns the stored row, None if no row matched."""
        ...

    async def delete(self, table: str, row_id: str) -> None:
        ...

    async def subscribe(self, table: str, callback: RowChangeCallback) -> Unsubscribe:
        """
        Open a change channel for the table.

        Returns an async function that closes the channel.
        """
        ...

    async def count(self, table: str, filters: list[NativeFilter]) -> int:
        """Number of matching rows without materializing them."""
        ...


@runtime_checkable
class BlobStore(Protocol):
    """
    Abstract blob storage for upload flows.

    A missing bucket must raise BucketNotFound (not a generic failure) so
    callers can retry against a fallback bucket.
    """

    async def upload(self, bucket: str, path: str, data: bytes, content_type: str) -> str:
        """Store bytes at bucket/path and return the public URL."""
        ...
