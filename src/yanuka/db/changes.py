"""
Yanuka - Change Feed.

Live-change subscriptions in document-store terms:

    feed = ChangeFeed(store)
    unsubscribe = await feed.subscribe("news", on_event)
    ...
    await unsubscribe()

One native change channel is opened per physical table and shared by every
listener of that table; it is closed when the last listener leaves. Rows
are decoded through the same DocumentCodec used for reads, so listeners
never see physical-shape data.

Guarantees:
- Events for one document arrive in the store's commit order. Nothing is
  promised across documents.
- No replay: a listener only sees events from subscription onward.
- unsubscribe is idempotent, and once it returns the listener is never
  called again. An event already in flight is dropped, not delivered.
"""

import asyncio
import inspect
import itertools
import logging
from typing import Any, Callable

from pydantic import BaseModel

from yanuka.db.adapter import ChangeKind, RowChange, StoreClient, Unsubscribe
from yanuka.db.codec import DocumentCodec
from yanuka.db.collections import CollectionDescriptor, CollectionRegistry, default_registry

logger = logging.getLogger(__name__)


class ChangeEvent(BaseModel):
    """A decoded row mutation."""

    kind: ChangeKind
    new_document: dict | None = None
    old_document: dict | None = None


ChangeListener = Callable[[ChangeEvent], Any]


class Subscription:
    """Handle returned by ChangeFeed.subscribe(). Await it (or .unsubscribe()) to stop."""

    def __init__(self, feed: "ChangeFeed", table: str, token: int):
        self._feed = feed
        self._table = table
        self._token = token
        self.active = True

    async def unsubscribe(self) -> None:
        if not self.active:
            return
        self.active = False
        await self._feed._remove(self._table, self._token)

    async def __call__(self) -> None:
        await self.unsubscribe()


class _Channel:
    """One native subscription and the listeners fanned out from it."""

    def __init__(self, descriptor: CollectionDescriptor):
        self.descriptor = descriptor
        self.listeners: dict[int, tuple[Subscription, ChangeListener]] = {}
        self.close: Unsubscribe | None = None


class ChangeFeed:
    def __init__(
        self,
        store: StoreClient,
        registry: CollectionRegistry | None = None,
        codec: DocumentCodec | None = None,
    ):
        self._store = store
        self.registry = registry or default_registry()
        self.codec = codec or DocumentCodec(self.registry.translator)
        self._channels: dict[str, _Channel] = {}
        self._tokens = itertools.count(1)
        self._lock = asyncio.Lock()
        self._pending: set[asyncio.Task] = set()

    async def subscribe(self, collection: str, on_event: ChangeListener) -> Subscription:
        """
        Register a listener for a collection's changes.

        on_event may be a plain function or a coroutine function; coroutines
        are scheduled on the running loop.
        """
        descriptor = self.registry.get(collection)
        async with self._lock:
            channel = self._channels.get(descriptor.table)
            if channel is None:
                channel = _Channel(descriptor)
                channel.close = await self._store.subscribe(
                    descriptor.table,
                    lambda change, channel=channel: self._dispatch(channel, change),
                )
                self._channels[descriptor.table] = channel
                logger.info(f"Opened change channel for {descriptor.table}")

            token = next(self._tokens)
            subscription = Subscription(self, descriptor.table, token)
            channel.listeners[token] = (subscription, on_event)
        return subscription

    def listener_count(self, collection: str) -> int:
        channel = self._channels.get(self.registry.get(collection).table)
        return len(channel.listeners) if channel else 0

    async def close(self) -> None:
        """Close every open channel."""
        async with self._lock:
            channels = list(self._channels.values())
            self._channels.clear()
            for channel in channels:
                for subscription, _ in channel.listeners.values():
                    subscription.active = False
                channel.listeners.clear()
                if channel.close:
                    await channel.close()

    async def _remove(self, table: str, token: int) -> None:
        async with self._lock:
            channel = self._channels.get(table)
            if channel is None:
                return
            channel.listeners.pop(token, None)
            if channel.listeners:
                return
            del self._channels[table]
            if channel.close:
                await channel.close()
            logger.info(f"Closed change channel for {table}")

    def _dispatch(self, channel: _Channel, change: RowChange) -> None:
        listeners = list(channel.listeners.values())
        if not listeners:
            logger.debug(f"Dropping late {change.kind.value} event on {channel.descriptor.table}")
            return

        event = ChangeEvent(
            kind=change.kind,
            new_document=self.codec.decode(change.new or None, channel.descriptor),
            old_document=self.codec.decode(change.old or None, channel.descriptor),
        )
        for subscription, listener in listeners:
            if not subscription.active:
                continue
            try:
                result = listener(event)
            except Exception:
                logger.exception(f"Change listener failed on {channel.descriptor.table}")
                continue
            if inspect.isawaitable(result):
                task = asyncio.ensure_future(result)
                self._pending.add(task)
                task.add_done_callback(self._listener_done)

    def _listener_done(self, task: asyncio.Task) -> None:
        self._pending.discard(task)
        if not task.cancelled() and task.exception() is not None:
            logger.error(
                "Async change listener failed",
                exc_info=task.exception(),
            )
