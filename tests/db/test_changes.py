"""
Tests for ChangeFeed — decoded live-change delivery.
"""

import asyncio
import logging

import pytest

from yanuka.db.adapter import ChangeKind, RowChange
from yanuka.db.changes import ChangeFeed


def _run(coro):
    """Run an async coroutine synchronously (no pytest-asyncio needed)."""
    return asyncio.run(coro)


@pytest.fixture
def feed(store, registry):
    return ChangeFeed(store, registry=registry)


class TestDelivery:
    def test_insert_update_delete_are_decoded(self, feed, repo):
        events = []

        async def scenario():
            await feed.subscribe("books", events.append)
            doc = await repo.insert("books", {"title": "Alpha", "isActive": True})
            await repo.update("books", doc["id"], {"title": "Beta"})
            await repo.delete("books", doc["id"])
            return doc

        doc = _run(scenario())
        assert [e.kind for e in events] == [ChangeKind.INSERT, ChangeKind.UPDATE, ChangeKind.DELETE]

        inserted = events[0].new_document
        assert inserted["id"] == doc["id"]
        assert inserted["title"] == "Alpha"
        assert inserted["isActive"] is True
        assert "data" not in inserted
        assert "active" not in inserted

        assert events[1].new_document["title"] == "Beta"
        assert events[1].old_document["title"] == "Alpha"
        assert events[2].new_document is None
        assert events[2].old_document["id"] == doc["id"]

    def test_only_subscribed_collection(self, feed, repo):
        events = []

        async def scenario():
            await feed.subscribe("news", events.append)
            await repo.insert("books", {"title": "Alpha"})
            await repo.insert("news", {"headline": "Hello"})

        _run(scenario())
        assert [e.new_document["headline"] for e in events] == ["Hello"]

    def test_no_replay_of_earlier_changes(self, feed, repo):
        events = []

        async def scenario():
            await repo.insert("books", {"title": "Before"})
            await feed.subscribe("books", events.append)
            await repo.insert("books", {"title": "After"})

        _run(scenario())
        assert [e.new_document["title"] for e in events] == ["After"]

    def test_async_listener(self, feed, repo):
        seen = []

        async def on_event(event):
            await asyncio.sleep(0)
            seen.append(event.new_document["title"])

        async def scenario():
            await feed.subscribe("books", on_event)
            await repo.insert("books", {"title": "Alpha"})
            for _ in range(3):
                await asyncio.sleep(0)

        _run(scenario())
        assert seen == ["Alpha"]

    def test_failing_listener_does_not_block_others(self, feed, repo, caplog):
        events = []

        def broken(event):
            raise RuntimeError("listener bug")

        async def scenario():
            await feed.subscribe("books", broken)
            await feed.subscribe("books", events.append)
            await repo.insert("books", {"title": "Alpha"})

        with caplog.at_level(logging.ERROR, logger="yanuka.db.changes"):
            _run(scenario())
        assert len(events) == 1
        assert "Change listener failed" in caplog.text


class TestUnsubscribe:
    def test_listeners_are_independent(self, feed, repo):
        first, second = [], []

        async def scenario():
            sub_first = await feed.subscribe("books", first.append)
            await feed.subscribe("books", second.append)
            await repo.insert("books", {"title": "One"})
            await sub_first()
            await repo.insert("books", {"title": "Two"})

        _run(scenario())
        assert [e.new_document["title"] for e in first] == ["One"]
        assert [e.new_document["title"] for e in second] == ["One", "Two"]

    def test_unsubscribe_is_idempotent(self, feed, store):
        async def scenario():
            sub = await feed.subscribe("books", lambda event: None)
            await sub.unsubscribe()
            await sub.unsubscribe()
            await sub()

        _run(scenario())
        assert store.channels_closed == 1

    def test_one_channel_per_table(self, feed, store):
        async def scenario():
            first = await feed.subscribe("books", lambda event: None)
            second = await feed.subscribe("books", lambda event: None)
            assert feed.listener_count("books") == 2
            assert store.channels_opened == 1
            await first()
            assert store.channels_closed == 0
            await second()

        _run(scenario())
        assert store.channels_closed == 1
        assert feed.listener_count("books") == 0

    def test_late_event_is_dropped(self, feed, store):
        events = []

        async def scenario():
            sub = await feed.subscribe("books", events.append)
            native_callback = store.callbacks["books"][0]
            await sub()
            native_callback(RowChange(kind=ChangeKind.INSERT, new={"id": "late", "title": "x"}))

        _run(scenario())
        assert events == []

    def test_close_stops_everything(self, feed, store, repo):
        events = []

        async def scenario():
            sub = await feed.subscribe("books", events.append)
            await feed.subscribe("news", events.append)
            await feed.close()
            await repo.insert("books", {"title": "Alpha"})
            assert sub.active is False
            await sub()

        _run(scenario())
        assert events == []
        assert store.channels_closed == 2
