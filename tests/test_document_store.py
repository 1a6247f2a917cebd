"""
tests/test_document_store.py — SqlDocumentStore Tests
======================================================

Runs the store against a file-backed SQLite database: writes, tombstones,
one-shot queries, change publication and watchers.
"""

from __future__ import annotations

import asyncio
from unittest.mock import patch

import pytest

from commonplace.store.changes import ChangeKind
from commonplace.store.documents import load_collection, write_document
from commonplace.store.paths import InvalidPathError


def run_async(coro):
    """Run an async coroutine in a fresh event loop."""
    return asyncio.run(coro)


class TestWrites:

    def test_create_stamps_reserved_fields(self, store):
        async def scenario():
            change = await store.set_document("howtos/a", {"title": "A"})
            return change, await store.get_document("howtos/a")

        change, record = run_async(scenario())
        assert change.kind is ChangeKind.CREATED
        assert record["_id"] == "a"
        assert record["title"] == "A"
        assert record["_modified"].endswith("+00:00")

    def test_merge_keeps_existing_fields(self, store):
        async def scenario():
            await store.set_document("howtos/a", {"title": "A", "slug": "a"})
            change = await store.set_document("howtos/a", {"title": "B"})
            return change, await store.get_document("howtos/a")

        change, record = run_async(scenario())
        assert change.kind is ChangeKind.UPDATED
        assert record["title"] == "B"
        assert record["slug"] == "a"

    def test_replace_without_merge(self, store):
        async def scenario():
            await store.set_document("howtos/a", {"title": "A", "slug": "a"})
            await store.set_document("howtos/a", {"title": "B"}, merge=False)
            return await store.get_document("howtos/a")

        record = run_async(scenario())
        assert "slug" not in record

    def test_tombstone_then_write_starts_fresh(self, store):
        async def scenario():
            await store.set_document("howtos/a", {"title": "A", "slug": "a"})
            deleted = await store.set_document(
                "howtos/a", {"_deleted": True}, merge=False
            )
            tomb = await store.get_document("howtos/a")
            await store.set_document("howtos/a", {"title": "again"})
            return deleted, tomb, await store.get_document("howtos/a")

        deleted, tomb, revived = run_async(scenario())
        assert deleted.kind is ChangeKind.DELETED
        assert set(tomb) == {"_id", "_modified", "_deleted"}
        assert revived["title"] == "again"
        assert "slug" not in revived
        assert "_deleted" not in revived

    def test_explicit_modified_is_kept(self, store):
        stamp = "2024-01-01T00:00:00.000000+00:00"

        async def scenario():
            await store.set_document("howtos/a", {"_modified": stamp})
            return await store.get_document("howtos/a")

        assert run_async(scenario())["_modified"] == stamp

    def test_stale_modified_is_restamped(self, store):
        stamp = "2024-01-01T00:00:00.000000+00:00"

        async def scenario():
            await store.set_document("howtos/a", {"_modified": stamp, "title": "A"})
            await store.set_document("howtos/a", {"_modified": stamp, "title": "B"})
            return await store.get_document("howtos/a")

        record = run_async(scenario())
        assert record["title"] == "B"
        assert record["_modified"] > stamp

    def test_every_update_advances_modified(self, store):
        async def scenario():
            stamps = []
            for i in range(5):
                await store.set_document("howtos/a", {"n": i})
                stamps.append((await store.get_document("howtos/a"))["_modified"])
            return stamps

        stamps = run_async(scenario())
        assert stamps == sorted(set(stamps))

    def test_add_document_generates_ids(self, store):
        async def scenario():
            first = await store.add_document("emails", {"to": "a@example.org"})
            second = await store.add_document("emails", {"to": "b@example.org"})
            return first, second, await store.get_collection("emails")

        first, second, records = run_async(scenario())
        assert first != second
        assert {r["_id"] for r in records} == {first, second}

    def test_document_path_required(self, store):
        with pytest.raises(InvalidPathError):
            run_async(store.set_document("howtos", {"title": "A"}))

    def test_missing_document_is_none(self, store):
        assert run_async(store.get_document("howtos/nope")) is None

    def test_writes_publish_changes(self, store, feed):
        received = []

        async def scenario():
            feed.register("howtos", received.append)
            await store.set_document("howtos/a", {"title": "A"})
            await store.set_document("howtos/a", {"title": "B"})
            await asyncio.sleep(0)

        run_async(scenario())
        assert [c.kind for c in received] == [ChangeKind.CREATED, ChangeKind.UPDATED]
        assert all(c.doc_id == "a" for c in received)


class TestReads:

    def test_collection_ordered_oldest_first(self, db_engine):
        write_document(db_engine, "howtos", "b", {"_modified": "2024-01-02T00:00:00.000000+00:00"})
        write_document(db_engine, "howtos", "a", {"_modified": "2024-01-01T00:00:00.000000+00:00"})
        write_document(db_engine, "howtos", "c", {"_modified": "2024-01-03T00:00:00.000000+00:00"})
        assert [r["_id"] for r in load_collection(db_engine, "howtos")] == ["a", "b", "c"]

    def test_after_is_exclusive(self, db_engine):
        write_document(db_engine, "howtos", "a", {"_modified": "2024-01-01T00:00:00.000000+00:00"})
        write_document(db_engine, "howtos", "b", {"_modified": "2024-01-02T00:00:00.000000+00:00"})
        records = load_collection(
            db_engine, "howtos", after="2024-01-01T00:00:00.000000+00:00"
        )
        assert [r["_id"] for r in records] == ["b"]

    def test_collection_includes_tombstones(self, store):
        async def scenario():
            await store.set_document("howtos/a", {"title": "A"})
            await store.set_document("howtos/a", {"_deleted": True}, merge=False)
            return await store.get_collection("howtos")

        records = run_async(scenario())
        assert records[0]["_deleted"] is True

    def test_query_filters_and_skips_tombstones(self, store):
        async def scenario():
            await store.set_document("howtos/a", {"moderation": "accepted"})
            await store.set_document("howtos/b", {"moderation": "draft"})
            await store.set_document("howtos/c", {"moderation": "accepted"})
            await store.set_document("howtos/c", {"_deleted": True}, merge=False)
            return await store.query("howtos", "moderation", "==", "accepted")

        assert [r["_id"] for r in run_async(scenario())] == ["a"]

    def test_query_rejects_unknown_operator(self, store):
        with pytest.raises(ValueError):
            run_async(store.query("howtos", "moderation", "like", "a%"))


class TestWatchers:

    def test_collection_watcher_delivers_initial_and_updates(self, store, feed):
        async def scenario():
            await store.set_document("howtos/a", {"title": "A"})
            deliveries: asyncio.Queue = asyncio.Queue()
            unsubscribe = store.listen_collection("howtos", deliveries.put_nowait)
            initial = await asyncio.wait_for(deliveries.get(), 5)
            await store.set_document("howtos/b", {"title": "B"})
            update = await asyncio.wait_for(deliveries.get(), 5)
            unsubscribe()
            return initial, update, feed.listener_count("howtos")

        initial, update, remaining = run_async(scenario())
        assert [r["_id"] for r in initial] == ["a"]
        assert [r["_id"] for r in update] == ["a", "b"]
        assert remaining == 0

    def test_collection_watcher_respects_after(self, store):
        async def scenario():
            await store.set_document("howtos/a", {"title": "A"})
            latest = (await store.get_document("howtos/a"))["_modified"]
            deliveries: asyncio.Queue = asyncio.Queue()
            unsubscribe = store.listen_collection("howtos", deliveries.put_nowait, after=latest)
            initial = await asyncio.wait_for(deliveries.get(), 5)
            unsubscribe()
            return initial

        assert run_async(scenario()) == []

    def test_failed_fetch_reported_to_listener(self, store):
        async def scenario():
            deliveries: asyncio.Queue = asyncio.Queue()
            errors: asyncio.Queue = asyncio.Queue()
            with patch(
                "commonplace.store.documents.load_collection",
                side_effect=RuntimeError("db down"),
            ):
                unsubscribe = store.listen_collection(
                    "howtos", deliveries.put_nowait, on_error=errors.put_nowait
                )
                error = await asyncio.wait_for(errors.get(), 5)
            unsubscribe()
            return error, deliveries.empty()

        error, nothing_delivered = run_async(scenario())
        assert isinstance(error, RuntimeError)
        assert nothing_delivered

    def test_document_watcher_ignores_other_documents(self, store):
        async def scenario():
            deliveries: asyncio.Queue = asyncio.Queue()
            unsubscribe = store.listen_document("howtos/a", deliveries.put_nowait)
            initial = await asyncio.wait_for(deliveries.get(), 5)
            await store.set_document("howtos/b", {"title": "B"})
            await store.set_document("howtos/a", {"title": "A"})
            update = await asyncio.wait_for(deliveries.get(), 5)
            unsubscribe()
            return initial, update, deliveries.empty()

        initial, update, drained = run_async(scenario())
        assert initial is None
        assert update["title"] == "A"
        assert drained
