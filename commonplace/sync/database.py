"""
commonplace.sync.database — Cache-first Database Mediator
==========================================================

Go-between for application code and the document backend.  It keeps
consumers independent of the backend, and enforces the record conventions
every write relies on (``_modified`` stamping, soft deletes).

Collection subscriptions emit from the local cache first, then listen for
records modified after the newest cached one and merge each update batch
into the previous result by ``_id``::

    db = Database(store, LocalCache())
    async with db.subscribe_collection("howtos") as sub:
        async for howtos in sub:        # newest first, deletes filtered
            ...
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import AsyncGenerator, Iterable, Mapping
from types import MappingProxyType
from typing import Any

from commonplace.constants import DELETED_FIELD, ID_FIELD, MODIFIED_FIELD
from commonplace.store.documents import DocumentStore, Record
from commonplace.store.local_cache import LocalCache
from commonplace.store.paths import collection_path, split_document_path, timestamp
from commonplace.sync.subscription import Subscription

logger = logging.getLogger(__name__)

Snapshot = tuple[Mapping[str, Any], ...]


# ---------------------------------------------------------------------------
# Record helpers
# ---------------------------------------------------------------------------
def is_deleted(record: Mapping[str, Any]) -> bool:
    return bool(record.get(DELETED_FIELD))


def pre_process(records: Iterable[Record]) -> list[Record]:
    """Drop tombstones, keeping order."""
    return [r for r in records if not is_deleted(r)]


def merge_records(cached: list[Record], updates: Iterable[Record]) -> list[Record]:
    """Upsert *updates* into *cached* by ``_id``; tombstones remove their id.

    Returns the merged records ordered oldest ``_modified`` first.  At most
    one entry per id survives, always the one applied last.
    """
    table: dict[str, Record] = {r[ID_FIELD]: r for r in cached}
    for record in updates:
        if is_deleted(record):
            table.pop(record[ID_FIELD], None)
        else:
            table[record[ID_FIELD]] = record
    return sorted(table.values(), key=lambda r: r.get(MODIFIED_FIELD) or "")


def _freeze(records: list[Record]) -> Snapshot:
    """Newest-first, read-only view of *records*."""
    return tuple(MappingProxyType(dict(r)) for r in reversed(records))


def _freeze_one(record: Record | None) -> Mapping[str, Any] | None:
    if record is None or is_deleted(record):
        return None
    return MappingProxyType(dict(record))


# ---------------------------------------------------------------------------
# Mediator
# ---------------------------------------------------------------------------
class Database:
    """Cache-first reads and convention-enforcing writes over a document store.

    Parameters
    ----------
    store : DocumentStore
        The remote document backend.
    cache : LocalCache, optional
        Client-side record cache.  A fresh, empty cache is used if omitted.
    """

    def __init__(self, store: DocumentStore, cache: LocalCache | None = None) -> None:
        self._store = store
        self._cache = cache if cache is not None else LocalCache()

    @property
    def cache(self) -> LocalCache:
        return self._cache

    @property
    def store(self) -> DocumentStore:
        return self._store

    # -------------------------------------------------------------------
    # Subscriptions
    # -------------------------------------------------------------------
    def subscribe_collection(self, path: str) -> Subscription[Snapshot]:
        """Stream the live records of collection *path*, newest first.

        The first snapshot comes from the local cache; an empty first
        snapshot means nothing is cached yet, not that the collection is
        empty.  Every later snapshot follows a backend update.  A failed
        backend read is raised from the iteration and ends the subscription.
        """
        return Subscription(self._collection_updates(collection_path(path)))

    def subscribe_document(self, path: str) -> Subscription[Mapping[str, Any] | None]:
        """Stream the record at *path*: cached value first, then live values.

        ``None`` means absent (or deleted).
        """
        split_document_path(path)
        return Subscription(self._document_updates(path))

    async def _collection_updates(self, path: str) -> AsyncGenerator[Snapshot, None]:
        cached = pre_process(self._cache.get_collection(path))
        yield _freeze(cached)

        # Unbounded when nothing is cached, incremental otherwise
        latest = self._cache.latest_modified(path)
        updates: asyncio.Queue[list[Record] | Exception] = asyncio.Queue()
        unsubscribe = self._store.listen_collection(
            path, updates.put_nowait, after=latest, on_error=updates.put_nowait
        )
        logger.debug("Subscribed to '%s' after %s", path, latest or "start")
        try:
            while True:
                batches = [await updates.get()]
                while not updates.empty():
                    batches.append(updates.get_nowait())
                for batch in batches:
                    if isinstance(batch, Exception):
                        raise batch
                    self._cache.put(path, batch)
                    cached = merge_records(cached, batch)
                yield _freeze(cached)
        finally:
            unsubscribe()
            logger.debug("Unsubscribed from '%s'", path)

    async def _document_updates(
        self, path: str
    ) -> AsyncGenerator[Mapping[str, Any] | None, None]:
        yield _freeze_one(self._cache.get_document(path))

        updates: asyncio.Queue[Record | None | Exception] = asyncio.Queue()
        unsubscribe = self._store.listen_document(
            path, updates.put_nowait, on_error=updates.put_nowait
        )
        try:
            while True:
                record = await updates.get()
                if isinstance(record, Exception):
                    raise record
                if record is not None:
                    self._cache.put_document(path, record)
                yield _freeze_one(record)
        finally:
            unsubscribe()

    # -------------------------------------------------------------------
    # Writes
    # -------------------------------------------------------------------
    async def set_doc(self, path: str, fields: Mapping[str, Any]) -> None:
        """Merge *fields* into the record at *path*, stamping ``_modified``."""
        split_document_path(path)
        data = {**fields, MODIFIED_FIELD: timestamp()}
        await self._store.set_document(path, data, merge=True)
        await self._refresh_cached(path)

    async def delete_doc(self, path: str) -> None:
        """Soft-delete the record at *path*.

        Records are emptied and flagged instead of removed so clients that
        cached them learn about the delete through the normal update path.
        """
        split_document_path(path)
        tombstone = {MODIFIED_FIELD: timestamp(), DELETED_FIELD: True}
        await self._store.set_document(path, tombstone, merge=False)
        await self._refresh_cached(path)

    async def _refresh_cached(self, path: str) -> None:
        # Cache the stored record; a merge keeps fields this cache may not hold
        record = await self._store.get_document(path)
        if record is not None:
            self._cache.put_document(path, record)

    # -------------------------------------------------------------------
    # One-shot reads
    # -------------------------------------------------------------------
    async def query_collection(
        self, path: str, field: str, operator: str, value: Any
    ) -> list[Record]:
        """Return records of *path* where ``field <operator> value``.

        Bypasses the local cache entirely.
        """
        return await self._store.query(path, field, operator, value)
