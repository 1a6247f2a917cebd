"""
commonplace.store.documents — Document Store over SQLAlchemy
=============================================================

The remote document API consumed by :class:`commonplace.sync.database.Database` and
the notification triggers.  Records live in the ``documents`` table; every
write stamps ``_modified`` and announces a
:class:`~commonplace.store.changes.Change`.

The sync functions at module level do the DB work and are shipped to a
worker thread by :class:`SqlDocumentStore` via ``run_db``.
"""

from __future__ import annotations

import asyncio
import logging
import uuid
from collections.abc import Awaitable, Callable
from datetime import UTC, datetime, timedelta
from typing import Any, Protocol

from sqlalchemy import Engine, select

from commonplace.constants import DELETED_FIELD, ID_FIELD, MODIFIED_FIELD
from commonplace.database.engine import get_session, run_db
from commonplace.database.models import Document
from commonplace.store.changes import Change, ChangeFeed, ChangeKind
from commonplace.store.listener import notify_before_commit
from commonplace.store.paths import (
    collection_path,
    parse_timestamp,
    split_document_path,
    timestamp,
)
from commonplace.store.query import build_filter

logger = logging.getLogger(__name__)

Record = dict[str, Any]
Unsubscribe = Callable[[], None]
ErrorCallback = Callable[[Exception], None]


class DocumentStore(Protocol):
    """What the sync layer and triggers need from a document backend."""

    async def get_document(self, path: str) -> Record | None: ...

    async def get_collection(
        self, path: str, after: str | None = None
    ) -> list[Record]: ...

    async def set_document(
        self, path: str, data: Record, merge: bool = True
    ) -> Change: ...

    async def add_document(self, path: str, data: Record) -> str: ...

    async def query(
        self, path: str, field: str, op: str, value: Any
    ) -> list[Record]: ...

    def listen_collection(
        self,
        path: str,
        callback: Callable[[list[Record]], None],
        after: str | None = None,
        on_error: ErrorCallback | None = None,
    ) -> Unsubscribe: ...

    def listen_document(
        self,
        path: str,
        callback: Callable[[Record | None], None],
        on_error: ErrorCallback | None = None,
    ) -> Unsubscribe: ...


# ---------------------------------------------------------------------------
# Sync DB helpers (run via run_db)
# ---------------------------------------------------------------------------
def _to_record(row: Document) -> Record:
    record = dict(row.data)
    record.setdefault(ID_FIELD, row.id)
    return record


def load_document(engine: Engine, collection: str, doc_id: str) -> Record | None:
    with get_session(engine) as session:
        row = session.get(Document, (collection, doc_id))
        return _to_record(row) if row is not None else None


def load_collection(
    engine: Engine,
    collection: str,
    after: str | None = None,
    include_deleted: bool = True,
) -> list[Record]:
    """Return records of *collection*, oldest ``_modified`` first.

    *after* is an exclusive lower bound on ``_modified``.  Tombstones are
    included unless *include_deleted* is False.
    """
    stmt = select(Document).where(Document.collection == collection)
    if after is not None:
        stmt = stmt.where(Document.modified > parse_timestamp(after))
    if not include_deleted:
        stmt = stmt.where(Document.deleted.is_(False))
    stmt = stmt.order_by(Document.modified.asc(), Document.id.asc())

    with get_session(engine) as session:
        return [_to_record(row) for row in session.scalars(stmt).all()]


def _next_stamp(requested: str | None, previous: str | None) -> str:
    """Pick the ``_modified`` for a write; always later than *previous*."""
    if previous is None:
        return requested or timestamp()
    floor = parse_timestamp(previous)
    if requested and parse_timestamp(requested) > floor:
        return requested
    now = datetime.now(UTC)
    if now <= floor:
        now = floor + timedelta(microseconds=1)
    return timestamp(now)


def write_document(
    engine: Engine,
    collection: str,
    doc_id: str,
    data: Record,
    *,
    merge: bool = True,
    pg_notify: bool = False,
) -> Change:
    """Create or update ``collection/doc_id`` and return the resulting change.

    With *merge* the fields of *data* are laid over the stored record;
    without it the record is replaced.  A tombstone is never merged into: a
    write to a deleted record starts from an empty record.

    ``_modified`` comes from *data* when present and newer than the stored
    record's; otherwise it is stamped now.  Every write to an existing
    record therefore advances its ``_modified``.
    """
    deleting = bool(data.get(DELETED_FIELD))

    with get_session(engine) as session:
        row = session.get(Document, (collection, doc_id))
        previous = row.data.get(MODIFIED_FIELD) if row is not None else None
        stamp = _next_stamp(data.get(MODIFIED_FIELD), previous)
        if row is None:
            kind = ChangeKind.DELETED if deleting else ChangeKind.CREATED
            body: Record = {}
        else:
            kind = ChangeKind.DELETED if deleting else ChangeKind.UPDATED
            body = dict(row.data) if merge and not row.deleted else {}

        body.update(data)
        body[ID_FIELD] = doc_id
        body[MODIFIED_FIELD] = stamp

        if row is None:
            session.add(
                Document(
                    collection=collection,
                    id=doc_id,
                    data=body,
                    modified=parse_timestamp(stamp),
                    deleted=deleting,
                )
            )
        else:
            row.data = body
            row.modified = parse_timestamp(stamp)
            row.deleted = deleting

        change = Change(collection, doc_id, kind)
        if pg_notify:
            notify_before_commit(session, change)

    logger.debug("Wrote %s/%s (%s)", collection, doc_id, kind.value)
    return change


# ---------------------------------------------------------------------------
# Watchers
# ---------------------------------------------------------------------------
class _Watcher:
    """Re-runs *fetch* whenever it is marked dirty and hands the result on.

    Fetches never overlap, so deliveries arrive in order; changes that land
    while a fetch is in flight collapse into a single re-fetch.  The first
    fetch runs immediately.

    A failed fetch is handed to *on_error* and ends the watch.  Without
    *on_error* the failure is logged and the next change retries.
    """

    def __init__(
        self,
        fetch: Callable[[], Awaitable[Any]],
        callback: Callable[[Any], None],
        name: str,
        on_error: ErrorCallback | None = None,
    ) -> None:
        self._fetch = fetch
        self._callback = callback
        self._on_error = on_error
        self._dirty = asyncio.Event()
        self._dirty.set()
        self._task = asyncio.get_running_loop().create_task(self._run(), name=name)

    def mark_dirty(self, change: Change | None = None) -> None:
        self._dirty.set()

    async def _run(self) -> None:
        while True:
            await self._dirty.wait()
            self._dirty.clear()
            try:
                result = await self._fetch()
            except Exception as exc:
                logger.exception("Watcher '%s' fetch failed", self._task.get_name())
                if self._on_error is not None:
                    self._on_error(exc)
                    return
                continue
            self._callback(result)

    def cancel(self) -> None:
        self._task.cancel()


# ---------------------------------------------------------------------------
# Store
# ---------------------------------------------------------------------------
class SqlDocumentStore:
    """Async document API over the ``documents`` table.

    Parameters
    ----------
    engine : Engine
        SQLAlchemy engine for database access.
    feed : ChangeFeed
        Where change notifications are published and listened for.
    pg_notify : bool
        When True, writes announce changes with PostgreSQL NOTIFY and rely on
        a :class:`~commonplace.store.listener.PgChangeListener` to feed them
        back; otherwise changes are published to *feed* directly.
    """

    def __init__(self, engine: Engine, feed: ChangeFeed, pg_notify: bool = False) -> None:
        self._engine = engine
        self._feed = feed
        self._pg_notify = pg_notify

    @property
    def feed(self) -> ChangeFeed:
        return self._feed

    # -------------------------------------------------------------------
    # Reads
    # -------------------------------------------------------------------
    async def get_document(self, path: str) -> Record | None:
        collection, doc_id = split_document_path(path)
        return await run_db(load_document, self._engine, collection, doc_id)

    async def get_collection(self, path: str, after: str | None = None) -> list[Record]:
        return await run_db(
            load_collection, self._engine, collection_path(path), after
        )

    async def query(self, path: str, field: str, op: str, value: Any) -> list[Record]:
        """One-shot ``field <op> value`` read over live (non-deleted) records."""
        predicate = build_filter(field, op, value)
        records = await run_db(
            load_collection, self._engine, collection_path(path), None, False
        )
        return [r for r in records if predicate(r)]

    # -------------------------------------------------------------------
    # Writes
    # -------------------------------------------------------------------
    async def set_document(self, path: str, data: Record, merge: bool = True) -> Change:
        collection, doc_id = split_document_path(path)
        change = await run_db(
            write_document,
            self._engine,
            collection,
            doc_id,
            data,
            merge=merge,
            pg_notify=self._pg_notify,
        )
        if not self._pg_notify:
            self._feed.publish(change)
        return change

    async def add_document(self, path: str, data: Record) -> str:
        """Create a record with a generated id in collection *path*."""
        doc_id = uuid.uuid4().hex
        await self.set_document(f"{collection_path(path)}/{doc_id}", data, merge=False)
        return doc_id

    # -------------------------------------------------------------------
    # Listeners (call from a coroutine; bound to the running loop)
    # -------------------------------------------------------------------
    def listen_collection(
        self,
        path: str,
        callback: Callable[[list[Record]], None],
        after: str | None = None,
        on_error: ErrorCallback | None = None,
    ) -> Unsubscribe:
        """Deliver every record modified after *after* now and on each change.

        Each delivery is the full result set, tombstones included.  A failed
        read is passed to *on_error* and stops further deliveries.
        """
        collection = collection_path(path)
        watcher = _Watcher(
            lambda: run_db(load_collection, self._engine, collection, after),
            callback,
            name=f"watch:{collection}",
            on_error=on_error,
        )
        unregister = self._feed.register(collection, watcher.mark_dirty)

        def _unsubscribe() -> None:
            unregister()
            watcher.cancel()

        return _unsubscribe

    def listen_document(
        self,
        path: str,
        callback: Callable[[Record | None], None],
        on_error: ErrorCallback | None = None,
    ) -> Unsubscribe:
        """Deliver the record at *path* now and whenever it changes."""
        collection, doc_id = split_document_path(path)
        watcher = _Watcher(
            lambda: run_db(load_document, self._engine, collection, doc_id),
            callback,
            name=f"watch:{collection}/{doc_id}",
            on_error=on_error,
        )

        def _on_change(change: Change) -> None:
            if change.doc_id == doc_id:
                watcher.mark_dirty(change)

        unregister = self._feed.register(collection, _on_change)

        def _unsubscribe() -> None:
            unregister()
            watcher.cancel()

        return _unsubscribe
