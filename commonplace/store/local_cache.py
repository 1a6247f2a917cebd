"""
commonplace.store.local_cache — Client-side record cache
=========================================================

Holds every record a client has seen, per collection, including
tombstones.  Subscriptions read it first so consumers get data before the
backend answers; it is filled from live updates and from the client's own
writes.
"""

from __future__ import annotations

import logging
import threading
from collections.abc import Iterable
from typing import Any

from commonplace.constants import ID_FIELD, MODIFIED_FIELD
from commonplace.store.paths import collection_path, split_document_path

logger = logging.getLogger(__name__)

Record = dict[str, Any]


def _sort_key(record: Record) -> tuple[str, str]:
    return (record.get(MODIFIED_FIELD) or "", str(record.get(ID_FIELD, "")))


class LocalCache:
    """Thread-safe in-memory store of records keyed by collection and id.

    Usage::

        cache = LocalCache()
        cache.put("howtos", records)
        cache.get_collection("howtos")      # oldest _modified first
        cache.latest_modified("howtos")     # newest _modified or None
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        # collection → {doc_id → record}
        self._collections: dict[str, dict[str, Record]] = {}

    def get_collection(self, path: str) -> list[Record]:
        """Return copies of all cached records in *path*, oldest first."""
        collection = collection_path(path)
        with self._lock:
            records = [dict(r) for r in self._collections.get(collection, {}).values()]
        records.sort(key=_sort_key)
        return records

    def get_document(self, path: str) -> Record | None:
        collection, doc_id = split_document_path(path)
        with self._lock:
            record = self._collections.get(collection, {}).get(doc_id)
            return dict(record) if record is not None else None

    def put(self, path: str, records: Iterable[Record]) -> None:
        """Store *records* in collection *path*, replacing older versions.

        A record never replaces a cached version with a newer ``_modified``.
        """
        collection = collection_path(path)
        with self._lock:
            table = self._collections.setdefault(collection, {})
            for record in records:
                doc_id = record.get(ID_FIELD)
                if doc_id is None:
                    logger.warning("Skipping record without %s in '%s'", ID_FIELD, collection)
                    continue
                current = table.get(doc_id)
                if current is not None and _sort_key(current) > _sort_key(record):
                    continue
                table[doc_id] = dict(record)

    def put_document(self, path: str, record: Record) -> None:
        """Store *record* as the document at *path* (its id comes from the path)."""
        collection, doc_id = split_document_path(path)
        self.put(collection, [{**record, ID_FIELD: doc_id}])

    def latest_modified(self, path: str) -> str | None:
        """Return the newest ``_modified`` cached for *path*, or None if empty."""
        collection = collection_path(path)
        with self._lock:
            stamps = [
                r.get(MODIFIED_FIELD)
                for r in self._collections.get(collection, {}).values()
                if r.get(MODIFIED_FIELD)
            ]
        return max(stamps) if stamps else None

    def clear(self, path: str | None = None) -> None:
        with self._lock:
            if path is None:
                self._collections.clear()
            else:
                self._collections.pop(collection_path(path), None)

    def stats(self) -> dict[str, int]:
        with self._lock:
            return {name: len(table) for name, table in self._collections.items()}
