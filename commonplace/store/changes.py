"""
commonplace.store.changes — In-process change feed
====================================================

Every write to the document store produces a :class:`Change`.  Writes
happen on ``run_db`` worker threads (or on the PG LISTEN thread, see
:mod:`commonplace.store.listener`), while listeners live on an asyncio
event loop.  :class:`ChangeFeed` bridges the two: each listener is bound to
the loop it registered from, and delivery is scheduled onto that loop with
``call_soon_threadsafe``.
"""

from __future__ import annotations

import asyncio
import enum
import json
import logging
import threading
from collections.abc import Callable
from dataclasses import dataclass

logger = logging.getLogger(__name__)


class ChangeKind(enum.StrEnum):
    CREATED = "created"
    UPDATED = "updated"
    DELETED = "deleted"


@dataclass(frozen=True, slots=True)
class Change:
    """A single write to ``collection/doc_id``."""

    collection: str
    doc_id: str
    kind: ChangeKind

    def to_json(self) -> str:
        return json.dumps(
            {"collection": self.collection, "id": self.doc_id, "kind": self.kind.value}
        )

    @classmethod
    def from_json(cls, raw: str) -> Change:
        """Parse a payload produced by :meth:`to_json`.

        Raises
        ------
        ValueError
            If *raw* is not valid JSON or lacks a required key.
        """
        try:
            data = json.loads(raw)
            return cls(
                collection=data["collection"],
                doc_id=data["id"],
                kind=ChangeKind(data["kind"]),
            )
        except (json.JSONDecodeError, TypeError, KeyError) as exc:
            raise ValueError(f"Invalid change payload: {raw!r}") from exc


ChangeCallback = Callable[[Change], None]


class _Registration:
    __slots__ = ("collection", "callback", "loop")

    def __init__(
        self,
        collection: str,
        callback: ChangeCallback,
        loop: asyncio.AbstractEventLoop,
    ) -> None:
        self.collection = collection
        self.callback = callback
        self.loop = loop


class ChangeFeed:
    """Thread-safe fan-out of :class:`Change` events per collection.

    Usage::

        feed = ChangeFeed()
        unsubscribe = feed.register("howtos", on_change)   # from a coroutine
        feed.publish(Change("howtos", "abc", ChangeKind.CREATED))  # any thread
        unsubscribe()
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        # collection → registrations
        self._listeners: dict[str, list[_Registration]] = {}

    def register(
        self,
        collection: str,
        callback: ChangeCallback,
        loop: asyncio.AbstractEventLoop | None = None,
    ) -> Callable[[], None]:
        """Register *callback* for changes in *collection*.

        *callback* runs on *loop* (default: the running loop).  Returns a
        callable that removes the registration; calling it twice is a no-op.
        """
        reg = _Registration(collection, callback, loop or asyncio.get_running_loop())
        with self._lock:
            self._listeners.setdefault(collection, []).append(reg)
        logger.debug("Change listener registered on '%s'", collection)

        def _unregister() -> None:
            with self._lock:
                regs = self._listeners.get(collection, [])
                if reg in regs:
                    regs.remove(reg)
                if not regs:
                    self._listeners.pop(collection, None)

        return _unregister

    def publish(self, change: Change) -> int:
        """Schedule delivery of *change* to every listener of its collection.

        Returns the number of listeners scheduled.  Listeners whose loop has
        closed are skipped.
        """
        with self._lock:
            regs = list(self._listeners.get(change.collection, []))

        scheduled = 0
        for reg in regs:
            if reg.loop.is_closed():
                logger.warning(
                    "Dropping change for '%s' — listener loop is closed",
                    change.collection,
                )
                continue
            reg.loop.call_soon_threadsafe(reg.callback, change)
            scheduled += 1
        return scheduled

    def listener_count(self, collection: str | None = None) -> int:
        with self._lock:
            if collection is not None:
                return len(self._listeners.get(collection, []))
            return sum(len(v) for v in self._listeners.values())
