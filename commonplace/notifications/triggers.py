"""
commonplace.notifications.triggers — Collection creation triggers
==================================================================

Binds "record created" events on the messages, howtos and mappins
collections to the :class:`EmailNotifier` handlers.  Each event runs as its
own task inside :func:`with_error_alerting`; a failing handler is alerted
and logged, and the runner keeps serving other events.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable
from typing import Any

from commonplace.constants import DBEndpoints
from commonplace.notifications.alerting import TriggerContext, with_error_alerting
from commonplace.notifications.emails import EmailNotifier
from commonplace.store.changes import Change, ChangeFeed, ChangeKind
from commonplace.store.documents import DocumentStore

logger = logging.getLogger(__name__)

Handler = Callable[[dict[str, Any]], Awaitable[Any]]


class TriggerRunner:
    """Dispatches creation events to notification handlers.

    Usage::

        runner = TriggerRunner(store, feed, notifier)
        runner.start()              # from a coroutine
        ...
        await runner.drain()        # wait for in-flight handlers
        runner.stop()
    """

    def __init__(
        self,
        store: DocumentStore,
        feed: ChangeFeed,
        notifier: EmailNotifier,
        alert_webhook_url: str | None = None,
    ) -> None:
        self._store = store
        self._feed = feed
        self._alert_webhook_url = alert_webhook_url
        # collection → (trigger name, handler)
        self._triggers: dict[str, tuple[str, Handler]] = {
            DBEndpoints.MESSAGES: (
                "handleMessageSubmission", notifier.create_message_emails,
            ),
            DBEndpoints.HOWTOS: (
                "handleHowToSubmission", notifier.create_howto_submission_email,
            ),
            DBEndpoints.MAPPINS: (
                "handleMapPinSubmission", notifier.create_map_pin_submission_email,
            ),
        }
        self._unregister: list[Callable[[], None]] = []
        self._tasks: set[asyncio.Task] = set()

    @property
    def running(self) -> bool:
        return bool(self._unregister)

    def start(self) -> None:
        """Register creation listeners on the running loop (idempotent)."""
        if self.running:
            return
        for collection in self._triggers:
            self._unregister.append(self._feed.register(collection, self.handle_change))
        logger.info("Triggers registered on: %s", ", ".join(self._triggers))

    def stop(self) -> None:
        """Unregister listeners and cancel in-flight handlers."""
        for unregister in self._unregister:
            unregister()
        self._unregister.clear()
        for task in list(self._tasks):
            task.cancel()
        logger.info("Triggers stopped")

    def handle_change(self, change: Change) -> None:
        """Start a handler task for *change* if it creates a triggering record."""
        if change.kind is not ChangeKind.CREATED:
            return
        entry = self._triggers.get(change.collection)
        if entry is None:
            return
        name, handler = entry
        task = asyncio.get_running_loop().create_task(
            self._run(name, handler, change), name=f"trigger:{name}:{change.doc_id}"
        )
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    async def _run(self, name: str, handler: Handler, change: Change) -> None:
        record = await self._store.get_document(f"{change.collection}/{change.doc_id}")
        if record is None:
            logger.warning(
                "Trigger '%s': %s/%s vanished before handling",
                name, change.collection, change.doc_id,
            )
            return
        context = TriggerContext(name, change.collection, change.doc_id)
        try:
            await with_error_alerting(
                context, handler, [record], webhook_url=self._alert_webhook_url
            )
        except Exception:
            # Already logged and alerted; no retry
            logger.debug("Trigger '%s' gave up on %s", name, change.doc_id)

    async def drain(self) -> None:
        """Wait until every in-flight handler has finished."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)
