"""
commonplace.store.listener — PG LISTEN/NOTIFY → ChangeFeed bridge
===================================================================

When several processes share one PostgreSQL database (API + trigger
worker), writes are announced with ``pg_notify`` inside the write
transaction, so the notification fires atomically on commit.  Every process
runs a :class:`PgChangeListener` thread that LISTENs on
:data:`CHANGE_CHANNEL` and republishes payloads into its local
:class:`~commonplace.store.changes.ChangeFeed`.
"""

from __future__ import annotations

import logging
import random
import select as _select
import threading

from sqlalchemy import Engine, text
from sqlalchemy.orm import Session

from commonplace.store.changes import Change, ChangeFeed

logger = logging.getLogger(__name__)

# The PG channel name used for document change notifications
CHANGE_CHANNEL = "document_changes"


def notify_before_commit(session: Session, change: Change) -> None:
    """Queue a NOTIFY for *change* inside the current transaction.

    PostgreSQL delivers it only if the transaction commits.
    """
    session.execute(
        text("SELECT pg_notify(:channel, :payload)"),
        {"channel": CHANGE_CHANNEL, "payload": change.to_json()},
    )


class PgChangeListener:
    """Background LISTEN thread with reconnect backoff and a circuit breaker.

    Usage::

        listener = PgChangeListener(engine, feed)
        listener.start()
        ...
        listener.stop()
    """

    def __init__(
        self,
        engine: Engine,
        feed: ChangeFeed,
        *,
        max_reconnect_attempts: int = 10,
        base_backoff: float = 1.0,
        max_backoff: float = 60.0,
    ) -> None:
        self._engine = engine
        self._feed = feed
        self._max_reconnect_attempts = max_reconnect_attempts
        self._base_backoff = base_backoff
        self._max_backoff = max_backoff

        self._healthy = False
        self._failed = False
        self._thread: threading.Thread | None = None
        self._shutdown_event = threading.Event()

    @property
    def healthy(self) -> bool:
        """Return True if the LISTEN thread is alive and connected."""
        return self._healthy and not self._failed

    @property
    def failed(self) -> bool:
        """Return True if the listener exhausted reconnect attempts."""
        return self._failed

    def handle_payload(self, payload: str) -> None:
        """Parse one NOTIFY payload and publish it to the feed."""
        try:
            change = Change.from_json(payload)
        except ValueError:
            logger.warning("Ignoring malformed change payload: %s", payload)
            return
        self._feed.publish(change)

    def start(self) -> None:
        """Start the LISTEN thread (idempotent)."""
        if self._thread is not None and self._thread.is_alive():
            return
        import psycopg2

        def _listen_thread() -> None:
            # str(engine.url) masks the password; psycopg2 needs the real one.
            raw_url = self._engine.url.render_as_string(hide_password=False)
            dsn = raw_url.replace("postgresql+psycopg2://", "postgresql://")
            attempt = 0

            while not self._shutdown_event.is_set():
                conn = None
                try:
                    conn = psycopg2.connect(dsn)
                    conn.set_isolation_level(0)  # autocommit
                    cur = conn.cursor()
                    cur.execute(f"LISTEN {CHANGE_CHANNEL};")
                    logger.info("PG LISTEN started on channel '%s'", CHANGE_CHANNEL)

                    attempt = 0
                    self._healthy = True

                    while not self._shutdown_event.is_set():
                        if _select.select([conn], [], [], 5.0) == ([], [], []):
                            continue
                        conn.poll()
                        while conn.notifies:
                            notify = conn.notifies.pop(0)
                            logger.debug("NOTIFY received: %s", notify.payload)
                            self.handle_payload(notify.payload or "")

                except Exception:
                    self._healthy = False
                    attempt += 1

                    if attempt >= self._max_reconnect_attempts:
                        logger.critical(
                            "PG LISTEN exhausted %d retries. "
                            "Cross-process change delivery disabled.",
                            self._max_reconnect_attempts,
                        )
                        self._failed = True
                        break

                    backoff = min(
                        self._base_backoff * (2 ** (attempt - 1)), self._max_backoff
                    )
                    wait = backoff + random.uniform(0, backoff * 0.5)
                    logger.exception(
                        "PG LISTEN connection lost (attempt %d/%d). "
                        "Reconnecting in %.1fs…",
                        attempt, self._max_reconnect_attempts, wait,
                    )
                    if self._shutdown_event.wait(timeout=wait):
                        break
                finally:
                    if conn is not None:
                        conn.close()

        self._shutdown_event.clear()
        thread = threading.Thread(
            target=_listen_thread, daemon=True, name="pg-change-listener"
        )
        self._thread = thread
        thread.start()
        logger.info("PG change listener thread started")

    def stop(self) -> None:
        """Signal the listener thread to stop and wait for it to exit."""
        self._shutdown_event.set()
        if self._thread is not None and self._thread.is_alive():
            self._thread.join(timeout=5)
            logger.info("PG change listener thread stopped")
        self._healthy = False
