"""
commonplace.worker.__main__ — Entry point for ``python -m commonplace.worker``
==============================================================================

Wiring:
1. Load .env (secrets).
2. Load config.yaml (site identity, messaging rules, alert webhook).
3. Create the SQLAlchemy engine and ensure tables exist.
4. Build the change feed and document store.
5. On PostgreSQL, start the LISTEN/NOTIFY bridge so writes from other
   processes (the API) reach this worker.
6. Start the creation triggers and run until Ctrl+C or SIGTERM.

Run with::

    python -m commonplace.worker
"""

from __future__ import annotations

import asyncio
import logging
import signal

from dotenv import load_dotenv

from commonplace.config import load_config
from commonplace.database.engine import create_db_engine, init_db
from commonplace.notifications.emails import EmailNotifier
from commonplace.notifications.triggers import TriggerRunner
from commonplace.notifications.utils import CollectionAuthProvider
from commonplace.store.changes import ChangeFeed
from commonplace.store.documents import SqlDocumentStore
from commonplace.store.listener import PgChangeListener

# ---------------------------------------------------------------------------
# Logging
# ---------------------------------------------------------------------------
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s │ %(levelname)-8s │ %(name)s │ %(message)s",
    datefmt="%H:%M:%S",
)
logger = logging.getLogger("commonplace")


async def serve(runner: TriggerRunner) -> None:
    """Run *runner* until a stop signal arrives."""
    stop = asyncio.Event()
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, stop.set)
        except NotImplementedError:  # Windows
            pass

    runner.start()
    logger.info("Trigger worker running")
    await stop.wait()

    logger.info("Shutting down gracefully…")
    await runner.drain()
    runner.stop()


def main() -> None:
    """Bootstrap and run the trigger worker."""

    # 1. Environment variables (secrets).
    load_dotenv()

    # 2. Soft configuration.
    cfg = load_config()
    logger.info("Config loaded — Site: %s", cfg.site_name)

    # 3. Database.
    engine = create_db_engine()
    init_db(engine)

    # 4. Feed + store.
    feed = ChangeFeed()
    use_pg = engine.dialect.name == "postgresql"
    store = SqlDocumentStore(engine, feed, pg_notify=use_pg)

    # 5. Cross-process change delivery.
    listener = PgChangeListener(engine, feed) if use_pg else None
    if listener is not None:
        listener.start()

    # 6. Triggers.
    notifier = EmailNotifier(store, CollectionAuthProvider(store), cfg)
    runner = TriggerRunner(store, feed, notifier, alert_webhook_url=cfg.alert_webhook_url)
    try:
        asyncio.run(serve(runner))
    except KeyboardInterrupt:
        logger.info("Interrupted")
    finally:
        if listener is not None:
            listener.stop()


if __name__ == "__main__":
    main()
