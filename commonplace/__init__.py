"""
Commonplace — Community Platform Backend
=========================================
Document storage, client-side synchronization and event-driven email
notifications for a community platform (how-tos, map pins, research,
direct messages).

Package layout::

    commonplace/
    ├── config.py          # YAML → typed Python config
    ├── constants.py       # Collection names + reserved record fields
    ├── database/
    │   ├── engine.py      # SQLAlchemy engine + async helper
    │   └── models.py      # Document table
    ├── store/
    │   ├── documents.py   # SqlDocumentStore (remote document API)
    │   ├── changes.py     # ChangeFeed + Change events
    │   ├── listener.py    # PG LISTEN/NOTIFY → ChangeFeed bridge
    │   ├── local_cache.py # Client-side record cache
    │   ├── paths.py       # Collection / document path handling
    │   └── query.py       # Where-filter operators
    ├── sync/
    │   ├── database.py    # Database mediator (cache-first subscriptions)
    │   └── subscription.py  # Cancellable snapshot iterator
    ├── notifications/
    │   ├── emails.py      # Creation handlers → outbound email records
    │   ├── templates.py   # Subjects + HTML bodies
    │   ├── utils.py       # User lookup + message validation
    │   ├── schemas.py     # Pydantic record schemas
    │   ├── alerting.py    # Error alerting wrapper
    │   └── triggers.py    # Collection creation triggers
    ├── worker/            # ``python -m commonplace.worker``
    └── api/
        ├── main.py        # FastAPI app
        └── routes/        # Document REST + websocket endpoints
"""

__version__ = "0.1.0"
