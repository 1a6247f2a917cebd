"""
commonplace.api.deps — FastAPI dependency injection
=====================================================
"""

from __future__ import annotations

from functools import lru_cache

from sqlalchemy import Engine

from commonplace.config import CommonplaceConfig, load_config
from commonplace.database.engine import create_db_engine
from commonplace.store.changes import ChangeFeed
from commonplace.store.documents import SqlDocumentStore
from commonplace.store.local_cache import LocalCache
from commonplace.sync.database import Database


@lru_cache(maxsize=1)
def get_engine() -> Engine:
    return create_db_engine()


@lru_cache(maxsize=1)
def get_config() -> CommonplaceConfig:
    return load_config()


@lru_cache(maxsize=1)
def get_feed() -> ChangeFeed:
    return ChangeFeed()


def uses_pg_notify(engine: Engine) -> bool:
    return engine.dialect.name == "postgresql"


@lru_cache(maxsize=1)
def get_store() -> SqlDocumentStore:
    engine = get_engine()
    return SqlDocumentStore(engine, get_feed(), pg_notify=uses_pg_notify(engine))


@lru_cache(maxsize=1)
def get_database() -> Database:
    return Database(get_store(), LocalCache())
