"""
tests/conftest.py — Shared Test Fixtures
=========================================
"""

from __future__ import annotations

import pytest
from sqlalchemy import Engine, create_engine

from commonplace.config import CommonplaceConfig
from commonplace.database.models import Base
from commonplace.store.changes import ChangeFeed
from commonplace.store.documents import SqlDocumentStore


@pytest.fixture
def db_engine(tmp_path) -> Engine:
    """Create a file-backed SQLite engine with all Commonplace tables.

    A file (not ``sqlite://``) so every ``run_db`` worker thread gets its
    own connection while watchers and writes overlap.
    """
    engine = create_engine(
        f"sqlite:///{tmp_path / 'commonplace.db'}",
        echo=False,
        connect_args={"check_same_thread": False},
    )
    Base.metadata.create_all(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def feed() -> ChangeFeed:
    return ChangeFeed()


@pytest.fixture
def store(db_engine: Engine, feed: ChangeFeed) -> SqlDocumentStore:
    return SqlDocumentStore(db_engine, feed)


@pytest.fixture
def cfg() -> CommonplaceConfig:
    return CommonplaceConfig(
        site_name="Test Community",
        site_url="https://community.example.org",
    )
