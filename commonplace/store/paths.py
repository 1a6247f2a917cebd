"""
commonplace.store.paths — Collection and document paths
=========================================================

Paths are slash-separated.  Collection paths have an odd number of
segments (``howtos``, ``research/abc/updates``); document paths have an
even number (``howtos/abc``).
"""

from __future__ import annotations

from datetime import UTC, datetime


class InvalidPathError(ValueError):
    """Raised when a path does not address a collection or document."""


def _segments(path: str) -> list[str]:
    stripped = path.strip("/")
    segments = stripped.split("/")
    if not stripped or any(not s for s in segments):
        raise InvalidPathError(f"Invalid path: '{path}'")
    return segments


def collection_path(path: str) -> str:
    """Validate and normalise a collection path."""
    segments = _segments(path)
    if len(segments) % 2 == 0:
        raise InvalidPathError(f"'{path}' is a document path, not a collection")
    return "/".join(segments)


def split_document_path(path: str) -> tuple[str, str]:
    """Split ``collection/.../doc_id`` into ``(collection, doc_id)``."""
    segments = _segments(path)
    if len(segments) % 2 != 0:
        raise InvalidPathError(f"'{path}' is a collection path, not a document")
    return "/".join(segments[:-1]), segments[-1]


def timestamp(value: datetime | None = None) -> str:
    """Render *value* (default: now) as a sortable ISO-8601 UTC string.

    Microseconds are always present so lexical order matches time order.
    """
    value = value or datetime.now(UTC)
    return value.astimezone(UTC).isoformat(timespec="microseconds")


def parse_timestamp(value: str) -> datetime:
    return datetime.fromisoformat(value).astimezone(UTC)
