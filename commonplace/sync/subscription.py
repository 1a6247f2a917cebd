"""
commonplace.sync.subscription — Cancellable snapshot stream
============================================================
"""

from __future__ import annotations

from collections.abc import AsyncGenerator
from typing import Generic, TypeVar

T = TypeVar("T")


class Subscription(Generic[T]):
    """Async iterator over snapshots with explicit unsubscribe.

    Wraps an async generator that produces snapshots.  Nothing runs until
    the first snapshot is requested, and unsubscribing closes the generator
    so its ``finally`` block detaches from the backend.  Unsubscribe from
    the task that iterates (or cancel that task).

    Usage::

        async with db.subscribe_collection("howtos") as sub:
            async for snapshot in sub:
                render(snapshot)
    """

    def __init__(self, source: AsyncGenerator[T, None]) -> None:
        self._source = source
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    def __aiter__(self) -> Subscription[T]:
        return self

    async def __anext__(self) -> T:
        if self._closed:
            raise StopAsyncIteration
        return await self._source.__anext__()

    async def unsubscribe(self) -> None:
        """Stop receiving snapshots (idempotent)."""
        if self._closed:
            return
        self._closed = True
        await self._source.aclose()

    aclose = unsubscribe

    async def __aenter__(self) -> Subscription[T]:
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.unsubscribe()
