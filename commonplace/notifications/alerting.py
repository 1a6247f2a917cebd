"""
commonplace.notifications.alerting — Trigger failure alerts
============================================================

Wraps trigger handlers: a failure is logged, posted to the configured
webhook (chat-style ``{"content": ...}`` payload) and re-raised.  Nothing
is retried.
"""

from __future__ import annotations

import logging
from collections.abc import Awaitable, Callable, Sequence
from dataclasses import dataclass
from typing import Any, TypeVar

import httpx

logger = logging.getLogger(__name__)

T = TypeVar("T")

# Discord-style webhooks cap message content at 2000 characters
_MAX_CONTENT = 1900


@dataclass(frozen=True, slots=True)
class TriggerContext:
    """Identifies the event a handler is processing."""

    trigger: str
    collection: str
    doc_id: str


async def send_alert(webhook_url: str, content: str, timeout: float = 10.0) -> bool:
    """POST *content* to *webhook_url*.  Returns False if delivery failed."""
    try:
        async with httpx.AsyncClient(timeout=timeout) as client:
            response = await client.post(webhook_url, json={"content": content[:_MAX_CONTENT]})
            response.raise_for_status()
    except httpx.HTTPError as exc:
        logger.warning("Alert webhook delivery failed: %s", exc)
        return False
    return True


async def with_error_alerting(
    context: TriggerContext,
    handler: Callable[..., Awaitable[T]],
    args: Sequence[Any],
    webhook_url: str | None = None,
) -> T:
    """Await ``handler(*args)``; on failure alert and re-raise."""
    try:
        return await handler(*args)
    except Exception as exc:
        logger.exception(
            "Trigger '%s' failed for %s/%s",
            context.trigger, context.collection, context.doc_id,
        )
        if webhook_url:
            await send_alert(
                webhook_url,
                f"Trigger `{context.trigger}` failed for "
                f"`{context.collection}/{context.doc_id}`: "
                f"{type(exc).__name__}: {exc}",
            )
        raise
