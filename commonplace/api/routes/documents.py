"""
commonplace.api.routes.documents — Collection & document endpoints
===================================================================

REST access to the Database mediator plus a websocket that streams
collection snapshots (cache first, then live updates).
"""

from __future__ import annotations

import asyncio
import json
import logging
from typing import Any

from fastapi import APIRouter, Depends, HTTPException, Query, WebSocket, WebSocketDisconnect

from commonplace.api.deps import get_database
from commonplace.store.paths import InvalidPathError
from commonplace.sync.database import Database, pre_process
from commonplace.sync.subscription import Subscription

router = APIRouter(tags=["documents"])
logger = logging.getLogger(__name__)


def _parse_value(raw: str) -> Any:
    """Interpret a query-string value as JSON, falling back to the raw string."""
    try:
        return json.loads(raw)
    except json.JSONDecodeError:
        return raw


# ---------------------------------------------------------------------------
# Collections
# ---------------------------------------------------------------------------
@router.get("/collections/{path:path}")
async def get_collection(path: str, db: Database = Depends(get_database)):
    """Current live records of a collection, newest first."""
    store = db.store
    try:
        records = pre_process(await store.get_collection(path))
    except InvalidPathError as exc:
        raise HTTPException(400, str(exc))
    return {"documents": list(reversed(records))}


@router.get("/query/{path:path}")
async def query_collection(
    path: str,
    field: str = Query(...),
    op: str = Query("=="),
    value: str = Query(...),
    db: Database = Depends(get_database),
):
    try:
        records = await db.query_collection(path, field, op, _parse_value(value))
    except ValueError as exc:  # includes InvalidPathError
        raise HTTPException(400, str(exc))
    return {"documents": records}


# ---------------------------------------------------------------------------
# Documents
# ---------------------------------------------------------------------------
@router.get("/docs/{path:path}")
async def get_document(path: str, db: Database = Depends(get_database)):
    try:
        record = await db.store.get_document(path)
    except InvalidPathError as exc:
        raise HTTPException(400, str(exc))
    if record is None or record.get("_deleted"):
        raise HTTPException(404, "Document not found")
    return record


@router.put("/docs/{path:path}")
async def put_document(
    path: str, body: dict[str, Any], db: Database = Depends(get_database)
):
    try:
        await db.set_doc(path, body)
    except InvalidPathError as exc:
        raise HTTPException(400, str(exc))
    return {"status": "ok"}


@router.delete("/docs/{path:path}")
async def delete_document(path: str, db: Database = Depends(get_database)):
    try:
        await db.delete_doc(path)
    except InvalidPathError as exc:
        raise HTTPException(400, str(exc))
    return {"status": "ok"}


# ---------------------------------------------------------------------------
# Live stream
# ---------------------------------------------------------------------------
async def _send_snapshots(websocket: WebSocket, subscription: Subscription) -> None:
    async for snapshot in subscription:
        await websocket.send_json([dict(r) for r in snapshot])


async def _wait_for_disconnect(websocket: WebSocket) -> None:
    while True:
        message = await websocket.receive()
        if message["type"] == "websocket.disconnect":
            return


@router.websocket("/ws/collections/{path:path}")
async def stream_collection(
    websocket: WebSocket, path: str, db: Database = Depends(get_database)
):
    """Send one JSON list per snapshot until the client disconnects.

    The subscription is closed as soon as the client leaves, even when the
    collection is quiet.  A backend failure closes the socket with 1011.
    """
    try:
        subscription = db.subscribe_collection(path)
    except InvalidPathError:
        await websocket.close(code=1008)
        return

    await websocket.accept()
    sender = asyncio.create_task(_send_snapshots(websocket, subscription))
    watcher = asyncio.create_task(_wait_for_disconnect(websocket))
    try:
        done, _ = await asyncio.wait(
            {sender, watcher}, return_when=asyncio.FIRST_COMPLETED
        )
    finally:
        sender.cancel()
        watcher.cancel()
        await asyncio.gather(sender, watcher, return_exceptions=True)
        await subscription.unsubscribe()

    if watcher in done:
        logger.debug("Stream client left '%s'", path)
        return
    exc = sender.exception()
    if isinstance(exc, WebSocketDisconnect):
        return
    if exc is not None:
        logger.error("Stream of '%s' failed: %s", path, exc)
    await websocket.close(code=1011 if exc is not None else 1000)
