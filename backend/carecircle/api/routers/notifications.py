from __future__ import annotations

import asyncio
import json
import logging
import time

from fastapi import APIRouter, Depends, Query, Request
from fastapi.responses import StreamingResponse
from sqlalchemy.orm import Session

from carecircle.core.config import get_settings
from carecircle.core.events import is_server_shutting_down, subscribe_account, unsubscribe_account
from carecircle.db.db import SessionLocal, get_db, transaction
from carecircle.schemas.notifications import NotificationItem
from carecircle.security.authz import SessionContext
from carecircle.security.deps import get_session_context
from carecircle.services.notifications import (
    list_account_notifications,
    list_notifications_after,
    mark_notification_read,
    notification_item,
)

router = APIRouter(tags=["notifications"])
SSE_QUEUE_TIMEOUT_SECONDS = 1
logger = logging.getLogger("carecircle.notifications")
settings = get_settings()


@router.get("/notifications", response_model=list[NotificationItem])
def list_notifications(
    unread_only: bool = False,
    limit: int = Query(default=100, ge=1, le=500),
    session: SessionContext = Depends(get_session_context),
    db: Session = Depends(get_db),
):
    rows = list_account_notifications(db, session.account_id, unread_only=unread_only, limit=limit)
    return [notification_item(n) for n in rows]


@router.post("/notifications/{notification_id}/read")
def read_notification(
    notification_id: int,
    session: SessionContext = Depends(get_session_context),
    db: Session = Depends(get_db),
):
    with transaction(db):
        mark_notification_read(db, account_id=session.account_id, notification_id=notification_id)
    return {"ok": True}


@router.get("/events/stream")
async def events_stream(
    request: Request,
    session: SessionContext = Depends(get_session_context),
):
    account_id = session.account_id
    logger.info("SSE stream connected (%s)", session.role)

    queue = subscribe_account(account_id)
    last_seen_id = 0

    async def event_generator():
        nonlocal last_seen_id
        started_at = time.monotonic()
        try:
            yield "event: ready\ndata: {\"ok\": true}\n\n"

            with SessionLocal() as db2:
                for n in reversed(list_account_notifications(db2, account_id, unread_only=True)):
                    item = notification_item(n)
                    item["notification_id"] = n.id
                    last_seen_id = max(last_seen_id, n.id)
                    yield f"data: {json.dumps(item, default=str)}\n\n"

            while True:
                if (time.monotonic() - started_at) >= settings.sse_max_stream_seconds:
                    break
                if is_server_shutting_down() or await request.is_disconnected():
                    break
                try:
                    event = await asyncio.wait_for(queue.get(), timeout=SSE_QUEUE_TIMEOUT_SECONDS)
                    n_id = event.get("notification_id")
                    if isinstance(n_id, int):
                        if n_id <= last_seen_id:
                            continue
                        last_seen_id = n_id
                    yield f"data: {json.dumps(event, default=str)}\n\n"
                except asyncio.TimeoutError:
                    # catch up on anything committed by another worker while we waited
                    with SessionLocal() as db2:
                        for n in list_notifications_after(db2, account_id, last_seen_id):
                            item = notification_item(n)
                            item["notification_id"] = n.id
                            last_seen_id = n.id
                            yield f"data: {json.dumps(item, default=str)}\n\n"

                    yield ": keepalive\n\n"
        finally:
            unsubscribe_account(account_id, queue)
            logger.info("SSE stream disconnected")

    headers = {
        "Cache-Control": "no-cache",
        "Connection": "keep-alive",
        "X-Accel-Buffering": "no",
    }
    return StreamingResponse(event_generator(), media_type="text/event-stream", headers=headers)
