from __future__ import annotations

import json
import logging
from typing import Any

from sqlalchemy import select
from sqlalchemy.orm import Session

from carecircle.core.errors import NotFound
from carecircle.core.events import publish_account_event_on_commit, publish_postgres_event
from carecircle.db.models import Notification, isoformat_utc

logger = logging.getLogger("carecircle.notifications")


def notification_item(n: Notification) -> dict:
    try:
        payload = json.loads(n.payload)
    except json.JSONDecodeError:
        payload = {"raw": n.payload}
    return {
        "id": n.id,
        "event_type": n.event_type,
        "payload": payload,
        "is_read": n.is_read,
        "created_at": isoformat_utc(n.created_at),
    }


def create_notification(
    db: Session,
    account_id: str,
    event_type: str,
    payload: dict[str, Any],
    enqueue: bool = True,
) -> Notification:
    notification = Notification(
        account_id=account_id,
        event_type=event_type,
        payload=json.dumps(payload, default=str),
        is_read=False,
    )
    db.add(notification)
    db.flush()

    if enqueue:
        event = {
            "notification_id": notification.id,
            "event_type": event_type,
            "payload": payload,
            "created_at": isoformat_utc(notification.created_at),
        }
        publish_postgres_event(db, account_id, event)
        publish_account_event_on_commit(db, account_id, event)

    return notification


def dispatch(
    db: Session,
    *,
    account_id: str | None,
    event_type: str,
    payload: dict[str, Any],
) -> Notification | None:
    """
    Best-effort notification after a registry, ledger or queue change.

    Runs in a SAVEPOINT so a failure here rolls back only the notification,
    never the change that triggered it.
    """
    if not account_id:
        return None
    try:
        with db.begin_nested():
            return create_notification(db, account_id, event_type, payload)
    except Exception:
        logger.warning("Notification dispatch failed for event_type=%s", event_type, exc_info=True)
        return None


def list_account_notifications(
    db: Session,
    account_id: str,
    *,
    unread_only: bool = False,
    limit: int = 100,
) -> list[Notification]:
    stmt = select(Notification).where(Notification.account_id == account_id)
    if unread_only:
        stmt = stmt.where(Notification.is_read.is_(False))
    return db.scalars(
        stmt.order_by(Notification.created_at.desc(), Notification.id.desc()).limit(limit)
    ).all()


def list_notifications_after(db: Session, account_id: str, last_seen_id: int) -> list[Notification]:
    return db.scalars(
        select(Notification)
        .where(
            Notification.account_id == account_id,
            Notification.id > last_seen_id,
        )
        .order_by(Notification.id.asc())
        .limit(100)
    ).all()


def mark_notification_read(db: Session, *, account_id: str, notification_id: int) -> Notification:
    n = db.get(Notification, notification_id)
    if not n or n.account_id != account_id:
        raise NotFound("Notification", notification_id)
    n.is_read = True
    return n
