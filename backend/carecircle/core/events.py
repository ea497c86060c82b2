from __future__ import annotations

import asyncio
import json
import logging
import select
import time
from collections import defaultdict
from typing import Any

import psycopg2
from sqlalchemy import event as sa_event, text
from sqlalchemy.orm import Session

from carecircle.core.config import get_settings


_account_streams: dict[str, set[asyncio.Queue[dict[str, Any]]]] = defaultdict(set)
_server_shutting_down = False
_logger = logging.getLogger("carecircle.core.events")
POSTGRES_NOTIFY_CHANNEL = "carecircle_events"
STREAM_QUEUE_SIZE = 256
_UNCOMMITTED_EVENTS_KEY = "carecircle.uncommitted_account_events"


def mark_server_running() -> None:
    global _server_shutting_down
    _server_shutting_down = False


def mark_server_shutting_down() -> None:
    global _server_shutting_down
    _server_shutting_down = True


def is_server_shutting_down() -> bool:
    return _server_shutting_down


def subscribe_account(account_id: str) -> asyncio.Queue[dict[str, Any]]:
    queue: asyncio.Queue[dict[str, Any]] = asyncio.Queue(maxsize=STREAM_QUEUE_SIZE)
    _account_streams[account_id].add(queue)
    return queue


def unsubscribe_account(account_id: str, queue: asyncio.Queue[dict[str, Any]]) -> None:
    queues = _account_streams.get(account_id)
    if not queues:
        return
    queues.discard(queue)
    if not queues:
        _account_streams.pop(account_id, None)


def publish_account_event(account_id: str, event: dict[str, Any]) -> int:
    """Pushes an event to every live stream of the account; returns how many received it."""
    queues = _account_streams.get(account_id)
    if not queues:
        return 0

    delivered = 0
    for queue in list(queues):
        if queue.full():
            # slow consumer: drop its oldest event
            queue.get_nowait()
        queue.put_nowait(event)
        delivered += 1
    return delivered


def publish_account_event_on_commit(db: Session, account_id: str, event: dict[str, Any]) -> None:
    """Holds the event until the session's outermost transaction commits; a rollback drops it."""
    db.info.setdefault(_UNCOMMITTED_EVENTS_KEY, []).append((account_id, event))


@sa_event.listens_for(Session, "after_commit")
def _deliver_committed_events(session: Session) -> None:
    # releasing a SAVEPOINT fires after_commit too
    if session.in_nested_transaction():
        return
    for account_id, event in session.info.pop(_UNCOMMITTED_EVENTS_KEY, []):
        publish_account_event(account_id, event)


@sa_event.listens_for(Session, "after_transaction_end")
def _discard_uncommitted_events(session: Session, transaction) -> None:
    if transaction.parent is None:
        session.info.pop(_UNCOMMITTED_EVENTS_KEY, None)


def publish_postgres_event(db: Session, account_id: str, event: dict[str, Any]) -> None:
    bind = db.get_bind()
    if bind is None or bind.dialect.name != "postgresql":
        return

    payload = {"account_id": account_id, "event": event}
    db.execute(
        text("SELECT pg_notify(:channel, :payload)"),
        {"channel": POSTGRES_NOTIFY_CHANNEL, "payload": json.dumps(payload, default=str)},
    )
    _logger.info("Published PostgreSQL NOTIFY on %s", POSTGRES_NOTIFY_CHANNEL)


def _relay_notify_payload(raw: str) -> None:
    try:
        data = json.loads(raw)
    except json.JSONDecodeError:
        _logger.warning("Ignoring malformed NOTIFY payload")
        return
    account_id = data.get("account_id")
    event = data.get("event")
    if isinstance(account_id, str) and isinstance(event, dict):
        publish_account_event(account_id, event)


def forward_postgres_events_forever() -> None:
    """Relays NOTIFY events from other worker processes to local streams."""
    settings = get_settings()
    if not settings.database.is_postgres:
        return

    _logger.info("Starting PostgreSQL LISTEN loop on channel=%s", POSTGRES_NOTIFY_CHANNEL)
    dsn = settings.database.url.replace("postgresql+psycopg2://", "postgresql://")

    while not is_server_shutting_down():
        conn = None
        try:
            conn = psycopg2.connect(dsn)
            conn.set_isolation_level(psycopg2.extensions.ISOLATION_LEVEL_AUTOCOMMIT)
            with conn.cursor() as cursor:
                cursor.execute(f"LISTEN {POSTGRES_NOTIFY_CHANNEL};")

            while not is_server_shutting_down():
                ready, _, _ = select.select([conn], [], [], 1)
                if not ready:
                    continue

                conn.poll()
                while conn.notifies:
                    _relay_notify_payload(conn.notifies.pop(0).payload)
        except psycopg2.Error as exc:
            _logger.warning("PostgreSQL LISTEN loop error; retrying: %s", exc)
            time.sleep(1)
        finally:
            if conn is not None and not conn.closed:
                conn.close()
