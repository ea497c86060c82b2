import logging

import pytest

from carecircle.core.errors import NotFound
from carecircle.core.events import publish_account_event, subscribe_account, unsubscribe_account
from carecircle.db.models import FamilyLink, Notification
from carecircle.services import family_links
from carecircle.services import permission_requests as ledger
from carecircle.services.notifications import (
    dispatch,
    list_account_notifications,
    mark_notification_read,
    notification_item,
)

from conftest import MEMBER_ID, OWNER_ID


def test_ledger_changes_notify_both_sides(db_session, invite_link):
    link = invite_link(approve=True)
    pr = ledger.create(db_session, owner_account_id=OWNER_ID, family_link_id=link.id, capability="CHAT")
    ledger.decide(db_session, request_id=pr.id, decision="APPROVED")

    owner_events = [n.event_type for n in list_account_notifications(db_session, OWNER_ID)]
    member_events = [n.event_type for n in list_account_notifications(db_session, MEMBER_ID)]

    assert owner_events == ["permission_request.created"]
    assert member_events[0] == "permission_request.approved"
    assert "family_link.status_changed" in member_events


def test_dispatch_without_account_is_skipped(db_session):
    assert dispatch(db_session, account_id=None, event_type="family_link.invited", payload={}) is None
    assert db_session.query(Notification).count() == 0


def test_failed_notification_does_not_undo_the_change(db_session, invite_link, monkeypatch, caplog):
    link = invite_link()

    def explode(*args, **kwargs):
        raise RuntimeError("notification store unavailable")

    monkeypatch.setattr("carecircle.services.notifications.create_notification", explode)
    with caplog.at_level(logging.WARNING, logger="carecircle.notifications"):
        family_links.set_status(db_session, link_id=link.id, status="APPROVED")

    db_session.expire_all()
    assert db_session.get(FamilyLink, link.id).status == "APPROVED"
    assert any("dispatch failed" in r.getMessage() for r in caplog.records)


def test_mark_read_is_scoped_to_account(db_session, invite_link):
    link = invite_link()
    family_links.set_status(db_session, link_id=link.id, status="APPROVED")
    notification = list_account_notifications(db_session, MEMBER_ID)[0]
    assert notification.event_type == "family_link.status_changed"

    with pytest.raises(NotFound):
        mark_notification_read(db_session, account_id=OWNER_ID, notification_id=notification.id)

    mark_notification_read(db_session, account_id=MEMBER_ID, notification_id=notification.id)
    db_session.commit()
    assert notification.id not in {n.id for n in list_account_notifications(db_session, MEMBER_ID, unread_only=True)}

    item = notification_item(notification)
    assert item["payload"]["status"] == "APPROVED"
    assert item["payload"]["previous_status"] == "PENDING"


def test_publish_reaches_live_subscribers_only():
    queue = subscribe_account("acct-1")
    try:
        assert publish_account_event("acct-1", {"event_type": "ping"}) == 1
        assert publish_account_event("acct-2", {"event_type": "ping"}) == 0
        assert queue.get_nowait() == {"event_type": "ping"}
    finally:
        unsubscribe_account("acct-1", queue)

    assert publish_account_event("acct-1", {"event_type": "ping"}) == 0


def test_live_event_waits_for_commit(db_session):
    queue = subscribe_account("acct-commit")
    try:
        dispatch(db_session, account_id="acct-commit", event_type="family_link.claimed", payload={"family_link_id": 1})
        assert queue.empty()

        db_session.commit()
        event = queue.get_nowait()
        assert event["event_type"] == "family_link.claimed"
        assert event["created_at"].endswith("+00:00")
    finally:
        unsubscribe_account("acct-commit", queue)


def test_rolled_back_change_never_reaches_streams(db_session):
    queue = subscribe_account("acct-rollback")
    try:
        dispatch(db_session, account_id="acct-rollback", event_type="family_link.claimed", payload={})
        db_session.rollback()
        db_session.commit()

        assert queue.empty()
        assert db_session.query(Notification).count() == 0
    finally:
        unsubscribe_account("acct-rollback", queue)
