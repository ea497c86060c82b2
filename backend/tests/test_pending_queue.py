import pytest
from pydantic import ValidationError as PydanticValidationError

from carecircle.core.errors import AlreadyDecided, NotFound, ScopeNotGranted
from carecircle.db.models import PendingItem
from carecircle.schemas.pending import (
    GameInvitePayload,
    MediaPayload,
    StoryPayload,
    pending_payload_adapter,
)
from carecircle.services import family_links
from carecircle.services import pending_queue

from conftest import MEMBER_ID, OWNER_ID


def _photo():
    return MediaPayload(title="Beach day", media_url="https://example.org/beach.jpg")


def test_payload_union_picks_shape_by_kind():
    payload = pending_payload_adapter.validate_python(
        {"kind": "REMINDER", "title": "Pills", "reminder_type": "MEDICATION", "scheduled_for": "2026-01-05T09:00:00Z"}
    )
    assert payload.kind == "REMINDER"
    assert payload.reminder_type == "MEDICATION"

    with pytest.raises(PydanticValidationError):
        pending_payload_adapter.validate_python({"kind": "STORY", "title": "No body"})
    with pytest.raises(PydanticValidationError):
        pending_payload_adapter.validate_python({"kind": "POEM", "title": "x"})


def test_submit_requires_matching_capability(db_session, invite_link):
    link = invite_link(["POST_MEDIA"], approve=True)

    item = pending_queue.submit(db_session, family_link_id=link.id, payload=_photo(), member_account_id=MEMBER_ID)
    assert item.status == "PENDING"
    assert item.owner_account_id == OWNER_ID
    assert item.payload["media_url"] == "https://example.org/beach.jpg"

    with pytest.raises(ScopeNotGranted):
        pending_queue.submit(
            db_session,
            family_link_id=link.id,
            payload=StoryPayload(title="Summer", content="We went to the sea."),
        )
    assert db_session.query(PendingItem).count() == 1


def test_submit_through_unapproved_link_is_refused(db_session, invite_link):
    link = invite_link(["INVITE_GAME"])
    with pytest.raises(ScopeNotGranted):
        pending_queue.submit(db_session, family_link_id=link.id, payload=GameInvitePayload(game="Chess"))


def test_submit_through_someone_elses_link(db_session, invite_link):
    link = invite_link(["POST_MEDIA"], approve=True)
    with pytest.raises(NotFound):
        pending_queue.submit(db_session, family_link_id=link.id, payload=_photo(), member_account_id="member-2")


def test_decide_marks_viewed_and_is_final(db_session, invite_link):
    link = invite_link(["POST_MEDIA"], approve=True)
    item = pending_queue.submit(db_session, family_link_id=link.id, payload=_photo())

    approved = pending_queue.decide(db_session, item_id=item.id, decision="APPROVED", owner_account_id=OWNER_ID)
    assert approved.status == "APPROVED"
    assert approved.viewed is True
    assert approved.decided_at is not None

    assert pending_queue.decide(db_session, item_id=item.id, decision="approve").status == "APPROVED"
    with pytest.raises(AlreadyDecided):
        pending_queue.decide(db_session, item_id=item.id, decision="DECLINED")


def test_decide_hides_other_owners_items(db_session, invite_link):
    link = invite_link(["POST_MEDIA"], approve=True)
    item = pending_queue.submit(db_session, family_link_id=link.id, payload=_photo())
    with pytest.raises(NotFound):
        pending_queue.decide(db_session, item_id=item.id, decision="APPROVED", owner_account_id="owner-2")


def test_mark_viewed_and_listing(db_session, invite_link):
    link = invite_link(["POST_MEDIA", "POST_STORY"], approve=True)
    first = pending_queue.submit(db_session, family_link_id=link.id, payload=_photo())
    second = pending_queue.submit(
        db_session, family_link_id=link.id, payload=StoryPayload(title="Hi", content="Hello grandma")
    )

    assert pending_queue.mark_viewed(db_session, item_id=first.id).viewed is True

    owner_ids = {i.id for i in pending_queue.list_for_owner(db_session, OWNER_ID, status="pending")}
    assert owner_ids == {first.id, second.id}
    assert {i.id for i in pending_queue.list_for_link(db_session, link.id)} == {first.id, second.id}
    assert len(pending_queue.list_for_owner(db_session, OWNER_ID, limit=1)) == 1


def test_revoked_link_stops_new_submissions(db_session, invite_link):
    link = invite_link(["POST_MEDIA"], approve=True)
    pending_queue.submit(db_session, family_link_id=link.id, payload=_photo())
    family_links.set_status(db_session, link_id=link.id, status="REVOKED")

    with pytest.raises(ScopeNotGranted):
        pending_queue.submit(db_session, family_link_id=link.id, payload=_photo())
