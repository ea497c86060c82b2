import pytest

from carecircle.core.errors import DuplicatePending, ScopeNotGranted, UnknownCapability
from carecircle.core.scopes import Capability
from carecircle.db.models import PermissionRequest
from carecircle.services import family_links
from carecircle.services import permission_requests as ledger
from carecircle.services.authorization import (
    can_perform,
    require_capability,
    scope_status,
    scope_statuses,
)

from conftest import OWNER_ID


def _request(db, link, capability):
    return ledger.create(db, owner_account_id=OWNER_ID, family_link_id=link.id, capability=capability)


def test_pending_link_cannot_act_until_approved(db_session, invite_link):
    link = invite_link(["POST_MEDIA"])
    assert can_perform(db_session, link.id, "POST_MEDIA") is False
    assert scope_status(db_session, link.id, "POST_MEDIA") == "NONE"

    family_links.set_status(db_session, link_id=link.id, status="APPROVED")

    assert can_perform(db_session, link.id, "POST_MEDIA") is True


def test_approved_request_is_reflected_in_status_and_scopes(db_session, invite_link):
    link = invite_link(["POST_MEDIA"], approve=True)
    pr = _request(db_session, link, "SUGGEST_REMINDER")
    assert scope_status(db_session, link.id, "SUGGEST_REMINDER") == "PENDING"

    ledger.decide(db_session, request_id=pr.id, decision="APPROVED")

    db_session.refresh(link)
    assert scope_status(db_session, link.id, "SUGGEST_REMINDER") == "APPROVED"
    assert set(link.scopes) == {"POST_MEDIA", "SUGGEST_REMINDER"}


def test_duplicate_chat_request_leaves_one_pending_row(db_session, invite_link):
    link = invite_link(approve=True)
    _request(db_session, link, "CHAT")
    with pytest.raises(DuplicatePending):
        _request(db_session, link, "CHAT")

    pending = (
        db_session.query(PermissionRequest)
        .filter_by(family_link_id=link.id, scope="CHAT", status="PENDING")
        .count()
    )
    assert pending == 1


def test_declined_request_reports_declined_and_can_be_asked_again(db_session, invite_link):
    link = invite_link(approve=True)
    pr = _request(db_session, link, "CHAT")
    ledger.decide(db_session, request_id=pr.id, decision="DECLINED")

    assert scope_status(db_session, link.id, "CHAT") == "DECLINED"

    _request(db_session, link, "CHAT")
    assert scope_status(db_session, link.id, "CHAT") == "PENDING"


def test_revoking_link_disables_every_scope_but_keeps_them_stored(db_session, invite_link):
    link = invite_link(["POST_MEDIA", "CHAT"], approve=True)

    family_links.set_status(db_session, link_id=link.id, status="REVOKED")

    db_session.refresh(link)
    assert can_perform(db_session, link.id, "POST_MEDIA") is False
    assert can_perform(db_session, link.id, "CHAT") is False
    assert link.scopes == ["POST_MEDIA", "CHAT"]


@pytest.mark.parametrize("terminal", ["DECLINED", "REVOKED"])
def test_terminal_links_never_authorize(db_session, invite_link, terminal):
    link = invite_link([c.value for c in Capability])
    family_links.set_status(db_session, link_id=link.id, status=terminal)

    assert all(status == "NONE" for status in scope_statuses(db_session, link.id).values())


def test_missing_link_reports_none(db_session):
    assert scope_status(db_session, 777, "CHAT") == "NONE"
    assert can_perform(db_session, 777, "CHAT") is False


def test_unknown_capability_is_an_error_not_a_denial(db_session, invite_link):
    link = invite_link(approve=True)
    with pytest.raises(UnknownCapability):
        can_perform(db_session, link.id, "SUPERPOWER")


def test_withdrawn_scope_reads_as_none(db_session, invite_link):
    link = invite_link(["POST_MEDIA"], approve=True)
    pr = _request(db_session, link, "CHAT")
    ledger.decide(db_session, request_id=pr.id, decision="APPROVED")

    family_links.set_granted_scopes(db_session, link_id=link.id, scopes=["POST_MEDIA"])

    assert scope_status(db_session, link.id, "CHAT") == "NONE"
    _request(db_session, link, "CHAT")
    assert scope_status(db_session, link.id, "CHAT") == "PENDING"


def test_scope_statuses_covers_whole_vocabulary(db_session, invite_link):
    link = invite_link(["POST_MEDIA"], approve=True)
    _request(db_session, link, "WAKE_UP")

    statuses = scope_statuses(db_session, link.id)

    assert set(statuses) == {c.value for c in Capability}
    assert statuses["POST_MEDIA"] == "APPROVED"
    assert statuses["WAKE_UP"] == "PENDING"
    assert statuses["CHAT"] == "NONE"


def test_require_capability_raises_no_permission(db_session, invite_link):
    link = invite_link(["POST_MEDIA"], approve=True)
    require_capability(db_session, link.id, "POST_MEDIA")

    with pytest.raises(ScopeNotGranted) as exc_info:
        require_capability(db_session, link.id, "POST_STORY")
    assert exc_info.value.code == "NO_PERMISSION"
    assert exc_info.value.status_code == 403
