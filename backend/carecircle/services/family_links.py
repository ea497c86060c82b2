from __future__ import annotations

import logging
from typing import Iterable

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from carecircle.core.errors import InvalidTransition, NotFound, ValidationError
from carecircle.core.scopes import Capability, normalize_capabilities
from carecircle.db.db import transaction
from carecircle.db.models import FamilyLink, isoformat_utc, utcnow
from carecircle.services.notifications import dispatch

logger = logging.getLogger("carecircle.family_links")

VALID_TRANSITIONS: dict[str, set[str]] = {
    "PENDING": {"APPROVED", "DECLINED", "REVOKED"},
    "APPROVED": {"REVOKED"},
    # terminal: a declined or revoked member is invited again, never resurrected
    "DECLINED": set(),
    "REVOKED": set(),
}
LINK_STATUSES = frozenset(VALID_TRANSITIONS)


def family_link_item(link: FamilyLink) -> dict:
    return {
        "id": link.id,
        "owner_account_id": link.owner_account_id,
        "member_account_id": link.member_account_id,
        "full_name": link.full_name,
        "relation": link.relation,
        "phone": link.phone,
        "email": link.email,
        "status": link.status,
        "scopes": list(link.scopes or []),
        "invited_at": isoformat_utc(link.invited_at),
        "approved_at": isoformat_utc(link.approved_at),
        "updated_at": isoformat_utc(link.updated_at),
    }


def _event_payload(link: FamilyLink) -> dict:
    return {
        "family_link_id": link.id,
        "owner_account_id": link.owner_account_id,
        "status": link.status,
        "scopes": list(link.scopes or []),
    }


def get_link(
    db: Session,
    link_id: int,
    *,
    owner_account_id: str | None = None,
    for_update: bool = False,
) -> FamilyLink:
    """
    Load a link, optionally restricted to one owner.

    A link that belongs to another owner is reported as missing so callers
    never learn about other owners' family members.
    """
    stmt = select(FamilyLink).where(FamilyLink.id == link_id)
    if for_update:
        stmt = stmt.with_for_update()
    link = db.scalar(stmt)
    if not link or (owner_account_id is not None and link.owner_account_id != owner_account_id):
        raise NotFound("Family link", link_id)
    return link


def get_member_link(db: Session, member_account_id: str, link_id: int | None = None) -> FamilyLink:
    """Resolve the link a member acts through; `link_id` is needed only when they have several."""
    links = list_for_member(db, member_account_id)
    if link_id is not None:
        for link in links:
            if link.id == link_id:
                return link
        raise NotFound("Family link", link_id)

    if not links:
        raise NotFound("Family link", f"for account {member_account_id}")
    active = [link for link in links if link.status in {"PENDING", "APPROVED"}] or links
    if len(active) > 1:
        raise ValidationError(
            "You are linked to more than one main user; choose which family link to use",
            code="LINK_REQUIRED",
        )
    return active[0]


def invite(
    db: Session,
    *,
    owner_account_id: str,
    full_name: str,
    relation: str,
    phone: str,
    initial_scopes: Iterable[str | Capability],
    email: str | None = None,
    member_account_id: str | None = None,
) -> FamilyLink:
    details = {
        "full_name": (full_name or "").strip(),
        "relation": (relation or "").strip(),
        "phone": (phone or "").strip(),
    }
    missing = [name for name, value in details.items() if not value]
    if missing:
        raise ValidationError(
            f"Missing required family member details: {', '.join(missing)}",
            code="MISSING_MEMBER_DETAILS",
        )

    scopes = normalize_capabilities(initial_scopes)
    if not scopes:
        raise ValidationError(
            "Select at least one permission for the family member",
            code="NO_SCOPES_SELECTED",
        )

    with transaction(db):
        link = FamilyLink(
            owner_account_id=owner_account_id,
            member_account_id=member_account_id,
            email=(email or "").strip() or None,
            status="PENDING",
            scopes=[s.value for s in scopes],
            **details,
        )
        db.add(link)
        db.flush()
        logger.info("Family link %s invited", link.id, extra={"family_link_id": link.id, "status": link.status})

        dispatch(
            db,
            account_id=link.member_account_id,
            event_type="family_link.invited",
            payload=_event_payload(link),
        )
    return link


def set_status(
    db: Session,
    *,
    link_id: int,
    status: str,
    owner_account_id: str | None = None,
) -> FamilyLink:
    new_status = (status or "").strip().upper()
    if new_status not in LINK_STATUSES:
        raise ValidationError(f"Unknown family link status: {status}", code="UNKNOWN_STATUS")

    with transaction(db):
        link = get_link(db, link_id, owner_account_id=owner_account_id, for_update=True)
        if link.status == new_status:
            return link
        if new_status not in VALID_TRANSITIONS[link.status]:
            raise InvalidTransition(link.status, new_status)

        previous = link.status
        now = utcnow()
        link.status = new_status
        link.updated_at = now
        if new_status == "APPROVED" and link.approved_at is None:
            link.approved_at = now
        db.flush()
        logger.info(
            "Family link %s status %s -> %s",
            link.id,
            previous,
            new_status,
            extra={"family_link_id": link.id, "status": new_status},
        )

        dispatch(
            db,
            account_id=link.member_account_id,
            event_type="family_link.status_changed",
            payload={**_event_payload(link), "previous_status": previous},
        )
    return link


def set_granted_scopes(
    db: Session,
    *,
    link_id: int,
    scopes: Iterable[str | Capability],
    owner_account_id: str | None = None,
) -> FamilyLink:
    """Replace the granted scopes wholesale. Status is left untouched."""
    normalized = [s.value for s in normalize_capabilities(scopes)]

    with transaction(db):
        link = get_link(db, link_id, owner_account_id=owner_account_id, for_update=True)
        if list(link.scopes or []) == normalized:
            return link
        link.scopes = normalized
        link.updated_at = utcnow()
        db.flush()
        logger.info("Family link %s scopes replaced (%s granted)", link.id, len(normalized))

        dispatch(
            db,
            account_id=link.member_account_id,
            event_type="family_link.scopes_changed",
            payload=_event_payload(link),
        )
    return link


def add_granted_scope(link: FamilyLink, capability: Capability) -> bool:
    """Union one capability into the link's scopes. Returns False if it was already there."""
    current = list(link.scopes or [])
    if capability.value in current:
        return False
    link.scopes = [s.value for s in normalize_capabilities([*current, capability])]
    link.updated_at = utcnow()
    return True


def remove(db: Session, *, link_id: int, owner_account_id: str | None = None) -> None:
    """
    Delete the link. Permission requests raised against it are kept; with
    no link behind them they grant nothing.
    """
    with transaction(db):
        link = get_link(db, link_id, owner_account_id=owner_account_id, for_update=True)
        db.delete(link)
        logger.info("Family link %s removed", link_id)


def _normalize_email(value: str | None) -> str:
    return (value or "").strip().lower()


def list_invites_for_email(db: Session, email: str | None) -> list[FamilyLink]:
    """Unclaimed, still-open invitations addressed to this email."""
    normalized = _normalize_email(email)
    if not normalized:
        return []
    return db.scalars(
        select(FamilyLink)
        .where(
            func.lower(FamilyLink.email) == normalized,
            FamilyLink.member_account_id.is_(None),
            FamilyLink.status.in_(("PENDING", "APPROVED")),
        )
        .order_by(FamilyLink.invited_at.desc(), FamilyLink.id.desc())
    ).all()


def claim(db: Session, *, link_id: int, member_account_id: str, member_email: str | None = None) -> FamilyLink:
    """
    Attach the invited person's account to the link once they sign in.

    Only the invitee may claim: the signed-in email must match the email the
    owner invited. Links invited without an email are bound to an account at
    invite time and cannot be claimed. Anyone else sees the link as missing.
    """
    with transaction(db):
        link = get_link(db, link_id, for_update=True)
        if link.member_account_id == member_account_id:
            return link
        if link.owner_account_id == member_account_id:
            raise ValidationError("You cannot join your own family as a member", code="OWN_LINK")

        invited_email = _normalize_email(link.email)
        if not invited_email or invited_email != _normalize_email(member_email):
            raise NotFound("Family link", link_id)
        if link.member_account_id is not None:
            raise ValidationError(
                "This invitation was already accepted by another account",
                code="ALREADY_CLAIMED",
            )
        if link.status not in {"PENDING", "APPROVED"}:
            raise ValidationError("This invitation is no longer open", code="LINK_INACTIVE")

        link.member_account_id = member_account_id
        link.updated_at = utcnow()
        db.flush()
        logger.info("Family link %s claimed by member account", link.id, extra={"family_link_id": link.id})

        dispatch(
            db,
            account_id=link.owner_account_id,
            event_type="family_link.claimed",
            payload=_event_payload(link),
        )
    return link


def list_for_owner(db: Session, owner_account_id: str, status: str | None = None) -> list[FamilyLink]:
    stmt = select(FamilyLink).where(FamilyLink.owner_account_id == owner_account_id)
    if status:
        stmt = stmt.where(FamilyLink.status == status.upper())
    return db.scalars(stmt.order_by(FamilyLink.invited_at.desc(), FamilyLink.id.desc())).all()


def list_for_member(db: Session, member_account_id: str) -> list[FamilyLink]:
    return db.scalars(
        select(FamilyLink)
        .where(FamilyLink.member_account_id == member_account_id)
        .order_by(FamilyLink.invited_at.desc(), FamilyLink.id.desc())
    ).all()


def query(
    db: Session,
    *,
    owner_account_id: str | None = None,
    member_account_id: str | None = None,
) -> list[FamilyLink]:
    """Links visible to one account: everything an owner owns, or a member's own links."""
    if (owner_account_id is None) == (member_account_id is None):
        raise ValueError("Pass exactly one of owner_account_id or member_account_id")
    if owner_account_id is not None:
        return list_for_owner(db, owner_account_id)
    return list_for_member(db, member_account_id)
