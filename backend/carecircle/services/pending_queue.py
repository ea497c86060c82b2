from __future__ import annotations

import logging

from sqlalchemy import select
from sqlalchemy.orm import Session

from carecircle.core.errors import AlreadyDecided, NotFound
from carecircle.core.scopes import Capability
from carecircle.db.db import transaction
from carecircle.db.models import FamilyLink, PendingItem, isoformat_utc, utcnow
from carecircle.schemas.pending import PendingPayload
from carecircle.services.authorization import require_capability
from carecircle.services.family_links import get_link
from carecircle.services.notifications import dispatch
from carecircle.services.permission_requests import normalize_decision

logger = logging.getLogger("carecircle.pending_queue")

KIND_CAPABILITY: dict[str, Capability] = {
    "MEDIA": Capability.POST_MEDIA,
    "STORY": Capability.POST_STORY,
    "REMINDER": Capability.SUGGEST_REMINDER,
    "GAME_INVITE": Capability.INVITE_GAME,
}


def pending_item_out(item: PendingItem) -> dict:
    return {
        "id": item.id,
        "owner_account_id": item.owner_account_id,
        "submitted_by_link_id": item.submitted_by_link_id,
        "kind": item.kind,
        "payload": dict(item.payload or {}),
        "status": item.status,
        "viewed": item.viewed,
        "created_at": isoformat_utc(item.created_at),
        "decided_at": isoformat_utc(item.decided_at),
    }


def _get_owned_item(db: Session, item_id: int, owner_account_id: str | None, *, for_update: bool = False) -> PendingItem:
    stmt = select(PendingItem).where(PendingItem.id == item_id)
    if for_update:
        stmt = stmt.with_for_update()
    item = db.scalar(stmt)
    if not item or (owner_account_id is not None and item.owner_account_id != owner_account_id):
        raise NotFound("Pending item", item_id)
    return item


def submit(
    db: Session,
    *,
    family_link_id: int,
    payload: PendingPayload,
    member_account_id: str | None = None,
) -> PendingItem:
    """Queue content from a family member; the link must currently hold the matching capability."""
    with transaction(db):
        link = get_link(db, family_link_id)
        if member_account_id is not None and link.member_account_id != member_account_id:
            raise NotFound("Family link", family_link_id)
        require_capability(db, link.id, KIND_CAPABILITY[payload.kind])

        item = PendingItem(
            owner_account_id=link.owner_account_id,
            submitted_by_link_id=link.id,
            kind=payload.kind,
            payload=payload.model_dump(mode="json"),
            status="PENDING",
        )
        db.add(item)
        db.flush()
        logger.info(
            "Pending item %s (%s) submitted through link %s",
            item.id,
            item.kind,
            link.id,
            extra={"pending_item_id": item.id, "family_link_id": link.id},
        )

        dispatch(
            db,
            account_id=link.owner_account_id,
            event_type="pending_item.submitted",
            payload={
                "item_id": item.id,
                "kind": item.kind,
                "family_link_id": link.id,
                "family_member_name": link.full_name,
            },
        )
    return item


def decide(
    db: Session,
    *,
    item_id: int,
    decision: str,
    owner_account_id: str | None = None,
) -> PendingItem:
    normalized_decision = normalize_decision(decision)

    with transaction(db):
        item = _get_owned_item(db, item_id, owner_account_id, for_update=True)
        if item.status == normalized_decision:
            return item
        if item.status != "PENDING":
            raise AlreadyDecided(item.status, normalized_decision)

        item.status = normalized_decision
        item.decided_at = utcnow()
        item.viewed = True
        db.flush()
        logger.info("Pending item %s %s", item.id, item.status.lower(), extra={"pending_item_id": item.id, "status": item.status})

        link = db.get(FamilyLink, item.submitted_by_link_id)
        dispatch(
            db,
            account_id=link.member_account_id if link else None,
            event_type=f"pending_item.{item.status.lower()}",
            payload={"item_id": item.id, "kind": item.kind, "status": item.status},
        )
    return item


def mark_viewed(db: Session, *, item_id: int, owner_account_id: str | None = None) -> PendingItem:
    with transaction(db):
        item = _get_owned_item(db, item_id, owner_account_id)
        item.viewed = True
    return item


def list_for_owner(
    db: Session,
    owner_account_id: str,
    *,
    status: str | None = None,
    limit: int | None = None,
) -> list[PendingItem]:
    stmt = select(PendingItem).where(PendingItem.owner_account_id == owner_account_id)
    if status:
        stmt = stmt.where(PendingItem.status == status.upper())
    stmt = stmt.order_by(PendingItem.created_at.desc(), PendingItem.id.desc())
    if limit is not None:
        stmt = stmt.limit(limit)
    return db.scalars(stmt).all()


def list_for_link(db: Session, family_link_id: int) -> list[PendingItem]:
    return db.scalars(
        select(PendingItem)
        .where(PendingItem.submitted_by_link_id == family_link_id)
        .order_by(PendingItem.created_at.desc(), PendingItem.id.desc())
    ).all()
