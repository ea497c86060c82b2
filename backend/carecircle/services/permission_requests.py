from __future__ import annotations

import logging

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from carecircle.core.errors import AlreadyDecided, DuplicatePending, NotFound, ValidationError
from carecircle.core.scopes import Capability, parse_capability
from carecircle.db.db import transaction
from carecircle.db.models import FamilyLink, PermissionRequest, isoformat_utc, utcnow
from carecircle.services.authorization import effective_request_status, status_for_link
from carecircle.services.family_links import add_granted_scope, get_link
from carecircle.services.notifications import dispatch

logger = logging.getLogger("carecircle.permission_requests")

_DECISION_ALIASES = {
    "approve": "APPROVED",
    "approved": "APPROVED",
    "decline": "DECLINED",
    "declined": "DECLINED",
    "reject": "DECLINED",
}


def permission_request_item(pr: PermissionRequest, link_exists: bool = True) -> dict:
    return {
        "id": pr.id,
        "owner_account_id": pr.owner_account_id,
        "family_link_id": pr.family_link_id,
        "scope": pr.scope,
        "status": pr.status,
        "effective_status": effective_request_status(pr, link_exists),
        "created_at": isoformat_utc(pr.created_at),
        "updated_at": isoformat_utc(pr.updated_at),
        "decided_at": isoformat_utc(pr.decided_at),
    }


def permission_request_items(db: Session, rows: list[PermissionRequest]) -> list[dict]:
    link_ids = {pr.family_link_id for pr in rows}
    existing: set[int] = set()
    if link_ids:
        existing = set(db.scalars(select(FamilyLink.id).where(FamilyLink.id.in_(link_ids))).all())
    return [permission_request_item(pr, pr.family_link_id in existing) for pr in rows]


def normalize_decision(decision: str) -> str:
    normalized = _DECISION_ALIASES.get((decision or "").strip().lower())
    if normalized is None:
        raise ValidationError("decision must be APPROVED or DECLINED", code="INVALID_DECISION")
    return normalized


def _pending_request(db: Session, family_link_id: int, capability: Capability) -> PermissionRequest | None:
    return db.scalar(
        select(PermissionRequest).where(
            PermissionRequest.family_link_id == family_link_id,
            PermissionRequest.scope == capability.value,
            PermissionRequest.status == "PENDING",
        )
    )


def create(
    db: Session,
    *,
    owner_account_id: str,
    family_link_id: int,
    capability: str | Capability,
) -> PermissionRequest:
    capability = parse_capability(capability)

    try:
        with transaction(db):
            # the row lock serialises concurrent requests raised through the same link
            link = get_link(db, family_link_id, owner_account_id=owner_account_id, for_update=True)
            if link.status not in {"PENDING", "APPROVED"}:
                raise ValidationError(
                    "This family link is no longer active",
                    code="LINK_INACTIVE",
                    next_actions=["Ask the main user to invite you again."],
                )
            if status_for_link(db, link, capability) == "APPROVED":
                raise ValidationError(
                    f"{capability.value} is already granted",
                    code="ALREADY_GRANTED",
                )
            if _pending_request(db, link.id, capability) is not None:
                raise DuplicatePending(link.id, capability.value)

            now = utcnow()
            pr = PermissionRequest(
                owner_account_id=link.owner_account_id,
                family_link_id=link.id,
                scope=capability.value,
                status="PENDING",
                created_at=now,
                updated_at=now,
            )
            db.add(pr)
            db.flush()
            logger.info(
                "Permission request %s created for link %s scope=%s",
                pr.id,
                link.id,
                pr.scope,
                extra={"permission_request_id": pr.id, "family_link_id": link.id, "capability": pr.scope},
            )

            dispatch(
                db,
                account_id=link.owner_account_id,
                event_type="permission_request.created",
                payload={
                    "request_id": pr.id,
                    "family_link_id": link.id,
                    "family_member_name": link.full_name,
                    "scope": pr.scope,
                },
            )
    except IntegrityError:
        # lost the race against a concurrent insert; the partial unique index kept one PENDING row
        raise DuplicatePending(family_link_id, capability.value) from None
    return pr


def decide(
    db: Session,
    *,
    request_id: int,
    decision: str,
    owner_account_id: str | None = None,
) -> PermissionRequest:
    """
    Approve or decline a pending request.

    Approval folds the capability into the link's granted scopes in the same
    transaction as the status change. Repeating the decision a request
    already has returns it unchanged; asking for the opposite one fails.
    """
    normalized_decision = normalize_decision(decision)

    with transaction(db):
        pr = db.scalar(
            select(PermissionRequest).where(PermissionRequest.id == request_id).with_for_update()
        )
        if not pr or (owner_account_id is not None and pr.owner_account_id != owner_account_id):
            raise NotFound("Permission request", request_id)
        if pr.status == normalized_decision:
            return pr
        if pr.status != "PENDING":
            raise AlreadyDecided(pr.status, normalized_decision)

        link = db.scalar(
            select(FamilyLink).where(FamilyLink.id == pr.family_link_id).with_for_update()
        )
        if normalized_decision == "APPROVED":
            if link is None:
                raise NotFound("Family link", pr.family_link_id)
            add_granted_scope(link, Capability(pr.scope))

        now = utcnow()
        pr.status = normalized_decision
        pr.updated_at = now
        pr.decided_at = now
        db.flush()
        logger.info(
            "Permission request %s %s",
            pr.id,
            pr.status.lower(),
            extra={"permission_request_id": pr.id, "family_link_id": pr.family_link_id, "status": pr.status},
        )

        dispatch(
            db,
            account_id=link.member_account_id if link else None,
            event_type=f"permission_request.{pr.status.lower()}",
            payload={
                "request_id": pr.id,
                "family_link_id": pr.family_link_id,
                "scope": pr.scope,
                "status": pr.status,
            },
        )
    return pr


def get_request(db: Session, request_id: int, *, owner_account_id: str | None = None) -> PermissionRequest:
    pr = db.get(PermissionRequest, request_id)
    if not pr or (owner_account_id is not None and pr.owner_account_id != owner_account_id):
        raise NotFound("Permission request", request_id)
    return pr


def list_by_owner(
    db: Session,
    owner_account_id: str,
    *,
    status: str | None = None,
    limit: int | None = None,
) -> list[PermissionRequest]:
    stmt = select(PermissionRequest).where(PermissionRequest.owner_account_id == owner_account_id)
    if status:
        stmt = stmt.where(PermissionRequest.status == status.upper())
    stmt = stmt.order_by(PermissionRequest.created_at.desc(), PermissionRequest.id.desc())
    if limit is not None:
        stmt = stmt.limit(limit)
    return db.scalars(stmt).all()


def list_by_link(
    db: Session,
    family_link_id: int,
    *,
    status: str | None = None,
) -> list[PermissionRequest]:
    stmt = select(PermissionRequest).where(PermissionRequest.family_link_id == family_link_id)
    if status:
        stmt = stmt.where(PermissionRequest.status == status.upper())
    return db.scalars(
        stmt.order_by(PermissionRequest.created_at.desc(), PermissionRequest.id.desc())
    ).all()
