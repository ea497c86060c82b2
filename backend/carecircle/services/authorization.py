"""
Answers "can this family member do this right now?".

Status is derived on every call from the link and the request ledger; there
is no cached or denormalised copy to drift out of date.
"""
from __future__ import annotations

from sqlalchemy import select
from sqlalchemy.orm import Session

from carecircle.core.errors import ScopeNotGranted
from carecircle.core.scopes import Capability, parse_capability
from carecircle.db.models import FamilyLink, PermissionRequest

SCOPE_STATUSES = ("APPROVED", "PENDING", "DECLINED", "NONE")


def latest_request(db: Session, family_link_id: int, capability: Capability) -> PermissionRequest | None:
    return db.scalar(
        select(PermissionRequest)
        .where(
            PermissionRequest.family_link_id == family_link_id,
            PermissionRequest.scope == capability.value,
        )
        .order_by(PermissionRequest.created_at.desc(), PermissionRequest.id.desc())
        .limit(1)
    )


def status_for_link(db: Session, link: FamilyLink | None, capability: str | Capability) -> str:
    capability = parse_capability(capability)

    # link-level gating dominates anything the scopes or ledger say
    if link is None or link.status != "APPROVED":
        return "NONE"
    if capability.value in (link.scopes or []):
        return "APPROVED"

    request = latest_request(db, link.id, capability)
    if request is None:
        return "NONE"
    if request.status == "APPROVED":
        # approval always lands in the scopes; missing now means the owner withdrew it since
        return "NONE"
    return request.status


def scope_status(db: Session, family_link_id: int, capability: str | Capability) -> str:
    return status_for_link(db, db.get(FamilyLink, family_link_id), capability)


def can_perform(db: Session, family_link_id: int, capability: str | Capability) -> bool:
    return scope_status(db, family_link_id, capability) == "APPROVED"


def require_capability(db: Session, family_link_id: int, capability: str | Capability) -> None:
    capability = parse_capability(capability)
    if not can_perform(db, family_link_id, capability):
        raise ScopeNotGranted(capability.value)


def scope_statuses(db: Session, family_link_id: int) -> dict[str, str]:
    link = db.get(FamilyLink, family_link_id)
    return {capability.value: status_for_link(db, link, capability) for capability in Capability}


def effective_request_status(request: PermissionRequest, link_exists: bool) -> str:
    """A request whose link was removed can no longer grant anything."""
    if not link_exists:
        return "DECLINED"
    return request.status
