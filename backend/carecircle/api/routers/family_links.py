from __future__ import annotations

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from carecircle.core.scopes import Capability, build_capability_view
from carecircle.db.db import get_db
from carecircle.db.models import FamilyLink
from carecircle.schemas.family import (
    CapabilityDetail,
    FamilyLinkCreate,
    FamilyLinkItem,
    FamilyLinkScopesUpdate,
    FamilyLinkStatusUpdate,
    ScopeStatusResponse,
)
from carecircle.security.authz import SessionContext
from carecircle.security.deps import get_session_context, require_owner
from carecircle.services import family_links
from carecircle.services.authorization import scope_statuses
from carecircle.services.family_links import family_link_item

router = APIRouter(tags=["family"])


def _visible_link(db: Session, session: SessionContext, link_id: int) -> FamilyLink:
    if session.is_owner:
        return family_links.get_link(db, link_id, owner_account_id=session.account_id)
    return family_links.get_member_link(db, session.account_id, link_id)


@router.get("/capabilities", response_model=list[CapabilityDetail])
def list_capabilities():
    return [build_capability_view(c) for c in Capability]


@router.post("/family-links", response_model=FamilyLinkItem, status_code=201)
def invite_family_member(
    payload: FamilyLinkCreate,
    session: SessionContext = Depends(require_owner),
    db: Session = Depends(get_db),
):
    link = family_links.invite(
        db,
        owner_account_id=session.account_id,
        full_name=payload.full_name,
        relation=payload.relation,
        phone=payload.phone,
        email=payload.email,
        initial_scopes=payload.scopes,
    )
    return family_link_item(link)


@router.get("/family-links", response_model=list[FamilyLinkItem])
def list_family_links(
    status: str | None = None,
    session: SessionContext = Depends(get_session_context),
    db: Session = Depends(get_db),
):
    if session.is_owner:
        rows = family_links.list_for_owner(db, session.account_id, status)
    else:
        rows = family_links.list_for_member(db, session.account_id)
    return [family_link_item(link) for link in rows]


@router.get("/family-links/invites/mine", response_model=list[FamilyLinkItem])
def list_my_invites(
    session: SessionContext = Depends(get_session_context),
    db: Session = Depends(get_db),
):
    return [family_link_item(link) for link in family_links.list_invites_for_email(db, session.email)]


@router.get("/family-links/{link_id}", response_model=FamilyLinkItem)
def get_family_link(
    link_id: int,
    session: SessionContext = Depends(get_session_context),
    db: Session = Depends(get_db),
):
    return family_link_item(_visible_link(db, session, link_id))


@router.post("/family-links/{link_id}/status", response_model=FamilyLinkItem)
def update_family_link_status(
    link_id: int,
    payload: FamilyLinkStatusUpdate,
    session: SessionContext = Depends(require_owner),
    db: Session = Depends(get_db),
):
    link = family_links.set_status(
        db,
        link_id=link_id,
        status=payload.status,
        owner_account_id=session.account_id,
    )
    return family_link_item(link)


@router.put("/family-links/{link_id}/scopes", response_model=FamilyLinkItem)
def replace_family_link_scopes(
    link_id: int,
    payload: FamilyLinkScopesUpdate,
    session: SessionContext = Depends(require_owner),
    db: Session = Depends(get_db),
):
    link = family_links.set_granted_scopes(
        db,
        link_id=link_id,
        scopes=payload.scopes,
        owner_account_id=session.account_id,
    )
    return family_link_item(link)


@router.delete("/family-links/{link_id}")
def remove_family_link(
    link_id: int,
    session: SessionContext = Depends(require_owner),
    db: Session = Depends(get_db),
):
    family_links.remove(db, link_id=link_id, owner_account_id=session.account_id)
    return {"ok": True}


@router.post("/family-links/{link_id}/claim", response_model=FamilyLinkItem)
def claim_family_link(
    link_id: int,
    session: SessionContext = Depends(get_session_context),
    db: Session = Depends(get_db),
):
    link = family_links.claim(
        db,
        link_id=link_id,
        member_account_id=session.account_id,
        member_email=session.email,
    )
    return family_link_item(link)


@router.get("/family-links/{link_id}/scope-status", response_model=ScopeStatusResponse)
def get_scope_status(
    link_id: int,
    session: SessionContext = Depends(get_session_context),
    db: Session = Depends(get_db),
):
    link = _visible_link(db, session, link_id)
    return {
        "family_link_id": link.id,
        "link_status": link.status,
        "scopes": scope_statuses(db, link.id),
    }
