from __future__ import annotations

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from carecircle.db.db import get_db
from carecircle.schemas.pending import PendingItemCreate, PendingItemOut
from carecircle.security.authz import SessionContext
from carecircle.security.deps import get_session_context, require_member, require_owner
from carecircle.services import pending_queue
from carecircle.services.family_links import get_member_link
from carecircle.services.pending_queue import pending_item_out

router = APIRouter(tags=["pending-items"])
DEFAULT_LIST_LIMIT = 100
MAX_LIST_LIMIT = 500


@router.post("/pending-items", response_model=PendingItemOut, status_code=201)
def submit_pending_item(
    payload: PendingItemCreate,
    session: SessionContext = Depends(require_member),
    db: Session = Depends(get_db),
):
    link = get_member_link(db, session.account_id, payload.family_link_id)
    item = pending_queue.submit(
        db,
        family_link_id=link.id,
        payload=payload.payload,
        member_account_id=session.account_id,
    )
    return pending_item_out(item)


@router.get("/pending-items", response_model=list[PendingItemOut])
def list_pending_items(
    status: str | None = None,
    family_link_id: int | None = None,
    limit: int = Query(default=DEFAULT_LIST_LIMIT, ge=1, le=MAX_LIST_LIMIT),
    session: SessionContext = Depends(get_session_context),
    db: Session = Depends(get_db),
):
    if session.is_owner:
        rows = pending_queue.list_for_owner(db, session.account_id, status=status, limit=limit)
    else:
        link = get_member_link(db, session.account_id, family_link_id)
        rows = pending_queue.list_for_link(db, link.id)[:limit]
    return [pending_item_out(item) for item in rows]


@router.post("/pending-items/{item_id}/approve", response_model=PendingItemOut)
def approve_pending_item(
    item_id: int,
    session: SessionContext = Depends(require_owner),
    db: Session = Depends(get_db),
):
    item = pending_queue.decide(
        db,
        item_id=item_id,
        decision="APPROVED",
        owner_account_id=session.account_id,
    )
    return pending_item_out(item)


@router.post("/pending-items/{item_id}/decline", response_model=PendingItemOut)
def decline_pending_item(
    item_id: int,
    session: SessionContext = Depends(require_owner),
    db: Session = Depends(get_db),
):
    item = pending_queue.decide(
        db,
        item_id=item_id,
        decision="DECLINED",
        owner_account_id=session.account_id,
    )
    return pending_item_out(item)


@router.post("/pending-items/{item_id}/viewed", response_model=PendingItemOut)
def mark_pending_item_viewed(
    item_id: int,
    session: SessionContext = Depends(require_owner),
    db: Session = Depends(get_db),
):
    item = pending_queue.mark_viewed(db, item_id=item_id, owner_account_id=session.account_id)
    return pending_item_out(item)
