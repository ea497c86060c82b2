from __future__ import annotations

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from carecircle.db.db import get_db
from carecircle.schemas.permission_requests import PermissionRequestCreate, PermissionRequestItem
from carecircle.security.authz import SessionContext
from carecircle.security.deps import get_session_context, require_member, require_owner
from carecircle.services import permission_requests as ledger
from carecircle.services.family_links import get_link, get_member_link
from carecircle.services.permission_requests import permission_request_item, permission_request_items

router = APIRouter(tags=["permission-requests"])
DEFAULT_LIST_LIMIT = 100
MAX_LIST_LIMIT = 500


@router.post("/permission-requests", response_model=PermissionRequestItem, status_code=201)
def create_permission_request(
    payload: PermissionRequestCreate,
    session: SessionContext = Depends(require_member),
    db: Session = Depends(get_db),
):
    link = get_member_link(db, session.account_id, payload.family_link_id)
    pr = ledger.create(
        db,
        owner_account_id=link.owner_account_id,
        family_link_id=link.id,
        capability=payload.scope,
    )
    return permission_request_item(pr)


@router.get("/permission-requests", response_model=list[PermissionRequestItem])
def list_permission_requests(
    status: str | None = None,
    family_link_id: int | None = None,
    limit: int = Query(default=DEFAULT_LIST_LIMIT, ge=1, le=MAX_LIST_LIMIT),
    session: SessionContext = Depends(get_session_context),
    db: Session = Depends(get_db),
):
    if session.is_owner and family_link_id is not None:
        link = get_link(db, family_link_id, owner_account_id=session.account_id)
        rows = ledger.list_by_link(db, link.id, status=status)[:limit]
    elif session.is_owner:
        rows = ledger.list_by_owner(db, session.account_id, status=status, limit=limit)
    else:
        link = get_member_link(db, session.account_id, family_link_id)
        rows = ledger.list_by_link(db, link.id, status=status)[:limit]
    return permission_request_items(db, rows)


@router.post("/permission-requests/{request_id}/approve", response_model=PermissionRequestItem)
def approve_permission_request(
    request_id: int,
    session: SessionContext = Depends(require_owner),
    db: Session = Depends(get_db),
):
    pr = ledger.decide(
        db,
        request_id=request_id,
        decision="APPROVED",
        owner_account_id=session.account_id,
    )
    return permission_request_items(db, [pr])[0]


@router.post("/permission-requests/{request_id}/decline", response_model=PermissionRequestItem)
def decline_permission_request(
    request_id: int,
    session: SessionContext = Depends(require_owner),
    db: Session = Depends(get_db),
):
    pr = ledger.decide(
        db,
        request_id=request_id,
        decision="DECLINED",
        owner_account_id=session.account_id,
    )
    return permission_request_items(db, [pr])[0]
