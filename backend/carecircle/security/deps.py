from __future__ import annotations

from fastapi import Depends
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.orm import Session

from carecircle.db.db import get_db
from carecircle.security.authz import SessionContext, require_role, resolve_session
from carecircle.security.security import decode_token


auth_scheme = HTTPBearer()


def get_bearer_token(
    creds: HTTPAuthorizationCredentials = Depends(auth_scheme),
) -> str:
    return creds.credentials


def get_token_claims(
    token: str = Depends(get_bearer_token),
) -> dict:
    return decode_token(token)


def get_session_context(
    claims: dict = Depends(get_token_claims),
    db: Session = Depends(get_db),
) -> SessionContext:
    return resolve_session(db, claims)


def require_owner(
    session: SessionContext = Depends(get_session_context),
) -> SessionContext:
    require_role(session, "MAIN_USER")
    return session


def require_member(
    session: SessionContext = Depends(get_session_context),
) -> SessionContext:
    require_role(session, "FAMILY")
    return session
