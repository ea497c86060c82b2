from dataclasses import dataclass
from sqlalchemy import select
from carecircle.core.config import VALID_ROLES, get_settings
from carecircle.core.errors import AccessDenied
from carecircle.db.models import FamilyLink


@dataclass(frozen=True)
class SessionContext:
    account_id: str
    role: str  # MAIN_USER | FAMILY
    is_authenticated: bool = True
    email: str | None = None

    @property
    def is_owner(self) -> bool:
        return self.role == "MAIN_USER"

    @property
    def is_family(self) -> bool:
        return self.role == "FAMILY"


def resolve_session(db, claims: dict) -> SessionContext:
    """
    Build the session context for decoded token claims.

    Role precedence: an explicit role claim wins; otherwise an account that
    is the linked member of some family link is FAMILY; otherwise the
    configured default role applies.
    """
    account_id = str(claims["sub"])
    email = claims.get("email")

    role = str(claims.get("role") or "").strip().upper()
    if role not in VALID_ROLES:
        linked = db.scalar(
            select(FamilyLink.id).where(FamilyLink.member_account_id == account_id).limit(1)
        )
        role = "FAMILY" if linked is not None else get_settings().default_role

    return SessionContext(account_id=account_id, role=role, email=email)


def require_role(session: SessionContext, role: str) -> None:
    if session.role != role:
        who = "the main user" if role == "MAIN_USER" else "family members"
        raise AccessDenied(
            f"Only {who} can do this",
            next_actions=["Sign in with the right account."],
        )
