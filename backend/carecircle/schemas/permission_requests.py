from __future__ import annotations

from pydantic import BaseModel


class PermissionRequestCreate(BaseModel):
    scope: str
    family_link_id: int | None = None


class PermissionRequestItem(BaseModel):
    id: int
    owner_account_id: str
    family_link_id: int
    scope: str
    status: str
    effective_status: str
    created_at: str
    updated_at: str
    decided_at: str | None
