from __future__ import annotations

from pydantic import BaseModel, Field


class CapabilityDetail(BaseModel):
    capability: str
    category: str
    category_label: str
    title: str
    description: str


class FamilyLinkCreate(BaseModel):
    full_name: str
    relation: str
    phone: str
    email: str | None = None
    scopes: list[str] = Field(default_factory=list)


class FamilyLinkStatusUpdate(BaseModel):
    status: str


class FamilyLinkScopesUpdate(BaseModel):
    scopes: list[str]


class FamilyLinkItem(BaseModel):
    id: int
    owner_account_id: str
    member_account_id: str | None
    full_name: str
    relation: str
    phone: str
    email: str | None
    status: str
    scopes: list[str]
    invited_at: str
    approved_at: str | None
    updated_at: str


class ScopeStatusResponse(BaseModel):
    family_link_id: int
    link_status: str
    scopes: dict[str, str]
