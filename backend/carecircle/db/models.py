from __future__ import annotations

from datetime import datetime, timezone
from sqlalchemy import (
    JSON,
    Boolean,
    DateTime,
    Index,
    Integer,
    String,
    Text,
    text,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column

def utcnow() -> datetime:
    """Get the current UTC datetime."""
    return datetime.now(timezone.utc)


def isoformat_utc(value: datetime | None) -> str | None:
    """ISO-8601 with an explicit UTC offset; SQLite hands stored values back naive."""
    if value is None:
        return None
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc).isoformat()


class Base(DeclarativeBase):
    """Base class for all ORM models."""
    pass


# Account ids come from the external identity provider and are opaque strings.

class FamilyLink(Base):
    """
    Relationship between one owning account (the main user) and one family member.
    """
    __tablename__ = "family_links"

    id: Mapped[int] = mapped_column(primary_key=True)
    owner_account_id: Mapped[str] = mapped_column(String, index=True, nullable=False)
    member_account_id: Mapped[str | None] = mapped_column(String, index=True, nullable=True)

    full_name: Mapped[str] = mapped_column(String, nullable=False)
    relation: Mapped[str] = mapped_column(String, nullable=False)
    phone: Mapped[str] = mapped_column(String, nullable=False)
    email: Mapped[str | None] = mapped_column(String, nullable=True)

    status: Mapped[str] = mapped_column(String, default="PENDING", nullable=False)  # PENDING|APPROVED|DECLINED|REVOKED
    # Always assigned as a fresh list so the ORM sees the change.
    scopes: Mapped[list[str]] = mapped_column(JSON, default=list, nullable=False)

    invited_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, nullable=False)
    approved_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, nullable=False)


class PermissionRequest(Base):
    """
    Append-only record of one family member asking for one capability.
    """
    __tablename__ = "permission_requests"
    __table_args__ = (
        Index(
            "uq_permission_requests_one_pending",
            "family_link_id",
            "scope",
            unique=True,
            postgresql_where=text("status = 'PENDING'"),
            sqlite_where=text("status = 'PENDING'"),
        ),
    )

    id: Mapped[int] = mapped_column(primary_key=True)
    owner_account_id: Mapped[str] = mapped_column(String, index=True, nullable=False)
    # No foreign key: requests outlive the link they were raised against.
    family_link_id: Mapped[int] = mapped_column(Integer, index=True, nullable=False)

    scope: Mapped[str] = mapped_column(String, nullable=False)
    status: Mapped[str] = mapped_column(String, default="PENDING", nullable=False)  # PENDING|APPROVED|DECLINED

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, nullable=False)
    decided_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)


class PendingItem(Base):
    """
    Content a family member submitted for the main user to review.
    """
    __tablename__ = "pending_items"

    id: Mapped[int] = mapped_column(primary_key=True)
    owner_account_id: Mapped[str] = mapped_column(String, index=True, nullable=False)
    submitted_by_link_id: Mapped[int] = mapped_column(Integer, index=True, nullable=False)

    kind: Mapped[str] = mapped_column(String, nullable=False)  # MEDIA|STORY|REMINDER|GAME_INVITE
    payload: Mapped[dict] = mapped_column(JSON, nullable=False)
    status: Mapped[str] = mapped_column(String, default="PENDING", nullable=False)
    viewed: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, nullable=False)
    decided_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)


class Notification(Base):
    """
    In-app notification delivered to one account.
    """
    __tablename__ = "notifications"

    id: Mapped[int] = mapped_column(primary_key=True)
    account_id: Mapped[str] = mapped_column(String, index=True, nullable=False)

    event_type: Mapped[str] = mapped_column(String, nullable=False)
    payload: Mapped[str] = mapped_column(Text, nullable=False)
    is_read: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, nullable=False)
