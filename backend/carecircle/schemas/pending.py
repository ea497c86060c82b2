from __future__ import annotations

from datetime import datetime
from typing import Annotated, Any, Literal, Union

from pydantic import BaseModel, Field, TypeAdapter


class MediaPayload(BaseModel):
    kind: Literal["MEDIA"] = "MEDIA"
    title: str = Field(min_length=1)
    media_url: str = Field(min_length=1)
    media_type: Literal["PHOTO", "VIDEO"] = "PHOTO"
    caption: str | None = None


class StoryPayload(BaseModel):
    kind: Literal["STORY"] = "STORY"
    title: str = Field(min_length=1)
    content: str = Field(min_length=1)


class ReminderPayload(BaseModel):
    kind: Literal["REMINDER"] = "REMINDER"
    title: str = Field(min_length=1)
    description: str | None = None
    reminder_type: Literal["MEDICATION", "APPOINTMENT", "EVENT"]
    scheduled_for: datetime


class GameInvitePayload(BaseModel):
    kind: Literal["GAME_INVITE"] = "GAME_INVITE"
    game: str = Field(min_length=1)
    message: str | None = None
    proposed_for: datetime | None = None


PendingPayload = Annotated[
    Union[MediaPayload, StoryPayload, ReminderPayload, GameInvitePayload],
    Field(discriminator="kind"),
]

pending_payload_adapter: TypeAdapter[PendingPayload] = TypeAdapter(PendingPayload)


class PendingItemCreate(BaseModel):
    payload: PendingPayload
    family_link_id: int | None = None


class PendingItemOut(BaseModel):
    id: int
    owner_account_id: str
    submitted_by_link_id: int
    kind: str
    payload: dict[str, Any]
    status: str
    viewed: bool
    created_at: str
    decided_at: str | None
