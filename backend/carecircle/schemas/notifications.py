from __future__ import annotations

from typing import Any

from pydantic import BaseModel


class NotificationItem(BaseModel):
    id: int
    event_type: str
    payload: dict[str, Any]
    is_read: bool
    created_at: str
