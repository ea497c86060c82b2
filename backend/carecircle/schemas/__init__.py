from .family import (
    CapabilityDetail,
    FamilyLinkCreate,
    FamilyLinkStatusUpdate,
    FamilyLinkScopesUpdate,
    FamilyLinkItem,
    ScopeStatusResponse,
)
from .permission_requests import PermissionRequestCreate, PermissionRequestItem
from .pending import (
    MediaPayload,
    StoryPayload,
    ReminderPayload,
    GameInvitePayload,
    PendingPayload,
    PendingItemCreate,
    PendingItemOut,
)
from .notifications import NotificationItem

__all__ = [
    "CapabilityDetail",
    "FamilyLinkCreate",
    "FamilyLinkStatusUpdate",
    "FamilyLinkScopesUpdate",
    "FamilyLinkItem",
    "ScopeStatusResponse",
    "PermissionRequestCreate",
    "PermissionRequestItem",
    "MediaPayload",
    "StoryPayload",
    "ReminderPayload",
    "GameInvitePayload",
    "PendingPayload",
    "PendingItemCreate",
    "PendingItemOut",
    "NotificationItem",
]
