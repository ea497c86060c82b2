from __future__ import annotations

from enum import Enum
from typing import Iterable

from carecircle.core.errors import UnknownCapability


class Capability(str, Enum):
    """Closed set of actions a family member can be allowed to perform."""

    POST_MEDIA = "POST_MEDIA"
    POST_STORY = "POST_STORY"
    SUGGEST_REMINDER = "SUGGEST_REMINDER"
    INVITE_GAME = "INVITE_GAME"
    CHAT = "CHAT"
    EMERGENCY_ONLY = "EMERGENCY_ONLY"
    WAKE_UP = "WAKE_UP"


KNOWN_CAPABILITY_DESCRIPTIONS: dict[Capability, dict[str, str]] = {
    Capability.POST_MEDIA: {
        "title": "Share photos and videos",
        "description": "Can send photos and videos to the main user for approval.",
    },
    Capability.POST_STORY: {
        "title": "Share stories",
        "description": "Can send written stories and memories for approval.",
    },
    Capability.SUGGEST_REMINDER: {
        "title": "Suggest reminders",
        "description": "Can suggest medication, appointment and event reminders for approval.",
    },
    Capability.INVITE_GAME: {
        "title": "Invite to games",
        "description": "Can invite the main user to play a game together.",
    },
    Capability.CHAT: {
        "title": "Family chat",
        "description": "Can take part in the family chat.",
    },
    Capability.EMERGENCY_ONLY: {
        "title": "Emergency alerts only",
        "description": "Receives SOS alerts without access to the family dashboard.",
    },
    Capability.WAKE_UP: {
        "title": "Wake-up notifications",
        "description": "Is notified when the main user checks in in the morning.",
    },
}

# The five actions shown on a family member's dashboard, in display order.
DASHBOARD_CAPABILITIES: tuple[Capability, ...] = (
    Capability.POST_MEDIA,
    Capability.POST_STORY,
    Capability.SUGGEST_REMINDER,
    Capability.INVITE_GAME,
    Capability.CHAT,
)

_ORDER = {capability: index for index, capability in enumerate(Capability)}


def parse_capability(token: str | Capability) -> Capability:
    if isinstance(token, Capability):
        return token
    try:
        return Capability(str(token).strip().upper())
    except ValueError:
        raise UnknownCapability(token=str(token)) from None


def normalize_capabilities(tokens: Iterable[str | Capability]) -> list[Capability]:
    """Validates tokens and returns them deduplicated in vocabulary order."""
    parsed = {parse_capability(token) for token in tokens}
    return sorted(parsed, key=_ORDER.__getitem__)


def get_capability_category(capability: Capability) -> str:
    if capability in DASHBOARD_CAPABILITIES:
        return "dashboard"
    return "alerts"


def get_capability_category_label(category: str) -> str:
    if category == "dashboard":
        return "What Family Can Do"
    return "Alerts & Notifications"


def describe_capability(capability: Capability) -> dict[str, str]:
    return KNOWN_CAPABILITY_DESCRIPTIONS[capability]


def build_capability_view(capability: Capability) -> dict[str, str]:
    category = get_capability_category(capability)
    description = describe_capability(capability)

    return {
        "capability": capability.value,
        "category": category,
        "category_label": get_capability_category_label(category),
        "title": description["title"],
        "description": description["description"],
    }
