import pytest

from carecircle.core.errors import UnknownCapability
from carecircle.core.scopes import (
    DASHBOARD_CAPABILITIES,
    Capability,
    build_capability_view,
    normalize_capabilities,
    parse_capability,
)


def test_parse_capability_accepts_tokens_and_members():
    assert parse_capability("POST_MEDIA") is Capability.POST_MEDIA
    assert parse_capability(" chat ") is Capability.CHAT
    assert parse_capability(Capability.WAKE_UP) is Capability.WAKE_UP


def test_parse_capability_rejects_unknown_token():
    with pytest.raises(UnknownCapability) as exc_info:
        parse_capability("DELETE_EVERYTHING")
    assert exc_info.value.code == "UNKNOWN_CAPABILITY"
    assert exc_info.value.token == "DELETE_EVERYTHING"


def test_normalize_capabilities_dedupes_in_vocabulary_order():
    result = normalize_capabilities(["CHAT", "POST_MEDIA", "chat", Capability.POST_STORY])
    assert result == [Capability.POST_MEDIA, Capability.POST_STORY, Capability.CHAT]


def test_dashboard_excludes_alert_capabilities():
    assert Capability.EMERGENCY_ONLY not in DASHBOARD_CAPABILITIES
    assert Capability.WAKE_UP not in DASHBOARD_CAPABILITIES
    assert len(DASHBOARD_CAPABILITIES) == 5


def test_every_capability_has_a_view():
    for capability in Capability:
        view = build_capability_view(capability)
        assert view["capability"] == capability.value
        assert view["title"]
        assert view["description"]

    assert build_capability_view(Capability.EMERGENCY_ONLY)["category"] == "alerts"
    assert build_capability_view(Capability.CHAT)["category"] == "dashboard"
