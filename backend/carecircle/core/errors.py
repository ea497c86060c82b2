from __future__ import annotations


class FamilyCareError(Exception):
    """
    Base class for every error the registry, ledger and queue raise.

    Each subclass carries a stable machine code and an HTTP status so the
    API layer can render a distinct message per failure instead of one
    generic banner. Raising any of these means no state was changed.
    """

    status_code = 400
    code = "ERROR"

    def __init__(self, explanation: str, *, code: str | None = None, next_actions: list[str] | None = None):
        super().__init__(explanation)
        self.explanation = explanation
        if code:
            self.code = code
        self.next_actions = list(next_actions or [])

    def as_dict(self) -> dict:
        return {
            "code": self.code,
            "explanation": self.explanation,
            "next_actions": self.next_actions,
        }


class ValidationError(FamilyCareError, ValueError):
    code = "VALIDATION_ERROR"


class NotFound(FamilyCareError):
    status_code = 404
    code = "NOT_FOUND"

    def __init__(self, kind: str, identifier: object):
        super().__init__(f"{kind} {identifier} not found")
        self.kind = kind
        self.identifier = identifier


class InvalidTransition(FamilyCareError):
    status_code = 409
    code = "INVALID_TRANSITION"

    def __init__(self, current: str, requested: str):
        next_actions = []
        if current in {"DECLINED", "REVOKED"}:
            next_actions.append("Invite the family member again.")
        super().__init__(
            f"Cannot change family link status from {current} to {requested}",
            next_actions=next_actions,
        )
        self.current = current
        self.requested = requested


class UnknownCapability(FamilyCareError, ValueError):
    code = "UNKNOWN_CAPABILITY"

    def __init__(self, token: str):
        super().__init__(f"Unknown capability: {token}")
        self.token = token


class DuplicatePending(FamilyCareError):
    status_code = 409
    code = "ALREADY_REQUESTED"

    def __init__(self, family_link_id: int, capability: str):
        super().__init__(
            f"A request for {capability} is already waiting for approval",
            next_actions=["Wait for the main user to approve or decline the existing request."],
        )
        self.family_link_id = family_link_id
        self.capability = capability


class AlreadyDecided(FamilyCareError):
    status_code = 409
    code = "ALREADY_DECIDED"

    def __init__(self, current: str, requested: str):
        super().__init__(f"Already {current.lower()}; cannot change the decision to {requested.lower()}")
        self.current = current
        self.requested = requested


class ScopeNotGranted(FamilyCareError):
    status_code = 403
    code = "NO_PERMISSION"

    def __init__(self, capability: str):
        super().__init__(
            f"You do not have permission to use {capability}",
            next_actions=["Ask the main user for this permission."],
        )
        self.capability = capability


class AccessDenied(FamilyCareError):
    status_code = 403
    code = "ACCESS_DENIED"
