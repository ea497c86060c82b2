"""
Log setup for the service.

Every record carries the request id and the acting account id. Family links
hold personal details of relatives (name, phone number, email); those are
masked wherever they show up, whether as a keyed field in a logged payload
or inline in a message. Secrets are dropped entirely.
"""
from __future__ import annotations

from contextvars import ContextVar, Token
from datetime import datetime, timezone
import json
import logging
import re
from typing import Any, Callable, Iterable


_request_id: ContextVar[str] = ContextVar("request_id", default="-")
_account_id: ContextVar[str] = ContextVar("account_id", default="-")

_BEARER_RE = re.compile(r"(?i)(bearer\s+)[A-Za-z0-9._-]+")
_JWT_RE = re.compile(r"\b[A-Za-z0-9_-]{20,}\.[A-Za-z0-9_-]{20,}\.[A-Za-z0-9_-]{20,}\b")
_EMAIL_RE = re.compile(r"\b([A-Za-z0-9._%+-])[A-Za-z0-9._%+-]*@([A-Za-z0-9.-]+\.[A-Za-z]{2,})\b")
_PHONE_RE = re.compile(r"(?<![\w.])(?:\+\d{1,3}[\s-]?|0)\d{1,3}[\s-]?\d{3}[\s-]?\d{2}(\d{2})\b")

# Structured fields services attach with `extra=`; the JSON formatter emits them.
DOMAIN_FIELDS = ("family_link_id", "permission_request_id", "pending_item_id", "capability", "status")


def mask_phone(value: str) -> str:
    digits = re.sub(r"\D", "", value)
    return f"***{digits[-2:]}" if len(digits) > 2 else "***"


def mask_email(value: str) -> str:
    local, _, domain = value.partition("@")
    if not domain:
        return "***"
    return f"{local[:1]}***@{domain}"


def mask_name(value: str) -> str:
    initials = [part[0] for part in value.split() if part]
    return ".".join(initials) + "." if initials else "***"


# FamilyLink columns and the payload keys derived from them.
PERSONAL_FIELD_MASKS: dict[str, Callable[[str], str]] = {
    "phone": mask_phone,
    "email": mask_email,
    "full_name": mask_name,
    "family_member_name": mask_name,
}


def scrub_text(value: str) -> str:
    value = _BEARER_RE.sub(r"\1[REDACTED]", value)
    value = _JWT_RE.sub("[REDACTED_JWT]", value)
    value = _EMAIL_RE.sub(r"\1***@\2", value)
    return _PHONE_RE.sub(r"***\1", value)


def scrub(value: Any, secret_fields: frozenset[str]) -> Any:
    if isinstance(value, dict):
        cleaned = {}
        for key, item in value.items():
            name = str(key).lower()
            if name in secret_fields:
                cleaned[key] = "[REDACTED]"
            elif name in PERSONAL_FIELD_MASKS and isinstance(item, str):
                cleaned[key] = PERSONAL_FIELD_MASKS[name](item)
            else:
                cleaned[key] = scrub(item, secret_fields)
        return cleaned
    if isinstance(value, (list, tuple)):
        return type(value)(scrub(item, secret_fields) for item in value)
    if isinstance(value, str):
        return scrub_text(value)
    return value


class RequestContextFilter(logging.Filter):
    def filter(self, record: logging.LogRecord) -> bool:
        record.request_id = _request_id.get()
        record.account_id = _account_id.get()
        return True


class ScrubFilter(logging.Filter):
    def __init__(self, secret_fields: Iterable[str]):
        super().__init__()
        self._secret_fields = frozenset(f.strip().lower() for f in secret_fields if f.strip())

    def filter(self, record: logging.LogRecord) -> bool:
        record.msg = scrub(record.msg, self._secret_fields)
        if record.args:
            record.args = scrub(record.args, self._secret_fields)
        return True


class JsonFormatter(logging.Formatter):
    def format(self, record: logging.LogRecord) -> str:
        entry: dict[str, Any] = {
            "ts": datetime.now(timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "request_id": getattr(record, "request_id", "-"),
            "account_id": getattr(record, "account_id", "-"),
            "message": record.getMessage(),
        }
        for field in DOMAIN_FIELDS:
            if hasattr(record, field):
                entry[field] = getattr(record, field)
        if record.exc_info:
            entry["exception"] = self.formatException(record.exc_info)
        return json.dumps(entry, ensure_ascii=False, default=str)


def bind_request_context(request_id: str, account_id: str | None = None) -> tuple[Token[str], Token[str]]:
    return _request_id.set(request_id), _account_id.set(account_id or "-")


def reset_request_context(tokens: tuple[Token[str], Token[str]]) -> None:
    request_token, account_token = tokens
    _account_id.reset(account_token)
    _request_id.reset(request_token)


def configure_logging(level: str = "INFO", *, log_format: str = "text", secret_fields: Iterable[str] = ()) -> None:
    """Installs the service's handler on the root logger; repeated calls are no-ops."""
    root = logging.getLogger()
    if any(getattr(handler, "carecircle", False) for handler in root.handlers):
        return

    handler = logging.StreamHandler()
    handler.carecircle = True
    handler.addFilter(RequestContextFilter())
    handler.addFilter(ScrubFilter(secret_fields))
    if log_format == "json":
        handler.setFormatter(JsonFormatter())
    else:
        handler.setFormatter(
            logging.Formatter(
                "%(asctime)s | %(levelname)s | %(name)s | req=%(request_id)s acct=%(account_id)s | %(message)s",
                datefmt="%Y-%m-%d %H:%M:%S",
            )
        )

    root.addHandler(handler)
    root.setLevel(getattr(logging, level.upper(), logging.INFO))
