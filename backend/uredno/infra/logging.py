"""JSON logs with customer contact details and credentials masked.

Bookings and inquiries carry names, emails, Croatian phone numbers and street
addresses, so every string that reaches a log line goes through
:func:`redact_pii`, and values under contact or credential keys are replaced
outright. Request-scoped fields live in a context var set by the request
middleware.
"""

import contextvars
import json
import logging
import re
from datetime import datetime, timezone
from typing import Any

EMAIL_RE = re.compile(r"[A-Za-z0-9._%+-]+@[A-Za-z0-9.-]+\.[A-Za-z]{2,}")
# Croatian numbers in local (09x ...) or international (+385 / 00385 ...) form.
PHONE_RE = re.compile(
    r"(?:\+|00)?385[\s./-]?\d{1,2}[\s./-]?\d{3}[\s./-]?\d{3,4}\b"
    r"|\b0\d{1,2}[\s./-]?\d{3}[\s./-]?\d{3,4}\b"
)
CREDENTIAL_RE = re.compile(r"(?i)\b(?:authorization\s*[:=]\s*\S+|bearer\s+[A-Za-z0-9._\-]+)")
TOKEN_QUERY_RE = re.compile(r"(?i)\b(?P<key>token|apikey|api_key|access_token|signature)=[^&\s]+")

CONTACT_KEYS = {"email", "phone", "address", "first_name", "last_name", "name", "contact"}
CREDENTIAL_KEYS = {"authorization", "token", "apikey", "access_token", "metrics_token", "store_service_role_key"}
# Booking rows spell contact fields as customer_email, customer_phone, ...
CUSTOMER_PREFIX = "customer_"

LOG_CONTEXT: contextvars.ContextVar[dict[str, Any]] = contextvars.ContextVar("log_context", default={})
_RESERVED_ATTRS = set(logging.LogRecord(None, 0, "", 0, "", (), None).__dict__) | {"message", "asctime"}


def redact_pii(value: str) -> str:
    value = EMAIL_RE.sub("[REDACTED_EMAIL]", value)
    value = PHONE_RE.sub("[REDACTED_PHONE]", value)
    value = TOKEN_QUERY_RE.sub(lambda match: f"{match.group('key')}=[REDACTED_TOKEN]", value)
    return CREDENTIAL_RE.sub("[REDACTED_TOKEN]", value)


def _is_masked_key(key: str) -> bool:
    key = key.lower()
    if key.startswith(CUSTOMER_PREFIX):
        key = key[len(CUSTOMER_PREFIX):]
    return key in CONTACT_KEYS or key in CREDENTIAL_KEYS


def _scrub(value: Any, key: str | None = None) -> Any:
    if key is not None and _is_masked_key(key):
        return "[REDACTED]"
    if isinstance(value, str):
        return redact_pii(value)
    if isinstance(value, (list, tuple)):
        return [_scrub(item) for item in value]
    if isinstance(value, dict):
        return {item_key: _scrub(item_value, str(item_key)) for item_key, item_value in value.items()}
    return value


def update_log_context(**fields: Any) -> None:
    merged = dict(LOG_CONTEXT.get({}))
    merged.update({key: value for key, value in fields.items() if value is not None})
    LOG_CONTEXT.set(merged)


def clear_log_context() -> None:
    LOG_CONTEXT.set({})


class RedactingJsonFormatter(logging.Formatter):
    def __init__(self, service: str | None = None) -> None:
        super().__init__()
        self.service = service

    def format(self, record: logging.LogRecord) -> str:
        payload: dict[str, Any] = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": redact_pii(record.getMessage()),
        }
        if self.service:
            payload["service"] = self.service
        payload.update(_scrub(LOG_CONTEXT.get({})))
        # Call sites pass structured fields as extra={"extra": {...}}; a few
        # pass them flat, which lands them straight on the record.
        fields = {
            key: value
            for key, value in vars(record).items()
            if key not in _RESERVED_ATTRS and not key.startswith("_")
        }
        nested = fields.pop("extra", None)
        if isinstance(nested, dict):
            fields.update(nested)
        payload.update(_scrub(fields))
        if record.exc_info and record.exc_info[0] is not None:
            payload["exc_type"] = record.exc_info[0].__name__
        return json.dumps(payload, ensure_ascii=False, default=str)


def configure_logging(level: int | str = logging.INFO, *, service: str | None = None) -> None:
    handler = logging.StreamHandler()
    handler.setFormatter(RedactingJsonFormatter(service=service))
    root = logging.getLogger()
    root.setLevel(level.upper() if isinstance(level, str) else level)
    root.handlers.clear()
    root.addHandler(handler)
