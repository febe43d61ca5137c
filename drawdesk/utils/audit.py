"""Audit logging helper utilities."""
from __future__ import annotations

from decimal import Decimal
from enum import Enum
from typing import Any, Mapping

from sqlalchemy.orm import Session

from drawdesk.models.audit import AuditEvent

SENSITIVE_KEYS = {
    "account_number",
    "routing_number",
    "wire_reference",
    "email",
    "file_url",
}


def _mask_value(key: str, value: Any) -> Any:
    if value is None:
        return None

    if key in {"account_number", "routing_number"}:
        stripped = str(value).replace(" ", "")
        if len(stripped) <= 4:
            return f"***{stripped}"
        return f"***{stripped[-4:]}"

    if key == "email":
        text = str(value)
        if "@" in text:
            _, domain = text.split("@", 1)
            return f"***@{domain}"
        return "***"

    if key == "file_url":
        base = str(value).split("?", 1)[0]
        if "/" in base:
            prefix = base.rsplit("/", 1)[0]
            return f"{prefix}/***"
        return "***/***"

    if key == "wire_reference":
        text = str(value)
        if len(text) <= 6:
            return "***"
        return f"***{text[-4:]}"

    return value


def sanitize_payload_for_audit(data: Any) -> Any:
    """Return a JSON-safe copy of ``data`` with obvious PII fields masked."""

    if isinstance(data, Mapping):
        sanitized: dict[str, Any] = {}
        for key, value in data.items():
            masked_value = _mask_value(key, value) if key in SENSITIVE_KEYS else value
            sanitized[key] = sanitize_payload_for_audit(masked_value)
        return sanitized

    if isinstance(data, (list, tuple, set, frozenset)):
        return [sanitize_payload_for_audit(item) for item in data]

    if isinstance(data, Decimal):
        return str(data)

    if isinstance(data, Enum):
        return data.value

    return data


def log_audit_event(
    db: Session,
    *,
    entity_type: str,
    entity_id: int,
    action: str,
    actor: str = "system",
    old_data: dict | None = None,
    new_data: dict | None = None,
    metadata: dict | None = None,
    draw_line_id: int | None = None,
) -> AuditEvent:
    """Stage an audit event on ``db``; the caller owns the commit."""

    event = AuditEvent(
        entity_type=entity_type,
        entity_id=entity_id,
        action=action,
        actor=actor,
        old_data=sanitize_payload_for_audit(old_data) if old_data is not None else None,
        new_data=sanitize_payload_for_audit(new_data) if new_data is not None else None,
        meta=sanitize_payload_for_audit(metadata) if metadata is not None else None,
        draw_line_id=draw_line_id,
    )
    db.add(event)
    return event
