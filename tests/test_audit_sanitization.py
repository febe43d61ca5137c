from decimal import Decimal

from sqlalchemy import select

from drawdesk.models import AuditEvent, DrawStatus
from drawdesk.utils.audit import log_audit_event, sanitize_payload_for_audit


def test_audit_event_masks_sensitive_fields(db_session):
    payload = {
        "file_url": "https://files.example.com/invoices/abc123.pdf?token=secret",
        "account_number": "000123456789",
        "email": "builder@example.com",
        "wire_reference": "FED20260101XYZ9",
        "nested": [{"routing_number": "021000021"}],
    }

    log_audit_event(
        db_session,
        entity_type="draw_request",
        entity_id=1,
        action="mask_test",
        actor="test",
        new_data=payload,
    )
    db_session.commit()

    entry = db_session.execute(
        select(AuditEvent).where(AuditEvent.action == "mask_test").order_by(AuditEvent.id.desc())
    ).scalars().first()
    assert entry is not None
    assert entry.new_data["file_url"] == "https://files.example.com/invoices/***"
    assert entry.new_data["account_number"] == "***6789"
    assert entry.new_data["email"] == "***@example.com"
    assert entry.new_data["wire_reference"] == "***XYZ9"
    assert entry.new_data["nested"][0]["routing_number"] == "***0021"
    assert entry.old_data is None


def test_sanitize_converts_decimals_and_enums():
    cleaned = sanitize_payload_for_audit(
        {"amount": Decimal("12.50"), "status": DrawStatus.FUNDED, "ids": (1, 2)}
    )

    assert cleaned == {"amount": "12.50", "status": "funded", "ids": [1, 2]}
