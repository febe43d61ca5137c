from datetime import date
from decimal import Decimal

import pytest
from fastapi import HTTPException

from drawdesk.models import DrawLineFlag
from drawdesk.schemas.validation import BudgetOverage, DrawValidation, DuplicateInvoice, ValidationFlag
from drawdesk.services.validations import (
    approval_blockers,
    validate_draw_request,
    validate_line_amount,
    validation_summary,
)


def _fill_invoice(db_session, invoice, vendor, amount, invoice_date=date(2026, 9, 1)):
    invoice.vendor_name = vendor
    invoice.amount = Decimal(amount) if amount is not None else None
    invoice.invoice_date = invoice_date
    db_session.flush()
    return invoice


def test_overage_and_missing_invoices(db_session, make_project, make_budget, make_draw):
    project = make_project()
    budget = make_budget(project, "Framing", current="10000", spent="7000")
    draw = make_draw(project, (budget, "5000"), (None, "1000"))

    validation = validate_draw_request(db_session, draw.id)

    assert validation.is_valid is False
    assert validation.overages == [
        BudgetOverage(
            line_id=draw.lines[0].id,
            budget_id=budget.id,
            category="Framing",
            requested=Decimal("5000"),
            remaining=Decimal("3000"),
            overage=Decimal("2000"),
        )
    ]
    assert [(item.line_id, item.category) for item in validation.missing_invoices] == [
        (draw.lines[0].id, "Framing"),
        (draw.lines[1].id, "Unknown"),
    ]
    assert validation.flags == [ValidationFlag.BUDGET_OVERAGE, ValidationFlag.MISSING_INVOICE]
    assert validation.duplicate_invoices == []


def test_line_flags_and_confidence_raise_alerts(db_session, make_project, make_budget, make_draw):
    project = make_project()
    draw = make_draw(project, (make_budget(project, "Plumbing"), "4000"))
    line = draw.lines[0]
    line.matched_invoice_amount = Decimal("4600")
    line.confidence_score = Decimal("0.6")
    line.flags = frozenset({DrawLineFlag.AMOUNT_MISMATCH, DrawLineFlag.NO_INVOICE})
    db_session.flush()

    validation = validate_draw_request(db_session, draw.id)

    assert validation.is_valid is True
    assert validation.missing_invoices == []
    assert set(validation.flags) == {
        ValidationFlag.VARIANCE_ALERT,
        ValidationFlag.NO_INVOICE_MATCH,
        ValidationFlag.LOW_CONFIDENCE_MATCH,
    }


def test_duplicate_invoices_across_project_draws(db_session, make_project, make_budget, make_draw, make_invoice):
    project = make_project()
    budget = make_budget(project, "Electrical")
    first = make_draw(project, (budget, "1200"))
    second = make_draw(project, (budget, "800"), draw_number=2)
    original = _fill_invoice(db_session, make_invoice(first), "Spark Co", "1200")
    repeat = _fill_invoice(db_session, make_invoice(second), "Spark Co", "1200")
    _fill_invoice(db_session, make_invoice(second), "Spark Co", "800")
    _fill_invoice(db_session, make_invoice(second), None, "1200")

    validation = validate_draw_request(db_session, second.id)

    assert validation.duplicate_invoices == [
        DuplicateInvoice(invoice_id=repeat.id, vendor="Spark Co", amount=Decimal("1200"), matched_with=original.id)
    ]
    assert ValidationFlag.DUPLICATE_INVOICE in validation.flags
    assert validation.is_valid is False


def test_same_vendor_and_amount_on_another_date_is_not_duplicate(
    db_session, make_project, make_budget, make_draw, make_invoice
):
    project = make_project()
    draw = make_draw(project, (make_budget(project, "Electrical"), "1200"))
    _fill_invoice(db_session, make_invoice(draw), "Spark Co", "1200", date(2026, 9, 1))
    _fill_invoice(db_session, make_invoice(draw), "Spark Co", "1200", date(2026, 10, 1))

    assert validate_draw_request(db_session, draw.id).duplicate_invoices == []


def test_missing_draw_is_not_found(db_session):
    with pytest.raises(HTTPException) as exc_info:
        validate_draw_request(db_session, 999999)
    assert exc_info.value.status_code == 404


def test_approval_blockers_and_summary():
    validation = DrawValidation(
        overages=[
            BudgetOverage(
                line_id=1,
                budget_id=1,
                category="Framing",
                requested=Decimal("5000"),
                remaining=Decimal("3000"),
                overage=Decimal("2000"),
            )
        ],
        duplicate_invoices=[
            DuplicateInvoice(invoice_id=2, vendor="Spark Co", amount=Decimal("1200"), matched_with=1)
        ],
    )

    assert approval_blockers(validation) == [
        "1 budget line(s) exceed remaining funds",
        "1 potential duplicate invoice(s) detected",
    ]
    assert validation_summary(validation) == "1 budget overage(s), 1 duplicate invoice(s)"
    assert approval_blockers(DrawValidation()) == []
    assert validation_summary(DrawValidation()) == "No validation issues found"


def test_validate_line_amount():
    assert validate_line_amount(Decimal("0"), Decimal("100")).message == "Amount must be greater than zero"

    over = validate_line_amount(Decimal("1500.40"), Decimal("250"))
    assert over.valid is False
    assert over.message == "Amount exceeds remaining budget by $1,250"

    assert validate_line_amount(Decimal("250"), Decimal("250")).valid is True


@pytest.mark.anyio
async def test_validation_endpoint(client, make_project, make_budget, make_draw):
    project = make_project()
    budget = make_budget(project, "Framing", current="10000", spent="7000")
    draw = make_draw(project, (budget, "5000"))

    response = await client.get(f"/draws/{draw.id}/validation")

    assert response.status_code == 200
    payload = response.json()
    assert payload["draw_request_id"] == draw.id
    assert payload["is_valid"] is False
    assert payload["can_approve"] is False
    assert payload["blockers"] == ["1 budget line(s) exceed remaining funds"]
    assert payload["summary"] == "1 budget overage(s), 1 line(s) missing documentation"
    assert payload["validation"]["flags"] == ["BUDGET_OVERAGE", "MISSING_INVOICE"]
    assert Decimal(payload["validation"]["overages"][0]["overage"]) == Decimal("2000")


@pytest.mark.anyio
async def test_validation_endpoint_unknown_draw(client):
    response = await client.get("/draws/999999/validation")

    assert response.status_code == 404
    assert response.json()["error"]["code"] == "DRAW_NOT_FOUND"
