from decimal import Decimal

import pytest
from fastapi import HTTPException
from sqlalchemy import select

from drawdesk.main import app
from drawdesk.models import (
    DecisionSource,
    DecisionType,
    DrawLineFlag,
    ExtractionStatus,
    InvoiceMatchDecision,
    MatchStatus,
)
from drawdesk.schemas.invoice import ExtractionCallbackPayload
from drawdesk.schemas.matching import AISelection, MatchClassificationStatus
from drawdesk.services.ai_selection import get_disambiguator
from drawdesk.services.invoice_processing import process_extraction_result, rerun_matching


class FakeDisambiguator:
    def __init__(self, pick: int | None, *, flag_for_review: bool = False, confidence: float = 0.82) -> None:
        self.pick = pick
        self.flag_for_review = flag_for_review
        self.confidence = confidence
        self.seen: list[int] = []

    def select(self, invoice, candidates):
        self.seen = [candidate.draw_line_id for candidate in candidates]
        return AISelection(
            selected_draw_line_id=self.pick,
            confidence=self.confidence,
            reasoning="Vendor history points at this line",
            flag_for_review=self.flag_for_review,
            primary_factor="vendor_history",
        )


def _payload(vendor: str, amount: str, **extra) -> ExtractionCallbackPayload:
    data = {"vendorName": vendor, "amount": amount, "invoiceNumber": "INV-100", **extra}
    return ExtractionCallbackPayload(success=True, extracted_data=data)


def _decisions(db_session, invoice_id):
    return db_session.execute(
        select(InvoiceMatchDecision)
        .where(InvoiceMatchDecision.invoice_id == invoice_id)
        .order_by(InvoiceMatchDecision.id)
    ).scalars().all()


@pytest.fixture
def tied_draw(make_project, make_budget, make_draw):
    project = make_project()
    electrical = make_budget(project, "Electrical")
    plumbing = make_budget(project, "Plumbing")
    return make_draw(project, (electrical, "5000"), (plumbing, "5000"))


def test_single_match_is_applied(db_session, make_project, make_budget, make_draw, make_invoice):
    project = make_project()
    draw = make_draw(project, (make_budget(project, "Foundation", current="50000"), "10000"))
    invoice = make_invoice(draw)
    line = draw.lines[0]

    result = process_extraction_result(db_session, invoice.id, _payload("Acme Construction", "10200"))

    assert result.classification == MatchClassificationStatus.SINGLE_MATCH
    assert result.matched_draw_line_id == line.id
    assert result.invoice.match_status == MatchStatus.AUTO_MATCHED
    assert result.invoice.extraction_status == ExtractionStatus.EXTRACTED
    assert result.invoice.invoice_number == "INV-100"

    db_session.refresh(line)
    assert line.invoice_id == invoice.id
    assert line.invoice_vendor_name == "Acme Construction"
    assert line.variance == Decimal("200")
    assert DrawLineFlag.AMOUNT_MISMATCH not in line.flags
    assert DrawLineFlag.NO_INVOICE not in line.flags

    decision = _decisions(db_session, invoice.id)[-1]
    assert decision.decision_type == DecisionType.AUTO_SINGLE
    assert decision.decision_source == DecisionSource.SYSTEM
    assert decision.candidates[0]["draw_line_id"] == line.id


def test_failed_extraction_stops_pipeline(db_session, make_project, make_budget, make_draw, make_invoice):
    project = make_project()
    draw = make_draw(project, (make_budget(project, "Framing"), "1000"))
    invoice = make_invoice(draw)

    result = process_extraction_result(
        db_session, invoice.id, ExtractionCallbackPayload(success=False, error="unreadable scan")
    )

    assert result.invoice.extraction_status == ExtractionStatus.EXTRACTION_FAILED
    assert result.invoice.match_status == MatchStatus.NO_MATCH
    assert invoice.extraction_error == "unreadable scan"
    assert _decisions(db_session, invoice.id) == []


def test_missing_vendor_defaults(db_session, make_project, make_budget, make_draw, make_invoice):
    project = make_project()
    draw = make_draw(project, (make_budget(project, "Framing"), "1000"))
    invoice = make_invoice(draw)

    result = process_extraction_result(db_session, invoice.id, _payload("", "1000"))

    assert result.invoice.vendor_name == "Unknown Vendor"


def test_draw_without_lines_is_no_match(db_session, make_project, make_draw, make_invoice):
    project = make_project()
    invoice = make_invoice(make_draw(project))

    result = process_extraction_result(db_session, invoice.id, _payload("Acme", "1000"))

    assert result.classification == MatchClassificationStatus.NO_CANDIDATES
    assert result.invoice.match_status == MatchStatus.NO_MATCH


def test_close_candidates_without_ai_go_to_review(db_session, tied_draw, make_invoice):
    invoice = make_invoice(tied_draw)

    result = process_extraction_result(db_session, invoice.id, _payload("Generic Supply", "5000"))

    assert result.classification == MatchClassificationStatus.MULTIPLE_CANDIDATES
    assert result.invoice.match_status == MatchStatus.NEEDS_REVIEW
    assert result.matched_draw_line_id is None
    decision = _decisions(db_session, invoice.id)[-1]
    assert decision.decision_type == DecisionType.MANUAL_INITIAL
    assert len(decision.candidates) == 2
    assert all(DrawLineFlag.NO_INVOICE in line.flags for line in tied_draw.lines)


def test_ai_selection_is_applied(db_session, tied_draw, make_invoice):
    invoice = make_invoice(tied_draw)
    chosen = tied_draw.lines[1]
    disambiguator = FakeDisambiguator(chosen.id)

    result = process_extraction_result(
        db_session, invoice.id, _payload("Generic Supply", "5000"), disambiguator=disambiguator
    )

    assert sorted(disambiguator.seen) == sorted(line.id for line in tied_draw.lines)
    assert result.invoice.match_status == MatchStatus.AI_MATCHED
    assert result.matched_draw_line_id == chosen.id
    assert result.invoice.confidence_score == Decimal("0.82")
    assert DrawLineFlag.AI_SELECTED in chosen.flags
    decision = _decisions(db_session, invoice.id)[-1]
    assert decision.decision_type == DecisionType.AI_SELECTED
    assert decision.decision_source == DecisionSource.AI
    assert decision.reasoning == "Vendor history points at this line"


def test_ai_review_flag_is_respected(db_session, tied_draw, make_invoice):
    invoice = make_invoice(tied_draw)

    result = process_extraction_result(
        db_session,
        invoice.id,
        _payload("Generic Supply", "5000"),
        disambiguator=FakeDisambiguator(tied_draw.lines[0].id, flag_for_review=True),
    )

    assert result.invoice.match_status == MatchStatus.NEEDS_REVIEW
    assert result.matched_draw_line_id is None


def test_ai_pick_outside_candidates_goes_to_review(db_session, tied_draw, make_invoice):
    invoice = make_invoice(tied_draw)

    result = process_extraction_result(
        db_session, invoice.id, _payload("Generic Supply", "5000"), disambiguator=FakeDisambiguator(999999)
    )

    assert result.invoice.match_status == MatchStatus.NEEDS_REVIEW


def test_second_invoice_on_same_line_is_flagged_duplicate(
    db_session, make_project, make_budget, make_draw, make_invoice
):
    project = make_project()
    draw = make_draw(project, (make_budget(project, "Foundation", current="50000"), "10000"))
    first = make_invoice(draw, file_name="a.pdf")
    second = make_invoice(draw, file_name="b.pdf")

    process_extraction_result(db_session, first.id, _payload("Acme", "10000"))
    process_extraction_result(db_session, second.id, _payload("Acme", "10000"))

    line = draw.lines[0]
    assert line.invoice_id == second.id
    assert DrawLineFlag.DUPLICATE_INVOICE in line.flags


def test_rerun_requires_extracted_invoice(db_session, make_project, make_budget, make_draw, make_invoice):
    project = make_project()
    invoice = make_invoice(make_draw(project, (make_budget(project, "Framing"), "1000")))

    with pytest.raises(HTTPException) as exc_info:
        rerun_matching(db_session, invoice.id)

    assert exc_info.value.status_code == 409
    assert exc_info.value.detail["error"]["code"] == "INVOICE_NOT_EXTRACTED"


def test_rerun_matches_again_after_review(db_session, tied_draw, make_invoice):
    invoice = make_invoice(tied_draw)
    process_extraction_result(db_session, invoice.id, _payload("Generic Supply", "5000"))
    chosen = tied_draw.lines[0]

    result = rerun_matching(db_session, invoice.id, disambiguator=FakeDisambiguator(chosen.id))

    assert result.invoice.match_status == MatchStatus.AI_MATCHED
    assert result.matched_draw_line_id == chosen.id
    assert len(_decisions(db_session, invoice.id)) == 2


@pytest.mark.anyio
async def test_callback_rejects_bad_secret(client, db_session, make_project, make_budget, make_draw, make_invoice):
    project = make_project()
    invoice = make_invoice(make_draw(project, (make_budget(project, "Framing"), "1000")))

    response = await client.post(
        f"/invoices/{invoice.id}/extraction-callback",
        json={"success": True, "extractedData": {"vendorName": "Acme", "amount": 1000}},
        headers={"X-Extraction-Secret": "wrong"},
    )

    assert response.status_code == 401
    assert response.json()["error"]["code"] == "UNAUTHORIZED"


@pytest.mark.anyio
async def test_callback_runs_matching(client, callback_headers, db_session, tied_draw, make_invoice):
    invoice = make_invoice(tied_draw)
    chosen = tied_draw.lines[0]
    app.dependency_overrides[get_disambiguator] = lambda: FakeDisambiguator(chosen.id)

    response = await client.post(
        f"/invoices/{invoice.id}/extraction-callback",
        json={"success": True, "extractedData": {"vendorName": "Generic Supply", "amount": 5000}},
        headers=callback_headers,
    )

    assert response.status_code == 200
    payload = response.json()
    assert payload["classification"] == "MULTIPLE_CANDIDATES"
    assert payload["invoice"]["match_status"] == "ai_matched"
    assert payload["matched_draw_line_id"] == chosen.id


@pytest.mark.anyio
async def test_callback_unknown_invoice(client, callback_headers):
    response = await client.post(
        "/invoices/999999/extraction-callback",
        json={"success": True, "extractedData": {"vendorName": "Acme", "amount": 1}},
        headers=callback_headers,
    )

    assert response.status_code == 404
    assert response.json()["error"]["code"] == "INVOICE_NOT_FOUND"
