from decimal import Decimal

from drawdesk.models.enums import DrawLineFlag
from drawdesk.schemas.ledger import BudgetSnapshot, DrawLineSnapshot
from drawdesk.schemas.matching import (
    ExtractedInvoiceData,
    MatchCandidate,
    MatchClassificationStatus,
    MatchContext,
    MatchFactors,
    MatchScores,
)
from drawdesk.schemas.terms import MatchingConfig
from drawdesk.services.invoice_matching import (
    amount_score,
    classify,
    find_exact_amount_matches,
    generate_candidates,
    keyword_score,
    match_flags,
    should_use_ai,
    trade_score,
    training_score,
    validate_coverage,
    vendor_score,
)


def _budget(budget_id: int, category: str) -> BudgetSnapshot:
    return BudgetSnapshot(id=budget_id, category=category, current_amount=Decimal("50000"))


def _line(line_id: int, budget_id: int | None, amount: str) -> DrawLineSnapshot:
    return DrawLineSnapshot(
        id=line_id, draw_request_id=1, budget_id=budget_id, amount_requested=Decimal(amount)
    )


def _candidate(line_id: int, composite: float) -> MatchCandidate:
    return MatchCandidate(
        draw_line_id=line_id,
        budget_category=f"Category {line_id}",
        amount_requested=Decimal("1000"),
        scores=MatchScores(amount=composite, trade=0.0, keywords=0.0, composite=composite),
        factors=MatchFactors(amount_variance=0.0, amount_variance_absolute=Decimal("0")),
    )


def test_amount_score_tiers():
    assert amount_score(Decimal("10200"), Decimal("10000"))[0] == 1.0
    assert amount_score(Decimal("1040"), Decimal("1000"))[0] == 1.0
    assert amount_score(Decimal("10400"), Decimal("10000"))[0] == 0.95
    assert amount_score(Decimal("11200"), Decimal("10000"))[0] == 0.65
    assert amount_score(Decimal("20000"), Decimal("10000"))[0] == 0.2
    assert amount_score(Decimal("500"), Decimal("0")) == (0.0, 1.0, Decimal("500"))


def test_trade_score_matches_synonyms():
    assert trade_score("HVAC", "Mechanical Systems", None) == (1.0, True)
    assert trade_score("electrical", "Framing", "Rough Electrical") == (1.0, True)
    assert trade_score("plumbing", "Framing", None) == (0.0, False)
    assert trade_score(None, "Framing", None) == (0.0, False)


def test_keyword_score_needs_three_keywords_for_full_credit():
    score, matched = keyword_score(["lumber"], {"framing", "lumber", "carpentry"})
    assert matched == ["lumber"]
    assert score == 1 / 3


def test_training_score_prefers_vendor_history():
    context = MatchContext(vendor_matches={"Framing": 4})
    score, reason, vendor_matched = training_score("Acme", [], "Framing", context)
    assert score == 0.9
    assert vendor_matched is True
    assert "4 times" in reason

    once = training_score("Acme", [], "Framing", MatchContext(vendor_matches={"Framing": 1}))
    assert once[0] == 0.6


def test_single_match_scenario():
    invoice = ExtractedInvoiceData.model_validate({"vendorName": "Acme Construction", "amount": "10200"})

    candidates = generate_candidates(invoice, [_line(1, 1, "10000")], [_budget(1, "Foundation")])
    classification = classify(candidates)

    assert classification.status == MatchClassificationStatus.SINGLE_MATCH
    assert classification.top_candidate.draw_line_id == 1
    assert classification.confidence >= MatchingConfig().auto_match_threshold
    assert DrawLineFlag.AMOUNT_MISMATCH not in match_flags(
        invoice.amount, Decimal("10000"), classification.confidence
    )


def test_vendor_tokens_match_whole_words_only():
    vocabulary = {"electrical", "electric", "low", "voltage"}

    assert vendor_score(["lowes"], vocabulary) == (0.0, [])
    assert vendor_score(["tri", "state", "builders"], vocabulary) == (0.0, [])
    assert vendor_score(["valley", "electric"], vocabulary) == (0.5, ["electric"])


def test_vendor_name_does_not_demote_exact_amount_match():
    lines = [_line(1, 1, "10000"), _line(2, 2, "40000")]
    budgets = [_budget(1, "Foundation"), _budget(2, "Electrical")]

    for vendor in ("Acme Construction", "Lowe's", "Tri-State Builders", "Acme Electric"):
        invoice = ExtractedInvoiceData(vendor_name=vendor, amount=Decimal("10000"))
        classification = classify(generate_candidates(invoice, lines, budgets))

        assert classification.status == MatchClassificationStatus.SINGLE_MATCH, vendor
        assert classification.top_candidate.draw_line_id == 1
        assert classification.top_candidate.scores.composite == 1.0


def test_vendor_name_lifts_only_its_own_line():
    invoice = ExtractedInvoiceData(vendor_name="Voltage Electric", amount=Decimal("5000"))
    lines = [_line(1, 1, "5400"), _line(2, 2, "5400")]
    budgets = [_budget(1, "Electrical"), _budget(2, "Plumbing")]

    candidates = generate_candidates(invoice, lines, budgets)
    by_line = {candidate.draw_line_id: candidate for candidate in candidates}

    assert by_line[1].scores.composite > by_line[2].scores.composite
    assert by_line[1].factors.keyword_matches == ["voltage", "electric"]
    assert by_line[2].scores.composite == by_line[2].scores.amount


def test_lines_without_budget_or_amount_are_not_candidates():
    invoice = ExtractedInvoiceData(vendor_name="Acme", amount=Decimal("1000"))

    candidates = generate_candidates(
        invoice,
        [_line(1, None, "1000"), _line(2, 1, "0")],
        [_budget(1, "Framing")],
    )

    assert candidates == []
    assert classify(candidates).status == MatchClassificationStatus.NO_CANDIDATES


def test_trade_signal_separates_equal_amounts():
    invoice = ExtractedInvoiceData.model_validate(
        {"vendorName": "Spark Co", "amount": "5000", "constructionCategory": "electrical"}
    )
    lines = [_line(1, 1, "5000"), _line(2, 2, "5000")]
    budgets = [_budget(1, "Electrical"), _budget(2, "Plumbing")]

    candidates = generate_candidates(invoice, lines, budgets)

    assert candidates[0].draw_line_id == 1
    assert candidates[0].factors.trade_match is True
    assert classify(candidates).status == MatchClassificationStatus.SINGLE_MATCH


def test_equal_amounts_without_other_signal_need_ai():
    invoice = ExtractedInvoiceData(vendor_name="Generic Supply", amount=Decimal("5000"))
    lines = [_line(1, 1, "5000"), _line(2, 2, "5000")]
    budgets = [_budget(1, "Electrical"), _budget(2, "Plumbing")]

    classification = classify(generate_candidates(invoice, lines, budgets))

    assert classification.status == MatchClassificationStatus.MULTIPLE_CANDIDATES
    assert classification.needs_ai is True
    assert should_use_ai(classification) is True
    assert should_use_ai(classification, enabled=False) is False


def test_classification_bands():
    assert classify([_candidate(1, 0.9), _candidate(2, 0.6)]).status == MatchClassificationStatus.SINGLE_MATCH
    assert classify([_candidate(1, 0.7), _candidate(2, 0.65)]).status == (
        MatchClassificationStatus.MULTIPLE_CANDIDATES
    )
    assert classify([_candidate(1, 0.45)]).status == MatchClassificationStatus.AMBIGUOUS
    assert classify([_candidate(1, 0.9), _candidate(2, 0.4)]).top_candidate.draw_line_id == 1


def test_classification_limits_ai_candidates():
    candidates = [_candidate(index, 0.7 - index * 0.001) for index in range(1, 9)]

    classification = classify(candidates)

    assert classification.status == MatchClassificationStatus.MULTIPLE_CANDIDATES
    assert len(classification.candidates) == MatchingConfig().max_ai_candidates


def test_match_flags():
    flags = match_flags(Decimal("12000"), Decimal("10000"), 0.5)
    assert flags == {DrawLineFlag.AMOUNT_MISMATCH, DrawLineFlag.LOW_CONFIDENCE}
    assert match_flags(Decimal("10000"), Decimal("10000"), 0.95) == set()


def test_validate_coverage_reports_uncovered_lines():
    lines = [_line(1, 1, "1000"), _line(2, 2, "2000")]

    coverage = validate_coverage(lines, {1: Decimal("1000")}, [_budget(1, "Framing"), _budget(2, "Roofing")])

    assert coverage.is_covered is False
    assert [line.line_id for line in coverage.uncovered_lines] == [2]
    assert coverage.uncovered_lines[0].budget_category == "Roofing"
    assert coverage.flags == [DrawLineFlag.NO_INVOICE.value]


def test_find_exact_amount_matches_pairs_each_line_once():
    class _Invoice:
        def __init__(self, invoice_id: int, amount: str) -> None:
            self.id = invoice_id
            self.amount = Decimal(amount)

    lines = [_line(1, 1, "1000"), _line(2, 2, "5000")]
    invoices = [_Invoice(10, "1010"), _Invoice(11, "4990"), _Invoice(12, "1005")]

    matches = find_exact_amount_matches(invoices, lines)

    # Larger invoices claim lines first, so 1010 takes line 1 before 1005.
    assert matches == {11: 2, 10: 1}
