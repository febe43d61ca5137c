"""Deterministic invoice-to-draw-line matching.

Candidates are scored on four signals: amount similarity, trade/category
match, keyword overlap and historical training. The composite score is the
weighted mean over the signals the invoice actually carries evidence for,
so a bare invoice (vendor and amount only) is judged on its amount rather
than penalised for missing trade or keyword data. Vendor-name tokens that
equal a line's category vocabulary may lift that line's score but never lower
any other. Weights and thresholds live on :class:`MatchingConfig`.
"""
from __future__ import annotations

from collections.abc import Iterable, Mapping, Sequence
from decimal import Decimal
from typing import Any

from drawdesk.models.enums import DrawLineFlag
from drawdesk.schemas.ledger import BudgetSnapshot, DrawLineSnapshot
from drawdesk.schemas.matching import (
    CoverageLine,
    CoverageValidation,
    ExtractedInvoiceData,
    MatchCandidate,
    MatchClassification,
    MatchClassificationStatus,
    MatchContext,
    MatchFactors,
    MatchScores,
)
from drawdesk.schemas.terms import DEFAULT_MATCHING_CONFIG, MatchingConfig
from drawdesk.utils.fuzzy import tokenize

ZERO = Decimal("0")

# Extracted trade -> terms that identify the trade in a budget category name.
TRADE_TERMS: dict[str, tuple[str, ...]] = {
    "electrical": ("electrical", "electric", "low voltage"),
    "plumbing": ("plumbing", "plumber"),
    "hvac": ("hvac", "mechanical", "heating", "air conditioning"),
    "framing": ("framing", "lumber", "carpentry"),
    "roofing": ("roofing", "roof"),
    "flooring": ("flooring", "floor", "carpet", "tile", "hardwood"),
    "foundation": ("foundation", "concrete", "footings"),
    "excavation": ("excavation", "site work", "grading"),
    "landscaping": ("landscaping", "landscape", "irrigation"),
    "painting": ("painting", "paint", "interior paint", "exterior paint"),
    "drywall": ("drywall", "insulation"),
    "insulation": ("insulation", "drywall"),
    "windows_doors": ("windows", "doors", "window", "door"),
    "appliances": ("appliances", "appliance"),
    "fixtures": ("fixtures", "plumbing fixtures", "light fixtures"),
    "general": ("general conditions", "general", "permits", "fees"),
}

# Amount variance tiers: (max relative variance, score).
AMOUNT_TIERS: tuple[tuple[float, float], ...] = (
    (0.05, 0.95),
    (0.10, 0.80),
    (0.15, 0.65),
    (0.25, 0.45),
)
AMOUNT_FLOOR_SCORE = 0.20


def amount_score(
    invoice_amount: Decimal,
    requested_amount: Decimal,
    config: MatchingConfig = DEFAULT_MATCHING_CONFIG,
) -> tuple[float, float, Decimal]:
    """Return ``(score, relative variance, absolute variance)``."""

    if requested_amount == 0:
        return 0.0, 1.0, abs(invoice_amount)

    absolute = abs(invoice_amount - requested_amount)
    variance = float(absolute / requested_amount)
    if absolute <= config.exact_amount_tolerance or variance <= config.exact_amount_pct:
        return 1.0, variance, absolute
    for limit, score in AMOUNT_TIERS:
        if variance <= limit:
            return score, variance, absolute
    return AMOUNT_FLOOR_SCORE, variance, absolute


def trade_score(trade: str | None, budget_category: str, nahb_category: str | None) -> tuple[float, bool]:
    """Score an extracted trade against a budget's category names."""

    if not trade:
        return 0.0, False

    trade_lower = trade.lower().strip()
    category = budget_category.lower()
    nahb = (nahb_category or "").lower()

    for term in TRADE_TERMS.get(trade_lower, (trade_lower,)):
        if term in category or term in nahb:
            return 1.0, True
    if trade_lower in category or trade_lower in nahb:
        return 0.9, True
    return 0.0, False


def category_vocabulary(
    budget_category: str,
    nahb_category: str | None = None,
    nahb_subcategory: str | None = None,
) -> set[str]:
    """Tokens describing a budget line, widened with the terms of its trade."""

    names = " ".join(filter(None, (budget_category, nahb_category, nahb_subcategory)))
    vocabulary = set(tokenize(names))
    lowered = names.lower()
    for trade, terms in TRADE_TERMS.items():
        if any(term in lowered for term in terms):
            vocabulary.update(tokenize(" ".join(terms)))
    return vocabulary


def keyword_score(keywords: Sequence[str], vocabulary: set[str]) -> tuple[float, list[str]]:
    """Share of keywords found in ``vocabulary``, over at least three keywords."""

    if not keywords or not vocabulary:
        return 0.0, []

    matched = []
    for keyword in keywords:
        word = keyword.lower()
        if word in vocabulary or any(token in word or word in token for token in vocabulary):
            matched.append(keyword)
    if not matched:
        return 0.0, []
    return min(len(matched) / max(len(keywords), 3), 1.0), matched


def vendor_score(vendor_tokens: Sequence[str], vocabulary: set[str]) -> tuple[float, list[str]]:
    """Share of vendor-name tokens that equal a vocabulary token."""

    if not vendor_tokens or not vocabulary:
        return 0.0, []

    matched = [token for token in vendor_tokens if token in vocabulary]
    if not matched:
        return 0.0, []
    return len(matched) / len(vendor_tokens), matched


def training_score(
    vendor_name: str,
    keywords: Sequence[str],
    budget_category: str,
    context: MatchContext,
) -> tuple[float, str | None, bool]:
    """Score from prior matches of this vendor, then from keyword history."""

    count = context.vendor_matches.get(budget_category, 0)
    if count >= 3:
        return 0.9, f"{vendor_name} matched to {budget_category} {count} times before", True
    if count >= 1:
        return 0.5 + count * 0.1, f"{vendor_name} matched to {budget_category} {count} time(s)", True

    if keywords:
        wanted = {keyword.lower() for keyword in keywords}
        records = context.training_keywords.get(budget_category, [])
        overlap = sum(1 for record in records if any(word.lower() in wanted for word in record))
        if overlap >= 5:
            return 0.6, f"Keywords match {overlap} previous invoices in {budget_category}", False
        if overlap >= 2:
            return 0.3, f"Keywords match {overlap} previous invoices", False

    return 0.0, None, False


def invoice_keywords(invoice: ExtractedInvoiceData) -> list[str]:
    """Explicit keywords plus tokens from line-item descriptions, deduplicated."""

    seen: dict[str, str] = {}
    for keyword in invoice.keywords:
        cleaned = keyword.strip()
        if cleaned:
            seen.setdefault(cleaned.lower(), cleaned)
    for item in invoice.line_items:
        for token in tokenize(item.description):
            seen.setdefault(token, token)
    return list(seen.values())


def generate_candidates(
    invoice: ExtractedInvoiceData,
    draw_lines: Sequence[DrawLineSnapshot],
    budgets: Sequence[BudgetSnapshot],
    context: MatchContext | None = None,
    config: MatchingConfig = DEFAULT_MATCHING_CONFIG,
) -> list[MatchCandidate]:
    """Score every budgeted, positive draw line against the invoice.

    Candidates below ``min_candidate_score`` are dropped; the rest are sorted
    by composite score, best first.
    """

    context = context or MatchContext()
    budgets_by_id = {budget.id: budget for budget in budgets}
    keywords = invoice_keywords(invoice)
    vendor_tokens = tokenize(invoice.vendor_name)

    scored: list[tuple[DrawLineSnapshot, BudgetSnapshot, dict[str, Any]]] = []
    for line in draw_lines:
        budget = budgets_by_id.get(line.budget_id) if line.budget_id is not None else None
        if budget is None or (line.amount_requested or ZERO) <= 0:
            continue

        vocabulary = category_vocabulary(budget.category, budget.nahb_category, budget.nahb_subcategory)
        amount, variance, variance_abs = amount_score(invoice.amount, line.amount_requested, config)
        trade, trade_matched = trade_score(invoice.construction_category, budget.category, budget.nahb_category)
        explicit, explicit_matches = keyword_score(keywords, vocabulary)
        from_vendor, vendor_matches = vendor_score(vendor_tokens, vocabulary)
        if from_vendor > explicit:
            kw_score, kw_matches = from_vendor, vendor_matches
        else:
            kw_score, kw_matches = explicit, explicit_matches
        training, reason, vendor_matched = training_score(invoice.vendor_name, keywords, budget.category, context)

        scored.append(
            (
                line,
                budget,
                {
                    "amount": amount,
                    "variance": variance,
                    "variance_abs": variance_abs,
                    "trade": trade,
                    "trade_matched": trade_matched,
                    "keywords": kw_score,
                    "keyword_matches": kw_matches,
                    "training": training,
                    "training_reason": reason,
                    "vendor_matched": vendor_matched,
                },
            )
        )

    # Evidence is decided per invoice so every candidate shares one scale.
    use_trade = bool(invoice.construction_category)
    use_keywords = bool(keywords)
    use_training = context.has_history

    candidates: list[MatchCandidate] = []
    for line, budget, parts in scored:
        total_weight = config.weight_amount
        weighted = parts["amount"] * config.weight_amount
        if use_trade:
            total_weight += config.weight_trade
            weighted += parts["trade"] * config.weight_trade
        if use_training:
            total_weight += config.weight_training
            weighted += parts["training"] * config.weight_training
        if use_keywords:
            total_weight += config.weight_keywords
            weighted += parts["keywords"] * config.weight_keywords
        composite = weighted / total_weight if total_weight else 0.0
        # A vendor-name hit only counts for its own line, and only upward.
        if not use_keywords and parts["keywords"] > 0:
            with_vendor = (weighted + parts["keywords"] * config.weight_keywords) / (
                total_weight + config.weight_keywords
            )
            composite = max(composite, with_vendor)
        composite = round(composite, 6)

        if composite < config.min_candidate_score:
            continue

        candidates.append(
            MatchCandidate(
                draw_line_id=line.id,
                budget_id=budget.id,
                budget_category=budget.category,
                nahb_category=budget.nahb_category,
                amount_requested=line.amount_requested,
                scores=MatchScores(
                    amount=parts["amount"],
                    trade=parts["trade"],
                    keywords=parts["keywords"],
                    training=parts["training"] if use_training else None,
                    composite=composite,
                ),
                factors=MatchFactors(
                    amount_variance=parts["variance"],
                    amount_variance_absolute=parts["variance_abs"],
                    trade_match=parts["trade_matched"],
                    keyword_matches=parts["keyword_matches"],
                    vendor_previous_match=parts["vendor_matched"],
                    training_reason=parts["training_reason"],
                ),
            )
        )

    return sorted(candidates, key=lambda candidate: candidate.scores.composite, reverse=True)


def classify(
    candidates: Sequence[MatchCandidate],
    config: MatchingConfig = DEFAULT_MATCHING_CONFIG,
) -> MatchClassification:
    """Decide the next action for a ranked candidate list.

    ``NO_CANDIDATES`` is returned exactly when ``candidates`` is empty.
    """

    if not candidates:
        return MatchClassification(status=MatchClassificationStatus.NO_CANDIDATES, needs_review=True)

    ranked = sorted(candidates, key=lambda candidate: candidate.scores.composite, reverse=True)
    top = ranked[0]
    second = ranked[1] if len(ranked) > 1 else None
    top_score = top.scores.composite
    gap = top_score - second.scores.composite if second else None

    if top_score >= config.auto_match_threshold and (gap is None or gap >= config.clear_winner_gap):
        return MatchClassification(
            status=MatchClassificationStatus.SINGLE_MATCH,
            candidates=ranked,
            top_candidate=top,
            confidence=top_score,
        )

    if gap is not None and gap < config.clear_winner_gap and top_score >= config.ai_escalation_floor:
        return MatchClassification(
            status=MatchClassificationStatus.MULTIPLE_CANDIDATES,
            candidates=ranked[: config.max_ai_candidates],
            top_candidate=top,
            confidence=top_score,
            needs_ai=True,
        )

    return MatchClassification(
        status=MatchClassificationStatus.AMBIGUOUS,
        candidates=ranked[: config.max_ai_candidates],
        top_candidate=top,
        confidence=top_score,
        needs_review=True,
    )


def should_use_ai(classification: MatchClassification, enabled: bool = True) -> bool:
    return (
        enabled
        and classification.status == MatchClassificationStatus.MULTIPLE_CANDIDATES
        and classification.needs_ai
    )


def match_flags(
    invoice_amount: Decimal,
    requested_amount: Decimal,
    composite: float,
    config: MatchingConfig = DEFAULT_MATCHING_CONFIG,
) -> set[DrawLineFlag]:
    """Flags earned by applying a match to a draw line."""

    flags: set[DrawLineFlag] = set()
    if requested_amount > 0:
        variance = abs(invoice_amount - requested_amount) / requested_amount
        if float(variance) > config.amount_mismatch_pct:
            flags.add(DrawLineFlag.AMOUNT_MISMATCH)
    if composite < config.low_confidence_threshold:
        flags.add(DrawLineFlag.LOW_CONFIDENCE)
    return flags


def validate_coverage(
    draw_lines: Sequence[DrawLineSnapshot],
    matched_amounts: Mapping[int, Decimal],
    budgets: Sequence[BudgetSnapshot] = (),
    config: MatchingConfig = DEFAULT_MATCHING_CONFIG,
) -> CoverageValidation:
    """Check that matched invoices cover the draw's requested amounts.

    ``matched_amounts`` maps draw line id to the matched invoice amount.
    """

    categories = {budget.id: budget.category for budget in budgets}
    flags: list[str] = []
    uncovered: list[CoverageLine] = []
    total_invoice = ZERO
    total_draw = ZERO

    for line in draw_lines:
        requested = line.amount_requested or ZERO
        if requested <= 0:
            continue
        total_draw += requested
        matched = matched_amounts.get(line.id)
        if matched is None:
            uncovered.append(
                CoverageLine(
                    line_id=line.id,
                    budget_category=categories.get(line.budget_id) if line.budget_id is not None else None,
                    amount_requested=requested,
                )
            )
            if DrawLineFlag.NO_INVOICE.value not in flags:
                flags.append(DrawLineFlag.NO_INVOICE.value)
            continue
        total_invoice += matched
        if float(abs(matched - requested) / requested) > config.amount_mismatch_pct:
            if DrawLineFlag.AMOUNT_MISMATCH.value not in flags:
                flags.append(DrawLineFlag.AMOUNT_MISMATCH.value)

    variance_abs = abs(total_invoice - total_draw)
    variance = float(variance_abs / total_draw) if total_draw > 0 else 0.0
    return CoverageValidation(
        total_invoice_amount=total_invoice,
        total_draw_amount=total_draw,
        variance=variance,
        variance_absolute=variance_abs,
        is_covered=variance <= config.amount_mismatch_pct and not uncovered,
        uncovered_lines=uncovered,
        flags=flags,
    )


def find_exact_amount_matches(
    invoices: Iterable[Any],
    draw_lines: Sequence[DrawLineSnapshot],
    tolerance: float = 0.05,
) -> dict[int, int]:
    """Greedy one-to-one pairing of invoices to lines by near-equal amount.

    Larger invoices are paired first; each line is used at most once.
    Returns ``{invoice_id: draw_line_id}``.
    """

    matches: dict[int, int] = {}
    used: set[int] = set()
    ordered = sorted(invoices, key=lambda invoice: invoice.amount or ZERO, reverse=True)

    for invoice in ordered:
        amount = invoice.amount or ZERO
        best: tuple[int, float] | None = None
        for line in draw_lines:
            requested = line.amount_requested or ZERO
            if line.id in used or requested <= 0:
                continue
            variance = float(abs(amount - requested) / requested)
            if variance <= tolerance and (best is None or variance < best[1]):
                best = (line.id, variance)
        if best is not None:
            matches[invoice.id] = best[0]
            used.add(best[0])
    return matches


__all__ = [
    "TRADE_TERMS",
    "amount_score",
    "category_vocabulary",
    "classify",
    "find_exact_amount_matches",
    "generate_candidates",
    "invoice_keywords",
    "keyword_score",
    "match_flags",
    "should_use_ai",
    "training_score",
    "trade_score",
    "validate_coverage",
]
