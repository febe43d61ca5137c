"""AI-assisted selection between close invoice match candidates.

The model may only choose one of the pre-scored candidates or ask for human
review. Any failure (disabled feature, missing key, API error, unparseable or
out-of-set answer) degrades to a "flag for review" selection so the
deterministic pipeline never depends on the external call.
"""
from __future__ import annotations

import json
import logging
import re
import time
from collections.abc import Sequence
from typing import Any, Protocol

from openai import OpenAI

from drawdesk.config import get_settings
from drawdesk.schemas.matching import AISelection, ExtractedInvoiceData, MatchCandidate
from drawdesk.services.ai_flags import ai_enabled, ai_model, ai_timeout_seconds

logger = logging.getLogger(__name__)

MAX_AI_CANDIDATES = 5

# Simple in-memory circuit breaker + metrics for AI disambiguation
_AI_FAILURE_COUNT: int = 0
_AI_FAILURE_THRESHOLD: int = 5
_AI_CIRCUIT_OPEN: bool = False

_AI_CALLS: int = 0
_AI_ERRORS: int = 0

SYSTEM_PROMPT = (
    "You are an expert construction finance analyst. You help match invoices to "
    "budget categories. Respond only with valid JSON."
)

_CODE_FENCE = re.compile(r"```(?:json)?\n?")


class Disambiguator(Protocol):
    """Picks one candidate for an invoice, or flags it for review."""

    def select(self, invoice: ExtractedInvoiceData, candidates: Sequence[MatchCandidate]) -> AISelection:
        ...


def _record_ai_success() -> None:
    global _AI_FAILURE_COUNT, _AI_CIRCUIT_OPEN
    _AI_FAILURE_COUNT = 0
    _AI_CIRCUIT_OPEN = False


def _record_ai_failure() -> None:
    global _AI_FAILURE_COUNT, _AI_CIRCUIT_OPEN, _AI_ERRORS
    _AI_FAILURE_COUNT += 1
    _AI_ERRORS += 1
    if _AI_FAILURE_COUNT >= _AI_FAILURE_THRESHOLD:
        _AI_CIRCUIT_OPEN = True


def _is_circuit_open() -> bool:
    return _AI_CIRCUIT_OPEN


def reset_ai_state() -> None:
    """Reset breaker and counters (used on startup and in tests)."""

    global _AI_FAILURE_COUNT, _AI_CIRCUIT_OPEN, _AI_CALLS, _AI_ERRORS
    _AI_FAILURE_COUNT = 0
    _AI_CIRCUIT_OPEN = False
    _AI_CALLS = 0
    _AI_ERRORS = 0


def get_ai_stats() -> dict[str, int]:
    """
    Expose basic counters for health/observability.
    """

    return {
        "calls": _AI_CALLS,
        "errors": _AI_ERRORS,
        "failure_count": _AI_FAILURE_COUNT,
        "circuit_open": int(_AI_CIRCUIT_OPEN),
    }


def review_selection(reasoning: str, primary: str, supporting: Sequence[str] = ()) -> AISelection:
    return AISelection(
        selected_draw_line_id=None,
        confidence=0.0,
        reasoning=reasoning,
        flag_for_review=True,
        primary_factor=primary,
        supporting_factors=list(supporting),
    )


def _describe_candidate(index: int, candidate: MatchCandidate) -> str:
    factors = candidate.factors
    scores = candidate.scores
    nahb = f" (NAHB: {candidate.nahb_category})" if candidate.nahb_category else ""
    lines = [
        f"{index}. {candidate.budget_category}{nahb}",
        f"   Draw Line ID: {candidate.draw_line_id}",
        f"   Requested Amount: ${candidate.amount_requested:,.2f}",
        f"   Invoice vs Request: ${factors.amount_variance_absolute:,.0f} ({factors.amount_variance * 100:.1f}% variance)",
        (
            f"   Scores: Amount={scores.amount:.2f}, Trade={scores.trade:.2f}, "
            f"Keywords={scores.keywords:.2f}, Training={(scores.training or 0.0):.2f}"
        ),
        f"   Composite Score: {scores.composite:.3f}",
    ]
    if factors.trade_match:
        lines.append("   Trade matches")
    if factors.vendor_previous_match:
        lines.append("   Vendor has matched this category before")
    if factors.keyword_matches:
        lines.append(f"   Keywords match: {', '.join(factors.keyword_matches)}")
    return "\n".join(lines)


def build_selection_prompt(invoice: ExtractedInvoiceData, candidates: Sequence[MatchCandidate]) -> str:
    """Build the user prompt listing the invoice and its pre-scored candidates."""

    listing = "\n\n".join(
        _describe_candidate(index, candidate)
        for index, candidate in enumerate(candidates[:MAX_AI_CANDIDATES], start=1)
    )
    return (
        "You are selecting the best budget category match for a construction invoice.\n"
        "These candidates have already been pre-scored by our deterministic matching system.\n\n"
        "CRITICAL RULES:\n"
        "1. You MUST select from the provided candidates ONLY - you cannot invent new matches\n"
        "2. If you cannot confidently distinguish between candidates, set flag_for_review: true\n"
        "3. Explain your reasoning with specific factors from the invoice and candidates\n"
        "4. The amount match is the most important factor\n\n"
        "INVOICE DETAILS:\n"
        f"Vendor: {invoice.vendor_name}\n"
        f"Amount: ${invoice.amount:,.2f}\n"
        f"Context: {invoice.context or 'Not available'}\n"
        f"Keywords: {', '.join(invoice.keywords) or 'None'}\n"
        f"Trade Signal: {invoice.construction_category or 'Unknown'}\n"
        f"Work Type: {invoice.work_type or 'Unknown'}\n\n"
        "PRE-SCORED CANDIDATES (sorted by composite score):\n"
        f"{listing}\n\n"
        "Respond with ONLY a JSON object:\n"
        "{\n"
        '  "selected_draw_line_id": <the Draw Line ID of the best candidate, or null>,\n'
        '  "confidence": 0.0 to 1.0,\n'
        '  "reasoning": "One sentence explaining why this candidate is the best match",\n'
        '  "flag_for_review": true or false,\n'
        '  "factors": {"primary": "amount_match | trade_match | keyword_match | vendor_history", '
        '"supporting": []}\n'
        "}"
    )


def parse_ai_response(content: str) -> AISelection | None:
    """Parse the model's JSON answer; ``None`` when it is not usable JSON."""

    try:
        raw = json.loads(_CODE_FENCE.sub("", content).strip())
    except ValueError:
        logger.warning("AI selection returned invalid JSON")
        return None
    if not isinstance(raw, dict):
        return None

    selected = raw.get("selected_draw_line_id")
    try:
        selected_id = int(selected) if selected not in (None, "", "null") else None
    except (TypeError, ValueError):
        selected_id = None

    try:
        confidence = float(raw.get("confidence", 0.0))
    except (TypeError, ValueError):
        confidence = 0.0

    factors = raw.get("factors") if isinstance(raw.get("factors"), dict) else {}
    supporting = factors.get("supporting") if isinstance(factors.get("supporting"), list) else []
    return AISelection(
        selected_draw_line_id=selected_id,
        confidence=max(0.0, min(1.0, confidence)),
        reasoning=str(raw.get("reasoning") or "No reasoning provided"),
        flag_for_review=raw.get("flag_for_review") is True,
        primary_factor=str(factors.get("primary") or "unknown"),
        supporting_factors=[str(item) for item in supporting],
    )


def validate_selection(selection: AISelection, candidates: Sequence[MatchCandidate]) -> AISelection:
    """Reject a pick that is not one of the offered candidates."""

    if selection.selected_draw_line_id is None:
        if selection.flag_for_review:
            return selection
        return review_selection("AI made no selection", "no_selection")
    offered = {candidate.draw_line_id for candidate in candidates}
    if selection.selected_draw_line_id not in offered:
        logger.warning(
            "AI selected a draw line outside the candidate set",
            extra={"selected_draw_line_id": selection.selected_draw_line_id},
        )
        return review_selection(
            "AI selected an invalid candidate - flagged for manual review",
            "invalid_selection",
            ["draw_line_not_in_candidates"],
        )
    return selection


class OpenAIDisambiguator:
    """Disambiguator backed by the OpenAI chat completions API."""

    def __init__(
        self,
        client: Any | None = None,
        *,
        model: str | None = None,
        timeout_seconds: int | None = None,
    ) -> None:
        self._client = client
        self._model = model
        self._timeout_seconds = timeout_seconds

    def _get_client(self) -> Any | None:
        if self._client is None:
            api_key = get_settings().OPENAI_API_KEY
            if not api_key:
                return None
            self._client = OpenAI(api_key=api_key)
        return self._client

    def _call_once(self, client: Any, prompt: str) -> str:
        completion = client.chat.completions.create(
            model=self._model or ai_model(),
            messages=[
                {"role": "system", "content": SYSTEM_PROMPT},
                {"role": "user", "content": prompt},
            ],
            temperature=0.1,
            max_tokens=500,
            response_format={"type": "json_object"},
            timeout=self._timeout_seconds or ai_timeout_seconds(),
        )
        choices = getattr(completion, "choices", None) or []
        if not choices:
            return ""
        return choices[0].message.content or ""

    def select(self, invoice: ExtractedInvoiceData, candidates: Sequence[MatchCandidate]) -> AISelection:
        global _AI_CALLS, _AI_ERRORS

        start = time.monotonic()
        status = "success"
        try:
            if not candidates:
                status = "no_candidates"
                return review_selection("No candidates provided for selection", "no_candidates")

            if _is_circuit_open():
                status = "circuit_breaker_open"
                logger.warning("AI circuit breaker open; skipping disambiguation call.")
                return review_selection("AI unavailable (circuit open)", "ai_unavailable", ["circuit_breaker_open"])

            _AI_CALLS += 1

            if not ai_enabled():
                status = "disabled"
                _AI_ERRORS += 1
                return review_selection("AI disambiguation disabled", "ai_unavailable", ["ai_disabled"])

            client = self._get_client()
            if client is None:
                status = "missing_api_key"
                _AI_ERRORS += 1
                logger.warning("OPENAI_API_KEY is not set; flagging invoice for review.")
                return review_selection("AI unavailable (no API key)", "ai_unavailable", ["missing_api_key"])

            try:
                content = self._call_once(client, build_selection_prompt(invoice, candidates))
            except Exception as exc:  # noqa: BLE001
                status = "error"
                _record_ai_failure()
                logger.exception("AI disambiguation call failed")
                return review_selection(f"AI selection failed: {exc}", "ai_error", [type(exc).__name__])

            if not content:
                status = "empty_response"
                _record_ai_failure()
                return review_selection("AI returned empty response", "ai_error", ["empty_response"])

            parsed = parse_ai_response(content)
            if parsed is None:
                status = "parse_error"
                _record_ai_failure()
                return review_selection("Failed to parse AI response", "parse_error")

            _record_ai_success()
            return validate_selection(parsed, candidates)
        finally:
            logger.info(
                "AI disambiguation call completed",
                extra={
                    "status": status,
                    "duration_seconds": time.monotonic() - start,
                    "candidate_count": len(candidates),
                },
            )


def get_disambiguator() -> Disambiguator | None:
    """Return the configured disambiguator, or ``None`` when AI is disabled."""

    if not ai_enabled():
        return None
    return OpenAIDisambiguator()


__all__ = [
    "Disambiguator",
    "OpenAIDisambiguator",
    "build_selection_prompt",
    "get_ai_stats",
    "get_disambiguator",
    "parse_ai_response",
    "reset_ai_state",
    "review_selection",
    "validate_selection",
]
