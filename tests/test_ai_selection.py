import json
from decimal import Decimal
from types import SimpleNamespace

import pytest

from drawdesk.config import get_settings
from drawdesk.schemas.matching import (
    AISelection,
    ExtractedInvoiceData,
    MatchCandidate,
    MatchFactors,
    MatchScores,
)
from drawdesk.services.ai_selection import (
    OpenAIDisambiguator,
    build_selection_prompt,
    get_ai_stats,
    get_disambiguator,
    parse_ai_response,
    validate_selection,
)

INVOICE = ExtractedInvoiceData(
    vendorName="Sparks & Pipes",
    amount="5000",
    keywords=["wire", "fixture"],
    constructionCategory="electrical",
)


def _candidate(line_id: int, category: str, composite: float = 0.8) -> MatchCandidate:
    return MatchCandidate(
        draw_line_id=line_id,
        budget_id=line_id,
        budget_category=category,
        amount_requested=Decimal("5000"),
        scores=MatchScores(amount=1.0, trade=0.5, keywords=0.3, composite=composite),
        factors=MatchFactors(amount_variance=0.0, amount_variance_absolute=Decimal("0")),
    )


CANDIDATES = [_candidate(11, "Electrical", 0.82), _candidate(12, "Plumbing", 0.78)]


class FakeCompletions:
    def __init__(self, content: str | None = None, error: Exception | None = None) -> None:
        self.content = content
        self.error = error
        self.calls: list[dict] = []

    def create(self, **kwargs):
        self.calls.append(kwargs)
        if self.error is not None:
            raise self.error
        message = SimpleNamespace(content=self.content)
        return SimpleNamespace(choices=[SimpleNamespace(message=message)])


def _client(completions: FakeCompletions):
    return SimpleNamespace(chat=SimpleNamespace(completions=completions))


def _answer(**overrides) -> str:
    body = {
        "selected_draw_line_id": 11,
        "confidence": 0.9,
        "reasoning": "Electrical trade matches",
        "flag_for_review": False,
        "factors": {"primary": "trade_match", "supporting": ["amount_match"]},
    }
    body.update(overrides)
    return json.dumps(body)


@pytest.fixture
def ai_on(monkeypatch):
    monkeypatch.setattr(get_settings(), "AI_DISAMBIGUATION_ENABLED", True)


def test_ai_stats_structure():
    stats = get_ai_stats()
    assert stats == {"calls": 0, "errors": 0, "failure_count": 0, "circuit_open": 0}


def test_selection_picks_offered_candidate(ai_on):
    completions = FakeCompletions(_answer())
    selection = OpenAIDisambiguator(_client(completions), model="test-model").select(INVOICE, CANDIDATES)

    assert selection.selected_draw_line_id == 11
    assert selection.confidence == 0.9
    assert selection.flag_for_review is False
    assert selection.primary_factor == "trade_match"
    assert selection.supporting_factors == ["amount_match"]
    assert completions.calls[0]["model"] == "test-model"
    assert completions.calls[0]["response_format"] == {"type": "json_object"}
    assert get_ai_stats()["calls"] == 1


def test_selection_outside_candidates_is_flagged(ai_on):
    completions = FakeCompletions(_answer(selected_draw_line_id=99))
    selection = OpenAIDisambiguator(_client(completions)).select(INVOICE, CANDIDATES)

    assert selection.selected_draw_line_id is None
    assert selection.flag_for_review is True
    assert selection.primary_factor == "invalid_selection"


def test_unparseable_answer_is_flagged(ai_on):
    selection = OpenAIDisambiguator(_client(FakeCompletions("not json"))).select(INVOICE, CANDIDATES)

    assert selection.flag_for_review is True
    assert selection.primary_factor == "parse_error"
    assert get_ai_stats()["failure_count"] == 1


def test_disabled_feature_skips_call():
    completions = FakeCompletions(_answer())
    selection = OpenAIDisambiguator(_client(completions)).select(INVOICE, CANDIDATES)

    assert selection.flag_for_review is True
    assert selection.primary_factor == "ai_unavailable"
    assert selection.supporting_factors == ["ai_disabled"]
    assert completions.calls == []


def test_missing_api_key_is_flagged(ai_on, monkeypatch):
    monkeypatch.setattr(get_settings(), "OPENAI_API_KEY", None)

    selection = OpenAIDisambiguator().select(INVOICE, CANDIDATES)

    assert selection.primary_factor == "ai_unavailable"
    assert selection.supporting_factors == ["missing_api_key"]


def test_no_candidates_is_flagged(ai_on):
    completions = FakeCompletions(_answer())
    selection = OpenAIDisambiguator(_client(completions)).select(INVOICE, [])

    assert selection.primary_factor == "no_candidates"
    assert completions.calls == []


def test_circuit_breaker_opens_after_failures(ai_on):
    completions = FakeCompletions(error=RuntimeError("provider down"))
    disambiguator = OpenAIDisambiguator(_client(completions))

    for _ in range(5):
        selection = disambiguator.select(INVOICE, CANDIDATES)
        assert selection.primary_factor == "ai_error"

    assert get_ai_stats()["circuit_open"] == 1

    selection = disambiguator.select(INVOICE, CANDIDATES)
    assert selection.supporting_factors == ["circuit_breaker_open"]
    assert len(completions.calls) == 5


def test_success_closes_failure_streak(ai_on):
    failing = OpenAIDisambiguator(_client(FakeCompletions(error=RuntimeError("timeout"))))
    failing.select(INVOICE, CANDIDATES)
    failing.select(INVOICE, CANDIDATES)

    OpenAIDisambiguator(_client(FakeCompletions(_answer()))).select(INVOICE, CANDIDATES)

    stats = get_ai_stats()
    assert stats["failure_count"] == 0
    assert stats["errors"] == 2


def test_parse_strips_code_fences():
    parsed = parse_ai_response("```json\n" + _answer(confidence=1.7) + "\n```")

    assert parsed is not None
    assert parsed.selected_draw_line_id == 11
    assert parsed.confidence == 1.0


def test_parse_rejects_non_object():
    assert parse_ai_response("[1, 2]") is None


def test_validate_empty_selection_requires_review():
    selection = validate_selection(AISelection(selected_draw_line_id=None, flag_for_review=False), CANDIDATES)

    assert selection.flag_for_review is True
    assert selection.primary_factor == "no_selection"


def test_prompt_lists_candidates_and_invoice():
    prompt = build_selection_prompt(INVOICE, CANDIDATES)

    assert "Vendor: Sparks & Pipes" in prompt
    assert "Amount: $5,000.00" in prompt
    assert "Draw Line ID: 11" in prompt
    assert "Draw Line ID: 12" in prompt
    assert "Keywords: wire, fixture" in prompt
    assert "Trade Signal: electrical" in prompt


def test_get_disambiguator_follows_flag(monkeypatch):
    assert get_disambiguator() is None

    monkeypatch.setattr(get_settings(), "AI_DISAMBIGUATION_ENABLED", True)
    assert isinstance(get_disambiguator(), OpenAIDisambiguator)
