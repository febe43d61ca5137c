from types import SimpleNamespace

import pytest

from drawdesk.utils.fuzzy import (
    find_best_budget_match,
    fuzzy_match_score,
    levenshtein_distance,
    normalize_vendor_name,
    tokenize,
)


def test_levenshtein_distance():
    assert levenshtein_distance("kitten", "sitting") == 3
    assert levenshtein_distance("", "abc") == 3
    assert levenshtein_distance("same", "same") == 0


@pytest.mark.parametrize(
    ("value", "target", "expected"),
    [
        ("Framing", "framing", 1.0),
        ("Framing", "Framing Labor", 0.9),
        ("", "Framing", 0.0),
        ("Plumbing", "Electrical", 0.0),
    ],
)
def test_fuzzy_match_score_tiers(value, target, expected):
    assert fuzzy_match_score(value, target) == expected


def test_fuzzy_match_score_word_overlap():
    score = fuzzy_match_score("Interior Paint Work", "Paint Interior Finish")
    assert 0.65 <= score <= 0.9


def test_normalize_vendor_name_drops_suffix():
    assert normalize_vendor_name("  Acme   Construction LLC ") == "acme construction"
    assert normalize_vendor_name("Bolt Electric Inc.") == "bolt electric"
    assert normalize_vendor_name(None) == ""


def test_tokenize_keeps_longer_words():
    assert tokenize("2x4 Lumber & Nails - Framing/Deck") == ["2x4", "lumber", "nails", "framing", "deck"]
    assert tokenize(None) == []


def test_find_best_budget_match_uses_raw_category():
    budgets = [
        SimpleNamespace(category="Framing", builder_category_raw="Rough Carpentry"),
        SimpleNamespace(category="Roofing", builder_category_raw=None),
    ]

    match = find_best_budget_match("rough carpentry", budgets)

    assert match is not None
    assert match[0].category == "Framing"
    assert match[1] == 1.0
    assert find_best_budget_match("Pool", budgets) is None
