# tests/core/test_urgency.py
"""
Тесты оценки срочности.
"""

from __future__ import annotations

import pytest

from src.common.constants import UrgencyLevel
from src.core.urgency.scorer import UrgencyScorer, level_for_score

WEIGHTS = {
    "emergency": 40,
    "immediately": 25,
    "urgent": 25,
    "spoilage": 30,
}


@pytest.fixture
def scorer() -> UrgencyScorer:
    return UrgencyScorer(weights=WEIGHTS, max_score=100)


@pytest.mark.parametrize(
    "score,level",
    [
        (0, UrgencyLevel.LOW),
        (24, UrgencyLevel.LOW),
        (25, UrgencyLevel.MEDIUM),
        (59, UrgencyLevel.MEDIUM),
        (60, UrgencyLevel.HIGH),
        (84, UrgencyLevel.HIGH),
        (85, UrgencyLevel.CRITICAL),
        (100, UrgencyLevel.CRITICAL),
    ],
)
def test_level_for_score(score: int, level: UrgencyLevel) -> None:
    assert level_for_score(score) == level


def test_sum_of_weights(scorer: UrgencyScorer) -> None:
    result = scorer.score(["emergency", "spoilage"])

    assert result.score == 70
    assert result.level == UrgencyLevel.HIGH
    assert result.keywords == ("emergency", "spoilage")


def test_score_is_capped(scorer: UrgencyScorer) -> None:
    result = scorer.score(["emergency", "spoilage", "immediately", "urgent"])

    assert result.score == 100
    assert result.level == UrgencyLevel.CRITICAL


def test_repeated_keyword_counts_once(scorer: UrgencyScorer) -> None:
    assert scorer.score(["Emergency", "emergency ", "EMERGENCY"]).score == 40


@pytest.mark.parametrize("keywords", [None, [], ["tomorrow", "maybe"]])
def test_empty_or_unknown_is_low(scorer: UrgencyScorer, keywords: list[str] | None) -> None:
    result = scorer.score(keywords)

    assert result.score == 0
    assert result.level == UrgencyLevel.LOW


def test_extract_keywords_from_text(scorer: UrgencyScorer) -> None:
    text = "Emergency! Crop spoilage expected, please come immediately. Emergency again"
    assert scorer.extract_keywords(text) == ["emergency", "spoilage", "immediately"]


def test_extract_keywords_empty(scorer: UrgencyScorer) -> None:
    assert scorer.extract_keywords(None) == []
    assert scorer.extract_keywords("") == []
