# src/core/urgency/scorer.py
"""
Оценка срочности заявки по ключевым словам.
"""

from __future__ import annotations

import re
from dataclasses import dataclass

from src.common.constants import UrgencyLevel

# Нижние границы уровней (включительно), от старшего к младшему
_LEVEL_THRESHOLDS = (
    (85, UrgencyLevel.CRITICAL),
    (60, UrgencyLevel.HIGH),
    (25, UrgencyLevel.MEDIUM),
)


@dataclass(frozen=True)
class UrgencyResult:
    """Результат оценки срочности."""
    score: int
    level: UrgencyLevel
    keywords: tuple[str, ...] = ()


def level_for_score(score: int) -> UrgencyLevel:
    """Уровень срочности по баллу."""
    for threshold, level in _LEVEL_THRESHOLDS:
        if score >= threshold:
            return level
    return UrgencyLevel.LOW


class UrgencyScorer:
    """
    Сумма весов распознанных ключевых слов, ограниченная сверху.
    Повторы слова (без учёта регистра) считаются один раз.
    """

    def __init__(
        self,
        weights: dict[str, int] | None = None,
        max_score: int | None = None,
    ) -> None:
        if weights is None or max_score is None:
            from src.config import settings
            weights = weights if weights is not None else settings.urgency.KEYWORD_WEIGHTS
            max_score = max_score if max_score is not None else settings.urgency.MAX_URGENCY_SCORE

        self._weights = {word.lower(): weight for word, weight in weights.items()}
        self._max_score = max_score

    def score(self, keywords: list[str] | None) -> UrgencyResult:
        """
        Args:
            keywords: Ключевые слова, выделенные из текста заявки

        Returns:
            Балл и уровень. Пустой или неизвестный ввод даёт (0, low).
        """
        matched: list[str] = []
        for keyword in keywords or []:
            normalized = keyword.strip().lower()
            if normalized in self._weights and normalized not in matched:
                matched.append(normalized)

        total = min(sum(self._weights[word] for word in matched), self._max_score)
        return UrgencyResult(score=total, level=level_for_score(total), keywords=tuple(matched))

    def extract_keywords(self, text: str | None) -> list[str]:
        """Известные ключевые слова, встречающиеся в свободном тексте."""
        if not text:
            return []
        words = re.findall(r"\w+", text.lower())
        return [word for word in dict.fromkeys(words) if word in self._weights]
