# src/core/scope/resolver.py
"""
Разрешение радиуса поиска.

Правила проверяются в фиксированном порядке, срабатывает первое подходящее:

    1. leakage_guard         малоценная заявка: только своя экосистема
    2. critical_expansion    предложения нет, срочность high/critical: 20 км + соседи
    3. premium_compensation  вознаграждение >= среднее * 1.2: соседи, 10 км
    4. urgent_at_creation    срочность >= high: соседи, 10 км
    5. stalled_expansion     заявка зависла без откликов: соседи, 10 км
    6. default               радиус экосистемы, расширение по таймеру

Если индекс предложения недоступен, после правила 1 сразу
возвращается радиус экосистемы (supply_unavailable).
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Callable

from src.common.constants import ScopeRule, UrgencyLevel
from src.core.scope.models import ScopeContext, ScopeDecision


@dataclass(frozen=True)
class _Rule:
    rule: ScopeRule
    applies: Callable[[ScopeContext], bool]
    decide: Callable[[ScopeContext], ScopeDecision]


class ScopeResolver:
    """Таблица правил радиуса поиска."""

    def __init__(
        self,
        critical_radius_km: float | None = None,
        expansion_radius_km: float | None = None,
        premium_multiplier: float | None = None,
        low_value_tags: list[str] | None = None,
        low_value_floors: dict[str, float] | None = None,
    ) -> None:
        from src.config import settings

        scope = settings.scope
        self._critical_radius = critical_radius_km if critical_radius_km is not None else scope.CRITICAL_RADIUS_KM
        self._expansion_radius = expansion_radius_km if expansion_radius_km is not None else scope.EXPANSION_RADIUS_KM
        self._premium_multiplier = premium_multiplier if premium_multiplier is not None else scope.PREMIUM_MULTIPLIER
        self._low_value_tags = set(low_value_tags if low_value_tags is not None else scope.LOW_VALUE_TAGS)
        self._low_value_floors = dict(low_value_floors if low_value_floors is not None else scope.LOW_VALUE_FLOORS)

        self._leakage_guard = _Rule(ScopeRule.LEAKAGE_GUARD, self.is_low_value, self._decide_leakage)
        self._dynamic_rules = (
            _Rule(ScopeRule.CRITICAL_EXPANSION, self._no_supply_and_urgent, self._decide_critical),
            _Rule(ScopeRule.PREMIUM_COMPENSATION, self._is_premium, self._decide_premium),
            _Rule(ScopeRule.URGENT_AT_CREATION, self._is_urgent, self._decide_urgent),
            _Rule(ScopeRule.STALLED_EXPANSION, lambda ctx: ctx.stalled, self._decide_stalled),
        )

    # =========================================================================
    # УСЛОВИЯ
    # =========================================================================

    def is_low_value(self, ctx: ScopeContext) -> bool:
        """Малоценная заявка: тег из списка или вознаграждение ниже порога тега."""
        for tag in ctx.specific_tags:
            if tag in self._low_value_tags:
                return True
            floor = self._low_value_floors.get(tag)
            if floor is not None and ctx.compensation < floor:
                return True
        return False

    @staticmethod
    def _no_supply_and_urgent(ctx: ScopeContext) -> bool:
        return ctx.supply_index == 0 and ctx.urgency_level.at_least(UrgencyLevel.HIGH)

    def _is_premium(self, ctx: ScopeContext) -> bool:
        if not ctx.ecosystem_average or ctx.ecosystem_average <= 0:
            return False
        return ctx.compensation >= ctx.ecosystem_average * self._premium_multiplier

    @staticmethod
    def _is_urgent(ctx: ScopeContext) -> bool:
        return ctx.urgency_level.at_least(UrgencyLevel.HIGH)

    # =========================================================================
    # РЕШЕНИЯ
    # =========================================================================

    @staticmethod
    def _decide_leakage(ctx: ScopeContext) -> ScopeDecision:
        return ScopeDecision(
            radius_km=ctx.default_radius_km,
            include_neighboring=False,
            prevent_leakage=True,
            rule=ScopeRule.LEAKAGE_GUARD,
            reasoning="Малоценная заявка обслуживается только своей экосистемой",
        )

    def _decide_critical(self, ctx: ScopeContext) -> ScopeDecision:
        return ScopeDecision(
            radius_km=self._critical_radius,
            include_neighboring=True,
            rule=ScopeRule.CRITICAL_EXPANSION,
            reasoning=(
                f"Нет исполнителей поблизости при срочности {ctx.urgency_level.value}: "
                f"радиус {self._critical_radius} км с соседями"
            ),
        )

    def _decide_premium(self, ctx: ScopeContext) -> ScopeDecision:
        return ScopeDecision(
            radius_km=self._expansion_radius,
            include_neighboring=True,
            rule=ScopeRule.PREMIUM_COMPENSATION,
            reasoning=(
                f"Вознаграждение {ctx.compensation:g} >= {self._premium_multiplier:g} x "
                f"среднее {ctx.ecosystem_average:g} по тегу {ctx.primary_tag}"
            ),
        )

    def _decide_urgent(self, ctx: ScopeContext) -> ScopeDecision:
        return ScopeDecision(
            radius_km=self._expansion_radius,
            include_neighboring=True,
            rule=ScopeRule.URGENT_AT_CREATION,
            reasoning=f"Срочность {ctx.urgency_level.value}: соседи в пределах {self._expansion_radius} км",
        )

    def _decide_stalled(self, ctx: ScopeContext) -> ScopeDecision:
        return ScopeDecision(
            radius_km=self._expansion_radius,
            include_neighboring=True,
            rule=ScopeRule.STALLED_EXPANSION,
            reasoning=f"Нет откликов: расширение на соседей в пределах {self._expansion_radius} км",
        )

    @staticmethod
    def _decide_default(ctx: ScopeContext) -> ScopeDecision:
        return ScopeDecision(
            radius_km=ctx.default_radius_km,
            include_neighboring=False,
            rule=ScopeRule.DEFAULT,
            reasoning="Радиус экосистемы, расширение по таймеру",
            expansion_eligible=True,
        )

    @staticmethod
    def _decide_unavailable(ctx: ScopeContext) -> ScopeDecision:
        return ScopeDecision(
            radius_km=ctx.default_radius_km,
            include_neighboring=False,
            rule=ScopeRule.SUPPLY_UNAVAILABLE,
            reasoning="Индекс предложения недоступен: радиус экосистемы по умолчанию",
            expansion_eligible=True,
        )

    # =========================================================================
    # РАЗРЕШЕНИЕ
    # =========================================================================

    def resolve(self, ctx: ScopeContext) -> ScopeDecision:
        """Применяет первое подходящее правило."""
        if self._leakage_guard.applies(ctx):
            return self._leakage_guard.decide(ctx)

        if ctx.supply_index is None:
            return self._decide_unavailable(ctx)

        for rule in self._dynamic_rules:
            if rule.applies(ctx):
                return rule.decide(ctx)

        return self._decide_default(ctx)


def never_shrink(
    decision: ScopeDecision,
    previous_radius_km: float | None,
    previous_include_neighboring: bool,
) -> ScopeDecision:
    """
    Объединяет новое решение с уже применённым: радиус не уменьшается,
    флаг соседей не снимается.
    """
    radius = max(decision.radius_km, previous_radius_km or 0.0)
    include = decision.include_neighboring or previous_include_neighboring
    if radius == decision.radius_km and include == decision.include_neighboring:
        return decision

    return decision.model_copy(update={
        "radius_km": radius,
        "include_neighboring": include,
        "expansion_eligible": decision.expansion_eligible and not include,
    })
