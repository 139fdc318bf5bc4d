# src/core/clusters/detector.py
"""
Группировка заявок в кластеры (без ввода-вывода).
"""

from __future__ import annotations

from collections import defaultdict
from dataclasses import dataclass, field
from datetime import datetime, timedelta

from src.common.constants import ClusterStatus
from src.core.clusters.models import DemandCluster
from src.core.requests.models import ServiceRequest


@dataclass
class ClusterPlan:
    """Что сделать за один проход."""
    joins: dict[str, list[ServiceRequest]] = field(default_factory=dict)
    new_groups: list[tuple[str, list[ServiceRequest]]] = field(default_factory=list)

    @property
    def is_empty(self) -> bool:
        return not self.joins and not self.new_groups


def estimate_savings(
    member_count: int,
    total_compensation: float,
    saving_per_member: float,
    bulk_discount_percent: float,
) -> float:
    """Экономия: транспорт на каждого участника плюс оптовая скидка."""
    return round(member_count * saving_per_member + total_compensation * bulk_discount_percent / 100, 2)


def _fits_cluster(request: ServiceRequest, cluster: DemandCluster, window: timedelta, now: datetime) -> bool:
    return (
        cluster.status == ClusterStatus.ACTIVE
        and cluster.expires_at > now
        and cluster.window_start <= request.created_at <= cluster.window_start + window
    )


def plan_clusters(
    requests: list[ServiceRequest],
    active_clusters: list[DemandCluster],
    window: timedelta,
    min_size: int,
    now: datetime,
) -> ClusterPlan:
    """
    Распределяет заявки без кластера.

    Сначала заявка пробует присоединиться к активному кластеру по общему
    тегу (в порядке своих тегов). Оставшиеся группируются по тегу:
    серия из min_size и более заявок, созданных в пределах окна от самой
    ранней, образует новый кластер. Каждая заявка попадает не более чем
    в один кластер.
    """
    plan = ClusterPlan()
    assigned: set[str] = set()
    ordered = sorted(requests, key=lambda r: (r.created_at, r.id))

    clusters_by_tag: dict[str, list[DemandCluster]] = defaultdict(list)
    for cluster in sorted(active_clusters, key=lambda c: (c.window_start, c.id)):
        clusters_by_tag[cluster.shared_tag].append(cluster)

    for request in ordered:
        for tag in request.specific_tags:
            target = next(
                (c for c in clusters_by_tag.get(tag, []) if _fits_cluster(request, c, window, now)),
                None,
            )
            if target is not None:
                plan.joins.setdefault(target.id, []).append(request)
                assigned.add(request.id)
                break

    by_tag: dict[str, list[ServiceRequest]] = defaultdict(list)
    for request in ordered:
        if request.id in assigned:
            continue
        for tag in request.specific_tags:
            by_tag[tag].append(request)

    # Крупные группы первыми, при равенстве по имени тега
    for tag in sorted(by_tag, key=lambda t: (-len(by_tag[t]), t)):
        candidates = [r for r in by_tag[tag] if r.id not in assigned]
        start = 0
        while start < len(candidates):
            limit = candidates[start].created_at + window
            end = start
            while end + 1 < len(candidates) and candidates[end + 1].created_at <= limit:
                end += 1

            run = candidates[start:end + 1]
            if len(run) >= min_size:
                plan.new_groups.append((tag, run))
                assigned.update(r.id for r in run)
                start = end + 1
            else:
                start += 1

    return plan
