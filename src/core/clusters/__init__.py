# src/core/clusters/__init__.py
"""
Кластеры спроса.
"""

from src.core.clusters.detector import ClusterPlan, estimate_savings, plan_clusters
from src.core.clusters.models import DemandCluster
from src.core.clusters.repository import ClusterRepository
from src.core.clusters.service import ClusterService

__all__ = [
    "ClusterPlan",
    "ClusterRepository",
    "ClusterService",
    "DemandCluster",
    "estimate_savings",
    "plan_clusters",
]
