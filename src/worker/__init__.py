# src/worker/__init__.py
"""
Фоновые воркеры: обработчики событий RabbitMQ и периодические задачи.
"""

from src.worker.base import BaseWorker, PeriodicWorker
from src.worker.clusters import ClusterSweepWorker
from src.worker.expansion import ExpansionWorker
from src.worker.matching import MatchingWorker
from src.worker.notifications import NotificationWorker
from src.worker.stale import StaleRequestWorker

__all__ = [
    "BaseWorker",
    "ClusterSweepWorker",
    "ExpansionWorker",
    "MatchingWorker",
    "NotificationWorker",
    "PeriodicWorker",
    "StaleRequestWorker",
]
