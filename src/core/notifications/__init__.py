# src/core/notifications/__init__.py
"""
Уведомления: постановка в очередь и доставка через внешний диспетчер.
"""

from src.core.notifications.dispatcher import NotificationDispatcher
from src.core.notifications.service import NotificationData, NotificationService

__all__ = [
    "NotificationData",
    "NotificationDispatcher",
    "NotificationService",
]
