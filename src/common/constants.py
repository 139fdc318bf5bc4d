# src/common/constants.py
"""
Общие константы и перечисления.
"""

from enum import Enum


class TypeMsg(str, Enum):
    """Типы сообщений для логирования."""
    DEBUG = "debug"
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"
    CRITICAL = "critical"


class RequestStatus(str, Enum):
    """Статусы заявки на услугу."""
    OPEN = "open"
    PENDING = "pending"
    ACCEPTED = "accepted"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    CONFIRMED = "confirmed"
    CANCELLED = "cancelled"


class UrgencyLevel(str, Enum):
    """Уровни срочности заявки."""
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"

    @property
    def rank(self) -> int:
        """Порядковый номер уровня (для сравнения)."""
        return _URGENCY_ORDER.index(self)

    def at_least(self, other: "UrgencyLevel") -> bool:
        """Не ниже ли уровень, чем other."""
        return self.rank >= other.rank


_URGENCY_ORDER = [
    UrgencyLevel.LOW,
    UrgencyLevel.MEDIUM,
    UrgencyLevel.HIGH,
    UrgencyLevel.CRITICAL,
]


class ClusterStatus(str, Enum):
    """Статусы кластера спроса."""
    ACTIVE = "active"
    EXPIRED = "expired"
    FULFILLED = "fulfilled"


class ScopeRule(str, Enum):
    """Правила разрешения радиуса (в порядке приоритета)."""
    LEAKAGE_GUARD = "leakage_guard"
    CRITICAL_EXPANSION = "critical_expansion"
    PREMIUM_COMPENSATION = "premium_compensation"
    URGENT_AT_CREATION = "urgent_at_creation"
    STALLED_EXPANSION = "stalled_expansion"
    DEFAULT = "default"
    SUPPLY_UNAVAILABLE = "supply_unavailable"


class NotificationKind(str, Enum):
    """Типы уведомлений, покидающих ядро."""
    PROVIDER_MATCH = "provider_match"
    CLUSTER_OFFER = "cluster_offer"
    RATING_PROMPT = "rating_prompt"
    STALE_REQUEST = "stale_request"
    STATUS_CHANGED = "status_changed"


class DeliveryChannel(str, Enum):
    """Каналы доставки уведомлений."""
    PUSH = "push"
    SMS = "sms"
