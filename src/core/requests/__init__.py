# src/core/requests/__init__.py
"""
Домен заявок на услуги.
Сервис импортируется из src.core.requests.service.
"""

from src.core.requests.models import ServiceRequest, ServiceRequestCreateDTO, TransitionDTO
from src.core.requests.repository import RequestRepository
from src.core.requests.state_machine import RequestStateMachine

__all__ = [
    "RequestRepository",
    "RequestStateMachine",
    "ServiceRequest",
    "ServiceRequestCreateDTO",
    "TransitionDTO",
]
