# src/core/gangs/__init__.py
"""
Бригады исполнителей.
"""

from src.core.gangs.models import LaborGang, LaborGangCreateDTO
from src.core.gangs.repository import GangRepository
from src.core.gangs.service import GangService

__all__ = [
    "GangRepository",
    "GangService",
    "LaborGang",
    "LaborGangCreateDTO",
]
