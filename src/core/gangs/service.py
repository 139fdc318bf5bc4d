# src/core/gangs/service.py
"""
Реестр бригад.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from src.common.constants import TypeMsg
from src.common.exceptions import NotFoundError, ValidationError
from src.common.logger import log_info
from src.core.gangs.models import LaborGang, LaborGangCreateDTO
from src.core.gangs.repository import GangRepository
from src.infra.database import DatabaseManager

if TYPE_CHECKING:
    from src.core.requests.models import ServiceRequest
    from src.core.requests.service import RequestService


class GangService:
    """Создание бригад и приём заявок от имени бригады."""

    def __init__(self, db: DatabaseManager, requests: RequestService) -> None:
        self._repo = GangRepository(db)
        self._requests = requests

    async def create_gang(self, dto: LaborGangCreateDTO) -> LaborGang:
        """Создаёт бригаду. Лидер всегда входит в состав."""
        members = list(dict.fromkeys([dto.leader_id, *dto.member_ids]))
        gang = await self._repo.create(LaborGang(leader_id=dto.leader_id, member_ids=members))
        await log_info(
            f"Бригада {gang.id} создана: лидер {gang.leader_id}, участников {len(members)}",
            type_msg=TypeMsg.INFO,
        )
        return gang

    async def get_gang(self, gang_id: str) -> LaborGang:
        gang = await self._repo.get_by_id(gang_id)
        if gang is None:
            raise NotFoundError("Бригада", gang_id)
        return gang

    async def deactivate_gang(self, gang_id: str) -> LaborGang:
        gang = await self.get_gang(gang_id)
        await self._repo.set_active(gang_id, False)
        return gang.model_copy(update={"is_active": False})

    async def accept_as_gang(self, gang_id: str, request_id: str) -> ServiceRequest:
        """
        Лидер принимает заявку от имени бригады.

        Raises:
            ValidationError: бригада неактивна или заявка уже не открыта
            NotFoundError: бригада или заявка не найдены
        """
        gang = await self.get_gang(gang_id)
        if not gang.is_active:
            raise ValidationError("gang_inactive", f"Бригада {gang_id} неактивна")

        return await self._requests.accept_by_gang(request_id, gang)
