# src/worker/stale.py
"""
Воркер проверки заявок без откликов.
"""

from __future__ import annotations

from src.worker.base import PeriodicWorker


class StaleRequestWorker(PeriodicWorker):

    @property
    def name(self) -> str:
        return "StaleRequestWorker"

    @property
    def interval(self) -> float:
        from src.config import settings
        return settings.lifecycle.STALE_CHECK_INTERVAL

    async def tick(self) -> None:
        await self.engine.requests.flag_stale_requests()
