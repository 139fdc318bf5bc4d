# src/worker/clusters.py
"""
Воркер свипа кластеров спроса.
"""

from __future__ import annotations

from src.worker.base import PeriodicWorker
from src.common.constants import TypeMsg
from src.common.logger import log_info


class ClusterSweepWorker(PeriodicWorker):
    """Раз в CLUSTER_SWEEP_INTERVAL обходит все экосистемы."""

    @property
    def name(self) -> str:
        return "ClusterSweepWorker"

    @property
    def interval(self) -> float:
        from src.config import settings
        return settings.clusters.CLUSTER_SWEEP_INTERVAL

    async def tick(self) -> None:
        await self.engine.registry.refresh()
        ecosystem_ids = await self.engine.registry.all_ids()
        clusters = await self.engine.clusters.sweep_all(ecosystem_ids)
        await log_info(
            f"Свип кластеров: экосистем {len(ecosystem_ids)}, кластеров создано/расширено {len(clusters)}",
            type_msg=TypeMsg.DEBUG,
        )
