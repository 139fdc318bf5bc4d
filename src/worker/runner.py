# src/worker/runner.py
"""
Запускалка всех воркеров.
"""

from __future__ import annotations

import asyncio
from typing import List

from src.worker.base import BaseWorker
from src.worker.clusters import ClusterSweepWorker
from src.worker.expansion import ExpansionWorker
from src.worker.matching import MatchingWorker
from src.worker.notifications import NotificationWorker
from src.worker.stale import StaleRequestWorker
from src.core.engine import build_engine
from src.infra.database import get_db, init_db, close_db
from src.infra.redis_client import get_redis, init_redis, close_redis
from src.infra.event_bus import get_event_bus, init_event_bus, close_event_bus
from src.common.logger import log_info, log_error
from src.common.constants import TypeMsg


def create_workers() -> List[BaseWorker]:
    """Все воркеры с общим набором доменных сервисов."""
    engine = build_engine(get_db(), get_redis(), get_event_bus())
    return [
        MatchingWorker(engine=engine),
        NotificationWorker(engine=engine),
        ExpansionWorker(engine=engine),
        ClusterSweepWorker(engine=engine),
        StaleRequestWorker(engine=engine),
    ]


async def run_workers(init_infra: bool = True) -> None:
    """
    Запускает воркеры и ждёт остановки.

    Args:
        init_infra: Если True, инициализирует инфраструктуру (БД, Redis, RabbitMQ).
                    В режиме everything main.py уже сделал это сам.
    """
    await log_info("Запуск воркеров...", type_msg=TypeMsg.INFO)

    if init_infra:
        await log_info("Инициализация инфраструктуры для воркеров...", type_msg=TypeMsg.DEBUG)
        await init_db()
        await init_redis()
        await init_event_bus()

    workers = create_workers()

    try:
        for worker in workers:
            await worker.start()

        await log_info(f"Запущено {len(workers)} воркеров", type_msg=TypeMsg.INFO)

        while True:
            await asyncio.sleep(1)

    except asyncio.CancelledError:
        await log_info("Получен сигнал остановки", type_msg=TypeMsg.INFO)
    except Exception as e:
        await log_error(f"Критическая ошибка: {e}", exc_info=True)
    finally:
        for worker in workers:
            await worker.stop()
        await workers[0].engine.close()

        if init_infra:
            await close_event_bus()
            await close_redis()
            await close_db()

        await log_info("Воркеры остановлены", type_msg=TypeMsg.INFO)


def main() -> None:
    """Точка входа."""
    try:
        asyncio.run(run_workers())
    except KeyboardInterrupt:
        pass


if __name__ == "__main__":
    main()
