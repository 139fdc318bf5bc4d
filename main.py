#!/usr/bin/env python3
# main.py
"""
Главная точка входа Seva Match.
Запускает HTTP API, воркеры или всё сразу в зависимости от аргументов.
"""

from __future__ import annotations

import asyncio
import signal
import sys

from src.config import settings
from src.common.logger import setup_logging, log_info, log_error
from src.common.constants import TypeMsg
from src.infra.database import init_db, close_db
from src.infra.redis_client import init_redis, close_redis
from src.infra.event_bus import init_event_bus, close_event_bus

VALID_MODES = ("api", "worker", "everything")

# Глобальный флаг для graceful shutdown
_shutdown_event: asyncio.Event | None = None
_running_tasks: list[asyncio.Task] = []


def setup_signal_handlers() -> None:
    """Настраивает обработчики сигналов для graceful shutdown."""
    global _shutdown_event
    _shutdown_event = asyncio.Event()

    def signal_handler(sig: int) -> None:
        if _shutdown_event and not _shutdown_event.is_set():
            print(f"\nПолучен сигнал остановки (sig={sig}), завершаем работу...")
            _shutdown_event.set()
            for task in _running_tasks:
                if not task.done():
                    task.cancel()

    try:
        loop = asyncio.get_running_loop()
        for sig in (signal.SIGINT, signal.SIGTERM):
            loop.add_signal_handler(sig, lambda s=sig: signal_handler(s))
    except NotImplementedError:
        # Windows не поддерживает add_signal_handler
        signal.signal(signal.SIGINT, lambda s, f: signal_handler(s))
        signal.signal(signal.SIGTERM, lambda s, f: signal_handler(s))


async def init_infrastructure() -> None:
    """Инициализирует все подключения к инфраструктуре."""
    await log_info("Инициализация инфраструктуры...", type_msg=TypeMsg.INFO)

    await init_db()
    await log_info("PostgreSQL подключён", type_msg=TypeMsg.DEBUG)

    await init_redis()
    await log_info("Redis подключён", type_msg=TypeMsg.DEBUG)

    await init_event_bus()
    await log_info("RabbitMQ подключён", type_msg=TypeMsg.DEBUG)

    await log_info("Инфраструктура инициализирована", type_msg=TypeMsg.INFO)


async def close_infrastructure() -> None:
    """Закрывает все подключения."""
    await log_info("Закрытие подключений...", type_msg=TypeMsg.INFO)

    await close_event_bus()
    await close_redis()
    await close_db()

    await log_info("Подключения закрыты", type_msg=TypeMsg.INFO)


async def run_api() -> None:
    """Запускает HTTP API матчинга."""
    import uvicorn
    from src.services.matching_api.app import create_app

    await log_info(
        f"Запуск Matching API на {settings.deployment.API_HOST}:{settings.deployment.API_PORT}...",
        type_msg=TypeMsg.INFO,
    )

    # Инфраструктура уже поднята в main()
    config = uvicorn.Config(
        create_app(manage_infra=False),
        host=settings.deployment.API_HOST,
        port=settings.deployment.API_PORT,
        log_level="debug" if settings.system.DEBUG else "info",
    )

    server = uvicorn.Server(config)
    try:
        await server.serve()
    except asyncio.CancelledError:
        await log_info("Matching API: graceful shutdown", type_msg=TypeMsg.DEBUG)
        await server.shutdown()


async def run_worker() -> None:
    """Запускает фоновые воркеры."""
    from src.worker.runner import run_workers

    await log_info("Запуск воркеров...", type_msg=TypeMsg.INFO)
    await run_workers(init_infra=False)


async def main(mode: str | None = None) -> None:
    """
    Главная функция запуска.

    Args:
        mode: Режим запуска (api, worker, everything).
              Если None, берётся из COMPONENT_MODE.
    """
    global _running_tasks

    setup_logging()
    setup_signal_handlers()

    if mode is None:
        mode = settings.system.COMPONENT_MODE
        if mode not in VALID_MODES:
            await log_error(f"Неизвестный COMPONENT_MODE '{mode}', используем 'everything'")
            mode = "everything"

    await log_info(
        f"Seva Match v{settings.system.VERSION}: запуск в режиме '{mode}'",
        type_msg=TypeMsg.INFO,
    )

    try:
        await init_infrastructure()

        if mode == "api":
            await run_api()
        elif mode == "worker":
            await run_worker()
        elif mode == "everything":
            _running_tasks = [
                asyncio.create_task(run_api()),
                asyncio.create_task(run_worker()),
            ]
            try:
                await asyncio.gather(*_running_tasks, return_exceptions=True)
            except asyncio.CancelledError:
                await log_info("Отмена всех компонентов...", type_msg=TypeMsg.INFO)
                for task in _running_tasks:
                    if not task.done():
                        task.cancel()
                await asyncio.gather(*_running_tasks, return_exceptions=True)
                raise
        else:
            await log_error(f"Неизвестный режим: {mode}")

    except asyncio.CancelledError:
        await log_info("Завершение работы...", type_msg=TypeMsg.INFO)
    except Exception as e:
        await log_error(f"Критическая ошибка: {e}", exc_info=True)
        raise
    finally:
        await close_infrastructure()
        await log_info("Приложение остановлено", type_msg=TypeMsg.INFO)


def print_usage() -> None:
    print(
        "Использование: python main.py [режим]\n\n"
        "Режимы:\n"
        "  api         - HTTP API матчинга\n"
        "  worker      - воркеры (матчинг, расширение, кластеры, уведомления, простой)\n"
        "  everything  - API и воркеры в одном процессе\n\n"
        "Без аргумента режим берётся из COMPONENT_MODE."
    )


if __name__ == "__main__":
    mode = None

    if len(sys.argv) > 1:
        arg = sys.argv[1].lower()
        if arg in ("--help", "-h"):
            print_usage()
            sys.exit(0)
        elif arg in VALID_MODES:
            mode = arg
        else:
            print(f"Ошибка: неизвестный режим '{arg}'")
            print_usage()
            sys.exit(1)

    try:
        asyncio.run(main(mode))
    except KeyboardInterrupt:
        pass
