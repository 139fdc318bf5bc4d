# src/services/matching_api/app.py
"""
FastAPI приложение движка матчинга.

Endpoints (префикс /api/v1):
- POST /requests                         - публикация заявки
- POST /requests/{id}/scope              - разрешение радиуса
- POST /requests/{id}/matches            - подбор и рассылка
- POST /requests/{id}/interest           - отклик исполнителя
- POST /requests/{id}/transition         - смена статуса
- POST /requests/{id}/rating             - оценка исполнителя
- POST /ecosystems/{id}/clusters/detect  - поиск кластеров спроса
- POST /gangs, GET /gangs/{id}, POST /gangs/{id}/accept
- GET  /providers/{id}/reputation
"""

from __future__ import annotations

from contextlib import asynccontextmanager

from fastapi import FastAPI, Request, status
from fastapi.responses import JSONResponse

from src.common.constants import TypeMsg
from src.common.exceptions import NotFoundError, ValidationError
from src.common.logger import log_info, log_warning
from src.config import settings
from src.core.engine import build_engine
from src.infra.database import get_db, init_db, close_db
from src.infra.event_bus import get_event_bus, init_event_bus, close_event_bus
from src.infra.redis_client import get_redis, init_redis, close_redis
from src.services.matching_api.routes import router
from src.shared.models.common import ErrorResponse, HealthStatus

SERVICE_NAME = "matching_api"


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Жизненный цикл приложения."""
    manage_infra = getattr(app.state, "manage_infra", True)
    if manage_infra:
        await init_db()
        await init_redis()
        await init_event_bus()

    app.state.engine = build_engine(get_db(), get_redis(), get_event_bus())
    await log_info("Matching API запущен", type_msg=TypeMsg.INFO)

    yield

    await app.state.engine.close()
    if manage_infra:
        await close_event_bus()
        await close_redis()
        await close_db()


def create_app(manage_infra: bool = True) -> FastAPI:
    """
    Args:
        manage_infra: Подключать ли инфраструктуру в lifespan.
                      В режиме everything main.py делает это сам.
    """
    application = FastAPI(
        title="Seva Match API",
        description="Адаптивный матчинг заявок на услуги с исполнителями.",
        version=settings.system.VERSION,
        lifespan=lifespan,
        docs_url="/docs",
        redoc_url="/redoc",
    )
    application.state.manage_infra = manage_infra
    application.include_router(router, prefix="/api/v1")

    @application.exception_handler(ValidationError)
    async def validation_error_handler(request: Request, exc: ValidationError) -> JSONResponse:
        await log_warning(f"{request.method} {request.url.path}: {exc.reason} ({exc.message})")
        return JSONResponse(
            status_code=status.HTTP_400_BAD_REQUEST,
            content=ErrorResponse(error_code=exc.reason, message=exc.message).model_dump(),
        )

    @application.exception_handler(NotFoundError)
    async def not_found_handler(request: Request, exc: NotFoundError) -> JSONResponse:
        return JSONResponse(
            status_code=status.HTTP_404_NOT_FOUND,
            content=ErrorResponse(error_code="not_found", message=str(exc)).model_dump(),
        )

    @application.get("/health", response_model=HealthStatus, tags=["Health"])
    async def health_check() -> HealthStatus:
        """Проверка здоровья сервиса и его зависимостей."""
        dependencies = {
            "postgres": "healthy" if await get_db().health_check() else "unhealthy",
            "redis": "healthy" if await get_redis().health_check() else "unhealthy",
            "rabbitmq": "healthy" if await get_event_bus().health_check() else "unhealthy",
        }
        overall = "healthy" if all(v == "healthy" for v in dependencies.values()) else "degraded"
        return HealthStatus(
            service=SERVICE_NAME,
            status=overall,
            version=settings.system.VERSION,
            dependencies=dependencies,
        )

    return application


app = create_app()


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(
        "src.services.matching_api.app:app",
        host=settings.deployment.API_HOST,
        port=settings.deployment.API_PORT,
        reload=False,
    )
