"""
Точка входа FastAPI: логирование, CORS, роутеры, обработчик доменных
ошибок и планировщик ежедневной сверки.
"""
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from leads_sync.config import settings
from leads_sync.database import engine, Base
from leads_sync.api.routes import api_router
from leads_sync.exceptions import (
    JobActionNotAllowedError,
    JobConflictError,
    JobNotFoundError,
    LeadsSyncError,
    RemoteApiError,
    ScouterNotFoundError
)
from leads_sync.scheduler.tasks import start_scheduler, stop_scheduler
import logging

logger = logging.getLogger(__name__)

APP_VERSION = "1.0.0"

# Доменная ошибка -> HTTP статус; все остальные LeadsSyncError дают 400
ERROR_STATUS_CODES = {
    JobNotFoundError: 404,
    JobActionNotAllowedError: 409,
    JobConflictError: 409,
    ScouterNotFoundError: 422,
    RemoteApiError: 502,
}


def configure_logging() -> None:
    logging.basicConfig(
        level=getattr(logging, settings.log_level.upper()),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
    )


def error_status_code(exc: LeadsSyncError) -> int:
    for error_type, status_code in ERROR_STATUS_CODES.items():
        if isinstance(exc, error_type):
            return status_code
    return 400


async def on_startup():
    logger.info(f"Запуск {settings.app_name} {APP_VERSION}, база данных: {settings.database_url}")
    start_scheduler()


async def on_shutdown():
    logger.info("Остановка приложения")
    stop_scheduler()


def create_application() -> FastAPI:
    """Собрать приложение: таблицы, middleware, роутеры и события"""
    Base.metadata.create_all(bind=engine)

    application = FastAPI(title=settings.app_name, debug=settings.debug, version=APP_VERSION)
    application.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins if isinstance(settings.cors_origins, list) else [settings.cors_origins],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    application.include_router(api_router)

    application.add_event_handler("startup", on_startup)
    application.add_event_handler("shutdown", on_shutdown)

    @application.exception_handler(LeadsSyncError)
    async def leads_sync_error_handler(request: Request, exc: LeadsSyncError):
        status_code = error_status_code(exc)
        if status_code >= 500:
            logger.error(f"{request.method} {request.url.path}: {exc}")
        return JSONResponse(status_code=status_code, content={"detail": str(exc)})

    @application.get("/")
    def root():
        return {"service": settings.app_name, "version": APP_VERSION, "docs": "/docs"}

    return application


configure_logging()
app = create_application()
