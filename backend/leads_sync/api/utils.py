from fastapi import APIRouter
from leads_sync.config import settings

router = APIRouter(prefix="/api/utils", tags=["utils"])


@router.get("/health")
def health_check():
    """Проверка здоровья сервиса (публичный endpoint для healthcheck)"""
    return {"status": "ok", "service": settings.app_name}
