from pydantic import BaseModel, Field
from typing import Any, Dict, List, Optional
from leads_sync.config import settings
from leads_sync.services.transform_engine import Direction


class PreviewRequest(BaseModel):
    """Запрос предпросмотра маппинга"""
    direction: Direction = Direction.REMOTE_TO_LOCAL
    records: Optional[List[Dict[str, Any]]] = None  # Если не указаны, берутся последние лиды из базы
    limit: int = Field(settings.preview_sample_size, ge=1, le=50)


class FieldLabel(BaseModel):
    title: str
    raw: Any = None
    label: Optional[str] = None


class PreviewItem(BaseModel):
    record_id: Optional[Any] = None
    source_snapshot: Dict[str, Any] = {}
    target_snapshot: Dict[str, Any] = {}
    labels: Dict[str, FieldLabel] = {}
    warnings: List[str] = []
    errors: List[str] = []
