from datetime import date, datetime, timedelta
from typing import Any, Callable, Dict, List, Optional
from sqlalchemy.orm import Session
from leads_sync.models import Lead
from leads_sync.schemas.reconciliation_job import JobFilters
from leads_sync.services.transform_engine import Direction, TransformFunction, transform
from leads_sync.timeutils import ensure_utc, local_day_start_utc, utc_now
import logging

logger = logging.getLogger(__name__)

SYNC_SOURCE_MISSING = "sync_missing"
REMOTE_CREATED_FIELD = "DATE_CREATE"


def _jsonable(value: Any) -> Any:
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    if isinstance(value, dict):
        return {key: _jsonable(item) for key, item in value.items()}
    if isinstance(value, (list, tuple)):
        return [_jsonable(item) for item in value]
    return value


def _as_datetime(value: Any) -> Optional[datetime]:
    if isinstance(value, datetime):
        return value
    if isinstance(value, date):
        return local_day_start_utc(value)
    if isinstance(value, str) and value.strip():
        outcome = transform(Direction.REMOTE_TO_LOCAL, TransformFunction.TO_TIMESTAMP.value, value)
        if outcome.resolved:
            return outcome.value
    return None


class LeadRepository:
    """Локальное хранилище лидов"""
    
    def __init__(self, session_factory: Callable[[], Session]):
        self.session_factory = session_factory
    
    def list_ids(self, filters: JobFilters) -> List[int]:
        """
        ID локальных лидов, подходящих под фильтры джоба
        
        Даты фильтра - календарные дни в часовом поясе портала, как их
        понимает фильтр DATE_CREATE в Bitrix24.
        """
        db = self.session_factory()
        try:
            query = db.query(Lead.id)
            if filters.scouter_name:
                query = query.filter(Lead.scouter.ilike(f"%{filters.scouter_name}%"))
            if filters.date_from:
                query = query.filter(Lead.criado >= local_day_start_utc(filters.date_from))
            if filters.date_to:
                query = query.filter(Lead.criado < local_day_start_utc(filters.date_to + timedelta(days=1)))
            return [row[0] for row in query.all()]
        finally:
            db.close()
    
    def upsert(
        self,
        record_id: int,
        fields: Dict[str, Any],
        raw: Optional[Dict[str, Any]] = None,
        sync_source: str = SYNC_SOURCE_MISSING
    ) -> None:
        """
        Создать или обновить лид
        
        Поля name, scouter и criado дублируются в колонки для фильтрации,
        все поля после маппинга сохраняются в data. Если маппинг не дал
        criado, дата создания берется из DATE_CREATE исходной записи.
        """
        db = self.session_factory()
        try:
            lead = db.query(Lead).filter(Lead.id == record_id).first()
            if lead is None:
                lead = Lead(id=record_id)
                db.add(lead)
            
            lead.data = _jsonable(fields)
            if fields.get("name") is not None:
                lead.name = str(fields["name"])
            if fields.get("scouter") is not None:
                lead.scouter = str(fields["scouter"])
            criado = _as_datetime(fields.get("criado"))
            if criado is None and raw:
                criado = _as_datetime(raw.get(REMOTE_CREATED_FIELD))
            if criado is not None:
                lead.criado = ensure_utc(criado)
            if raw is not None:
                lead.raw = _jsonable(raw)
            lead.sync_source = sync_source
            lead.last_sync_at = utc_now()
            db.commit()
        except Exception:
            db.rollback()
            raise
        finally:
            db.close()
    
