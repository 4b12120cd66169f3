from pydantic import BaseModel, model_validator, field_validator
from datetime import date, datetime
from typing import Any, List, Optional
from leads_sync.models.reconciliation_job import JobStatus, JobStage


class JobFilters(BaseModel):
    """Фильтры джоба сверки"""
    scouter_name: Optional[str] = None
    date_from: Optional[date] = None
    date_to: Optional[date] = None
    
    @field_validator('scouter_name')
    @classmethod
    def strip_scouter_name(cls, v):
        if v is None:
            return None
        v = v.strip()
        return v or None
    
    @model_validator(mode='after')
    def check_date_range(self):
        if self.date_from and self.date_to and self.date_from > self.date_to:
            raise ValueError("date_from не может быть позже date_to")
        return self
    
    @property
    def is_empty(self) -> bool:
        return not (self.scouter_name or self.date_from or self.date_to)
    
    def with_default_dates(self, today: date) -> "JobFilters":
        """Без дат и без скаутера сверяем лиды за сегодня"""
        if self.is_empty:
            return JobFilters(date_from=today, date_to=today)
        return self
    
    def overlaps(self, other: "JobFilters") -> bool:
        """
        Пересекаются ли области двух джобов
        
        Скаутеры пересекаются, если совпадают или хотя бы один не задан.
        Открытая граница диапазона дат считается бесконечной.
        """
        if self.scouter_name and other.scouter_name:
            if self.scouter_name.lower() != other.scouter_name.lower():
                return False
        
        if self.date_to and other.date_from and self.date_to < other.date_from:
            return False
        if other.date_to and self.date_from and other.date_to < self.date_from:
            return False
        return True


class ErrorDetail(BaseModel):
    record_id: Optional[Any] = None
    error: str
    timestamp: Optional[str] = None


class ReconciliationJob(BaseModel):
    """Схема джоба сверки с производными показателями"""
    id: str
    status: JobStatus
    stage: Optional[JobStage] = None
    scouter_name: Optional[str] = None
    date_from: Optional[date] = None
    date_to: Optional[date] = None
    bitrix_total: int = 0
    scanned_count: int = 0
    db_total: int = 0
    missing_count: int = 0
    synced_count: int = 0
    error_count: int = 0
    error_message: Optional[str] = None
    started_at: Optional[datetime] = None
    last_heartbeat_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    created_at: Optional[datetime] = None
    
    # Производные поля, не хранятся в базе
    stalled: bool = False
    progress: int = 0
    can_cancel: bool = False
    can_terminate: bool = False
    can_delete: bool = False
    
    class Config:
        from_attributes = True


class ReconciliationJobDetail(ReconciliationJob):
    """Джоб вместе со списком ошибок"""
    error_details: List[ErrorDetail] = []
