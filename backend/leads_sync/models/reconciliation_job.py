from sqlalchemy import Column, Integer, String, DateTime, Date, Text, JSON, Enum as SQLEnum
from sqlalchemy.sql import func
from leads_sync.database import Base
import enum
import uuid


class JobStatus(str, enum.Enum):
    """Статус джоба сверки"""
    PENDING = "pending"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"


class JobStage(str, enum.Enum):
    """Этап выполнения джоба в статусе running"""
    LISTING_REMOTE = "listing_remote"
    COMPARING = "comparing"
    IMPORTING = "importing"


TERMINAL_STATUSES = (JobStatus.COMPLETED, JobStatus.FAILED, JobStatus.CANCELLED)


def _new_job_id() -> str:
    return str(uuid.uuid4())


class ReconciliationJob(Base):
    """Джоб сверки лидов Bitrix24 с локальной базой"""
    __tablename__ = "reconciliation_jobs"
    
    id = Column(String(36), primary_key=True, default=_new_job_id)
    status = Column(SQLEnum(JobStatus), nullable=False, default=JobStatus.PENDING, index=True)
    stage = Column(SQLEnum(JobStage), nullable=True)
    
    # Фильтры
    scouter_name = Column(String, nullable=True)
    date_from = Column(Date, nullable=True)
    date_to = Column(Date, nullable=True)
    
    # Счетчики
    bitrix_total = Column(Integer, nullable=False, default=0)
    scanned_count = Column(Integer, nullable=False, default=0)
    db_total = Column(Integer, nullable=False, default=0)  # Сколько из найденных уже есть в базе
    missing_count = Column(Integer, nullable=False, default=0)
    synced_count = Column(Integer, nullable=False, default=0)
    error_count = Column(Integer, nullable=False, default=0)
    cursor_start = Column(Integer, nullable=True)  # Последняя страница листинга Bitrix24
    
    error_details = Column(JSON, nullable=False, default=list)  # [{"record_id": ..., "error": ..., "timestamp": ...}]
    error_message = Column(Text, nullable=True)  # Причина фатальной ошибки
    
    started_at = Column(DateTime(timezone=True), nullable=True)
    last_heartbeat_at = Column(DateTime(timezone=True), nullable=True)
    completed_at = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), index=True)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())
