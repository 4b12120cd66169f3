from sqlalchemy import Column, Integer, String, DateTime, JSON
from sqlalchemy.sql import func
from leads_sync.database import Base


class Lead(Base):
    """Локальная копия лида Bitrix24"""
    __tablename__ = "leads"
    
    id = Column(Integer, primary_key=True, autoincrement=False)  # ID лида в Bitrix24
    name = Column(String, nullable=True)
    scouter = Column(String, nullable=True, index=True)
    criado = Column(DateTime(timezone=True), nullable=True, index=True)  # Дата создания лида в Bitrix24
    data = Column(JSON, nullable=False, default=dict)  # Поля после маппинга
    raw = Column(JSON, nullable=True)  # Исходные поля Bitrix24
    sync_source = Column(String, nullable=True)
    last_sync_at = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), index=True)
