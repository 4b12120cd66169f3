from sqlalchemy import Column, Integer, String, DateTime, JSON
from sqlalchemy.sql import func
from leads_sync.database import Base


class BitrixFieldCache(Base):
    """Кэш метаданных полей лида Bitrix24"""
    __tablename__ = "bitrix_field_cache"
    
    id = Column(Integer, primary_key=True, index=True)
    field_id = Column(String, nullable=False, unique=True, index=True)  # ID поля в Bitrix24 (например, SOURCE_ID, UF_CRM_123)
    title = Column(String, nullable=False)  # Человекочитаемое название поля
    field_type = Column(String, nullable=False)  # Тип поля (string, enumeration, crm_status, date и т.д.)
    items = Column(JSON, nullable=True)  # Элементы списка [{"ID": "44", "VALUE": "Meta"}, ...]
    cached_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())
