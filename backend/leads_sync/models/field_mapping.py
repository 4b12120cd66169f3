from sqlalchemy import Column, Integer, String, Boolean, Text, DateTime
from sqlalchemy.sql import func
from leads_sync.database import Base


class FieldMapping(Base):
    """Правило маппинга поля лида Bitrix24 на поле локальной базы"""
    __tablename__ = "field_mappings"
    
    id = Column(Integer, primary_key=True, index=True)
    source_field = Column(String, nullable=False, index=True)  # Поле в Bitrix24 (например, NAME, UF_CRM_123)
    source_field_type = Column(String, nullable=True)  # Тип поля в Bitrix24 (string, enumeration, date и т.д.)
    target_field = Column(String, nullable=False, index=True)  # Поле в локальной базе
    target_type = Column(String, nullable=False, default="text")  # integer, text, boolean, date
    transform_function = Column(String, nullable=False, default="identity")  # identity, toNumber, toString, toBoolean, toDate, toTimestamp
    active = Column(Boolean, nullable=False, default=True)
    hidden = Column(Boolean, nullable=False, default=False)
    priority = Column(Integer, nullable=False, default=0)  # Меньше = раньше
    notes = Column(Text, nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())
