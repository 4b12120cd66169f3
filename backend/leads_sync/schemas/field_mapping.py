from pydantic import BaseModel
from datetime import datetime
from typing import Optional
from leads_sync.services.transform_engine import TransformFunction, TargetType


class FieldMappingBase(BaseModel):
    source_field: str  # Поле в Bitrix24
    target_field: str  # Поле в локальной базе
    transform_function: TransformFunction = TransformFunction.IDENTITY
    target_type: TargetType = TargetType.TEXT
    source_field_type: Optional[str] = None
    active: bool = True
    hidden: bool = False
    priority: int = 0
    notes: Optional[str] = None


class FieldMappingCreate(FieldMappingBase):
    pass


class FieldMappingUpdate(BaseModel):
    source_field: Optional[str] = None
    target_field: Optional[str] = None
    transform_function: Optional[TransformFunction] = None
    target_type: Optional[TargetType] = None
    source_field_type: Optional[str] = None
    active: Optional[bool] = None
    hidden: Optional[bool] = None
    priority: Optional[int] = None
    notes: Optional[str] = None


class FieldMapping(FieldMappingBase):
    id: int
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    
    class Config:
        from_attributes = True
