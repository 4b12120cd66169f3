from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy import desc
from sqlalchemy.orm import Session
from typing import List
from leads_sync.database import get_db
from leads_sync.models import FieldMapping, Lead
from leads_sync.schemas.field_mapping import (
    FieldMapping as FieldMappingSchema,
    FieldMappingCreate,
    FieldMappingUpdate
)
from leads_sync.schemas.preview import PreviewItem, PreviewRequest
from leads_sync.services.bitrix_client import get_bitrix_client
from leads_sync.services.field_metadata import FieldMetadataCache, refresh_field_cache
from leads_sync.services.mapping_registry import MappingRegistry
from leads_sync.services.preview_service import SyncPreviewSimulator
import logging

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/mappings", tags=["mappings"])


@router.get("", response_model=List[FieldMappingSchema])
def get_mappings(db: Session = Depends(get_db)):
    """Получить все правила маппинга, включая неактивные и скрытые"""
    return db.query(FieldMapping).order_by(
        FieldMapping.priority, FieldMapping.target_field, FieldMapping.id
    ).all()


@router.get("/active", response_model=List[FieldMappingSchema])
def get_active_mappings(db: Session = Depends(get_db)):
    """Активные правила в том порядке, в котором они применяются при синхронизации"""
    registry = MappingRegistry.from_db(db)
    order = [rule.id for rule in registry]
    mappings = {m.id: m for m in db.query(FieldMapping).filter(FieldMapping.id.in_(order)).all()}
    return [mappings[mapping_id] for mapping_id in order]


@router.post("", response_model=FieldMappingSchema)
def create_mapping(data: FieldMappingCreate, db: Session = Depends(get_db)):
    """Создать правило маппинга"""
    mapping = FieldMapping(
        source_field=data.source_field,
        source_field_type=data.source_field_type,
        target_field=data.target_field,
        target_type=data.target_type.value,
        transform_function=data.transform_function.value,
        active=data.active,
        hidden=data.hidden,
        priority=data.priority,
        notes=data.notes
    )
    db.add(mapping)
    db.commit()
    db.refresh(mapping)
    logger.info(f"Создано правило маппинга {mapping.id}: {mapping.source_field} -> {mapping.target_field}")
    return mapping


@router.put("/{mapping_id}", response_model=FieldMappingSchema)
def update_mapping(mapping_id: int, data: FieldMappingUpdate, db: Session = Depends(get_db)):
    """Обновить правило маппинга"""
    mapping = db.query(FieldMapping).filter(FieldMapping.id == mapping_id).first()
    if not mapping:
        raise HTTPException(status_code=404, detail="Правило маппинга не найдено")

    for key, value in data.model_dump(exclude_unset=True).items():
        if hasattr(value, "value"):
            value = value.value
        setattr(mapping, key, value)

    db.commit()
    db.refresh(mapping)
    return mapping


@router.delete("/{mapping_id}")
def delete_mapping(mapping_id: int, db: Session = Depends(get_db)):
    """Удалить правило маппинга"""
    mapping = db.query(FieldMapping).filter(FieldMapping.id == mapping_id).first()
    if not mapping:
        raise HTTPException(status_code=404, detail="Правило маппинга не найдено")

    db.delete(mapping)
    db.commit()
    return {"message": "Правило маппинга удалено"}


@router.post("/preview", response_model=List[PreviewItem])
def preview_mappings(data: PreviewRequest, db: Session = Depends(get_db)):
    """
    Предпросмотр маппинга без записи в базу

    Если записи не переданы, берутся последние синхронизированные лиды
    """
    simulator = SyncPreviewSimulator(MappingRegistry.from_db(db), FieldMetadataCache.from_db(db))
    if data.records is not None:
        return simulator.preview(data.direction, data.records)

    leads = db.query(Lead).order_by(desc(Lead.updated_at), desc(Lead.id)).limit(data.limit).all()
    return simulator.preview_leads(data.direction, leads)


@router.post("/fields/refresh")
async def refresh_fields(db: Session = Depends(get_db)):
    """Обновить кэш полей лида из Bitrix24"""
    try:
        count = await refresh_field_cache(db, get_bitrix_client())
        return {"fields": count}
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except Exception as e:
        logger.error(f"Ошибка обновления кэша полей: {e}", exc_info=True)
        raise HTTPException(status_code=502, detail=f"Ошибка Bitrix24: {str(e)}")
