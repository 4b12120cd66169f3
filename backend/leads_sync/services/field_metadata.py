from typing import Any, Dict, List, Optional
from sqlalchemy.orm import Session
from leads_sync.models import BitrixFieldCache
import logging

logger = logging.getLogger(__name__)


class FieldMetadataCache:
    """Снимок кэша полей Bitrix24 только для чтения"""
    
    def __init__(self, fields: Dict[str, Dict[str, Any]]):
        self._fields = fields
    
    @classmethod
    def from_db(cls, db: Session) -> "FieldMetadataCache":
        rows = db.query(BitrixFieldCache).all()
        return cls({
            row.field_id: {"title": row.title, "type": row.field_type, "items": row.items or []}
            for row in rows
        })
    
    def field_title(self, field_id: str) -> str:
        field = self._fields.get(field_id)
        return field["title"] if field and field.get("title") else field_id
    
    def list_item_label(self, field_id: str, raw_value: Any) -> Optional[str]:
        field = self._fields.get(field_id)
        if not field:
            return None
        for item in field.get("items") or []:
            if str(item.get("ID")) == str(raw_value):
                return item.get("VALUE")
        return None


async def refresh_field_cache(db: Session, bitrix_client, entity_type: str = "lead") -> int:
    """
    Обновить кэш полей из Bitrix24
    
    Для списков берутся items поля, для полей crm_status - справочник статусов.
    
    Returns:
        Количество полей в кэше
    """
    fields = await bitrix_client.get_entity_fields(entity_type)
    
    existing = {row.field_id: row for row in db.query(BitrixFieldCache).all()}
    
    for field_id, field_data in fields.items():
        field_type = field_data.get('type') or 'string'
        title = (
            field_data.get('formLabel')
            or field_data.get('listLabel')
            or field_data.get('title')
            or field_id
        )
        
        items: Optional[List[Dict[str, Any]]] = None
        if field_data.get('items'):
            items = [{"ID": item.get("ID"), "VALUE": item.get("VALUE")} for item in field_data['items']]
        elif field_type == 'crm_status' and field_data.get('statusType'):
            try:
                statuses = await bitrix_client.get_status_list(field_data['statusType'])
                items = [{"ID": s.get("STATUS_ID"), "VALUE": s.get("NAME")} for s in statuses]
            except Exception as e:
                logger.warning(f"Не удалось получить статусы для поля {field_id}: {e}")
        
        row = existing.get(field_id)
        if row is None:
            row = BitrixFieldCache(field_id=field_id)
            db.add(row)
        row.title = title
        row.field_type = field_type
        row.items = items
    
    db.commit()
    logger.info(f"Кэш полей {entity_type} обновлен: {len(fields)} полей")
    return len(fields)
