from typing import Any, Dict, Iterable, List, Optional
from leads_sync.models import Lead
from leads_sync.schemas.preview import FieldLabel, PreviewItem
from leads_sync.services.field_metadata import FieldMetadataCache
from leads_sync.services.mapping_registry import MappingRegistry
from leads_sync.services.transform_engine import Direction, resolve_list_value
import logging

logger = logging.getLogger(__name__)


class SyncPreviewSimulator:
    """
    Предпросмотр маппинга без записи в базу

    Прогоняет записи через тот же реестр правил и движок преобразований,
    что и импорт, и собирает ошибки и предупреждения по каждой записи,
    чтобы оператор проверил настройку маппинга до ее включения.
    """

    def __init__(self, registry: MappingRegistry, metadata: Optional[FieldMetadataCache] = None):
        self.registry = registry
        self.metadata = metadata or FieldMetadataCache({})

    def preview(self, direction: Direction, sample_records: Iterable[Dict[str, Any]]) -> List[PreviewItem]:
        direction = Direction(direction)
        return [self._preview_record(direction, record) for record in sample_records]

    def preview_leads(self, direction: Direction, leads: Iterable[Lead]) -> List[PreviewItem]:
        """Предпросмотр по локальным лидам: raw для remote→local, data для local→remote"""
        direction = Direction(direction)
        records = []
        for lead in leads:
            if direction == Direction.REMOTE_TO_LOCAL:
                record = dict(lead.raw or {})
                record.setdefault("ID", lead.id)
            else:
                record = dict(lead.data or {})
                record.setdefault("id", lead.id)
            records.append(record)
        return self.preview(direction, records)

    def _preview_record(self, direction: Direction, record: Dict[str, Any]) -> PreviewItem:
        record_id = None
        try:
            record_id = record.get("ID", record.get("id"))
            mapped = self.registry.apply(direction, record)
        except Exception as e:
            logger.warning(f"Предпросмотр записи {record_id} не удался: {e}")
            return PreviewItem(record_id=record_id, errors=[f"Ошибка обработки записи: {e}"])

        target = dict(mapped.fields)
        for field_name in mapped.unresolved:
            target.setdefault(field_name, None)

        warnings = list(mapped.warnings)
        unmapped = self.registry.unmapped_fields(direction, record)
        if unmapped:
            warnings.append(f"Поля без маппинга: {', '.join(unmapped)}")

        return PreviewItem(
            record_id=record_id,
            source_snapshot=mapped.source_snapshot,
            target_snapshot=target,
            labels=self._labels(direction, record, target),
            warnings=warnings,
            errors=list(mapped.errors),
        )

    def _labels(self, direction: Direction, record: Dict[str, Any], target: Dict[str, Any]) -> Dict[str, FieldLabel]:
        """Названия полей Bitrix24 и подписи значений списков"""
        labels: Dict[str, FieldLabel] = {}
        for rule in self.registry:
            field_id = rule.source_field
            if field_id in labels:
                continue
            raw_value = record.get(field_id) if direction == Direction.REMOTE_TO_LOCAL else target.get(field_id)
            list_value = resolve_list_value(self.metadata, field_id, raw_value)
            labels[field_id] = FieldLabel(
                title=self.metadata.field_title(field_id),
                raw=list_value.raw,
                label=list_value.label,
            )
        return labels
