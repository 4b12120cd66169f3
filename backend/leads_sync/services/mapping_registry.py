from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, Iterator, List, Optional
from sqlalchemy.orm import Session
from leads_sync.models import FieldMapping
from leads_sync.services.transform_engine import Direction, UNRESOLVED, transform
import logging

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class MappingRule:
    """Неизменяемый снимок правила маппинга"""
    id: int
    source_field: str
    target_field: str
    transform_function: str = "identity"
    target_type: str = "text"
    active: bool = True
    hidden: bool = False
    priority: int = 0
    source_field_type: Optional[str] = None

    @classmethod
    def from_model(cls, mapping: FieldMapping) -> "MappingRule":
        return cls(
            id=mapping.id,
            source_field=mapping.source_field,
            target_field=mapping.target_field,
            transform_function=mapping.transform_function or "identity",
            target_type=mapping.target_type or "text",
            active=bool(mapping.active),
            hidden=bool(mapping.hidden),
            priority=mapping.priority or 0,
            source_field_type=mapping.source_field_type,
        )

    @property
    def sort_key(self):
        # При равном приоритете порядок задает имя целевого поля, затем ID
        return (self.priority, self.target_field, self.id)


@dataclass
class MappedRecord:
    """Результат применения всех правил к одной записи"""
    fields: Dict[str, Any] = field(default_factory=dict)
    source_snapshot: Dict[str, Any] = field(default_factory=dict)
    unresolved: List[str] = field(default_factory=list)
    warnings: List[str] = field(default_factory=list)
    errors: List[str] = field(default_factory=list)


class MappingRegistry:
    """Упорядоченный набор активных правил маппинга полей"""

    def __init__(self, rules: Iterable[MappingRule]):
        self._rules = tuple(sorted(
            (rule for rule in rules if rule.active and not rule.hidden),
            key=lambda rule: rule.sort_key
        ))

    @classmethod
    def from_db(cls, db: Session) -> "MappingRegistry":
        """Собрать реестр из таблицы field_mappings"""
        mappings = db.query(FieldMapping).filter(
            FieldMapping.active == True,
            FieldMapping.hidden == False
        ).all()
        registry = cls(MappingRule.from_model(m) for m in mappings)
        logger.debug(f"Загружено {len(registry)} активных правил маппинга")
        return registry

    def __iter__(self) -> Iterator[MappingRule]:
        return iter(self._rules)

    def __len__(self) -> int:
        return len(self._rules)

    @property
    def rules(self) -> List[MappingRule]:
        return list(self._rules)

    def by_source(self, source_field: str) -> List[MappingRule]:
        """Все правила для поля Bitrix24 в порядке применения"""
        return [rule for rule in self._rules if rule.source_field == source_field]

    def by_target(self, target_field: str) -> Optional[MappingRule]:
        """Первое по порядку правило для локального поля"""
        for rule in self._rules:
            if rule.target_field == target_field:
                return rule
        return None

    def unmapped_fields(self, direction: Direction, record: Dict[str, Any]) -> List[str]:
        """Поля записи, которые не покрыты ни одним правилом"""
        if direction == Direction.REMOTE_TO_LOCAL:
            known = {rule.source_field for rule in self._rules}
        else:
            known = {rule.target_field for rule in self._rules}
        return sorted(key for key in record.keys() if key not in known)

    def apply(self, direction: Direction, record: Dict[str, Any]) -> MappedRecord:
        """
        Применить все правила к записи

        Для remote→local читается source_field и пишется target_field,
        для local→remote наоборот. Если на одно поле назначения указывают
        несколько правил, берется первое непустое значение в порядке реестра.

        Args:
            direction: Направление синхронизации
            record: Исходная запись (словарь полей)

        Returns:
            MappedRecord; поля с ошибкой преобразования в fields не попадают
        """
        result = MappedRecord()
        remote_to_local = Direction(direction) == Direction.REMOTE_TO_LOCAL

        for rule in self._rules:
            read_field = rule.source_field if remote_to_local else rule.target_field
            write_field = rule.target_field if remote_to_local else rule.source_field

            raw_value = record.get(read_field)
            result.source_snapshot[read_field] = raw_value

            if result.fields.get(write_field) is not None:
                continue

            outcome = transform(
                direction,
                rule.transform_function,
                raw_value,
                target_type=rule.target_type,
                field_name=read_field
            )
            result.warnings.extend(outcome.warnings)
            result.errors.extend(outcome.errors)

            if outcome.value is UNRESOLVED:
                if write_field not in result.unresolved:
                    result.unresolved.append(write_field)
                continue

            if write_field in result.unresolved and outcome.value is not None:
                result.unresolved.remove(write_field)
            result.fields[write_field] = outcome.value

        return result
