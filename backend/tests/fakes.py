"""
Фейковые Bitrix24 и локальная база для тестов сверки.
"""
from datetime import timedelta
from typing import Any, Dict, Iterable, List, Optional, Set, Tuple

from leads_sync.models import FieldMapping, ReconciliationJob
from leads_sync.schemas.reconciliation_job import JobFilters
from leads_sync.services.mapping_registry import MappingRegistry, MappingRule
from leads_sync.services.reconciliation import ReconciliationRunner
from leads_sync.timeutils import utc_now


def add_mapping(db, source_field: str, target_field: str, **kwargs) -> FieldMapping:
    mapping = FieldMapping(source_field=source_field, target_field=target_field, **kwargs)
    db.add(mapping)
    db.commit()
    db.refresh(mapping)
    return mapping


def age_heartbeat(session_factory, job_id: str, minutes: int = 10) -> None:
    """Сдвинуть heartbeat джоба в прошлое, как будто он давно не обновлялся."""
    db = session_factory()
    try:
        db.query(ReconciliationJob).filter(ReconciliationJob.id == job_id).update(
            {ReconciliationJob.last_heartbeat_at: utc_now() - timedelta(minutes=minutes)},
            synchronize_session=False
        )
        db.commit()
    finally:
        db.close()


class FakeRemoteSource:
    """Bitrix24 в памяти: постраничный листинг ID и получение лида."""

    def __init__(self, records: Dict[int, Dict[str, Any]], page_size: int = 50, failing_ids: Iterable[int] = ()):
        self.records = records
        self.page_size = page_size
        self.failing_ids: Set[int] = set(failing_ids)
        self.list_calls = 0
        self.get_calls: List[int] = []
        self.list_error: Optional[Exception] = None
        self.on_get = None

    async def list_ids(self, filters: JobFilters, page_token: Optional[int]) -> Tuple[List[int], Optional[int]]:
        self.list_calls += 1
        if self.list_error is not None:
            raise self.list_error
        ids = sorted(self.records, reverse=True)
        start = page_token or 0
        page = ids[start:start + self.page_size]
        next_start = start + self.page_size
        return page, next_start if next_start < len(ids) else None

    async def get_record(self, record_id: int) -> Optional[Dict[str, Any]]:
        self.get_calls.append(record_id)
        if self.on_get is not None:
            self.on_get(record_id)
        if record_id in self.failing_ids:
            raise ConnectionError(f"Bitrix24 недоступен для лида {record_id}")
        return self.records.get(record_id)


class FakeLocalStore:
    """Локальная база лидов в памяти."""

    def __init__(self, ids: Iterable[int] = ()):
        self.ids: Set[int] = set(ids)
        self.upserted: Dict[int, Dict[str, Any]] = {}

    def list_ids(self, filters: JobFilters) -> List[int]:
        return sorted(self.ids)

    def upsert(self, record_id: int, fields: Dict[str, Any], raw: Optional[Dict[str, Any]] = None) -> None:
        self.ids.add(record_id)
        self.upserted[record_id] = fields


def make_remote_records(count: int) -> Dict[int, Dict[str, Any]]:
    return {
        record_id: {"ID": str(record_id), "NAME": f"Lead {record_id}", "UF_CRM_AGE": "30"}
        for record_id in range(1, count + 1)
    }


def simple_registry() -> MappingRegistry:
    return MappingRegistry([
        MappingRule(id=1, source_field="NAME", target_field="name", transform_function="toString"),
        MappingRule(id=2, source_field="UF_CRM_AGE", target_field="age", transform_function="toNumber", target_type="integer"),
    ])


def make_runner(job_store, job_id, remote, local, options, filters=None, registry=None) -> ReconciliationRunner:
    return ReconciliationRunner(
        job_id=job_id,
        filters=filters or JobFilters(),
        job_store=job_store,
        remote=remote,
        local=local,
        registry_factory=lambda: registry or simple_registry(),
        options=options,
    )
