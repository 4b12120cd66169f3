from dataclasses import dataclass
from typing import Any, Callable, Dict, Iterable, List, Optional, Protocol, Tuple
from leads_sync.config import settings
from leads_sync.exceptions import LeadsSyncError
from leads_sync.models import JobStatus, JobStage
from leads_sync.schemas.reconciliation_job import JobFilters
from leads_sync.services.job_store import JobStore
from leads_sync.services.mapping_registry import MappingRegistry
from leads_sync.services.retry import call_with_retries
from leads_sync.services.transform_engine import Direction
import asyncio
import logging

logger = logging.getLogger(__name__)


class RemoteLeadSource(Protocol):
    """Постраничное чтение лидов из Bitrix24"""

    async def list_ids(self, filters: JobFilters, page_token: Optional[int]) -> Tuple[List[int], Optional[int]]:
        ...

    async def get_record(self, record_id: int) -> Optional[Dict[str, Any]]:
        ...


class LocalLeadStore(Protocol):
    """Локальное хранилище лидов"""

    def list_ids(self, filters: JobFilters) -> Iterable[int]:
        ...

    def upsert(self, record_id: int, fields: Dict[str, Any], raw: Optional[Dict[str, Any]] = None) -> None:
        ...


class LeadImportError(LeadsSyncError):
    """Ошибка импорта одного лида"""


@dataclass
class RunnerOptions:
    batch_size: int = 10
    concurrency: int = 3
    batch_pause_seconds: float = 0.3
    max_attempts: int = 3
    retry_base_delay: float = 1.0
    timeout_seconds: float = 30.0
    max_scan_with_dates: int = 50000
    max_scan_with_scouter: int = 2000
    max_scan_unfiltered: int = 5000

    @classmethod
    def from_settings(cls) -> "RunnerOptions":
        return cls(
            batch_size=settings.import_batch_size,
            concurrency=settings.import_concurrency,
            batch_pause_seconds=settings.batch_pause_seconds,
            max_attempts=settings.remote_max_attempts,
            retry_base_delay=settings.remote_retry_base_delay,
            timeout_seconds=settings.remote_timeout_seconds,
            max_scan_with_dates=settings.max_scan_with_dates,
            max_scan_with_scouter=settings.max_scan_with_scouter,
            max_scan_unfiltered=settings.max_scan_unfiltered,
        )


class ReconciliationRunner:
    """
    Выполнение одного джоба сверки лидов Bitrix24 с локальной базой

    Этапы: listing_remote -> comparing -> importing -> completed.
    Ошибка отдельного лида не останавливает импорт, она попадает в
    error_details. Исчерпанные повторы при листинге или любая
    неожиданная ошибка переводят джоб в failed.

    Остановка кооперативная: флаг проверяется перед каждым лидом, а
    статус в базе - на каждой странице листинга и перед каждым батчем.
    """

    def __init__(
        self,
        job_id: str,
        filters: JobFilters,
        job_store: JobStore,
        remote: RemoteLeadSource,
        local: LocalLeadStore,
        registry_factory: Callable[[], MappingRegistry],
        options: Optional[RunnerOptions] = None
    ):
        self.job_id = job_id
        self.filters = filters
        self.job_store = job_store
        self.remote = remote
        self.local = local
        self.registry_factory = registry_factory
        self.options = options or RunnerOptions.from_settings()
        self._stop = asyncio.Event()
        # Счетчики джоба пишет только этот раннер, воркеры импорта - через блокировку
        self._counter_lock = asyncio.Lock()

    def request_stop(self) -> None:
        self._stop.set()

    @property
    def stop_requested(self) -> bool:
        return self._stop.is_set()

    def _should_stop(self) -> bool:
        if self._stop.is_set():
            return True
        if self.job_store.get_status(self.job_id) != JobStatus.RUNNING:
            logger.info(f"Джоб {self.job_id} больше не в статусе running, останавливаемся")
            self._stop.set()
            return True
        return False

    def _scan_limit(self) -> int:
        if self.filters.date_from or self.filters.date_to:
            return self.options.max_scan_with_dates
        if self.filters.scouter_name:
            return self.options.max_scan_with_scouter
        return self.options.max_scan_unfiltered

    async def _remote_call(self, func, *args, description: str):
        return await call_with_retries(
            func,
            *args,
            description=description,
            attempts=self.options.max_attempts,
            base_delay=self.options.retry_base_delay,
            timeout=self.options.timeout_seconds
        )

    async def run(self) -> Optional[JobStatus]:
        """
        Выполнить джоб до конечного статуса

        Returns:
            Статус джоба после выполнения
        """
        status = self.job_store.get_status(self.job_id)
        if status == JobStatus.PENDING:
            self.job_store.mark_running(self.job_id)
        elif status != JobStatus.RUNNING:
            logger.warning(f"Джоб {self.job_id} в статусе {status}, запуск пропущен")
            return status

        logger.info(f"Старт сверки {self.job_id}, фильтры: {self.filters.model_dump()}")

        try:
            remote_ids = await self._list_remote()
            if remote_ids is None:
                return self.job_store.get_status(self.job_id)

            missing_ids = self._compare(remote_ids)
            if missing_ids is None:
                return self.job_store.get_status(self.job_id)
            if not missing_ids:
                self.job_store.finish(self.job_id, JobStatus.COMPLETED, from_statuses=[JobStatus.RUNNING])
                return self.job_store.get_status(self.job_id)

            await self._import(missing_ids, self.registry_factory())
            return self._complete()
        except asyncio.CancelledError:
            logger.warning(f"Задача джоба {self.job_id} прервана")
            raise
        except Exception as e:
            logger.error(f"Фатальная ошибка джоба {self.job_id}: {e}", exc_info=True)
            self.job_store.finish(
                self.job_id,
                JobStatus.FAILED,
                error_message=str(e),
                from_statuses=[JobStatus.PENDING, JobStatus.RUNNING]
            )
            return self.job_store.get_status(self.job_id)

    async def _list_remote(self) -> Optional[List[int]]:
        """Этап listing_remote: все ID лидов Bitrix24 по фильтрам"""
        remote_ids: List[int] = []
        seen = set()
        page_token: Optional[int] = None
        limit = self._scan_limit()

        while True:
            if self._should_stop():
                return None

            page_ids, next_token = await self._remote_call(
                self.remote.list_ids,
                self.filters,
                page_token,
                description=f"листинг лидов Bitrix24 (start={page_token or 0})"
            )
            for record_id in page_ids:
                record_id = int(record_id)
                if record_id not in seen:
                    seen.add(record_id)
                    remote_ids.append(record_id)

            self.job_store.touch_heartbeat(
                self.job_id,
                scanned_count=len(remote_ids),
                cursor_start=page_token or 0
            )

            if not next_token:
                break
            if len(remote_ids) >= limit:
                logger.warning(f"Джоб {self.job_id}: достигнут лимит листинга {limit} лидов")
                break
            page_token = next_token

        logger.info(f"Джоб {self.job_id}: в Bitrix24 найдено {len(remote_ids)} лидов")

        if not self.job_store.set_stage(
            self.job_id,
            JobStage.COMPARING,
            bitrix_total=len(remote_ids),
            scanned_count=len(remote_ids)
        ):
            self._stop.set()
            return None
        return remote_ids

    def _compare(self, remote_ids: List[int]) -> Optional[List[int]]:
        """Этап comparing: ID, которых нет в локальной базе, в порядке Bitrix24"""
        local_ids = {int(record_id) for record_id in self.local.list_ids(self.filters)}
        missing_ids = [record_id for record_id in remote_ids if record_id not in local_ids]
        db_total = len(remote_ids) - len(missing_ids)

        logger.info(f"Джоб {self.job_id}: в базе {db_total}, не хватает {len(missing_ids)}")

        if missing_ids:
            stage_set = self.job_store.set_stage(
                self.job_id,
                JobStage.IMPORTING,
                db_total=db_total,
                missing_count=len(missing_ids)
            )
        else:
            stage_set = self.job_store.touch_heartbeat(self.job_id, db_total=db_total, missing_count=0)

        if not stage_set:
            self._stop.set()
            return None
        return missing_ids

    async def _import(self, missing_ids: List[int], registry: MappingRegistry) -> None:
        """Этап importing: батчи лидов с ограниченным числом параллельных воркеров"""
        batch_size = max(1, self.options.batch_size)
        semaphore = asyncio.Semaphore(max(1, self.options.concurrency))
        total_batches = (len(missing_ids) + batch_size - 1) // batch_size

        for batch_index, start in enumerate(range(0, len(missing_ids), batch_size), start=1):
            if self._should_stop():
                logger.info(f"Джоб {self.job_id} остановлен во время импорта")
                return

            batch = missing_ids[start:start + batch_size]
            logger.info(f"Джоб {self.job_id}: батч {batch_index}/{total_batches} ({len(batch)} лидов)")

            await asyncio.gather(*(
                self._import_one(record_id, registry, semaphore) for record_id in batch
            ))
            self.job_store.touch_heartbeat(self.job_id)

            if batch_index < total_batches and self.options.batch_pause_seconds:
                await asyncio.sleep(self.options.batch_pause_seconds)

    async def _import_one(self, record_id: int, registry: MappingRegistry, semaphore: asyncio.Semaphore) -> None:
        async with semaphore:
            if self._stop.is_set():
                return

            try:
                record = await self._remote_call(
                    self.remote.get_record,
                    record_id,
                    description=f"получение лида {record_id}"
                )
                if record is None:
                    raise LeadImportError("Лид не найден в Bitrix24")

                mapped = registry.apply(Direction.REMOTE_TO_LOCAL, record)
                if mapped.errors:
                    logger.warning(f"Лид {record_id}: ошибки преобразования полей: {mapped.errors}")

                fields = dict(mapped.fields)
                if self.filters.scouter_name and fields.get("scouter") is None:
                    fields["scouter"] = self.filters.scouter_name

                self.local.upsert(record_id, fields, raw=record)
            except Exception as e:
                logger.error(f"Ошибка импорта лида {record_id}: {e}")
                async with self._counter_lock:
                    self.job_store.increment_error(self.job_id, record_id, str(e))
                return

            async with self._counter_lock:
                self.job_store.increment_synced(self.job_id)
            logger.debug(f"Лид {record_id} импортирован")

    def _complete(self) -> Optional[JobStatus]:
        job = self.job_store.get(self.job_id)
        if job is None or job.status != JobStatus.RUNNING:
            return job.status if job else None

        processed = job.synced_count + job.error_count
        if processed == job.missing_count:
            self.job_store.finish(self.job_id, JobStatus.COMPLETED, from_statuses=[JobStatus.RUNNING])
            logger.info(
                f"Сверка {self.job_id} завершена: в Bitrix24 {job.bitrix_total}, в базе {job.db_total}, "
                f"не хватало {job.missing_count}, импортировано {job.synced_count}, ошибок {job.error_count}"
            )
        else:
            self.job_store.finish(
                self.job_id,
                JobStatus.FAILED,
                error_message=f"Обработано {processed} из {job.missing_count} лидов",
                from_statuses=[JobStatus.RUNNING]
            )
        return self.job_store.get_status(self.job_id)
