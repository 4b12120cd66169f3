from datetime import datetime, timedelta
from typing import Callable, Dict, List, Optional
from leads_sync.config import settings
from leads_sync.database import SessionLocal
from leads_sync.exceptions import JobActionNotAllowedError, JobConflictError, JobNotFoundError
from leads_sync.models import ReconciliationJob, JobStatus
from leads_sync.schemas.reconciliation_job import JobFilters
from leads_sync.services.bitrix_client import BitrixLeadSource, get_bitrix_client
from leads_sync.services.job_store import JobStore
from leads_sync.services.lead_store import LeadRepository
from leads_sync.services.mapping_registry import MappingRegistry
from leads_sync.services.reconciliation import ReconciliationRunner
from leads_sync.services.stall_detector import job_health
from leads_sync.timeutils import get_today_local, utc_now
import asyncio
import logging

logger = logging.getLogger(__name__)

RunnerFactory = Callable[[str, JobFilters], ReconciliationRunner]


def job_filters(job: ReconciliationJob) -> JobFilters:
    return JobFilters(scouter_name=job.scouter_name, date_from=job.date_from, date_to=job.date_to)


class JobController:
    """Действия оператора над джобами сверки: start, cancel, terminate, delete"""

    def __init__(
        self,
        job_store: JobStore,
        runner_factory: RunnerFactory,
        stall_threshold: Optional[timedelta] = None,
        terminate_status: Optional[str] = None,
        clock: Callable[[], datetime] = utc_now,
        today: Callable[[], object] = get_today_local
    ):
        self.job_store = job_store
        self.runner_factory = runner_factory
        self.stall_threshold = stall_threshold or timedelta(seconds=settings.stall_threshold_seconds)
        self.terminate_status = JobStatus(terminate_status or settings.terminate_status)
        self.clock = clock
        self.today = today
        self._runners: Dict[str, ReconciliationRunner] = {}
        self._tasks: Dict[str, asyncio.Task] = {}

    def _get_or_raise(self, job_id: str) -> ReconciliationJob:
        job = self.job_store.get(job_id)
        if job is None:
            raise JobNotFoundError(job_id)
        return job

    def health(self, job: ReconciliationJob):
        return job_health(job, self.clock(), self.stall_threshold)

    def find_conflict(self, filters: JobFilters) -> Optional[ReconciliationJob]:
        """Активный джоб, область которого пересекается с фильтрами"""
        for job in self.job_store.list_active():
            if job_filters(job).overlaps(filters):
                return job
        return None

    def prepare(self, filters: JobFilters) -> ReconciliationJob:
        """
        Создать джоб и сразу перевести его в running/listing_remote

        Raises:
            JobConflictError: уже есть активный джоб с пересекающимися фильтрами
        """
        filters = filters.with_default_dates(self.today())
        conflict = self.find_conflict(filters)
        if conflict is not None:
            logger.warning(f"Отклонен запуск сверки {filters.model_dump()}: пересекается с джобом {conflict.id}")
            raise JobConflictError(conflict.id)

        job = self.job_store.create(
            scouter_name=filters.scouter_name,
            date_from=filters.date_from,
            date_to=filters.date_to
        )
        self.job_store.mark_running(job.id)
        return self._get_or_raise(job.id)

    async def start(self, filters: JobFilters) -> ReconciliationJob:
        """Запустить сверку фоновой задачей"""
        job = self.prepare(filters)
        runner = self.runner_factory(job.id, job_filters(job))
        self._register(runner, asyncio.create_task(self._run(runner)))
        logger.info(f"Запущена сверка {job.id}")
        return job

    async def run(self, filters: JobFilters) -> Optional[JobStatus]:
        """
        Запустить сверку и дождаться ее завершения в текущем цикле событий

        Используется планировщиком: задача регистрируется в контроллере,
        поэтому cancel и terminate работают так же, как для джобов из API.
        """
        job = self.prepare(filters)
        runner = self.runner_factory(job.id, job_filters(job))
        task = asyncio.create_task(self._run(runner))
        self._register(runner, task)
        logger.info(f"Запущена сверка {job.id}")
        return await task

    def _register(self, runner: ReconciliationRunner, task: asyncio.Task) -> None:
        self._runners[runner.job_id] = runner
        self._tasks[runner.job_id] = task

    async def _run(self, runner: ReconciliationRunner) -> Optional[JobStatus]:
        try:
            return await runner.run()
        finally:
            self._runners.pop(runner.job_id, None)
            self._tasks.pop(runner.job_id, None)

    def _interrupt(self, job_id: str, cancel_task: bool) -> None:
        """
        Остановить раннер джоба

        Задача может жить в цикле событий другого потока (планировщик),
        поэтому вызовы передаются в ее цикл через call_soon_threadsafe.
        """
        runner = self._runners.get(job_id)
        task = self._tasks.get(job_id)
        if task is None or task.done():
            if runner is not None:
                runner.request_stop()
            return

        loop = task.get_loop()
        if runner is not None:
            loop.call_soon_threadsafe(runner.request_stop)
        if cancel_task:
            loop.call_soon_threadsafe(task.cancel)

    def cancel(self, job_id: str) -> ReconciliationJob:
        """Отменить работающий джоб; текущий лид будет дообработан"""
        job = self._get_or_raise(job_id)
        health = self.health(job)
        if not health.can_cancel:
            reason = "джоб завис, используйте terminate" if health.stalled else f"статус {job.status.value}"
            raise JobActionNotAllowedError(job_id, "cancel", reason)

        if not self.job_store.finish(job_id, JobStatus.CANCELLED, from_statuses=[JobStatus.RUNNING]):
            raise JobActionNotAllowedError(job_id, "cancel", "джоб уже завершен")

        self._interrupt(job_id, cancel_task=False)
        logger.info(f"Джоб {job_id} отменен оператором")
        return self._get_or_raise(job_id)

    def terminate(self, job_id: str) -> ReconciliationJob:
        """Принудительно завершить зависший джоб, не дожидаясь текущей работы"""
        job = self._get_or_raise(job_id)
        health = self.health(job)
        if not health.can_terminate:
            reason = "джоб не завис, используйте cancel" if job.status == JobStatus.RUNNING else f"статус {job.status.value}"
            raise JobActionNotAllowedError(job_id, "terminate", reason)

        message = (
            f"Джоб принудительно завершен оператором: нет heartbeat дольше "
            f"{int(self.stall_threshold.total_seconds())} c"
        )
        if not self.job_store.finish(
            job_id,
            self.terminate_status,
            error_message=message,
            from_statuses=[JobStatus.RUNNING]
        ):
            raise JobActionNotAllowedError(job_id, "terminate", "джоб уже завершен")

        self._interrupt(job_id, cancel_task=True)
        logger.warning(f"Джоб {job_id} принудительно завершен со статусом {self.terminate_status.value}")
        return self._get_or_raise(job_id)

    def delete(self, job_id: str) -> None:
        """Удалить джоб в конечном статусе"""
        job = self._get_or_raise(job_id)
        if not self.health(job).can_delete:
            raise JobActionNotAllowedError(job_id, "delete", f"статус {job.status.value}")
        if not self.job_store.delete(job_id):
            raise JobActionNotAllowedError(job_id, "delete", "джоб изменился во время удаления")
        logger.info(f"Джоб {job_id} удален")

    def get_job(self, job_id: str) -> ReconciliationJob:
        return self._get_or_raise(job_id)

    def list_jobs(
        self,
        status: Optional[JobStatus] = None,
        scouter_name: Optional[str] = None,
        skip: int = 0,
        limit: int = 100
    ) -> List[ReconciliationJob]:
        return self.job_store.list_jobs(status=status, scouter_name=scouter_name, skip=skip, limit=limit)

    def stalled_jobs(self) -> List[ReconciliationJob]:
        return [job for job in self.job_store.list_active() if self.health(job).stalled]


# Singleton экземпляр контроллера
_job_controller: Optional[JobController] = None


def build_runner(job_id: str, filters: JobFilters) -> ReconciliationRunner:
    """Раннер с реальными Bitrix24 и локальной базой"""
    def registry_factory() -> MappingRegistry:
        db = SessionLocal()
        try:
            return MappingRegistry.from_db(db)
        finally:
            db.close()

    return ReconciliationRunner(
        job_id=job_id,
        filters=filters,
        job_store=JobStore(SessionLocal),
        remote=BitrixLeadSource(get_bitrix_client()),
        local=LeadRepository(SessionLocal),
        registry_factory=registry_factory,
    )


def get_job_controller() -> JobController:
    """Получить контроллер джобов (singleton)"""
    global _job_controller
    if _job_controller is None:
        _job_controller = JobController(JobStore(SessionLocal), build_runner)
    return _job_controller
