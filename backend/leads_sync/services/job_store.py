from datetime import date
from typing import Any, Callable, Dict, List, Optional, Sequence
from sqlalchemy import desc
from sqlalchemy.orm import Session
from leads_sync.models import ReconciliationJob, JobStatus, JobStage, TERMINAL_STATUSES
from leads_sync.config import settings
from leads_sync.timeutils import utc_now
import logging

logger = logging.getLogger(__name__)


class JobStore:
    """
    Хранилище джобов сверки

    Каждая операция выполняется в своей короткой сессии, поэтому хранилище
    можно использовать из фоновой задачи, которая живет дольше запроса.
    Смена статуса делается условным UPDATE по текущему статусу, так что
    завершенный джоб не может вернуться в running.
    """

    def __init__(self, session_factory: Callable[[], Session], max_error_details: Optional[int] = None):
        self.session_factory = session_factory
        self.max_error_details = max_error_details or settings.max_error_details

    def _detach(self, db: Session, job: ReconciliationJob) -> ReconciliationJob:
        db.refresh(job)
        db.expunge(job)
        return job

    def _update(self, job_id: str, values: Dict[Any, Any], statuses: Optional[Sequence[JobStatus]] = None) -> bool:
        db = self.session_factory()
        try:
            query = db.query(ReconciliationJob).filter(ReconciliationJob.id == job_id)
            if statuses is not None:
                query = query.filter(ReconciliationJob.status.in_(list(statuses)))
            updated = query.update(values, synchronize_session=False)
            db.commit()
            return updated > 0
        finally:
            db.close()

    def create(
        self,
        scouter_name: Optional[str] = None,
        date_from: Optional[date] = None,
        date_to: Optional[date] = None
    ) -> ReconciliationJob:
        """Создать джоб в статусе pending"""
        db = self.session_factory()
        try:
            job = ReconciliationJob(
                status=JobStatus.PENDING,
                scouter_name=scouter_name,
                date_from=date_from,
                date_to=date_to,
                error_details=[],
            )
            db.add(job)
            db.commit()
            logger.info(f"Создан джоб сверки {job.id}")
            return self._detach(db, job)
        finally:
            db.close()

    def get(self, job_id: str) -> Optional[ReconciliationJob]:
        db = self.session_factory()
        try:
            job = db.query(ReconciliationJob).filter(ReconciliationJob.id == job_id).first()
            if job is None:
                return None
            return self._detach(db, job)
        finally:
            db.close()

    def get_status(self, job_id: str) -> Optional[JobStatus]:
        db = self.session_factory()
        try:
            row = db.query(ReconciliationJob.status).filter(ReconciliationJob.id == job_id).first()
            return row[0] if row else None
        finally:
            db.close()

    def list_jobs(
        self,
        status: Optional[JobStatus] = None,
        scouter_name: Optional[str] = None,
        skip: int = 0,
        limit: int = 100
    ) -> List[ReconciliationJob]:
        """Список джобов, новые сначала"""
        db = self.session_factory()
        try:
            query = db.query(ReconciliationJob)
            if status:
                query = query.filter(ReconciliationJob.status == status)
            if scouter_name:
                query = query.filter(ReconciliationJob.scouter_name == scouter_name)
            jobs = query.order_by(
                desc(ReconciliationJob.created_at), desc(ReconciliationJob.started_at)
            ).offset(skip).limit(limit).all()
            for job in jobs:
                db.expunge(job)
            return jobs
        finally:
            db.close()

    def list_active(self) -> List[ReconciliationJob]:
        """Джобы в статусах pending и running"""
        db = self.session_factory()
        try:
            jobs = db.query(ReconciliationJob).filter(
                ReconciliationJob.status.in_([JobStatus.PENDING, JobStatus.RUNNING])
            ).all()
            for job in jobs:
                db.expunge(job)
            return jobs
        finally:
            db.close()

    def mark_running(self, job_id: str) -> bool:
        """pending -> running, этап listing_remote"""
        now = utc_now()
        return self._update(job_id, {
            ReconciliationJob.status: JobStatus.RUNNING,
            ReconciliationJob.stage: JobStage.LISTING_REMOTE,
            ReconciliationJob.started_at: now,
            ReconciliationJob.last_heartbeat_at: now,
        }, statuses=[JobStatus.PENDING])

    def set_stage(self, job_id: str, stage: JobStage, **fields) -> bool:
        """Перевести работающий джоб на следующий этап"""
        values = {getattr(ReconciliationJob, name): value for name, value in fields.items()}
        values[ReconciliationJob.stage] = stage
        values[ReconciliationJob.last_heartbeat_at] = utc_now()
        return self._update(job_id, values, statuses=[JobStatus.RUNNING])

    def touch_heartbeat(self, job_id: str, **fields) -> bool:
        """Обновить heartbeat и, при необходимости, поля прогресса"""
        values = {getattr(ReconciliationJob, name): value for name, value in fields.items()}
        values[ReconciliationJob.last_heartbeat_at] = utc_now()
        return self._update(job_id, values, statuses=[JobStatus.RUNNING])

    def increment_synced(self, job_id: str) -> None:
        """Увеличить счетчик импортированных лидов; каждый лид продлевает heartbeat"""
        self._update(job_id, {
            ReconciliationJob.synced_count: ReconciliationJob.synced_count + 1,
            ReconciliationJob.last_heartbeat_at: utc_now(),
        })

    def increment_error(self, job_id: str, record_id: Any, error: str) -> None:
        """Увеличить счетчик ошибок, продлить heartbeat и добавить запись в error_details"""
        db = self.session_factory()
        try:
            db.query(ReconciliationJob).filter(ReconciliationJob.id == job_id).update({
                ReconciliationJob.error_count: ReconciliationJob.error_count + 1,
                ReconciliationJob.last_heartbeat_at: utc_now(),
            }, synchronize_session=False)
            job = db.query(ReconciliationJob).filter(ReconciliationJob.id == job_id).first()
            if job is not None:
                details = list(job.error_details or [])
                if len(details) < self.max_error_details:
                    details.append({
                        "record_id": record_id,
                        "error": error,
                        "timestamp": utc_now().isoformat(),
                    })
                    job.error_details = details
            db.commit()
        finally:
            db.close()

    def finish(
        self,
        job_id: str,
        status: JobStatus,
        error_message: Optional[str] = None,
        from_statuses: Sequence[JobStatus] = (JobStatus.PENDING, JobStatus.RUNNING)
    ) -> bool:
        """
        Перевести джоб в конечный статус

        Returns:
            False, если джоб уже был в другом статусе (например, отменен оператором)
        """
        values = {
            ReconciliationJob.status: status,
            ReconciliationJob.completed_at: utc_now(),
        }
        if error_message is not None:
            values[ReconciliationJob.error_message] = error_message
        finished = self._update(job_id, values, statuses=from_statuses)
        if finished:
            logger.info(f"Джоб {job_id} завершен со статусом {status.value}")
        return finished

    def delete(self, job_id: str) -> bool:
        """Удалить джоб, только если он в конечном статусе"""
        db = self.session_factory()
        try:
            deleted = db.query(ReconciliationJob).filter(
                ReconciliationJob.id == job_id,
                ReconciliationJob.status.in_(list(TERMINAL_STATUSES))
            ).delete(synchronize_session=False)
            db.commit()
            return deleted > 0
        finally:
            db.close()
