"""
Производные показатели джоба сверки: зависание, прогресс и доступные действия.

Ничего не хранится и не меняется: все вычисляется из сохраненных
статуса, этапа, счетчиков и времени последнего heartbeat.
"""
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Optional
from leads_sync.models import JobStatus, JobStage, TERMINAL_STATUSES
from leads_sync.timeutils import ensure_utc

DEFAULT_STALL_THRESHOLD = timedelta(minutes=3)

_STAGE_PROGRESS = {
    JobStage.LISTING_REMOTE: 10,
    JobStage.COMPARING: 30,
}
_IMPORT_START = 30
_IMPORT_END = 95


@dataclass(frozen=True)
class JobHealth:
    stalled: bool
    progress: int
    can_cancel: bool
    can_terminate: bool
    can_delete: bool


def is_stalled(
    status: JobStatus,
    last_heartbeat_at: Optional[datetime],
    now: datetime,
    threshold: timedelta = DEFAULT_STALL_THRESHOLD
) -> bool:
    """Джоб завис: статус running и heartbeat старше порога"""
    if status != JobStatus.RUNNING:
        return False
    if last_heartbeat_at is None:
        return True
    return ensure_utc(now) - ensure_utc(last_heartbeat_at) > threshold


def progress_percentage(
    status: JobStatus,
    stage: Optional[JobStage],
    synced_count: int,
    error_count: int,
    missing_count: int
) -> int:
    """Процент выполнения по этапу и счетчикам"""
    if status == JobStatus.COMPLETED:
        return 100
    if stage is None:
        return 0
    if stage == JobStage.IMPORTING:
        if not missing_count:
            return _IMPORT_START
        done = min(synced_count + error_count, missing_count)
        return _IMPORT_START + int((_IMPORT_END - _IMPORT_START) * done / missing_count)
    return _STAGE_PROGRESS.get(stage, 0)


def can_cancel(status: JobStatus, stalled: bool) -> bool:
    return status == JobStatus.RUNNING and not stalled


def can_terminate(status: JobStatus, stalled: bool) -> bool:
    return status == JobStatus.RUNNING and stalled


def can_delete(status: JobStatus) -> bool:
    return status in TERMINAL_STATUSES


def job_health(job, now: datetime, threshold: timedelta = DEFAULT_STALL_THRESHOLD) -> JobHealth:
    """Собрать все производные показатели для джоба"""
    stalled = is_stalled(job.status, job.last_heartbeat_at, now, threshold)
    return JobHealth(
        stalled=stalled,
        progress=progress_percentage(
            job.status,
            job.stage,
            job.synced_count or 0,
            job.error_count or 0,
            job.missing_count or 0
        ),
        can_cancel=can_cancel(job.status, stalled),
        can_terminate=can_terminate(job.status, stalled),
        can_delete=can_delete(job.status),
    )
