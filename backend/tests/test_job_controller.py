"""
Тесты действий оператора над джобами: start, cancel, terminate, delete.
"""
import asyncio
from datetime import date, timedelta

import pytest

from leads_sync.exceptions import JobActionNotAllowedError, JobConflictError, JobNotFoundError
from leads_sync.models import JobStatus
from leads_sync.schemas.reconciliation_job import JobFilters
from leads_sync.services.job_controller import JobController
from leads_sync.timeutils import utc_now

from fakes import FakeLocalStore, FakeRemoteSource, make_remote_records, make_runner

TODAY = date(2024, 3, 5)


class HangingRemoteSource(FakeRemoteSource):
    """Bitrix24, который не отвечает на листинг."""

    def __init__(self):
        super().__init__({})
        self.started = asyncio.Event()

    async def list_ids(self, filters, page_token):
        self.started.set()
        await asyncio.Event().wait()


def _controller(job_store, fast_options, remote=None, clock=utc_now, terminate_status="failed"):
    remote = remote or FakeRemoteSource(make_remote_records(5))

    def runner_factory(job_id, filters):
        return make_runner(job_store, job_id, remote, FakeLocalStore(), fast_options, filters=filters)

    return JobController(
        job_store,
        runner_factory,
        stall_threshold=timedelta(minutes=3),
        terminate_status=terminate_status,
        clock=clock,
        today=lambda: TODAY,
    )


def _stale_clock():
    return utc_now() + timedelta(minutes=10)


def test_prepare_defaults_to_today_and_marks_running(job_store, fast_options) -> None:
    controller = _controller(job_store, fast_options)

    job = controller.prepare(JobFilters())

    assert (job.date_from, job.date_to) == (TODAY, TODAY)
    assert job.status == JobStatus.RUNNING
    assert job.last_heartbeat_at is not None


def test_overlapping_job_is_rejected(job_store, fast_options) -> None:
    controller = _controller(job_store, fast_options)
    first = controller.prepare(JobFilters(scouter_name="Ana", date_from=date(2024, 3, 1), date_to=date(2024, 3, 10)))

    with pytest.raises(JobConflictError) as exc_info:
        controller.prepare(JobFilters(scouter_name="ana", date_from=date(2024, 3, 5), date_to=date(2024, 3, 20)))

    assert exc_info.value.conflicting_job_id == first.id


def test_disjoint_jobs_can_run_together(job_store, fast_options) -> None:
    controller = _controller(job_store, fast_options)

    controller.prepare(JobFilters(scouter_name="Ana", date_from=date(2024, 3, 1), date_to=date(2024, 3, 10)))
    controller.prepare(JobFilters(scouter_name="Bruno", date_from=date(2024, 3, 1), date_to=date(2024, 3, 10)))
    controller.prepare(JobFilters(scouter_name="Ana", date_from=date(2024, 3, 11), date_to=date(2024, 3, 12)))

    assert len(job_store.list_active()) == 3


def test_cancel_running_job(job_store, fast_options) -> None:
    controller = _controller(job_store, fast_options)
    job = controller.prepare(JobFilters())

    cancelled = controller.cancel(job.id)

    assert cancelled.status == JobStatus.CANCELLED
    assert cancelled.completed_at is not None
    with pytest.raises(JobActionNotAllowedError):
        controller.cancel(job.id)


def test_stalled_job_cannot_be_cancelled_but_can_be_terminated(job_store, fast_options) -> None:
    controller = _controller(job_store, fast_options, clock=_stale_clock)
    job = controller.prepare(JobFilters())

    assert [stalled.id for stalled in controller.stalled_jobs()] == [job.id]
    with pytest.raises(JobActionNotAllowedError):
        controller.cancel(job.id)

    terminated = controller.terminate(job.id)

    assert terminated.status == JobStatus.FAILED
    assert terminated.error_message
    assert terminated.completed_at is not None
    assert controller.stalled_jobs() == []


def test_terminate_status_is_configurable(job_store, fast_options) -> None:
    controller = _controller(job_store, fast_options, clock=_stale_clock, terminate_status="cancelled")
    job = controller.prepare(JobFilters())

    assert controller.terminate(job.id).status == JobStatus.CANCELLED


def test_healthy_job_cannot_be_terminated(job_store, fast_options) -> None:
    controller = _controller(job_store, fast_options)
    job = controller.prepare(JobFilters())

    with pytest.raises(JobActionNotAllowedError):
        controller.terminate(job.id)


def test_delete_only_after_terminal_status(job_store, fast_options) -> None:
    controller = _controller(job_store, fast_options)
    job = controller.prepare(JobFilters())

    with pytest.raises(JobActionNotAllowedError):
        controller.delete(job.id)

    controller.cancel(job.id)
    controller.delete(job.id)

    with pytest.raises(JobNotFoundError):
        controller.get_job(job.id)


def test_unknown_job_raises_not_found(job_store, fast_options) -> None:
    controller = _controller(job_store, fast_options)

    for action in (controller.cancel, controller.terminate, controller.delete, controller.get_job):
        with pytest.raises(JobNotFoundError):
            action("missing-job")


@pytest.mark.asyncio
async def test_start_runs_job_in_background(job_store, fast_options) -> None:
    controller = _controller(job_store, fast_options)

    job = await controller.start(JobFilters(date_from=date(2024, 3, 1)))
    await asyncio.gather(*list(controller._tasks.values()))

    stored = controller.get_job(job.id)
    assert stored.status == JobStatus.COMPLETED
    assert stored.synced_count == 5
    assert controller.health(stored).progress == 100


@pytest.mark.asyncio
async def test_terminate_cancels_hanging_task(job_store, fast_options) -> None:
    remote = HangingRemoteSource()
    controller = _controller(job_store, fast_options, remote=remote, clock=_stale_clock)
    fast_options.timeout_seconds = 60

    job = await controller.start(JobFilters())
    task = controller._tasks[job.id]
    await remote.started.wait()

    controller.terminate(job.id)

    with pytest.raises(asyncio.CancelledError):
        await task
    assert controller.get_job(job.id).status == JobStatus.FAILED
