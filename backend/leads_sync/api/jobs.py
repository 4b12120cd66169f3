from dataclasses import asdict
from fastapi import APIRouter, Depends, HTTPException, Query
from fastapi.responses import JSONResponse
from typing import List, Optional
from leads_sync.exceptions import JobActionNotAllowedError, JobConflictError, JobNotFoundError
from leads_sync.models import JobStatus
from leads_sync.schemas.reconciliation_job import (
    JobFilters,
    ReconciliationJob as ReconciliationJobSchema,
    ReconciliationJobDetail
)
from leads_sync.services.job_controller import JobController, get_job_controller
import logging

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/sync-jobs", tags=["sync-jobs"])


def serialize_job(job, controller: JobController, detail: bool = False):
    """Схема джоба с производными полями stalled, progress и доступными действиями"""
    schema = ReconciliationJobDetail if detail else ReconciliationJobSchema
    health = asdict(controller.health(job))
    return schema.model_validate(job).model_copy(update=health)


@router.post("", response_model=ReconciliationJobSchema, status_code=202)
async def start_job(
    filters: JobFilters,
    controller: JobController = Depends(get_job_controller)
):
    """
    Запустить сверку лидов Bitrix24 с локальной базой
    
    Без фильтров сверяются лиды, созданные сегодня
    """
    try:
        job = await controller.start(filters)
        return serialize_job(job, controller)
    except JobConflictError as e:
        raise HTTPException(status_code=409, detail=str(e))


@router.get("", response_model=List[ReconciliationJobSchema])
def list_jobs(
    skip: int = Query(0, ge=0),
    limit: int = Query(50, ge=1, le=500),
    status: Optional[JobStatus] = Query(None, description="Статус джоба"),
    scouter_name: Optional[str] = Query(None, description="Имя скаутера"),
    controller: JobController = Depends(get_job_controller)
):
    """История джобов сверки, новые сначала"""
    jobs = controller.list_jobs(status=status, scouter_name=scouter_name, skip=skip, limit=limit)
    return [serialize_job(job, controller) for job in jobs]


@router.get("/{job_id}", response_model=ReconciliationJobDetail)
def get_job(
    job_id: str,
    controller: JobController = Depends(get_job_controller)
):
    """Джоб сверки со списком ошибок"""
    try:
        return serialize_job(controller.get_job(job_id), controller, detail=True)
    except JobNotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))


@router.get("/{job_id}/errors")
def download_job_errors(
    job_id: str,
    controller: JobController = Depends(get_job_controller)
):
    """Скачать ошибки джоба в JSON"""
    try:
        job = controller.get_job(job_id)
    except JobNotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))
    
    return JSONResponse(
        content=job.error_details or [],
        headers={"Content-Disposition": f'attachment; filename="missing-sync-errors-{job_id}.json"'}
    )


def _run_action(action, job_id: str):
    try:
        return action(job_id)
    except JobNotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))
    except JobActionNotAllowedError as e:
        raise HTTPException(status_code=409, detail=str(e))


@router.post("/{job_id}/cancel", response_model=ReconciliationJobSchema)
async def cancel_job(
    job_id: str,
    controller: JobController = Depends(get_job_controller)
):
    """Отменить работающий джоб"""
    job = _run_action(controller.cancel, job_id)
    return serialize_job(job, controller)


@router.post("/{job_id}/terminate", response_model=ReconciliationJobSchema)
async def terminate_job(
    job_id: str,
    controller: JobController = Depends(get_job_controller)
):
    """Принудительно завершить зависший джоб"""
    job = _run_action(controller.terminate, job_id)
    return serialize_job(job, controller)


@router.delete("/{job_id}")
def delete_job(
    job_id: str,
    controller: JobController = Depends(get_job_controller)
):
    """Удалить завершенный джоб"""
    _run_action(controller.delete, job_id)
    return {"message": "Джоб удален"}
