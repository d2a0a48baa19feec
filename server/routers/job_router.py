# routers/job_router.py

"""
Job Management API Routes
"""

import logging
from typing import List

from fastapi import APIRouter, Depends, HTTPException

from server.core.exceptions import (
    JobServiceError,
    JobNotFoundError,
    PanelIndexError
)
from server.models.control import ControlCommand
from server.models.job import Job, JobCreated, LintReport
from server.models.panel import Panel, UserInput
from server.services.job_service import JobService

# Configure logging
logger = logging.getLogger(__name__)

router = APIRouter(prefix="/jobs", tags=["Jobs"])
job_service = JobService()


def get_job_service() -> JobService:
    return job_service


def _to_http(error: JobServiceError) -> HTTPException:
    if isinstance(error, (JobNotFoundError, PanelIndexError)):
        return HTTPException(status_code=404, detail=str(error))
    return HTTPException(status_code=409, detail=str(error))


@router.post("", response_model=JobCreated)
async def start_job(request: UserInput, service: JobService = Depends(get_job_service)):
    """Start panel generation as a background job"""
    logger.info(f"POST /api/jobs - {request.panel_count} panels for '{request.geo.company_name}'")
    job_id = service.start(request)

    return JobCreated(
        job_id=job_id,
        state=service.get_status(job_id).state,
        message=f"Generation started for {request.panel_count} panels"
    )


@router.get("", response_model=List[Job])
async def list_jobs(service: JobService = Depends(get_job_service)):
    """All jobs currently held in memory"""
    return service.list_jobs()


@router.get("/{job_id}", response_model=Job)
async def get_job_status(job_id: str, service: JobService = Depends(get_job_service)):
    """Get status of a panel generation job"""
    try:
        return service.get_status(job_id)
    except JobServiceError as e:
        raise _to_http(e)


@router.post("/{job_id}/control", response_model=Job)
async def control_job(job_id: str, command: ControlCommand, service: JobService = Depends(get_job_service)):
    """Apply a control command (pause, resume, cancel, run_linter, ...)"""
    logger.info(f"POST /api/jobs/{job_id}/control - action={command.action}")
    try:
        return service.control(job_id, command)
    except JobServiceError as e:
        logger.warning(f"Control action '{command.action}' rejected for job {job_id}: {e}")
        raise _to_http(e)


@router.post("/{job_id}/pause", response_model=Job)
async def pause_job(job_id: str, service: JobService = Depends(get_job_service)):
    try:
        return service.pause(job_id)
    except JobServiceError as e:
        raise _to_http(e)


@router.post("/{job_id}/resume", response_model=Job)
async def resume_job(job_id: str, service: JobService = Depends(get_job_service)):
    try:
        return service.resume(job_id)
    except JobServiceError as e:
        raise _to_http(e)


@router.post("/{job_id}/cancel", response_model=Job)
async def cancel_job(job_id: str, service: JobService = Depends(get_job_service)):
    try:
        return service.cancel(job_id)
    except JobServiceError as e:
        raise _to_http(e)


@router.put("/{job_id}/panels/{index}", response_model=Job)
async def update_panel(job_id: str, index: int, panel: Panel, service: JobService = Depends(get_job_service)):
    """Store a manually edited panel"""
    try:
        return service.update_panel(job_id, index, panel)
    except JobServiceError as e:
        raise _to_http(e)


@router.post("/{job_id}/lint", response_model=Job)
async def rerun_linter(job_id: str, service: JobService = Depends(get_job_service)):
    try:
        return service.rerun_linter(job_id)
    except JobServiceError as e:
        raise _to_http(e)


@router.get("/{job_id}/lint", response_model=LintReport)
async def get_lint_report(job_id: str, service: JobService = Depends(get_job_service)):
    """Per-panel lint state including stale results"""
    try:
        return service.get_lint_report(job_id)
    except JobServiceError as e:
        raise _to_http(e)


@router.get("/{job_id}/topics", response_model=List[str])
async def get_topic_suggestions(job_id: str, service: JobService = Depends(get_job_service)):
    try:
        return service.get_topic_suggestions(job_id)
    except JobServiceError as e:
        raise _to_http(e)


@router.post("/{job_id}/restore", response_model=Job)
async def restore_job(job_id: str, service: JobService = Depends(get_job_service)):
    """Load a persisted job back into memory"""
    try:
        return service.restore_job(job_id)
    except JobServiceError as e:
        raise _to_http(e)


@router.delete("/{job_id}")
async def discard_job(job_id: str, service: JobService = Depends(get_job_service)):
    """Cancel if needed, then remove the job and its persisted state"""
    try:
        service.discard_job(job_id)
    except JobServiceError as e:
        raise _to_http(e)

    return {"message": f"Job {job_id} discarded"}


@router.delete("")
async def clear_finished_jobs(service: JobService = Depends(get_job_service)):
    """Clear all finished jobs from memory"""
    cleared_count = service.clear_finished_jobs()
    active_count = service.get_active_jobs_count()

    return {
        "message": f"Cleared {cleared_count} finished jobs",
        "active_jobs": active_count
    }
