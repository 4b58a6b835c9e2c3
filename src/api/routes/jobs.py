"""
Job routes

- GET /api/jobs - List jobs
- GET /api/jobs/{job_id} - Get job status
"""

import logging
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query

from ...core import GameDeploy
from ...job_manager import Job, JobStatus
from ..dependencies import get_services
from ..models.job import JobListResponse, JobResponse, JobStatusEnum

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/jobs", tags=["Jobs"])


def _job_to_response(job: Job) -> JobResponse:
    return JobResponse(
        job_id=job.job_id,
        job_type=job.job_type,
        status=JobStatusEnum(job.status.value),
        progress=job.progress,
        current_step=job.current_step,
        params=job.params,
        result=job.result,
        error=job.error,
        created_at=job.created_at,
        started_at=job.started_at,
        completed_at=job.completed_at,
        logs=job.logs,
    )


@router.get("", response_model=JobListResponse)
async def list_jobs(
    status: Optional[JobStatusEnum] = Query(None, description="Filter by job status"),
    job_type: Optional[str] = Query(None, description="Filter by job type"),
    limit: int = Query(100, ge=1, le=1000, description="Maximum number of jobs to return"),
    services: GameDeploy = Depends(get_services)
):
    """
    List jobs, newest first

    Query parameters:
    - status: pending, running, completed, failed, cancelled
    - job_type: auto_deploy, issue_deploy
    """
    status_filter = JobStatus(status.value) if status else None
    jobs = services.job_manager.list_jobs(status=status_filter, job_type=job_type)
    jobs = list(reversed(jobs))[:limit]

    return JobListResponse(jobs=[_job_to_response(j) for j in jobs], total=len(jobs))


@router.get("/{job_id}", response_model=JobResponse)
async def get_job(job_id: str, services: GameDeploy = Depends(get_services)):
    job = services.job_manager.get_job(job_id)
    if not job:
        raise HTTPException(status_code=404, detail=f"Job {job_id} not found")
    return _job_to_response(job)
