"""
Background jobs

Long-running work (webhook-triggered deployments) runs as a Job so the
caller can return immediately and poll the job for progress and result.
"""

import asyncio
import logging
import uuid
from datetime import datetime, timedelta
from enum import Enum
from typing import Any, Awaitable, Callable, Dict, List, Optional, Set

from .models import utcnow

logger = logging.getLogger(__name__)

TaskFunc = Callable[["Job"], Awaitable[Optional[Dict[str, Any]]]]


class JobStatus(str, Enum):
    PENDING = "pending"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"


def _parse_dt(value: Optional[str]) -> Optional[datetime]:
    return datetime.fromisoformat(value) if value else None


class Job:
    """A unit of background work with progress and logs"""

    def __init__(self, job_id: str, job_type: str, params: Dict[str, Any]):
        self.job_id = job_id
        self.job_type = job_type
        self.params = params
        self.status = JobStatus.PENDING
        self.progress = 0
        self.current_step: Optional[str] = None
        self.result: Optional[Dict[str, Any]] = None
        self.error: Optional[str] = None
        self.created_at = utcnow()
        self.started_at: Optional[datetime] = None
        self.completed_at: Optional[datetime] = None
        self.logs: List[Dict[str, str]] = []

    def add_log(self, message: str) -> None:
        self.logs.append({"timestamp": utcnow().isoformat(), "message": message})

    def update_progress(self, progress: int, step: str) -> None:
        self.progress = max(0, min(100, progress))
        self.current_step = step
        self.add_log(step)

    def mark_started(self) -> None:
        self.status = JobStatus.RUNNING
        self.started_at = utcnow()

    def mark_completed(self, result: Optional[Dict[str, Any]] = None, error: Optional[str] = None) -> None:
        """Finish the job; an error marks it failed"""
        self.completed_at = utcnow()
        if error is not None:
            self.status = JobStatus.FAILED
            self.error = error
            self.result = None
        else:
            self.status = JobStatus.COMPLETED
            self.result = result
            self.progress = 100

    def mark_cancelled(self) -> None:
        self.status = JobStatus.CANCELLED
        self.completed_at = utcnow()

    @property
    def finished(self) -> bool:
        return self.status in (JobStatus.COMPLETED, JobStatus.FAILED, JobStatus.CANCELLED)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "job_id": self.job_id,
            "job_type": self.job_type,
            "status": self.status.value,
            "progress": self.progress,
            "current_step": self.current_step,
            "params": self.params,
            "result": self.result,
            "error": self.error,
            "created_at": self.created_at.isoformat(),
            "started_at": self.started_at.isoformat() if self.started_at else None,
            "completed_at": self.completed_at.isoformat() if self.completed_at else None,
            "logs": self.logs,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Job":
        job = cls(job_id=data["job_id"], job_type=data["job_type"], params=data.get("params", {}))
        job.status = JobStatus(data.get("status", JobStatus.PENDING.value))
        job.progress = data.get("progress", 0)
        job.current_step = data.get("current_step")
        job.result = data.get("result")
        job.error = data.get("error")
        job.created_at = _parse_dt(data.get("created_at")) or utcnow()
        job.started_at = _parse_dt(data.get("started_at"))
        job.completed_at = _parse_dt(data.get("completed_at"))
        job.logs = list(data.get("logs", []))
        return job


class JobManager:
    """Creates, runs and tracks jobs"""

    def __init__(self, storage=None):
        """
        Initialize JobManager

        Args:
            storage: Object with load_jobs()/save_jobs(list) (the ServerRegistry); optional
        """
        self.storage = storage
        self.jobs: Dict[str, Job] = {}
        self._tasks: Set[asyncio.Task] = set()
        self.load_from_storage()

    def create_job(self, job_type: str, params: Dict[str, Any], job_id: Optional[str] = None) -> Job:
        job = Job(job_id=job_id or str(uuid.uuid4()), job_type=job_type, params=params)
        self.jobs[job.job_id] = job
        self.save_to_storage()
        logger.info(f"Created job {job.job_id} ({job_type})")
        return job

    def get_job(self, job_id: str) -> Optional[Job]:
        return self.jobs.get(job_id)

    def list_jobs(self, status: Optional[JobStatus] = None, job_type: Optional[str] = None) -> List[Job]:
        jobs = list(self.jobs.values())
        if status is not None:
            jobs = [j for j in jobs if j.status == status]
        if job_type is not None:
            jobs = [j for j in jobs if j.job_type == job_type]
        return sorted(jobs, key=lambda j: j.created_at)

    async def run_job(self, job_id: str, task_func: TaskFunc) -> Job:
        """
        Execute task_func for a job, recording success or failure on the job

        Raises:
            ValueError: If job doesn't exist
        """
        job = self.jobs.get(job_id)
        if job is None:
            raise ValueError(f"Job {job_id} not found")
        if job.status == JobStatus.CANCELLED:
            logger.info(f"Job {job_id} was cancelled before it started")
            return job

        job.mark_started()
        self.save_to_storage()
        try:
            result = await task_func(job)
            job.mark_completed(result=result)
            logger.info(f"Job {job_id} completed")
        except Exception as e:
            logger.error(f"Job {job_id} failed: {e}", exc_info=True)
            job.mark_completed(error=str(e))
        finally:
            self.save_to_storage()

        return job

    def submit(self, job_type: str, params: Dict[str, Any], task_func: TaskFunc) -> Job:
        """Create a job and start it in the background; returns without waiting"""
        job = self.create_job(job_type, params)
        task = asyncio.ensure_future(self.run_job(job.job_id, task_func))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return job

    async def wait_all(self) -> None:
        """Wait until every submitted job has finished"""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    def cancel_job(self, job_id: str) -> bool:
        """Cancel a pending job; running jobs are left alone"""
        job = self.jobs.get(job_id)
        if job is None or job.status != JobStatus.PENDING:
            return False

        job.mark_cancelled()
        self.save_to_storage()
        logger.info(f"Cancelled job {job_id}")
        return True

    def cleanup_old_jobs(self, max_age_days: int = 7) -> int:
        cutoff = utcnow() - timedelta(days=max_age_days)
        old = [
            job_id for job_id, job in self.jobs.items()
            if job.finished and job.completed_at is not None and job.completed_at < cutoff
        ]
        for job_id in old:
            del self.jobs[job_id]

        if old:
            self.save_to_storage()
            logger.info(f"Removed {len(old)} old jobs")
        return len(old)

    def save_to_storage(self) -> None:
        if self.storage is not None:
            self.storage.save_jobs([job.to_dict() for job in self.jobs.values()])

    def load_from_storage(self) -> None:
        if self.storage is None:
            return
        for data in self.storage.load_jobs():
            job = Job.from_dict(data)
            # Jobs interrupted by a restart cannot resume
            if job.status in (JobStatus.PENDING, JobStatus.RUNNING):
                job.mark_completed(error="Interrupted by restart")
            self.jobs[job.job_id] = job
