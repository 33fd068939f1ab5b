"""
This module provides an implementation for:
- JobStorage: owns job records and their state transitions.

Usage:
- Use InMemoryJobStorage for a single-process deployment. Records are kept for
  the process lifetime; nothing is evicted.

Classes:
- InMemoryJobStorage: In-memory implementation of JobStorage.

Example:
    job_store = InMemoryJobStorage()
    await job_store.create_job(job_id, "report.pdf")
    await job_store.complete_job(job_id, result_ref="file-123")
    job = await job_store.get_job(job_id)
"""
import asyncio
import logging
from typing import Any, Dict, List, Optional

from contracts.job_schemas import ExecutionDetails, Job, JobStatus, utc_now_iso
from interfaces.job_storage_interface import JobStorage
from support.constants import APP_NAME
from support.exceptions import JobNotFoundError


logger = logging.getLogger(APP_NAME)


class InMemoryJobStorage(JobStorage):
    """
    In-memory JobStorage. Mutations of one job id are serialized by a per-job
    asyncio.Lock; different jobs never wait on each other. Readers always get
    deep copies so no caller can change a stored record behind the store's back.
    """

    UPDATABLE_FIELDS = frozenset({"download_url", "download_url_expires_at"})

    def __init__(self):
        self._jobs: Dict[str, Job] = {}
        self._locks: Dict[str, asyncio.Lock] = {}
        self._registry_lock = asyncio.Lock()

    async def _lock_for(self, job_id: str) -> Optional[asyncio.Lock]:
        async with self._registry_lock:
            return self._locks.get(job_id)

    async def create_job(self, job_id: str, source_filename: str) -> Job:
        """
        Store a new pending job record.
        """
        async with self._registry_lock:
            if job_id in self._jobs:
                raise ValueError(f"Job {job_id} already exists")
            now = utc_now_iso()
            job = Job(
                job_id=job_id,
                source_filename=source_filename,
                status=JobStatus.PENDING,
                created_at=now,
                updated_at=now,
            )
            self._jobs[job_id] = job
            self._locks[job_id] = asyncio.Lock()
        logger.info("Job created: %s for %s", job_id, source_filename)
        return job.model_copy(deep=True)

    async def get_job(self, job_id: str) -> Optional[Job]:
        """
        Retrieve a copy of a job record by job_id.
        """
        job = self._jobs.get(job_id)
        return job.model_copy(deep=True) if job else None

    async def update_execution_details(self, job_id: str, execution: ExecutionDetails) -> bool:
        """
        Attach execution metadata. Best effort: an unknown or terminal job is
        logged and ignored.
        """
        lock = await self._lock_for(job_id)
        if lock is None:
            logger.warning("Execution details for unknown job %s ignored", job_id)
            return False

        async with lock:
            job = self._jobs[job_id]
            if job.status.is_terminal:
                logger.info(
                    "Execution details for job %s ignored, job already %s",
                    job_id, job.status.value,
                )
                return False
            job.execution = execution.model_copy(deep=True)
            job.updated_at = utc_now_iso()
        logger.info("Execution %s attached to job %s", execution.execution_id, job_id)
        return True

    async def complete_job(self, job_id: str, result_ref: str) -> bool:
        """
        Transition pending -> done and record the result reference.
        """
        return await self._finish(job_id, JobStatus.DONE, result_ref=result_ref)

    async def fail_job(self, job_id: str, reason: str) -> bool:
        """
        Transition pending -> error and record the failure reason.
        """
        return await self._finish(job_id, JobStatus.ERROR, error=reason)

    async def _finish(self, job_id: str, target: JobStatus, result_ref: str = None, error: str = None) -> bool:
        lock = await self._lock_for(job_id)
        if lock is None:
            raise JobNotFoundError(job_id)

        async with lock:
            job = self._jobs[job_id]
            if job.status.is_terminal:
                logger.warning(
                    "Ignoring %s transition for job %s: already %s",
                    target.value, job_id, job.status.value,
                )
                return False

            job.status = target
            job.result_ref = result_ref if target is JobStatus.DONE else None
            job.error = error if target is JobStatus.ERROR else None
            job.updated_at = utc_now_iso()

        if target is JobStatus.DONE:
            logger.info("Job completed: %s -> %s", job_id, result_ref)
        else:
            logger.warning("Job failed: %s (%s)", job_id, error)
        return True

    async def update_job(self, job_id: str, **fields: Any) -> Optional[Job]:
        """
        Update non-status fields (the cached download reference). Anything that
        would touch the state machine is refused.
        """
        forbidden = set(fields) - self.UPDATABLE_FIELDS
        if forbidden:
            raise ValueError(f"update_job cannot change: {', '.join(sorted(forbidden))}")

        lock = await self._lock_for(job_id)
        if lock is None:
            return None

        async with lock:
            job = self._jobs[job_id]
            for name, value in fields.items():
                setattr(job, name, value)
            job.updated_at = utc_now_iso()
            return job.model_copy(deep=True)

    async def get_all_jobs(self) -> List[Job]:
        return [job.model_copy(deep=True) for job in self._jobs.values()]

    async def get_stats(self) -> Dict[str, Any]:
        jobs = list(self._jobs.values())
        with_execution = sum(1 for job in jobs if job.execution is not None)
        stats: Dict[str, Any] = {"total": len(jobs)}
        for status in JobStatus:
            stats[status.value] = sum(1 for job in jobs if job.status is status)
        stats["execution"] = {
            "with_execution": with_execution,
            "without_execution": len(jobs) - with_execution,
        }
        return stats
