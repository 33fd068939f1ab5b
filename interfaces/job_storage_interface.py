"""
Abstraction layer for job record management.

This module provides an interface for:
- JobStorage: owns every job record and every job state transition.

Usage:
- Use InMemoryJobStorage for a single process (records live for the process lifetime).

Classes:
- JobStorage (ABC): Interface for job lifecycle operations.
"""
from abc import ABC, abstractmethod
from typing import Any, Dict, List, Optional

from contracts.job_schemas import ExecutionDetails, Job


class JobStorage(ABC):
    """
    Abstract base class for job storage.

    Status only moves pending -> done or pending -> error. Transitions out of a
    terminal state are rejected as no-ops, never applied as overwrites.
    """

    @abstractmethod
    async def create_job(self, job_id: str, source_filename: str) -> Job:
        """
        Store a new pending job. Raises ValueError if job_id already exists.
        """

    @abstractmethod
    async def get_job(self, job_id: str) -> Optional[Job]:
        """
        Retrieve a copy of a job record by job_id.
        """

    @abstractmethod
    async def update_execution_details(self, job_id: str, execution: ExecutionDetails) -> bool:
        """
        Attach workflow execution metadata to a pending job. Returns False when ignored.
        """

    @abstractmethod
    async def complete_job(self, job_id: str, result_ref: str) -> bool:
        """
        Transition pending -> done. Returns False for an already terminal job.
        """

    @abstractmethod
    async def fail_job(self, job_id: str, reason: str) -> bool:
        """
        Transition pending -> error. Returns False for an already terminal job.
        """

    @abstractmethod
    async def update_job(self, job_id: str, **fields: Any) -> Optional[Job]:
        """
        Update non-status fields of an existing job.
        """

    @abstractmethod
    async def get_all_jobs(self) -> List[Job]:
        """
        Copies of every job record, oldest first.
        """

    @abstractmethod
    async def get_stats(self) -> Dict[str, Any]:
        """
        Aggregate counts for operational visibility.
        """
