"""
Job schemas shared by the job store, the workflow forwarder and the HTTP views
------------------------------------------------------------------------------
Defines the Job record, the execution correlation record returned by the
conversion workflow, the callback payload, and the read-only projections
served to clients.
"""
from enum import Enum
from datetime import datetime, timezone
from typing import Any, Dict, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, model_validator

from support.support_functions import derive_output_filename


def utc_now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


class JobStatus(str, Enum):
    PENDING = "pending"
    DONE = "done"
    ERROR = "error"

    @property
    def is_terminal(self) -> bool:
        return self is not JobStatus.PENDING


class ExecutionDetails(BaseModel):
    """Correlation record identifying the workflow's own run for a job."""

    execution_id: str
    execution_status: Optional[str] = None
    execution_message: Optional[str] = None
    webhook_url: Optional[str] = None
    execution_mode: Optional[str] = None

    @classmethod
    def from_workflow_descriptor(cls, descriptor: Dict[str, Any]) -> Optional["ExecutionDetails"]:
        """Build from the first element of the workflow's acknowledgment list."""
        execution_id = descriptor.get("executionId")
        if execution_id in (None, ""):
            return None
        return cls(
            execution_id=str(execution_id),
            execution_status=descriptor.get("status"),
            execution_message=descriptor.get("message"),
            webhook_url=descriptor.get("webhookUrl"),
            execution_mode=descriptor.get("executionMode"),
        )

    def to_public(self) -> Dict[str, Any]:
        return {
            "id": self.execution_id,
            "status": self.execution_status,
            "message": self.execution_message,
            "mode": self.execution_mode,
            "webhookUrl": self.webhook_url,
        }


class Job(BaseModel):
    """One upload-to-CSV conversion request and its tracked state."""

    job_id: str
    source_filename: str
    status: JobStatus = JobStatus.PENDING
    created_at: str = Field(default_factory=utc_now_iso)
    updated_at: str = Field(default_factory=utc_now_iso)
    execution: Optional[ExecutionDetails] = None
    result_ref: Optional[str] = None
    error: Optional[str] = None
    download_url: Optional[str] = None
    download_url_expires_at: Optional[str] = None

    @property
    def ready(self) -> bool:
        return self.status is JobStatus.DONE

    @property
    def output_filename(self) -> str:
        return derive_output_filename(self.source_filename)


class ForwardAck(BaseModel):
    """Immediate acknowledgment returned by the conversion workflow webhook."""

    status_code: int
    data: Any = None
    execution: Optional[ExecutionDetails] = None


class CallbackRequest(BaseModel):
    """Completion/failure notification posted by the conversion workflow."""

    model_config = ConfigDict(populate_by_name=True)

    job_id: str = Field(alias="jobId")
    status: Literal["done", "error"]
    result_ref: Optional[str] = Field(default=None, alias="resultRef")
    csv_content: Optional[str] = Field(default=None, alias="csvContent")
    filename: Optional[str] = None
    error: Optional[str] = None

    @model_validator(mode="after")
    def _check_outcome(self) -> "CallbackRequest":
        if self.status == "done" and not (self.result_ref or self.csv_content):
            raise ValueError("A done callback needs resultRef or csvContent")
        if self.status == "error" and not (self.error and self.error.strip()):
            raise ValueError("An error callback needs an error reason")
        return self


class CallbackResult(BaseModel):
    job_id: str
    status: JobStatus
    applied: bool

    def to_public(self) -> Dict[str, Any]:
        return {"jobId": self.job_id, "status": self.status.value, "applied": self.applied}


# Projections ----------------------------------------------------------------------------------
class JobStatusResponse(BaseModel):
    """Status view served to polling clients."""

    jobId: str
    status: JobStatus
    ready: bool
    filename: str
    createdAt: str
    updatedAt: str
    execution: Optional[Dict[str, Any]] = None
    downloadUrl: Optional[str] = None
    error: Optional[str] = None

    @classmethod
    def from_job(cls, job: Job) -> "JobStatusResponse":
        return cls(
            jobId=job.job_id,
            status=job.status,
            ready=job.ready,
            filename=job.source_filename,
            createdAt=job.created_at,
            updatedAt=job.updated_at,
            execution=job.execution.to_public() if job.execution else None,
            downloadUrl=job.download_url if job.status is JobStatus.DONE else None,
            error=job.error if job.status is JobStatus.ERROR else None,
        )


class JobExecutionResponse(BaseModel):
    jobId: str
    execution: Dict[str, Any]
    jobStatus: JobStatus
    createdAt: str
    updatedAt: str

    @classmethod
    def from_job(cls, job: Job) -> Optional["JobExecutionResponse"]:
        if job.execution is None:
            return None
        return cls(
            jobId=job.job_id,
            execution=job.execution.to_public(),
            jobStatus=job.status,
            createdAt=job.created_at,
            updatedAt=job.updated_at,
        )


class DownloadUrlResponse(BaseModel):
    url: str
    filename: str
    expiresInSeconds: int


class JobCreatedResponse(BaseModel):
    jobId: str
    message: str
    filename: str
    execution: Optional[Dict[str, Any]] = None
