"""
Job Views
---------
Defines the JobViewsManager and the endpoints for document upload, job status,
workflow execution details and download URLs.

Collaborators are read from ``request.app.state`` at request time:
    - job_store: JobStorage
    - workflow_forwarder: WorkflowForwarderClient
    - artifact_storage: ArtifactStorage

Endpoints:
    - POST /v1/jobs: Upload a document, create a job, forward it to the workflow
    - GET  /v1/jobs/{job_id}/status: Job status
    - GET  /v1/jobs/{job_id}/download-url: Fresh download URL for a finished job
    - GET  /v1/jobs/{job_id}/execution: Workflow execution details
    - GET  /v1/workflow/health: Conversion workflow reachability
    - GET  /v1/jobs: All jobs and stats (development only)
"""
import os
import asyncio
import logging
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Optional

from fastapi import APIRouter, File, Request, UploadFile
from fastapi.responses import JSONResponse
from starlette import status as H

from contracts.job_schemas import (
    DownloadUrlResponse,
    Job,
    JobCreatedResponse,
    JobExecutionResponse,
    JobStatus,
    JobStatusResponse,
)
from support.constants import (
    ALLOWED_CONTENT_TYPES_SET,
    APP_NAME,
    DOWNLOAD_URL_EXPIRES_SECONDS,
    MAX_UPLOAD_BYTES_SIZE,
    TMP_DIR,
)
from support.exceptions import (
    ExecutionNotFoundError,
    ForwardingError,
    JobNotFoundError,
    NotFoundError,
    StorageError,
    ValidationError,
)
from support.job_ids import generate_job_id, is_valid_job_id
from support.support_functions import remove_temp_file, sanitize_filename


ALLOWED_CONTENT_TYPES = ALLOWED_CONTENT_TYPES_SET
MAX_UPLOAD_BYTES = MAX_UPLOAD_BYTES_SIZE  # 20 MB

logger = logging.getLogger(APP_NAME)


async def load_job(request: Request, job_id: str) -> Job:
    """Validate the id syntax first, then look the job up."""
    if not is_valid_job_id(job_id):
        raise ValidationError("Invalid job ID format", code="INVALID_JOB_ID")
    job = await request.app.state.job_store.get_job(job_id)
    if job is None:
        raise JobNotFoundError(job_id)
    return job


class JobViewsManager:
    """
    Registers the job endpoints on the provided router.
    """

    def __init__(self, router: APIRouter, expose_diagnostics: bool = True, tmp_dir: str = TMP_DIR):
        self.router = router
        self.expose_diagnostics = expose_diagnostics
        self.tmp_dir = tmp_dir

        os.makedirs(self.tmp_dir, exist_ok=True)
        self.register_views()

    async def _stream_file_to_disk(self, file: UploadFile, destination_path: str) -> int:
        """Stream the upload to a temp file, enforcing the size cap while reading."""
        logger.info("Streaming upload to: %s", destination_path)

        total_size_in_bytes = 0
        with open(destination_path, "wb") as out:
            while True:
                chunk = await file.read(1024 * 1024)
                if not chunk:
                    break
                total_size_in_bytes += len(chunk)
                if total_size_in_bytes > MAX_UPLOAD_BYTES:
                    logger.error("File too large: %d bytes", total_size_in_bytes)
                    raise ValidationError(
                        "Uploaded file is larger than the maximum allowed size",
                        code="FILE_TOO_LARGE",
                        status_code=413,
                    )
                await asyncio.to_thread(out.write, chunk)

        await file.close()
        logger.info(
            "Finished streaming upload to: %s, size: %d", destination_path, total_size_in_bytes
        )
        return total_size_in_bytes

    async def create_job_from_upload(self, request: Request, file: Optional[UploadFile]) -> Dict[str, Any]:
        """
        Create a job for the upload and hand the document to the workflow.

        A ForwardingError marks the job as error and is re-raised. The temp file
        is removed on every path.
        """
        if file is None or not file.filename:
            raise ValidationError("No file uploaded", code="NO_FILE")
        if file.content_type not in ALLOWED_CONTENT_TYPES:
            raise ValidationError(
                "Supported content types: " + ", ".join(sorted(ALLOWED_CONTENT_TYPES)),
                code="INVALID_FILE_TYPE",
            )

        job_store = request.app.state.job_store
        forwarder = request.app.state.workflow_forwarder

        job_id = generate_job_id()
        original_name = file.filename
        temp_path = os.path.join(self.tmp_dir, f"{job_id}_{sanitize_filename(original_name)}")

        try:
            size = await self._stream_file_to_disk(file, temp_path)
            logger.info(
                "Received upload: %s (%.2fMB)", original_name, size / 1024 / 1024
            )

            await job_store.create_job(job_id, original_name)

            try:
                ack = await forwarder.forward(temp_path, original_name, job_id, file.content_type)
            except ForwardingError as e:
                await job_store.fail_job(job_id, e.message)
                raise ForwardingError(
                    "Failed to submit document for conversion", upstream_status=e.upstream_status
                ) from e
            except Exception as e:
                # No callback will ever arrive for this job, so it must not stay pending
                logger.error("Unexpected error forwarding job %s: %s", job_id, e)
                await job_store.fail_job(job_id, f"Unexpected forwarding error: {e}")
                raise

            if ack.execution:
                await job_store.update_execution_details(job_id, ack.execution)
                logger.info(
                    "Workflow execution tracking: %s for job %s", ack.execution.execution_id, job_id
                )
        finally:
            remove_temp_file(temp_path)

        response = JobCreatedResponse(
            jobId=job_id,
            message="Document uploaded and processing started",
            filename=original_name,
        )
        if ack.execution:
            public = ack.execution.to_public()
            public.pop("webhookUrl", None)
            response.execution = public
        return response.model_dump(exclude_none=True)

    async def issue_download_url(self, request: Request, job: Job) -> Dict[str, Any]:
        """Ask storage for a fresh URL and cache it on the job."""
        if job.status is not JobStatus.DONE:
            raise ValidationError("Job not completed yet", code="JOB_NOT_READY")
        if not job.result_ref:
            raise StorageError("CSV file not available", code="CSV_NOT_AVAILABLE")

        storage = request.app.state.artifact_storage
        try:
            url = await storage.generate_download_url(job.result_ref, DOWNLOAD_URL_EXPIRES_SECONDS)
        except (NotFoundError, StorageError) as e:
            logger.error("Failed to generate download URL for job %s: %s", job.job_id, e)
            raise StorageError("Failed to generate download URL", code="DOWNLOAD_URL_ERROR") from e

        expires_at = datetime.now(timezone.utc) + timedelta(seconds=DOWNLOAD_URL_EXPIRES_SECONDS)
        await request.app.state.job_store.update_job(
            job.job_id, download_url=url, download_url_expires_at=expires_at.isoformat()
        )
        return DownloadUrlResponse(
            url=url, filename=job.output_filename, expiresInSeconds=DOWNLOAD_URL_EXPIRES_SECONDS
        ).model_dump()

    def register_views(self) -> None:
        """
        Register job endpoints on the router.
        """

        # POST @ http://127.0.0.1:8000/v1/jobs
        @self.router.post("/jobs", status_code=H.HTTP_201_CREATED, summary="Upload document (v1)")
        async def upload_document(request: Request, file: UploadFile = File(None)) -> Dict[str, Any]:
            """
            Uploads a document and starts its conversion.
            Returns the job id, and the workflow execution when it was reported.
            """
            return await self.create_job_from_upload(request, file)

        # GET @ http://127.0.0.1:8000/v1/jobs/{job_id}/status
        @self.router.get("/jobs/{job_id}/status", status_code=H.HTTP_200_OK, summary="Get job status (v1)")
        async def get_job_status(request: Request, job_id: str) -> Dict[str, Any]:
            job = await load_job(request, job_id)
            return JobStatusResponse.from_job(job).model_dump(mode="json", exclude_none=True)

        # GET @ http://127.0.0.1:8000/v1/jobs/{job_id}/download-url
        @self.router.get(
            "/jobs/{job_id}/download-url", status_code=H.HTTP_200_OK, summary="Get download URL (v1)"
        )
        async def get_download_url(request: Request, job_id: str) -> Dict[str, Any]:
            job = await load_job(request, job_id)
            return await self.issue_download_url(request, job)

        # GET @ http://127.0.0.1:8000/v1/jobs/{job_id}/execution
        @self.router.get(
            "/jobs/{job_id}/execution", status_code=H.HTTP_200_OK, summary="Get workflow execution (v1)"
        )
        async def get_job_execution(request: Request, job_id: str) -> Dict[str, Any]:
            job = await load_job(request, job_id)
            view = JobExecutionResponse.from_job(job)
            if view is None:
                raise ExecutionNotFoundError(job_id)
            return view.model_dump(mode="json")

        # GET @ http://127.0.0.1:8000/v1/workflow/health
        @self.router.get("/workflow/health", summary="Conversion workflow health (v1)")
        async def workflow_health(request: Request):
            is_healthy = await request.app.state.workflow_forwarder.health_check()
            return JSONResponse(
                status_code=200 if is_healthy else 503,
                content={
                    "status": "healthy" if is_healthy else "unhealthy",
                    "service": "conversion-workflow",
                    "timestamp": datetime.now(timezone.utc).isoformat(),
                },
            )

        if not self.expose_diagnostics:
            return

        # GET @ http://127.0.0.1:8000/v1/jobs
        @self.router.get("/jobs", status_code=H.HTTP_200_OK, summary="List jobs (development only)")
        async def list_jobs(request: Request) -> Dict[str, Any]:
            job_store = request.app.state.job_store
            jobs = await job_store.get_all_jobs()
            return {
                "stats": await job_store.get_stats(),
                "jobs": [job.model_dump(mode="json") for job in jobs],
            }
