"""
Callback Receiver
-----------------
Applies completion/failure notifications from the conversion workflow to the
job store.

Order of checks, all before any store mutation:
    1. shared secret (X-Callback-Secret)
    2. job id syntax
    3. job existence

Replayed callbacks are harmless: the store ignores transitions out of a
terminal state and the result reports ``applied=False``. A duplicate
that stored an inline CSV but lost the race discards that artifact again.
Applied completions get a download URL cached on the job.
"""
import logging
from datetime import datetime, timedelta, timezone
from typing import Optional

from redis.exceptions import RedisError

from contracts.job_schemas import CallbackRequest, CallbackResult
from interfaces.artifact_storage_interface import ArtifactStorage
from interfaces.job_storage_interface import JobStorage
from needs.INeedRedisManager import INeedRedisManagerInterface
from support.constants import APP_NAME, DOWNLOAD_URL_EXPIRES_SECONDS, OUTPUT_CONTENT_TYPE
from support.exceptions import (
    JobNotFoundError,
    NotFoundError,
    StorageError,
    UnauthorizedError,
    ValidationError,
)
from support.job_ids import is_valid_job_id
from support.security import verify_callback_secret
from support.support_functions import derive_output_filename, sanitize_filename


logger = logging.getLogger(APP_NAME)


class CallbackReceiver(INeedRedisManagerInterface):
    """Validates workflow callbacks and drives the terminal job transition."""

    def __init__(self, job_store: JobStorage, artifact_storage: ArtifactStorage):
        self.job_store = job_store
        self.artifact_storage = artifact_storage

    async def on_callback(
        self, job_id: str, outcome: CallbackRequest, provided_secret: Optional[str]
    ) -> CallbackResult:
        if not verify_callback_secret(provided_secret):
            logger.warning("Rejected callback for job %s: invalid callback secret", job_id)
            raise UnauthorizedError("Invalid callback secret", code="INVALID_CALLBACK_SECRET")

        if not is_valid_job_id(job_id):
            raise ValidationError("Invalid job ID format", code="INVALID_JOB_ID")

        job = await self.job_store.get_job(job_id)
        if job is None:
            logger.warning("Callback for unknown job %s rejected", job_id)
            raise JobNotFoundError(job_id)

        if outcome.status == "done":
            result_ref = outcome.result_ref
            if not result_ref:
                # Skip storing again when the job is already terminal
                if job.status.is_terminal:
                    return CallbackResult(job_id=job_id, status=job.status, applied=False)
                filename = sanitize_filename(outcome.filename or derive_output_filename(job.source_filename))
                info = await self.artifact_storage.save_artifact(
                    outcome.csv_content.encode("utf-8"), filename, OUTPUT_CONTENT_TYPE, job_id
                )
                result_ref = info.file_id
            applied = await self.job_store.complete_job(job_id, result_ref)
            if applied:
                await self._cache_download_url(job_id, result_ref)
            elif not outcome.result_ref:
                # Lost a race with a concurrent duplicate; drop the artifact stored above
                await self._discard_artifact(result_ref)
        else:
            applied = await self.job_store.fail_job(job_id, outcome.error.strip())

        final = await self.job_store.get_job(job_id)
        logger.info(
            "Callback for job %s: %s (applied=%s)", job_id, final.status.value, applied
        )
        if applied:
            await self._publish_event(final)
        return CallbackResult(job_id=job_id, status=final.status, applied=applied)

    async def _publish_event(self, job) -> None:
        if self.redis_manager is None:
            return
        event = "JOB_DONE" if job.ready else "JOB_ERROR"
        payload = {"status": job.status.value, "result_ref": job.result_ref, "error": job.error}
        try:
            await self.redis_manager.publish_job_event(event, job.job_id, payload)
        except (RedisError, OSError) as e:
            logger.warning("Failed to publish %s event for job %s: %s", event, job.job_id, e)

    async def _cache_download_url(self, job_id: str, result_ref: str) -> None:
        """Attach a download URL to a freshly completed job so status shows it right away."""
        try:
            url = await self.artifact_storage.generate_download_url(result_ref, DOWNLOAD_URL_EXPIRES_SECONDS)
        except (NotFoundError, StorageError) as e:
            logger.warning("No download URL for job %s (result %s): %s", job_id, result_ref, e)
            return
        expires_at = datetime.now(timezone.utc) + timedelta(seconds=DOWNLOAD_URL_EXPIRES_SECONDS)
        await self.job_store.update_job(
            job_id, download_url=url, download_url_expires_at=expires_at.isoformat()
        )

    async def _discard_artifact(self, file_id: str) -> None:
        try:
            await self.artifact_storage.delete_artifact(file_id)
            logger.info("Discarded duplicate artifact %s", file_id)
        except (NotFoundError, StorageError) as e:
            logger.warning("Failed to discard duplicate artifact %s: %s", file_id, e)
