"""
Workflow Forwarder
------------------
Client that hands an uploaded document and its job id to the external
conversion workflow (an n8n-style webhook) and parses the immediate
acknowledgment into an execution correlation record.

The forwarder is a pure I/O boundary: it never touches the job store. The
caller decides what a ForwardingError means for the job.

Environment Variables:
    - WORKFLOW_WEBHOOK_URL: Webhook receiving the multipart upload (read on every call)
"""
import os
import json
import asyncio
import logging
from typing import Any, Optional, Tuple

import requests
from pydantic import ValidationError as PydanticValidationError

from contracts.job_schemas import ExecutionDetails, ForwardAck
from support.constants import (
    APP_NAME,
    FORWARD_MAX_BYTES,
    FORWARD_TIMEOUT_SECONDS,
    HEALTH_CHECK_TIMEOUT_SECONDS,
    USER_AGENT,
)
from support.exceptions import ForwardingError
from support.support_functions import derive_output_filename


logger = logging.getLogger(APP_NAME)

_READ_CHUNK_BYTES = 64 * 1024


class WorkflowForwarderClient:
    """Client for submitting documents to the conversion workflow."""

    def __init__(
        self,
        webhook_url: Optional[str] = None,
        timeout: int = FORWARD_TIMEOUT_SECONDS,
        max_bytes: int = FORWARD_MAX_BYTES,
    ):
        self._webhook_url = webhook_url
        self.timeout = timeout
        self.max_bytes = max_bytes

    @property
    def webhook_url(self) -> Optional[str]:
        # Re-read so a URL loaded after startup is picked up
        return self._webhook_url or os.getenv("WORKFLOW_WEBHOOK_URL") or None

    async def forward(
        self,
        artifact_path: str,
        original_name: str,
        job_id: str,
        content_type: str = "application/pdf",
    ) -> ForwardAck:
        """
        Send the artifact and job id to the workflow webhook.

        Args:
            artifact_path: Local path of the uploaded document
            original_name: Client-side filename
            job_id: Job id the workflow must echo back in its callback
            content_type: MIME type of the document

        Returns:
            ForwardAck with execution details when the workflow reported them

        Raises:
            ForwardingError: Missing configuration, oversized artifact, transport
                failure, non-success status, or malformed acknowledgment
        """
        webhook_url = self.webhook_url
        if not webhook_url:
            raise ForwardingError("WORKFLOW_WEBHOOK_URL not configured")

        try:
            size = os.path.getsize(artifact_path)
        except OSError as e:
            raise ForwardingError(f"Upload not readable: {e}") from e
        if size > self.max_bytes:
            raise ForwardingError(
                f"Upload of {size} bytes exceeds forwarding limit of {self.max_bytes} bytes"
            )

        file_type = "image" if content_type.startswith("image/") else "PDF"
        logger.info("Forwarding %s to workflow: %s (Job: %s)", file_type, original_name, job_id)

        response, body = await asyncio.to_thread(
            self._post_sync, webhook_url, artifact_path, original_name, job_id, content_type
        )
        ack = self._parse_response(response, body)

        logger.info(
            "Workflow accepted %s: %s (Status: %s)", file_type, original_name, response.status_code
        )
        if ack.execution:
            logger.info(
                "Workflow execution started: %s (Status: %s)",
                ack.execution.execution_id,
                ack.execution.execution_status,
            )
        return ack

    def _post_sync(
        self, webhook_url: str, artifact_path: str, original_name: str, job_id: str, content_type: str
    ) -> Tuple[requests.Response, bytes]:
        """Blocking multipart POST; intended for threadpool use. Returns the response and its capped body."""
        form_fields = {
            "jobId": job_id,
            "originalName": original_name,
            "originalFilename": original_name,
            "fileName": original_name,
            "csvFileName": derive_output_filename(original_name),
            "fileType": content_type,
        }
        try:
            with open(artifact_path, "rb") as fh:
                response = requests.post(
                    webhook_url,
                    files={"file": (original_name, fh, content_type)},
                    data=form_fields,
                    headers={"User-Agent": USER_AGENT},
                    timeout=self.timeout,
                    stream=True,
                )
            with response:
                response.raise_for_status()
                body = self._read_capped_body(response)
        except requests.HTTPError as e:
            status = e.response.status_code if e.response is not None else None
            logger.error("Failed to forward upload to workflow: %s", e)
            raise ForwardingError(
                f"Workflow forwarding failed: HTTP {status}", upstream_status=status
            ) from e
        except (requests.RequestException, OSError) as e:
            logger.error("Failed to forward upload to workflow: %s", e)
            raise ForwardingError(f"Workflow forwarding failed: {e}") from e
        return response, body

    def _read_capped_body(self, response: requests.Response) -> bytes:
        """Read the acknowledgment body, giving up as soon as it exceeds max_bytes."""
        body = bytearray()
        for chunk in response.iter_content(chunk_size=_READ_CHUNK_BYTES):
            body.extend(chunk)
            if len(body) > self.max_bytes:
                raise ForwardingError("Workflow acknowledgment exceeds size limit")
        return bytes(body)

    def _parse_response(self, response: requests.Response, body: bytes) -> ForwardAck:
        """
        Accepts a JSON list of execution descriptors (first one wins) or a bare
        acknowledgment. Bodies that claim to be JSON but are not, lists whose
        first element is not an object, and descriptors with mistyped fields
        are malformed.
        """
        text = body.decode(response.encoding or "utf-8", errors="replace")
        declared_json = "json" in response.headers.get("Content-Type", "").lower()
        if not text.strip() or not declared_json:
            return ForwardAck(status_code=response.status_code, data=text or None)

        try:
            data: Any = json.loads(text)
        except ValueError as e:
            raise ForwardingError("Workflow returned malformed JSON acknowledgment") from e

        execution = None
        if isinstance(data, list) and data:
            descriptor = data[0]
            if not isinstance(descriptor, dict):
                raise ForwardingError("Workflow acknowledgment has an unexpected shape")
            try:
                execution = ExecutionDetails.from_workflow_descriptor(descriptor)
            except PydanticValidationError as e:
                raise ForwardingError("Workflow acknowledgment has an unexpected shape") from e

        return ForwardAck(status_code=response.status_code, data=data, execution=execution)

    async def health_check(self) -> bool:
        """True if the webhook answers a HEAD request with a status below 400."""
        webhook_url = self.webhook_url
        if not webhook_url:
            return False
        try:
            response = await asyncio.to_thread(
                requests.head, webhook_url, timeout=HEALTH_CHECK_TIMEOUT_SECONDS
            )
            return response.status_code < 400
        except requests.RequestException as e:
            logger.warning("Workflow webhook health check failed: %s", e)
            return False
