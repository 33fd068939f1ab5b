"""
File Views
----------
Endpoints over the converted artifacts held by the artifact storage.

Endpoints:
    - GET    /v1/files/download/{file_id}: Stream an artifact
    - GET    /v1/files: List artifacts, newest first
    - DELETE /v1/files/{file_id}: Delete an artifact
    - GET    /v1/files/stats: Storage statistics (development only)
    - GET    /v1/files/health: Storage health
"""
import time
import logging
from datetime import datetime, timezone
from typing import Any, Dict

from fastapi import APIRouter, Request
from fastapi.responses import JSONResponse, StreamingResponse
from starlette import status as H

from support.constants import APP_NAME
from support.exceptions import NotFoundError, StorageError, ValidationError
from support.support_functions import format_file_size


logger = logging.getLogger(APP_NAME)


def _format_date(iso_value: str) -> str:
    try:
        return datetime.fromisoformat(iso_value).strftime("%Y-%m-%d %H:%M:%S")
    except ValueError:
        return iso_value


class FileViewsManager:
    """
    Registers the artifact endpoints on the provided router.
    """

    def __init__(self, router: APIRouter, expose_diagnostics: bool = True):
        self.router = router
        self.expose_diagnostics = expose_diagnostics
        self.register_views()

    def register_views(self) -> None:
        # GET @ http://127.0.0.1:8000/v1/files/download/{file_id}
        @self.router.get("/files/download/{file_id}", summary="Download artifact (v1)")
        async def download_file(request: Request, file_id: str):
            if not file_id.strip():
                raise ValidationError("File ID is required", code="MISSING_FILE_ID")

            storage = request.app.state.artifact_storage
            try:
                artifact = await storage.open_artifact(file_id)
            except NotFoundError:
                raise
            except StorageError as e:
                logger.error("Failed to serve file %s: %s", file_id, e)
                raise StorageError("Failed to serve file", code="FILE_SERVE_ERROR") from e

            info = artifact.info
            logger.info("Serving file download: %s (%.2fKB)", info.filename, info.size / 1024)
            return StreamingResponse(
                artifact.chunks,
                media_type=info.content_type,
                headers={
                    "Content-Disposition": f'attachment; filename="{info.filename}"',
                    "Content-Length": str(info.size),
                    "Cache-Control": "private, max-age=3600",
                },
            )

        # GET @ http://127.0.0.1:8000/v1/files
        @self.router.get("/files", status_code=H.HTTP_200_OK, summary="List artifacts (v1)")
        async def list_files(request: Request):
            start_time = time.time()
            storage = request.app.state.artifact_storage
            try:
                infos = await storage.list_artifacts()
            except StorageError as e:
                logger.error("Failed to list files: %s", e)
                raise StorageError("Failed to retrieve files", code="FILES_LIST_ERROR") from e

            infos.sort(key=lambda info: info.upload_date, reverse=True)
            files = [
                {
                    "id": info.file_id,
                    "filename": info.filename,
                    "size": info.size,
                    "uploadDate": info.upload_date,
                    "jobId": info.job_id,
                    "downloadUrl": f"/v1/files/download/{info.file_id}",
                    "formattedSize": format_file_size(info.size),
                    "formattedDate": _format_date(info.upload_date),
                }
                for info in infos
            ]
            total_size = sum(info.size for info in infos)
            processing_ms = int((time.time() - start_time) * 1000)
            logger.info("Files API response time: %dms (%d files)", processing_ms, len(files))

            return JSONResponse(
                content={
                    "files": files,
                    "totalFiles": len(files),
                    "totalSize": total_size,
                    "formattedTotalSize": format_file_size(total_size),
                    "responseTime": processing_ms,
                },
                headers={
                    "Cache-Control": "private, max-age=60",
                    "X-Response-Time": f"{processing_ms}ms",
                },
            )

        # DELETE @ http://127.0.0.1:8000/v1/files/{file_id}
        @self.router.delete("/files/{file_id}", status_code=H.HTTP_200_OK, summary="Delete artifact (v1)")
        async def delete_file(request: Request, file_id: str) -> Dict[str, Any]:
            storage = request.app.state.artifact_storage
            try:
                info = await storage.delete_artifact(file_id)
            except NotFoundError:
                raise
            except StorageError as e:
                logger.error("Failed to delete file %s: %s", file_id, e)
                raise StorageError("Failed to delete file", code="DELETE_ERROR") from e

            logger.info("File deleted: %s (ID: %s)", info.filename, file_id)
            return {
                "success": True,
                "message": "File deleted successfully",
                "fileId": file_id,
                "filename": info.filename,
            }

        # GET @ http://127.0.0.1:8000/v1/files/health
        @self.router.get("/files/health", summary="Artifact storage health (v1)")
        async def storage_health(request: Request):
            storage = request.app.state.artifact_storage
            is_healthy = await storage.health_check()
            return JSONResponse(
                status_code=200 if is_healthy else 503,
                content={
                    "status": "healthy" if is_healthy else "unhealthy",
                    "service": f"{storage.backend_name}-storage",
                    "timestamp": datetime.now(timezone.utc).isoformat(),
                },
            )

        if not self.expose_diagnostics:
            return

        # GET @ http://127.0.0.1:8000/v1/files/stats
        @self.router.get("/files/stats", status_code=H.HTTP_200_OK, summary="Storage stats (development only)")
        async def storage_stats(request: Request) -> Dict[str, Any]:
            storage = request.app.state.artifact_storage
            infos = await storage.list_artifacts()
            return {
                "storage": {
                    "totalFiles": len(infos),
                    "totalSize": sum(info.size for info in infos),
                    "files": [info.model_dump() for info in infos],
                },
                "type": storage.backend_name,
            }
