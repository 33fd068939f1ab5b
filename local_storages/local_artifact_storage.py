"""
This module provides a local implementation for:
- ArtifactStorage: store converted artifacts on the local filesystem.

Usage:
- Use LocalArtifactStorage for local development (stores files on disk).

Classes:
- LocalArtifactStorage: Local disk implementation of ArtifactStorage.

Example:
    artifact_storage = LocalArtifactStorage("./storage/artifacts")
    info = await artifact_storage.save_artifact(b"a,b\\n", "report.csv", "text/csv", job_id)
    url = await artifact_storage.generate_download_url(info.file_id, expires_in=3600)
"""
import os
import re
import json
import uuid
import asyncio
import logging
from typing import Iterator, List, Optional

from contracts.artifact_schemas import ArtifactInfo, ArtifactStream
from contracts.job_schemas import utc_now_iso
from interfaces.artifact_storage_interface import ArtifactStorage
from support.constants import APP_NAME, STORAGE_TIMEOUT_SECONDS
from support.exceptions import ArtifactNotFoundError, StorageError


logger = logging.getLogger(APP_NAME)

_FILE_ID_PATTERN = re.compile(r"^[0-9a-f]{32}$")


class LocalArtifactStorage(ArtifactStorage):
    """
    Local disk implementation of ArtifactStorage.
    Each artifact is a ``<file_id>.bin`` payload with a ``<file_id>.json`` metadata sidecar.
    Blocking file I/O runs in a worker thread and is bounded by a timeout.
    """

    backend_name = "local-disk"

    def __init__(
        self,
        root_dir: str,
        public_base_url: str = "",
        timeout: float = STORAGE_TIMEOUT_SECONDS,
        chunk_size: int = 64 * 1024,
    ):
        self.root_dir = root_dir
        self.public_base_url = public_base_url.rstrip("/")
        self.timeout = timeout
        self.chunk_size = chunk_size
        os.makedirs(self.root_dir, exist_ok=True)

    def _payload_path(self, file_id: str) -> str:
        return os.path.join(self.root_dir, f"{file_id}.bin")

    def _meta_path(self, file_id: str) -> str:
        return os.path.join(self.root_dir, f"{file_id}.json")

    async def _run(self, func, *args):
        try:
            return await asyncio.wait_for(asyncio.to_thread(func, *args), timeout=self.timeout)
        except asyncio.TimeoutError as e:
            raise StorageError("Artifact storage timed out") from e

    def _read_info_sync(self, file_id: str) -> ArtifactInfo:
        if not _FILE_ID_PATTERN.fullmatch(file_id or ""):
            raise ArtifactNotFoundError(file_id)
        try:
            with open(self._meta_path(file_id), "r", encoding="utf-8") as f:
                return ArtifactInfo(**json.load(f))
        except FileNotFoundError as e:
            raise ArtifactNotFoundError(file_id) from e
        except (OSError, ValueError) as e:
            raise StorageError(f"Failed to read artifact metadata: {e}") from e

    def _write_sync(self, file_id: str, content: bytes, info: ArtifactInfo) -> None:
        try:
            with open(self._payload_path(file_id), "wb") as out:
                out.write(content)
            with open(self._meta_path(file_id), "w", encoding="utf-8") as out:
                json.dump(info.model_dump(), out)
        except OSError as e:
            raise StorageError(f"Failed to write artifact: {e}") from e

    def _iter_chunks(self, file_id: str) -> Iterator[bytes]:
        with open(self._payload_path(file_id), "rb") as rf:
            while True:
                chunk = rf.read(self.chunk_size)
                if not chunk:
                    break
                yield chunk

    async def save_artifact(
        self, content: bytes, filename: str, content_type: str, job_id: Optional[str] = None
    ) -> ArtifactInfo:
        """
        Save content to disk under a fresh file id.
        """
        file_id = uuid.uuid4().hex
        info = ArtifactInfo(
            file_id=file_id,
            filename=filename,
            content_type=content_type,
            size=len(content),
            upload_date=utc_now_iso(),
            job_id=job_id,
        )
        await self._run(self._write_sync, file_id, content, info)
        logger.info("Stored artifact %s (%s, %d bytes)", file_id, filename, info.size)
        return info

    async def open_artifact(self, file_id: str) -> ArtifactStream:
        info = await self._run(self._read_info_sync, file_id)
        if not os.path.exists(self._payload_path(file_id)):
            raise ArtifactNotFoundError(file_id)
        return ArtifactStream(info=info, chunks=self._iter_chunks(file_id))

    def _list_sync(self) -> List[ArtifactInfo]:
        infos = []
        for name in os.listdir(self.root_dir):
            if not name.endswith(".json"):
                continue
            try:
                infos.append(self._read_info_sync(name[: -len(".json")]))
            except (ArtifactNotFoundError, StorageError) as e:
                logger.warning("Skipping unreadable artifact metadata %s: %s", name, e)
        return infos

    async def list_artifacts(self) -> List[ArtifactInfo]:
        return await self._run(self._list_sync)

    def _delete_sync(self, file_id: str) -> ArtifactInfo:
        info = self._read_info_sync(file_id)
        try:
            for path in (self._payload_path(file_id), self._meta_path(file_id)):
                if os.path.exists(path):
                    os.remove(path)
        except OSError as e:
            raise StorageError(f"Failed to delete artifact: {e}") from e
        return info

    async def delete_artifact(self, file_id: str) -> ArtifactInfo:
        info = await self._run(self._delete_sync, file_id)
        logger.info("Deleted artifact %s", file_id)
        return info

    async def generate_download_url(self, file_id: str, expires_in: int) -> str:
        """
        Local files are served by the gateway itself and do not expire; the
        expiry is kept for parity with the S3 backend.
        """
        await self._run(self._read_info_sync, file_id)
        return f"{self.public_base_url}/v1/files/download/{file_id}"

    def _health_sync(self) -> bool:
        return os.path.isdir(self.root_dir) and os.access(self.root_dir, os.W_OK)

    async def health_check(self) -> bool:
        try:
            return await self._run(self._health_sync)
        except StorageError as e:
            logger.warning("Artifact storage health check failed: %s", e)
            return False
