"""
Abstraction layer for converted artifact storage.

This module provides an interface for:
- ArtifactStorage: store, stream, list and delete output artifacts by id and
  hand out time-limited download URLs for them.

Usage:
- Use LocalArtifactStorage for local development (stores files on disk).
- Use S3ArtifactStorage when STORAGE_BACKEND=s3.

Classes:
- ArtifactStorage (ABC): Interface for artifact operations.
"""
from abc import ABC, abstractmethod
from typing import List, Optional

from contracts.artifact_schemas import ArtifactInfo, ArtifactStream


class ArtifactStorage(ABC):
    """
    Abstract base class for artifact storage.
    A missing artifact is always reported with ArtifactNotFoundError; any other
    backend failure is reported with StorageError.
    """

    backend_name: str = ""

    @abstractmethod
    async def save_artifact(
        self, content: bytes, filename: str, content_type: str, job_id: Optional[str] = None
    ) -> ArtifactInfo:
        """
        Store content and return its metadata, including the generated file_id.
        """

    @abstractmethod
    async def open_artifact(self, file_id: str) -> ArtifactStream:
        """
        Open a stored artifact for streaming.
        """

    @abstractmethod
    async def list_artifacts(self) -> List[ArtifactInfo]:
        """
        Metadata for every stored artifact.
        """

    @abstractmethod
    async def delete_artifact(self, file_id: str) -> ArtifactInfo:
        """
        Delete a stored artifact and return the metadata it had.
        """

    @abstractmethod
    async def generate_download_url(self, file_id: str, expires_in: int) -> str:
        """
        Return a fresh retrieval URL valid for expires_in seconds.
        """

    @abstractmethod
    async def health_check(self) -> bool:
        """
        True when the backend is reachable and writable.
        """
