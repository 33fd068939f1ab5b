"""
This module provides an S3 implementation for:
- ArtifactStorage: store converted artifacts in an S3 bucket and hand out
  presigned download URLs.

Classes:
- S3ArtifactStorage: S3 implementation of ArtifactStorage.

Example:
    cloud_manager = CloudManager()
    s3_client = cloud_manager.create_s3_client_from_env()
    bucket, prefix = CloudManager.parse_s3_path("s3://my-bucket/artifacts")
    artifact_storage = S3ArtifactStorage(s3_client, bucket, prefix)
"""
import uuid
import asyncio
import logging
from typing import Iterator, List, Optional

from botocore.exceptions import BotoCoreError, ClientError

from contracts.artifact_schemas import ArtifactInfo, ArtifactStream
from contracts.job_schemas import utc_now_iso
from interfaces.artifact_storage_interface import ArtifactStorage
from support.constants import APP_NAME
from support.exceptions import ArtifactNotFoundError, StorageError


logger = logging.getLogger(APP_NAME)

_NOT_FOUND_CODES = {"404", "NoSuchKey", "NotFound"}


class S3ArtifactStorage(ArtifactStorage):
    """
    S3 implementation of ArtifactStorage. boto3 calls are blocking and run in a
    worker thread; timeouts come from the client's botocore Config.
    """

    backend_name = "s3"

    def __init__(self, s3_client, bucket: str, prefix: str = "artifacts"):
        self.s3_client = s3_client
        self.bucket = bucket
        self.prefix = prefix.strip("/")

    def _key(self, file_id: str) -> str:
        return f"{self.prefix}/{file_id}" if self.prefix else file_id

    def _file_id_from_key(self, key: str) -> str:
        return key[len(self.prefix) + 1:] if self.prefix else key

    async def _call(self, file_id: Optional[str], method: str, **kwargs):
        """Run a boto3 client method off the event loop, translating its errors."""
        try:
            return await asyncio.to_thread(getattr(self.s3_client, method), **kwargs)
        except ClientError as e:
            code = str(e.response.get("Error", {}).get("Code", ""))
            if file_id is not None and code in _NOT_FOUND_CODES:
                raise ArtifactNotFoundError(file_id) from e
            raise StorageError(f"S3 {method} failed: {code or e}") from e
        except BotoCoreError as e:
            raise StorageError(f"S3 {method} failed: {e}") from e

    def _info_from_head(self, file_id: str, head: dict) -> ArtifactInfo:
        metadata = head.get("Metadata", {}) or {}
        last_modified = head.get("LastModified")
        return ArtifactInfo(
            file_id=file_id,
            filename=metadata.get("filename", f"{file_id}.csv"),
            content_type=head.get("ContentType", "application/octet-stream"),
            size=int(head.get("ContentLength", 0)),
            upload_date=metadata.get("upload_date")
            or (last_modified.isoformat() if last_modified else utc_now_iso()),
            job_id=metadata.get("job_id") or None,
        )

    async def save_artifact(
        self, content: bytes, filename: str, content_type: str, job_id: Optional[str] = None
    ) -> ArtifactInfo:
        file_id = uuid.uuid4().hex
        upload_date = utc_now_iso()
        metadata = {"filename": filename, "upload_date": upload_date}
        if job_id:
            metadata["job_id"] = job_id
        await self._call(
            None,
            "put_object",
            Bucket=self.bucket,
            Key=self._key(file_id),
            Body=content,
            ContentType=content_type,
            Metadata=metadata,
        )
        logger.info("Stored artifact %s in s3://%s/%s", file_id, self.bucket, self._key(file_id))
        return ArtifactInfo(
            file_id=file_id,
            filename=filename,
            content_type=content_type,
            size=len(content),
            upload_date=upload_date,
            job_id=job_id,
        )

    async def open_artifact(self, file_id: str) -> ArtifactStream:
        response = await self._call(file_id, "get_object", Bucket=self.bucket, Key=self._key(file_id))
        info = self._info_from_head(file_id, response)
        body = response["Body"]

        def chunks() -> Iterator[bytes]:
            try:
                for chunk in body.iter_chunks():
                    yield chunk
            finally:
                body.close()

        return ArtifactStream(info=info, chunks=chunks())

    async def list_artifacts(self) -> List[ArtifactInfo]:
        infos: List[ArtifactInfo] = []
        kwargs = {"Bucket": self.bucket, "Prefix": f"{self.prefix}/" if self.prefix else ""}
        while True:
            page = await self._call(None, "list_objects_v2", **kwargs)
            for item in page.get("Contents", []):
                file_id = self._file_id_from_key(item["Key"])
                head = await self._call(file_id, "head_object", Bucket=self.bucket, Key=item["Key"])
                infos.append(self._info_from_head(file_id, head))
            if not page.get("IsTruncated"):
                break
            kwargs["ContinuationToken"] = page["NextContinuationToken"]
        return infos

    async def delete_artifact(self, file_id: str) -> ArtifactInfo:
        # delete_object succeeds for missing keys, so check existence first
        head = await self._call(file_id, "head_object", Bucket=self.bucket, Key=self._key(file_id))
        await self._call(file_id, "delete_object", Bucket=self.bucket, Key=self._key(file_id))
        logger.info("Deleted artifact %s", file_id)
        return self._info_from_head(file_id, head)

    async def generate_download_url(self, file_id: str, expires_in: int) -> str:
        head = await self._call(file_id, "head_object", Bucket=self.bucket, Key=self._key(file_id))
        info = self._info_from_head(file_id, head)
        return await self._call(
            file_id,
            "generate_presigned_url",
            ClientMethod="get_object",
            Params={
                "Bucket": self.bucket,
                "Key": self._key(file_id),
                "ResponseContentDisposition": f'attachment; filename="{info.filename}"',
            },
            ExpiresIn=expires_in,
        )

    async def health_check(self) -> bool:
        try:
            await self._call(None, "head_bucket", Bucket=self.bucket)
            return True
        except StorageError as e:
            logger.warning("S3 health check failed: %s", e)
            return False
