"""
Contains the CloudManager class responsible for managing interactions with AWS.
"""
import os
from typing import Optional

import boto3
from botocore.config import Config

from support.constants import STORAGE_TIMEOUT_SECONDS


class CloudManager:
    """Manages Cloud interactions and provides cloud related helper methods."""

    def __init__(self):
        self._s3_client = None

    @property
    def s3_client(self):
        return self._s3_client

    def create_s3_client(
        self,
        access_key_id: Optional[str] = None,
        secret_access_key: Optional[str] = None,
        region: Optional[str] = None,
        timeout: int = STORAGE_TIMEOUT_SECONDS,
    ):
        """Create an S3 client using Boto3 with bounded connect/read timeouts."""
        self._s3_client = boto3.client(
            "s3",
            aws_access_key_id=access_key_id or None,
            aws_secret_access_key=secret_access_key or None,
            region_name=region or None,
            config=Config(
                connect_timeout=timeout,
                read_timeout=timeout,
                retries={"max_attempts": 2},
            ),
        )
        return self._s3_client

    def create_s3_client_from_env(self):
        """Create the S3 client from AWS_* environment variables."""
        return self.create_s3_client(
            access_key_id=os.getenv("AWS_ACCESS_KEY_ID", ""),
            secret_access_key=os.getenv("AWS_SECRET_ACCESS_KEY", ""),
            region=os.getenv("AWS_REGION_NAME", ""),
        )

    @staticmethod
    def parse_s3_path(file_path: str) -> tuple:
        """Parse S3 URI into bucket and key."""
        bucket_key = file_path[5:]  # Remove 's3://'
        bucket_name, _, key = bucket_key.partition("/")
        return bucket_name, key
