"""
Schemas describing stored output artifacts (converted CSV files).
"""
from dataclasses import dataclass
from typing import Iterator, Optional

from pydantic import BaseModel


class ArtifactInfo(BaseModel):
    file_id: str
    filename: str
    content_type: str
    size: int
    upload_date: str
    job_id: Optional[str] = None


@dataclass
class ArtifactStream:
    """An open artifact: metadata plus a chunk iterator over its bytes."""

    info: ArtifactInfo
    chunks: Iterator[bytes]
