"""
Job identifier generation and syntax validation.

Ids are random uuid4 strings: URL and filename safe, not sequential, and
collision-free with overwhelming probability for the lifetime of the process.
"""
import re
import uuid

_JOB_ID_PATTERN = re.compile(
    r"^[0-9a-f]{8}-[0-9a-f]{4}-4[0-9a-f]{3}-[89ab][0-9a-f]{3}-[0-9a-f]{12}$"
)


def generate_job_id() -> str:
    """Return a new job id."""
    return str(uuid.uuid4())


def is_valid_job_id(candidate) -> bool:
    """Check that candidate has the canonical job id shape. Never touches the job store."""
    if not isinstance(candidate, str):
        return False
    return _JOB_ID_PATTERN.fullmatch(candidate) is not None
