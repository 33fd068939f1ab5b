"""Shared-secret verification for callbacks from the conversion workflow."""

import os
import secrets
from typing import Optional


def get_callback_secret() -> Optional[str]:
    """Configured callback secret, read on every call so rotation needs no restart."""
    return os.getenv("CALLBACK_SECRET") or None


def verify_callback_secret(provided_secret: Optional[str]) -> bool:
    """Constant-time comparison of the provided secret against CALLBACK_SECRET.

    An unset CALLBACK_SECRET rejects every caller.
    """
    expected = get_callback_secret()
    if not expected or not provided_secret:
        return False
    return secrets.compare_digest(provided_secret.encode(), expected.encode())
