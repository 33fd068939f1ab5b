"""
Support functions for the conversion gateway.
"""
import os
import re
import math
import logging

from support.constants import APP_NAME, CONVERTIBLE_EXTENSIONS, OUTPUT_EXTENSION

logger = logging.getLogger(APP_NAME)

_CONVERTIBLE_SUFFIX = re.compile(
    r"\.(" + "|".join(CONVERTIBLE_EXTENSIONS) + r")$", re.IGNORECASE
)


def sanitize_filename(name: str) -> str:
    """Sanitize file name to be filesystem-safe."""
    keep = [c if c.isalnum() or c in (".", "-", "_") else "_" for c in name]
    return "".join(keep) or "file"


def derive_output_filename(original_name: str) -> str:
    """Rewrite a convertible input extension to the output (.csv) extension."""
    output_name, replaced = _CONVERTIBLE_SUFFIX.subn(OUTPUT_EXTENSION, original_name)
    if replaced:
        return output_name
    return f"{os.path.splitext(original_name)[0] or original_name}{OUTPUT_EXTENSION}"


def format_file_size(size_in_bytes: int) -> str:
    """Human readable file size, e.g. 1536 -> '1.5 KB'."""
    if size_in_bytes <= 0:
        return "0 Bytes"
    units = ["Bytes", "KB", "MB", "GB"]
    index = min(int(math.floor(math.log(size_in_bytes, 1024))), len(units) - 1)
    value = round(size_in_bytes / math.pow(1024, index), 2)
    return f"{value:g} {units[index]}"


def remove_temp_file(path: str) -> None:
    """Delete a temporary upload. Failures are logged, never raised."""
    if not path:
        return
    try:
        os.remove(path)
    except FileNotFoundError:
        pass
    except OSError as e:
        logger.warning("Failed to cleanup temp file %s: %s", path, e)
