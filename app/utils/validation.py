"""
Upload validation utilities
Checks uploaded SCORM archives before they are stored and parsed
"""

import re
from pathlib import Path
from typing import Optional, Tuple

from app.config import get_settings

ALLOWED_EXTENSIONS = {".zip"}
ALLOWED_MIME_TYPES = {
    "application/zip",
    "application/x-zip-compressed",
    "application/x-zip",
}
MERGED_NAME_PATTERN = re.compile(r"^merged-scorm-[A-Za-z0-9-]+\.zip$")
ZIP_SIGNATURES = (b"PK\x03\x04", b"PK\x05\x06")


def validate_upload(
    filename: Optional[str],
    content_type: Optional[str],
    size: Optional[int] = None,
) -> Tuple[bool, str]:
    """
    Validate an uploaded package before it is stored.

    Args:
        filename: Original filename
        content_type: Declared MIME type
        size: Size in bytes, when known

    Returns:
        Tuple of (is_valid, error_message)
    """
    if not filename:
        return False, "Filename is required"

    extension = Path(filename).suffix.lower()
    if extension not in ALLOWED_EXTENSIONS and content_type not in ALLOWED_MIME_TYPES:
        return False, f"Only ZIP files are allowed: {filename}"

    if size is not None:
        max_size = get_settings().max_upload_size
        if size == 0:
            return False, f"Empty files are not allowed: {filename}"
        if size > max_size:
            return (
                False,
                f"File too large: {filename} ({size} bytes) exceeds maximum "
                f"allowed size ({max_size} bytes)"
            )

    return True, ""


def looks_like_zip(content: bytes) -> bool:
    return content.startswith(ZIP_SIGNATURES)


def safe_upload_name(filename: str) -> str:
    """Strip directories and unsafe characters from an uploaded filename"""
    name = Path(filename.replace("\\", "/")).name
    name = re.sub(r"[^A-Za-z0-9._ -]", "_", name).strip()
    return name or "package.zip"


def safe_download_name(filename: str) -> Optional[str]:
    """Return the name if it refers to a merged package, otherwise None"""
    if "/" in filename or "\\" in filename or ".." in filename:
        return None
    if not MERGED_NAME_PATTERN.match(filename):
        return None
    return filename
