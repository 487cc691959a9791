"""File validation utilities for backup uploads and downloads.

Security: Validates archive content (libmagic MIME detection), enforces size
limits, validates archive names before they reach the backup tool, and
sanitizes filenames for Content-Disposition headers.
"""

import re
from typing import TYPE_CHECKING

import magic
import structlog

if TYPE_CHECKING:
    from fastapi import UploadFile

from backup_panel.core.errors import ValidationError

logger = structlog.get_logger()

# Chunk size for reading files (64 KB)
CHUNK_SIZE_BYTES = 64 * 1024

# MIME types libmagic reports for gzip archives
ALLOWED_ARCHIVE_MIMES = frozenset({"application/gzip", "application/x-gzip"})

# Archive names produced by the backup tool
BACKUP_NAME_RE = re.compile(r"^backup-\d{4}-\d{2}-\d{2}_\d{2}-\d{2}-\d{2}\.sql\.gz$")


async def read_file_with_size_limit(file: "UploadFile", max_size: int) -> bytes:
    """Read file content with size limit to prevent DoS.

    Args:
        file: UploadFile from FastAPI.
        max_size: Maximum allowed file size in bytes.

    Returns:
        File content as bytes.

    Raises:
        ValidationError: If file exceeds size limit.
    """
    chunks: list[bytes] = []
    total_size = 0

    while True:
        chunk = await file.read(CHUNK_SIZE_BYTES)
        if not chunk:
            break
        total_size += len(chunk)
        if total_size > max_size:
            raise ValidationError(
                message=f"File too large. Maximum size: {max_size // (1024 * 1024)}MB",
                details=[{"field": "file", "error": "FILE_TOO_LARGE"}],
            )
        chunks.append(chunk)

    return b"".join(chunks)


def validate_gzip_content(content: bytes, filename: str | None) -> None:
    """Validate archive content using magic bytes (not just extension).

    Args:
        content: Uploaded file content.
        filename: Original filename (for logging).

    Raises:
        ValidationError: If libmagic does not detect a gzip archive.
    """
    detected_mime = magic.from_buffer(content, mime=True)

    if detected_mime not in ALLOWED_ARCHIVE_MIMES:
        logger.warning(
            "Upload rejected: not a gzip archive",
            detected_mime=detected_mime,
            filename=filename,
            size=len(content),
        )
        raise ValidationError(
            message="File is not a valid .gz archive",
            details=[{"field": "file", "error": "INVALID_FILE_CONTENT"}],
        )


def validate_backup_name(name: str) -> str:
    """Ensure a client-supplied archive name is one the tool produces.

    Names are passed as command arguments, so anything else (paths, option
    lookalikes such as ``--help``) is rejected.

    Raises:
        ValidationError: If the name does not match the archive pattern.
    """
    if not BACKUP_NAME_RE.fullmatch(name):
        raise ValidationError(
            message="Invalid backup filename",
            details=[{"field": "filename", "error": "INVALID_FILENAME"}],
        )
    return name


def sanitize_filename_for_header(filename: str, max_length: int = 200) -> str:
    """Sanitize filename for Content-Disposition header.

    Prevents HTTP header injection by removing dangerous characters.

    Args:
        filename: Original filename.
        max_length: Maximum allowed filename length.

    Returns:
        Sanitized filename safe for HTTP headers.
    """
    # Quotes, newlines, carriage returns, backslashes, semicolons
    safe = re.sub(r'["\r\n\\;]', "", filename)
    safe = re.sub(r"[\x00-\x1f\x7f]", "", safe)

    if len(safe) > max_length:
        if "." in safe:
            name, ext = safe.rsplit(".", 1)
            ext = f".{ext}"
            safe = name[: max_length - len(ext)] + ext
        else:
            safe = safe[:max_length]

    return safe or "download"
