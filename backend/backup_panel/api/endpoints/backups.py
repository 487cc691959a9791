"""Backup archive endpoints.

Endpoints (all behind the route gate):
- GET /api/list: archives known to the backup tool
- POST /api/backup: create a new archive
- POST /api/restore: restore an archive by name
- POST /api/download: download an archive by name
- POST /api/upload: upload a gzip archive

Each endpoint is one call into the BackupTool facade.
"""

from typing import Annotated

import structlog
from fastapi import APIRouter, File, UploadFile
from fastapi.responses import Response
from pydantic import BaseModel, ConfigDict, Field

from backup_panel.api.deps import Backups, CurrentUsername
from backup_panel.core.config import settings
from backup_panel.core.errors import BackupCommandError
from backup_panel.core.file_validation import (
    read_file_with_size_limit,
    sanitize_filename_for_header,
    validate_backup_name,
    validate_gzip_content,
)
from backup_panel.core.responses import (
    BackupFileSchema,
    BackupListResponse,
    MessageResponse,
)

logger = structlog.get_logger()

router = APIRouter()


class BackupNameRequest(BaseModel):
    """Request body for POST /api/restore and /api/download."""

    model_config = ConfigDict(extra="forbid")

    filename: str = Field(min_length=1, max_length=255)


@router.get("/list")
async def list_backups(backups: Backups) -> BackupListResponse:
    """List archives.

    A failing tool yields an empty list (logged) so the page still renders.
    """
    try:
        files = await backups.list_backups()
    except BackupCommandError:
        return BackupListResponse(files=[])

    return BackupListResponse(
        files=[
            BackupFileSchema(
                name=f.name, date=f.date, size=f.size, size_human=f.size_human
            )
            for f in files
        ]
    )


@router.post("/backup")
async def create_backup(backups: Backups, username: CurrentUsername) -> MessageResponse:
    """Generate a new archive now."""
    logger.info("Backup requested", username=username)
    await backups.create_backup()
    return MessageResponse(message="Backup generated successfully.")


@router.post("/restore")
async def restore_backup(
    body: BackupNameRequest, backups: Backups, username: CurrentUsername
) -> MessageResponse:
    """Restore the database from a named archive."""
    name = validate_backup_name(body.filename)
    logger.info("Restore requested", username=username, backup=name)
    await backups.restore_backup(name)
    return MessageResponse(message="Backup restored successfully.")


@router.post("/download")
async def download_backup(body: BackupNameRequest, backups: Backups) -> Response:
    """Return a named archive as an attachment."""
    name = validate_backup_name(body.filename)
    content = await backups.download_backup(name)
    safe_filename = sanitize_filename_for_header(name)
    return Response(
        content=content,
        media_type="application/gzip",
        headers={"Content-Disposition": f'attachment; filename="{safe_filename}"'},
    )


@router.post("/upload")
async def upload_backup(
    file: Annotated[UploadFile, File(...)],
    backups: Backups,
    username: CurrentUsername,
) -> MessageResponse:
    """Store an uploaded gzip archive with the backup tool."""
    content = await read_file_with_size_limit(
        file, max_size=settings.max_upload_size_mb * 1024 * 1024
    )
    validate_gzip_content(content, file.filename)
    logger.info(
        "Upload requested", username=username, filename=file.filename, size=len(content)
    )
    await backups.upload_backup(content)
    return MessageResponse(message="Backup uploaded successfully.")
