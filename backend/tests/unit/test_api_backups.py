"""Tests for the backup archive endpoints.

Endpoints: GET /api/list, POST /api/backup, POST /api/restore,
POST /api/download, POST /api/upload. All require a session.
"""

from unittest.mock import patch

import pytest

from backup_panel.core.config import settings
from backup_panel.core.errors import BackupCommandError

_ARCHIVE = "backup-2025-07-08_12-00-00.sql.gz"
_PATCH_MAGIC = "backup_panel.core.file_validation.magic.from_buffer"


def _detect_mime(content: bytes, mime: bool = False) -> str:
    return "application/gzip" if content.startswith(b"\x1f\x8b") else "text/plain"


class TestList:
    """GET /api/list."""

    @pytest.mark.asyncio
    async def test_lists_archives(self, auth_client):
        """Archives with raw and human sizes."""
        response = await auth_client.get("/api/list")
        assert response.status_code == 200
        files = response.json()["files"]
        assert files[0] == {
            "name": _ARCHIVE,
            "date": "2025-07-08 12:00:01",
            "size": 1205302,
            "sizeHuman": "1.1 MB",
        }
        assert len(files) == 2

    @pytest.mark.asyncio
    async def test_tool_failure_yields_empty_list(self, auth_client, mock_backup_tool):
        """A failing tool does not break the page."""
        mock_backup_tool.list_backups.side_effect = BackupCommandError("Failed to list backups.")
        response = await auth_client.get("/api/list")
        assert response.status_code == 200
        assert response.json() == {"files": []}


class TestCreate:
    """POST /api/backup."""

    @pytest.mark.asyncio
    async def test_creates_backup(self, auth_client, mock_backup_tool):
        response = await auth_client.post("/api/backup")
        assert response.status_code == 200
        assert response.json() == {"message": "Backup generated successfully."}
        mock_backup_tool.create_backup.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_tool_failure_is_generic_500(self, auth_client, mock_backup_tool):
        """Failure message is generic; tool output stays in the log."""
        mock_backup_tool.create_backup.side_effect = BackupCommandError("Failed to create backup.")
        response = await auth_client.post("/api/backup")
        assert response.status_code == 500
        assert response.json() == {
            "error": "Failed to create backup.",
            "code": "BACKUP_COMMAND_FAILED",
        }

    @pytest.mark.asyncio
    async def test_requires_session(self, client, mock_backup_tool):
        """Anonymous callers never reach the tool."""
        response = await client.post("/api/backup")
        assert response.status_code == 401
        mock_backup_tool.create_backup.assert_not_awaited()


class TestRestore:
    """POST /api/restore."""

    @pytest.mark.asyncio
    async def test_restores_named_archive(self, auth_client, mock_backup_tool):
        response = await auth_client.post("/api/restore", json={"filename": _ARCHIVE})
        assert response.status_code == 200
        assert response.json() == {"message": "Backup restored successfully."}
        mock_backup_tool.restore_backup.assert_awaited_once_with(_ARCHIVE)

    @pytest.mark.asyncio
    @pytest.mark.parametrize("filename", ["--help", "../../etc/passwd", "dump.sql"])
    async def test_rejects_bad_names(self, auth_client, mock_backup_tool, filename):
        """Names outside the archive pattern -> 400, tool untouched."""
        response = await auth_client.post("/api/restore", json={"filename": filename})
        assert response.status_code == 400
        assert response.json()["error"] == "Invalid backup filename"
        mock_backup_tool.restore_backup.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_tool_failure(self, auth_client, mock_backup_tool):
        mock_backup_tool.restore_backup.side_effect = BackupCommandError(
            "Failed to restore backup."
        )
        response = await auth_client.post("/api/restore", json={"filename": _ARCHIVE})
        assert response.status_code == 500
        assert response.json()["error"] == "Failed to restore backup."


class TestDownload:
    """POST /api/download."""

    @pytest.mark.asyncio
    async def test_returns_attachment(self, auth_client, mock_backup_tool):
        """Archive bytes with gzip type and attachment disposition."""
        response = await auth_client.post("/api/download", json={"filename": _ARCHIVE})
        assert response.status_code == 200
        assert response.content == b"\x1f\x8bbackup-bytes"
        assert response.headers["content-type"] == "application/gzip"
        assert (
            response.headers["content-disposition"]
            == f'attachment; filename="{_ARCHIVE}"'
        )
        mock_backup_tool.download_backup.assert_awaited_once_with(_ARCHIVE)

    @pytest.mark.asyncio
    async def test_rejects_bad_name(self, auth_client, mock_backup_tool):
        response = await auth_client.post("/api/download", json={"filename": "/etc/shadow"})
        assert response.status_code == 400
        mock_backup_tool.download_backup.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_missing_filename(self, auth_client):
        response = await auth_client.post("/api/download", json={})
        assert response.status_code == 400


class TestUpload:
    """POST /api/upload."""

    @pytest.fixture(autouse=True)
    def fake_magic(self):
        with patch(_PATCH_MAGIC, side_effect=_detect_mime) as mock_magic:
            yield mock_magic

    @pytest.mark.asyncio
    async def test_uploads_gzip(self, auth_client, mock_backup_tool):
        """gzip content is handed to the tool."""
        content = b"\x1f\x8b\x08\x00payload"
        response = await auth_client.post(
            "/api/upload",
            files={"file": ("dump.sql.gz", content, "application/gzip")},
        )
        assert response.status_code == 200
        assert response.json() == {"message": "Backup uploaded successfully."}
        mock_backup_tool.upload_backup.assert_awaited_once_with(content)

    @pytest.mark.asyncio
    async def test_rejects_non_gzip(self, auth_client, mock_backup_tool, fake_magic):
        """Plain text -> 400, tool untouched."""
        response = await auth_client.post(
            "/api/upload",
            files={"file": ("dump.sql.gz", b"-- SQL", "application/gzip")},
        )
        assert response.status_code == 400
        assert response.json()["error"] == "File is not a valid .gz archive"
        mock_backup_tool.upload_backup.assert_not_awaited()
        fake_magic.assert_called_once_with(b"-- SQL", mime=True)

    @pytest.mark.asyncio
    async def test_rejects_oversized(self, auth_client, mock_backup_tool, monkeypatch):
        """Content above MAX_UPLOAD_SIZE_MB -> 400."""
        monkeypatch.setattr(settings, "max_upload_size_mb", 1)
        content = b"\x1f\x8b" + b"\x00" * (1024 * 1024)
        response = await auth_client.post(
            "/api/upload",
            files={"file": ("big.sql.gz", content, "application/gzip")},
        )
        assert response.status_code == 400
        assert response.json()["details"] == [
            {"field": "file", "error": "FILE_TOO_LARGE"}
        ]
        mock_backup_tool.upload_backup.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_missing_file(self, auth_client):
        response = await auth_client.post("/api/upload")
        assert response.status_code == 400

    @pytest.mark.asyncio
    async def test_tool_failure(self, auth_client, mock_backup_tool):
        mock_backup_tool.upload_backup.side_effect = BackupCommandError(
            "Failed to upload backup."
        )
        response = await auth_client.post(
            "/api/upload",
            files={"file": ("dump.sql.gz", b"\x1f\x8bdata", "application/gzip")},
        )
        assert response.status_code == 500
        assert response.json()["error"] == "Failed to upload backup."
