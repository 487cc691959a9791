"""Tests for the server-rendered login and archive pages.

Pages are Jinja2 templates; values from settings and the backup tool are
autoescaped.
"""

import pytest

from backup_panel.core.config import settings
from backup_panel.core.errors import BackupCommandError
from backup_panel.services.backup_tool import BackupFile


class TestLoginPage:
    """GET /login."""

    @pytest.mark.asyncio
    async def test_renders_form_without_inline_script(self, client):
        """Form fields present; behaviour comes from /static/login.js."""
        response = await client.get("/login")
        assert response.status_code == 200
        assert response.headers["content-type"].startswith("text/html")
        assert 'name="username"' in response.text
        assert 'type="password"' in response.text
        assert '<script src="/static/login.js"></script>' in response.text

    @pytest.mark.asyncio
    async def test_title_from_settings_is_escaped(self, client, monkeypatch):
        """APP_TITLE fills <title> and the heading, escaped."""
        monkeypatch.setattr(settings, "app_title", "Backups & <Restore>")
        response = await client.get("/login")
        assert "<title>Backups &amp; &lt;Restore&gt;</title>" in response.text
        assert "<h1>Backups &amp; &lt;Restore&gt;</h1>" in response.text


class TestHomePage:
    """GET /."""

    @pytest.mark.asyncio
    async def test_lists_archives_with_controls(self, auth_client):
        """Each archive row has restore and download buttons."""
        response = await auth_client.get("/")
        assert response.status_code == 200
        assert 'data-restore="backup-2025-07-09_12-00-00.sql.gz"' in response.text
        assert 'data-download="backup-2025-07-09_12-00-00.sql.gz"' in response.text
        assert "1.1 MB" in response.text
        assert 'id="upload-form"' in response.text

    @pytest.mark.asyncio
    async def test_tool_failure_renders_empty_list(self, auth_client, mock_backup_tool):
        """A failing tool still renders the page."""
        mock_backup_tool.list_backups.side_effect = BackupCommandError("Failed to list backups.")
        response = await auth_client.get("/")
        assert response.status_code == 200
        assert "No backups found." in response.text

    @pytest.mark.asyncio
    async def test_output_is_escaped(self, auth_client, mock_backup_tool):
        """Values from the tool are HTML-escaped."""
        mock_backup_tool.list_backups.return_value = [
            BackupFile(name="<script>x</script>", date="d", size=1)
        ]
        response = await auth_client.get("/")
        assert "<script>x</script>" not in response.text
        assert "&lt;script&gt;x&lt;/script&gt;" in response.text

    @pytest.mark.asyncio
    async def test_attribute_values_are_escaped(self, auth_client, mock_backup_tool):
        """Quotes in archive names cannot break out of data attributes."""
        mock_backup_tool.list_backups.return_value = [
            BackupFile(name='a" onclick="x', date="d", size=1)
        ]
        response = await auth_client.get("/")
        assert 'onclick="x"' not in response.text
        assert 'data-restore="a&#34; onclick=&#34;x"' in response.text
