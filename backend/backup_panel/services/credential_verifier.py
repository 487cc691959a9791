"""Credential verification delegated to the backup tool.

The panel stores no passwords. A username/password pair is valid exactly
when ``backup check-login`` accepts it for the configured database.
"""

import logging
from typing import Protocol

from backup_panel.core.config import Settings
from backup_panel.core.errors import ServerMisconfigurationError
from backup_panel.services.backup_tool import BackupTool

logger = logging.getLogger(__name__)


class CredentialVerifier(Protocol):
    """Anything that can say yes or no to a credential pair."""

    async def verify(self, username: str, password: str) -> bool: ...


class BackupToolCredentialVerifier:
    """Verifies credentials with ``backup check-login``.

    Any non-zero exit, spawn failure or timeout is a rejection. The tool's
    output is logged and never returned.
    """

    def __init__(self, tool: BackupTool, config: Settings) -> None:
        self._tool = tool
        self._config = config

    async def verify(self, username: str, password: str) -> bool:
        """Check a credential pair.

        Raises:
            ServerMisconfigurationError: If DB_TYPE or any of its database
                variables is missing.
        """
        if self._config.database_credentials() is None:
            logger.error(
                "Database configuration incomplete: DB_TYPE=%r requires "
                "<DB_TYPE>_HOST, _PORT, _DATABASE, _USER and _PASSWORD",
                self._config.db_type,
            )
            raise ServerMisconfigurationError()

        result = await self._tool.check_login(username, password)
        if not result.ok:
            logger.warning(
                "check-login rejected credentials (exit %s): %s",
                result.returncode,
                result.output.strip(),
            )
            return False
        return True
