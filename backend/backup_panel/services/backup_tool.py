"""Facade over the external ``backup`` command-line tool.

Every panel action is a single invocation of the tool:

    backup list                       -> archive listing on stdout
    backup backup                     -> create a new archive
    backup restore <name>             -> restore an archive
    backup download <name> <path>     -> fetch an archive into <path>
    backup upload <path>              -> store the archive at <path>
    backup check-login --user U --password P

Exit code 0 means success. stdout and stderr are merged and only ever
logged; callers receive BackupCommandError with a generic message.
"""

import asyncio
import os
import re
import secrets
import tempfile
from dataclasses import dataclass
from pathlib import Path

import structlog

from backup_panel.core.errors import BackupCommandError

logger = structlog.get_logger()

# e.g. "2025-07-08 12:00:01    1205302 backup-2025-07-08_12-00-00.sql.gz"
_LIST_LINE_RE = re.compile(
    r"^(\d{4}-\d{2}-\d{2} \d{2}:\d{2}:\d{2})\s+(\d+)\s+"
    r"(backup-\d{4}-\d{2}-\d{2}_\d{2}-\d{2}-\d{2}\.sql\.gz)$"
)

_SIZE_UNITS = ("KB", "MB", "GB", "TB", "PB")


@dataclass(frozen=True)
class CommandResult:
    """Exit status and merged output of one tool invocation."""

    returncode: int
    output: str

    @property
    def ok(self) -> bool:
        return self.returncode == 0


@dataclass(frozen=True)
class BackupFile:
    """One archive as reported by ``backup list``."""

    name: str
    date: str
    size: int

    @property
    def size_human(self) -> str:
        return human_file_size(self.size)


def human_file_size(size: int) -> str:
    """Format a byte count with one decimal (``512 B``, ``1.2 MB``)."""
    if size < 1024:
        return f"{size} B"
    value = float(size)
    unit_index = -1
    while True:
        value /= 1024
        unit_index += 1
        if value < 1024 or unit_index == len(_SIZE_UNITS) - 1:
            break
    return f"{value:.1f} {_SIZE_UNITS[unit_index]}"


def parse_backup_list(output: str) -> list[BackupFile]:
    """Extract archives from ``backup list`` output, skipping other lines."""
    files: list[BackupFile] = []
    for line in output.splitlines():
        match = _LIST_LINE_RE.match(line.strip())
        if match:
            files.append(
                BackupFile(name=match[3], date=match[1], size=int(match[2]))
            )
    return files


class BackupTool:
    """Runs the backup tool as a subprocess.

    Args:
        command: Executable name or path (default ``backup``).
        timeout_seconds: Upper bound for a single invocation.
        login_timeout_seconds: Upper bound for ``check-login``.
        temp_dir: Directory for upload/download staging files.
    """

    def __init__(
        self,
        command: str = "backup",
        *,
        timeout_seconds: float = 600.0,
        login_timeout_seconds: float = 30.0,
        temp_dir: str | None = None,
    ) -> None:
        self.command = command
        self.timeout_seconds = timeout_seconds
        self.login_timeout_seconds = login_timeout_seconds
        self.temp_dir = temp_dir or tempfile.gettempdir()

    async def run(self, *args: str, timeout: float | None = None) -> CommandResult:
        """Run the tool with arguments and wait for it to exit.

        A tool that cannot be started or exceeds the timeout is reported as
        a failed result (returncode -1) rather than an exception.
        ``timeout`` overrides ``timeout_seconds`` for this call.
        """
        try:
            proc = await asyncio.create_subprocess_exec(
                self.command,
                *args,
                stdin=asyncio.subprocess.DEVNULL,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.STDOUT,
            )
        except OSError as exc:
            logger.error("Backup tool could not be started", command=self.command, error=str(exc))
            return CommandResult(returncode=-1, output=str(exc))

        try:
            stdout, _ = await asyncio.wait_for(
                proc.communicate(),
                timeout=self.timeout_seconds if timeout is None else timeout,
            )
        except TimeoutError:
            proc.kill()
            await proc.wait()
            logger.error("Backup tool timed out", subcommand=args[0] if args else None)
            return CommandResult(returncode=-1, output="timed out")

        return CommandResult(
            returncode=proc.returncode if proc.returncode is not None else -1,
            output=stdout.decode("utf-8", errors="replace"),
        )

    async def list_backups(self) -> list[BackupFile]:
        result = await self.run("list")
        if not result.ok:
            logger.error("Backup list error", output=result.output)
            raise BackupCommandError("Failed to list backups.")
        return parse_backup_list(result.output)

    async def create_backup(self) -> None:
        result = await self.run("backup")
        if not result.ok:
            logger.error("Backup error", output=result.output)
            raise BackupCommandError("Failed to create backup.")

    async def restore_backup(self, name: str) -> None:
        result = await self.run("restore", name)
        if not result.ok:
            logger.error("Failed to restore backup", backup=name, output=result.output)
            raise BackupCommandError("Failed to restore backup.")

    async def download_backup(self, name: str) -> bytes:
        """Fetch an archive through a temp file and return its content."""
        staging = self._staging_path("download")
        try:
            result = await self.run("download", name, str(staging))
            if not result.ok:
                logger.error("Failed to download backup", backup=name, output=result.output)
                raise BackupCommandError("Failed to download backup.")
            try:
                return await asyncio.to_thread(staging.read_bytes)
            except OSError as exc:
                logger.error("Downloaded backup is unreadable", backup=name, error=str(exc))
                raise BackupCommandError("Failed to download backup.") from exc
        finally:
            _remove_quietly(staging)

    async def upload_backup(self, content: bytes) -> None:
        """Hand an archive to the tool through a temp file."""
        staging = self._staging_path("upload")
        try:
            await asyncio.to_thread(staging.write_bytes, content)
            result = await self.run("upload", str(staging))
            if not result.ok:
                logger.error("Failed to upload backup", output=result.output)
                raise BackupCommandError("Failed to upload backup.")
        finally:
            _remove_quietly(staging)

    async def check_login(self, username: str, password: str) -> CommandResult:
        return await self.run(
            "check-login",
            "--user",
            username,
            "--password",
            password,
            timeout=self.login_timeout_seconds,
        )

    def _staging_path(self, prefix: str) -> Path:
        return Path(self.temp_dir) / f"{prefix}_{secrets.token_hex(8)}"


def _remove_quietly(path: Path) -> None:
    try:
        os.unlink(path)
    except FileNotFoundError:
        pass
    except OSError as exc:
        logger.warning("Could not remove staging file", path=str(path), error=str(exc))
