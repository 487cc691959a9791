"""Shared fixtures for the backup panel test suite.

Every test runs against a fresh app built by create_app() with:
- a known session secret and database configuration
- a mocked BackupTool (no subprocesses)
- a LoginThrottle driven by a fake clock (no sleeping)
"""

from collections.abc import AsyncGenerator, Iterator
from datetime import UTC, datetime, timedelta
from unittest.mock import AsyncMock, Mock

import jwt
import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from pydantic import SecretStr

from backup_panel.core.config import settings
from backup_panel.core.rate_limiting import limiter
from backup_panel.core.throttle import LoginThrottle
from backup_panel.main import create_app
from backup_panel.services.backup_tool import BackupFile, BackupTool, CommandResult

# Security: test-only secrets. Production uses real values from env.
TEST_SESSION_SECRET = "test-secret-key-that-is-at-least-32-characters-long"  # nosec B105
TEST_DB_PASSWORD = "test-db-password"  # nosec B105

TEST_USERNAME = "admin"
CORRECT_PASSWORD = "correct-horse"  # nosec B105
WRONG_PASSWORD = "wrong-password"  # nosec B105

SAMPLE_BACKUPS = [
    BackupFile(
        name="backup-2025-07-08_12-00-00.sql.gz",
        date="2025-07-08 12:00:01",
        size=1205302,
    ),
    BackupFile(
        name="backup-2025-07-09_12-00-00.sql.gz",
        date="2025-07-09 12:00:02",
        size=512,
    ),
]


class FakeClock:
    """Monotonic clock the tests advance by hand."""

    def __init__(self, start: float = 1_000.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


def create_test_session(
    username: str = TEST_USERNAME,
    *,
    secret: str = TEST_SESSION_SECRET,
    expires_delta: timedelta = timedelta(hours=1),
    issuer: str = "backup-panel",
    audience: str = "backup-panel",
) -> str:
    """Create a signed session JWT for test authentication."""
    now = datetime.now(UTC)
    payload = {
        "sub": username,
        "aud": audience,
        "iss": issuer,
        "iat": now,
        "exp": now + expires_delta,
    }
    return jwt.encode(payload, secret, algorithm="HS256")


@pytest.fixture(autouse=True)
def configured_settings(monkeypatch: pytest.MonkeyPatch) -> Iterator[None]:
    """Known secrets and a complete POSTGRES configuration for every test."""
    monkeypatch.setattr(settings, "service_user_admin", SecretStr(TEST_SESSION_SECRET))
    monkeypatch.setattr(settings, "db_type", "postgres")
    monkeypatch.setattr(settings, "auth_cookie_secure", True)
    monkeypatch.setattr(settings, "auth_cookie_samesite", "strict")
    monkeypatch.setenv("POSTGRES_HOST", "localhost")
    monkeypatch.setenv("POSTGRES_PORT", "5432")
    monkeypatch.setenv("POSTGRES_DATABASE", "app")
    monkeypatch.setenv("POSTGRES_USER", "app")
    monkeypatch.setenv("POSTGRES_PASSWORD", TEST_DB_PASSWORD)
    limiter.reset()
    yield
    limiter.reset()


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def throttle(clock: FakeClock) -> LoginThrottle:
    return LoginThrottle(clock=clock)


@pytest.fixture
def mock_backup_tool() -> Mock:
    """BackupTool double: check-login accepts only CORRECT_PASSWORD."""
    tool = Mock(spec=BackupTool)

    async def check_login(username: str, password: str) -> CommandResult:
        if username == TEST_USERNAME and password == CORRECT_PASSWORD:
            return CommandResult(returncode=0, output="ok")
        return CommandResult(returncode=1, output="FATAL: password authentication failed")

    tool.check_login = AsyncMock(side_effect=check_login)
    tool.list_backups = AsyncMock(return_value=list(SAMPLE_BACKUPS))
    tool.create_backup = AsyncMock(return_value=None)
    tool.restore_backup = AsyncMock(return_value=None)
    tool.download_backup = AsyncMock(return_value=b"\x1f\x8bbackup-bytes")
    tool.upload_backup = AsyncMock(return_value=None)
    return tool


@pytest.fixture
def app(mock_backup_tool: Mock, throttle: LoginThrottle):
    """Fresh application wired to the mock tool and fake-clock throttle."""
    return create_app(backup_tool=mock_backup_tool, throttle=throttle)


@pytest_asyncio.fixture
async def client(app) -> AsyncGenerator[AsyncClient, None]:
    """Unauthenticated client. HTTPS base URL so Secure cookies round-trip."""
    transport = ASGITransport(app=app)
    async with AsyncClient(
        transport=transport,
        base_url="https://test",
        follow_redirects=False,
    ) as ac:
        yield ac


@pytest_asyncio.fixture
async def auth_client(app) -> AsyncGenerator[AsyncClient, None]:
    """Client holding a valid session cookie."""
    transport = ASGITransport(app=app)
    async with AsyncClient(
        transport=transport,
        base_url="https://test",
        follow_redirects=False,
        cookies={settings.auth_cookie_name: create_test_session()},
    ) as ac:
        yield ac
