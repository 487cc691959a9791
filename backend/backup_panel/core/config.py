"""Application configuration loaded from environment variables.

Settings for the session secret, cookie policy, backup tool invocation and
the discriminated database configuration. Uses pydantic-settings for
validation and .env file support.

Database credentials are resolved dynamically: DB_TYPE selects a prefix
and the connection values come from ``<DB_TYPE>_HOST``, ``<DB_TYPE>_PORT``,
``<DB_TYPE>_DATABASE``, ``<DB_TYPE>_USER`` and ``<DB_TYPE>_PASSWORD``,
read from the .env file and the process environment.
"""

import os
from collections.abc import Mapping
from dataclasses import dataclass
from typing import Literal

from dotenv import dotenv_values
from pydantic import PrivateAttr, SecretStr, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

# Minimum length for SERVICE_USER_ADMIN in production (256 bits = 32 bytes)
_MIN_SESSION_SECRET_LENGTH = 32

DATABASE_CONFIG_KEYS = ("HOST", "PORT", "DATABASE", "USER", "PASSWORD")


@dataclass(frozen=True)
class DatabaseCredentials:
    """Connection parameters for the database the backup tool manages.

    Attributes:
        db_type: Upper-cased discriminator (e.g. "POSTGRES").
        host: Database host.
        port: Database port (kept as a string, passed through untouched).
        database: Database name.
        user: Database user.
        password: Database password. Also the magic-link key material.
    """

    db_type: str
    host: str
    port: str
    database: str
    user: str
    password: str


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Application
    app_title: str = "Backup Panel"
    environment: str = "development"
    log_level: str = "INFO"

    # Database discriminator: selects which <DB_TYPE>_* variables are used
    db_type: str = ""

    # Session signing secret, distinct from the database password
    service_user_admin: SecretStr = SecretStr("")
    auth_issuer: str = "backup-panel"
    auth_cookie_name: str = "auth"
    auth_cookie_secure: bool = True
    auth_cookie_samesite: Literal["lax", "strict", "none"] = "strict"

    # Backup tool
    backup_command: str = "backup"
    backup_command_timeout_seconds: float = 600.0
    # check-login runs under the login attempt lock; keep it short
    backup_login_timeout_seconds: float = 30.0
    max_upload_size_mb: int = 100

    # Rate Limiting (Security)
    # Applies to the public magic-link generation endpoint only; login
    # attempts are governed by the login throttle.
    rate_limit_enabled: bool = True
    rate_limit_generate_token: str = "10/minute"

    # .env file this instance was loaded from; None when loading skipped it
    _env_file_path: str | None = PrivateAttr(default=None)

    def __init__(self, **values) -> None:
        super().__init__(**values)
        if "_env_file" in values:
            env_file = values["_env_file"]
        else:
            env_file = self.model_config.get("env_file")
        self._env_file_path = str(env_file) if env_file else None

    def database_environment(self) -> dict[str, str]:
        """Variables visible to the DB_TYPE lookup.

        The .env file is read first and the process environment overrides
        it, the same precedence pydantic-settings applies to fields.
        """
        env: dict[str, str] = {}
        if self._env_file_path:
            env.update(
                (key.upper(), value)
                for key, value in dotenv_values(self._env_file_path).items()
                if value is not None
            )
        env.update(os.environ)
        return env

    def database_credentials(
        self, environ: Mapping[str, str] | None = None
    ) -> DatabaseCredentials | None:
        """Resolve the database configuration selected by DB_TYPE.

        Args:
            environ: Variables to read from. Defaults to
                database_environment() (.env overlaid by the process env).

        Returns:
            DatabaseCredentials, or None if DB_TYPE is unset or any of the
            selected variables is missing or empty.
        """
        db_type = self.db_type.strip().upper()
        if not db_type:
            return None

        env = self.database_environment() if environ is None else environ
        values = {key: env.get(f"{db_type}_{key}", "") for key in DATABASE_CONFIG_KEYS}
        if not all(values.values()):
            return None

        return DatabaseCredentials(
            db_type=db_type,
            host=values["HOST"],
            port=values["PORT"],
            database=values["DATABASE"],
            user=values["USER"],
            password=values["PASSWORD"],
        )

    def database_password(self, environ: Mapping[str, str] | None = None) -> str:
        """Return ``<DB_TYPE>_PASSWORD`` alone, or an empty string.

        The magic-link codec only needs the password, so it does not require
        the rest of the database configuration to be present.
        """
        db_type = self.db_type.strip().upper()
        if not db_type:
            return ""
        env = self.database_environment() if environ is None else environ
        return env.get(f"{db_type}_PASSWORD", "")

    @model_validator(mode="after")
    def check_production_security(self) -> "Settings":
        """Validate security requirements.

        Checks:
        - SameSite=None requires Secure flag (browser requirement)
        - SERVICE_USER_ADMIN must be set and >= 32 chars in production
        - Upload size limit must be positive
        """
        if self.auth_cookie_samesite == "none" and not self.auth_cookie_secure:
            msg = (
                "AUTH_COOKIE_SECURE must be true when AUTH_COOKIE_SAMESITE=none. "
                "Browsers reject SameSite=None cookies without the Secure flag."
            )
            raise ValueError(msg)

        if self.max_upload_size_mb <= 0:
            msg = f"MAX_UPLOAD_SIZE_MB must be positive. Got: {self.max_upload_size_mb}"
            raise ValueError(msg)

        if self.environment == "production":
            secret_value = self.service_user_admin.get_secret_value()
            if not secret_value:
                msg = (
                    "SERVICE_USER_ADMIN must be set in production. "
                    'Generate with: python -c "import secrets; '
                    'print(secrets.token_hex(32))"'
                )
                raise ValueError(msg)
            if len(secret_value) < _MIN_SESSION_SECRET_LENGTH:
                msg = (
                    f"SERVICE_USER_ADMIN must be at least {_MIN_SESSION_SECRET_LENGTH} "
                    "characters for adequate security."
                )
                raise ValueError(msg)

        return self


settings = Settings()
