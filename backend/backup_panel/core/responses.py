"""Response envelope models.

Success responses are flat objects (``{"message": ...}``,
``{"files": [...]}``). Field names that existing clients read in
camelCase carry a serialization alias. Errors use
``{"error": message, "code": code}`` so browser code can show
``body.error`` directly.
"""

from pydantic import BaseModel, Field


class MessageResponse(BaseModel):
    """Acknowledgement for actions that return no data."""

    message: str


class BackupFileSchema(BaseModel):
    """One archive as listed by the backup tool.

    Attributes:
        name: Archive file name.
        date: Timestamp as printed by the tool.
        size: Size in bytes.
        size_human: Size formatted for display (e.g., "1.1 MB"). Serialized
            as ``sizeHuman``, the key existing panel clients read.
    """

    name: str
    date: str
    size: int
    size_human: str = Field(serialization_alias="sizeHuman")


class BackupListResponse(BaseModel):
    """Response for GET /api/list."""

    files: list[BackupFileSchema]


class MagicLinkResponse(BaseModel):
    """Response for POST /api/login/generate-token.

    ``login_url`` is serialized as ``loginUrl`` for existing scripts.
    """

    token: str
    login_url: str = Field(serialization_alias="loginUrl")


class ErrorResponse(BaseModel):
    """Standard error response envelope.

    Attributes:
        error: Human-readable error message.
        code: Machine-readable error code (e.g., "UNAUTHORIZED").
        details: Optional list of field-level errors (for validation).
        retry_after_seconds: Present on 429 responses only.
    """

    error: str
    code: str
    details: list[dict] | None = None
    retry_after_seconds: int | None = None
