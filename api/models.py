"""
API request and response models for TaskHub REST endpoints.

These Pydantic v2 models define the HTTP transport contract. They are
intentionally separate from the dataclasses in auth/models.py,
tasks/models.py and audit/models.py, which own the internal domain
representation. Route handlers map between the two with the from_domain()
factory methods below.

Separation of concerns: domain dataclasses = domain truth; api/ models = API contract.
"""

from __future__ import annotations

from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from audit.models import AuditLogEntry
from auth.models import Role, TokenPair, User
from tasks.models import Task

# ---------------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------------

# Deliberately loose: one "@" with text on both sides and a dot in the domain.
# Deliverability is the notification collaborator's problem.
EMAIL_PATTERN = r"^[^@\s]+@[^@\s]+\.[^@\s]+$"

# bcrypt refuses input longer than 72 bytes.
MAX_PASSWORD_BYTES = 72


# ---------------------------------------------------------------------------
# Errors and health
# ---------------------------------------------------------------------------


class ErrorDetail(BaseModel):
    """Machine-readable error payload."""

    model_config = ConfigDict(frozen=True)

    code: str
    message: str
    detail: Optional[str] = None


class ErrorResponse(BaseModel):
    """Top-level error envelope returned on 4xx/5xx responses."""

    model_config = ConfigDict(frozen=True)

    error: ErrorDetail


class HealthResponse(BaseModel):
    """Response for GET /api/v1/health."""

    model_config = ConfigDict(frozen=True)

    status: str = "healthy"
    version: str
    components: dict[str, str] = Field(default_factory=dict)


# ---------------------------------------------------------------------------
# Auth -- requests
# ---------------------------------------------------------------------------


class RegisterRequest(BaseModel):
    """Request body for POST /api/v1/auth/register.

    The password is taken byte-for-byte as sent, the same way LoginRequest
    reads it, so only the other fields are stripped.
    """

    email: str = Field(pattern=EMAIL_PATTERN, max_length=255)
    password: str = Field(min_length=8, max_length=64)
    first_name: str = Field(min_length=1, max_length=100)
    last_name: str = Field(min_length=1, max_length=100)
    organization_name: str = Field(min_length=1, max_length=255)

    @field_validator("email", "first_name", "last_name", "organization_name", mode="before")
    @classmethod
    def strip_text(cls, value: Any) -> Any:
        return value.strip() if isinstance(value, str) else value

    @field_validator("password")
    @classmethod
    def password_fits_bcrypt(cls, value: str) -> str:
        """Reject passwords over bcrypt's 72-byte input limit.

        max_length counts characters; a 64-character password of multibyte
        characters can exceed 72 bytes and bcrypt refuses to hash it.
        """
        if len(value.encode("utf-8")) > MAX_PASSWORD_BYTES:
            raise ValueError(f"Password must be at most {MAX_PASSWORD_BYTES} bytes when UTF-8 encoded.")
        return value


class LoginRequest(BaseModel):
    """Request body for POST /api/v1/auth/login."""

    email: str = Field(max_length=255)
    password: str = Field(max_length=64)


class RefreshRequest(BaseModel):
    """Request body for POST /api/v1/auth/refresh."""

    refresh_token: str = Field(min_length=1, max_length=4096)


# ---------------------------------------------------------------------------
# Users
# ---------------------------------------------------------------------------


class UserResponse(BaseModel):
    """Public view of a user. The password hash and refresh reference never appear."""

    model_config = ConfigDict(frozen=True)

    id: str
    email: str
    first_name: str
    last_name: str
    role: Role
    organization_id: str
    organization_name: Optional[str] = None
    is_active: bool = True
    created_at: str = ""

    @classmethod
    def from_domain(cls, user: User) -> "UserResponse":
        return cls(
            id=user.id,
            email=user.email,
            first_name=user.first_name,
            last_name=user.last_name,
            role=user.role,
            organization_id=user.organization_id,
            organization_name=user.organization.name if user.organization else None,
            is_active=user.is_active,
            created_at=user.created_at or "",
        )


class AuthResponse(BaseModel):
    """Response for register, login and refresh."""

    model_config = ConfigDict(frozen=True)

    access_token: str
    refresh_token: str
    token_type: str = "bearer"
    expires_in: int
    user: UserResponse

    @classmethod
    def build(cls, pair: TokenPair, user: User, expires_in: int) -> "AuthResponse":
        return cls(
            access_token=pair.access_token,
            refresh_token=pair.refresh_token,
            token_type=pair.token_type,
            expires_in=expires_in,
            user=UserResponse.from_domain(user),
        )


class AddUserRequest(BaseModel):
    """Request body for POST /api/v1/users."""

    model_config = ConfigDict(str_strip_whitespace=True)

    email: str = Field(pattern=EMAIL_PATTERN, max_length=255)
    first_name: str = Field(min_length=1, max_length=100)
    last_name: str = Field(min_length=1, max_length=100)
    role: Role = Role.MEMBER


class AddUserResponse(BaseModel):
    """The temporary password appears in this response and nowhere else, ever."""

    model_config = ConfigDict(frozen=True)

    user: UserResponse
    temp_password: str


class UserPatch(BaseModel):
    """Request body for PATCH /api/v1/users/{id}."""

    role: Optional[Role] = None
    is_active: Optional[bool] = None


# ---------------------------------------------------------------------------
# Tasks
# ---------------------------------------------------------------------------


class TaskCreate(BaseModel):
    """Request body for POST /api/v1/tasks."""

    model_config = ConfigDict(str_strip_whitespace=True)

    title: str = Field(min_length=1, max_length=255)
    description: Optional[str] = Field(default=None, max_length=5000)
    assignee_id: Optional[str] = Field(default=None, max_length=36)


class TaskPatch(BaseModel):
    """Request body for PATCH /api/v1/tasks/{id}.

    Route handlers dump this with exclude_unset=True: a field missing from the
    JSON body is left alone, a field sent as null is cleared.
    """

    model_config = ConfigDict(str_strip_whitespace=True)

    title: Optional[str] = Field(default=None, min_length=1, max_length=255)
    description: Optional[str] = Field(default=None, max_length=5000)
    assignee_id: Optional[str] = Field(default=None, max_length=36)
    completed: Optional[bool] = None


class TaskResponse(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str
    title: str
    description: Optional[str]
    completed: bool
    created_by_id: str
    created_by_name: str
    assignee_id: Optional[str]
    assignee_name: Optional[str]
    organization_id: str
    created_at: str
    updated_at: str

    @classmethod
    def from_domain(cls, task: Task) -> "TaskResponse":
        return cls(
            id=task.id,
            title=task.title,
            description=task.description,
            completed=task.completed,
            created_by_id=task.created_by_id,
            created_by_name=task.created_by_name,
            assignee_id=task.assignee_id,
            assignee_name=task.assignee_name,
            organization_id=task.organization_id,
            created_at=task.created_at,
            updated_at=task.updated_at,
        )


# ---------------------------------------------------------------------------
# Audit log
# ---------------------------------------------------------------------------


class AuditLogResponse(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: int
    action: str
    entity_type: str
    entity_id: str
    user_id: str
    organization_id: str
    metadata: dict[str, Any]
    created_at: str

    @classmethod
    def from_domain(cls, entry: AuditLogEntry) -> "AuditLogResponse":
        return cls(
            id=entry.id,
            action=entry.action.value,
            entity_type=entry.entity_type,
            entity_id=entry.entity_id,
            user_id=entry.user_id,
            organization_id=entry.organization_id,
            metadata=entry.metadata,
            created_at=entry.created_at,
        )
