"""
auth/models.py -- Domain dataclasses for identity and tenancy entities.

Pattern: Data class (pure data containers). Stores and services do the work;
the only behaviour here is the Role ordering, which is part of the data's
meaning rather than business logic.

Layer rule: no imports from api/, tasks/, or audit/.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum


class Role(str, Enum):
    """Closed set of organization roles with a total privilege order.

    OWNER > ADMIN > MEMBER. Privilege checks compare ranks
    (actor.role >= Role.ADMIN) instead of chaining equality tests, so a new
    member of this enum cannot slip past a check by being unlisted.

    The comparison operators are defined explicitly because the str mixin
    would otherwise compare role names alphabetically.
    """

    OWNER = "OWNER"
    ADMIN = "ADMIN"
    MEMBER = "MEMBER"

    @property
    def rank(self) -> int:
        return _ROLE_RANK[self]

    def __lt__(self, other):
        if not isinstance(other, Role):
            return NotImplemented
        return self.rank < other.rank

    def __le__(self, other):
        if not isinstance(other, Role):
            return NotImplemented
        return self.rank <= other.rank

    def __gt__(self, other):
        if not isinstance(other, Role):
            return NotImplemented
        return self.rank > other.rank

    def __ge__(self, other):
        if not isinstance(other, Role):
            return NotImplemented
        return self.rank >= other.rank


_ROLE_RANK: dict[Role, int] = {
    Role.MEMBER: 1,
    Role.ADMIN: 2,
    Role.OWNER: 3,
}


@dataclass
class Organization:
    """Tenant root. Owns every User, Task and audit entry inside it."""

    name: str
    id: str | None = None
    created_at: str | None = None


@dataclass
class User:
    """A member of exactly one Organization.

    organization_id never changes after creation. hashed_password is a bcrypt
    hash and is never serialized out of the core. refresh_token_hash is the
    HMAC of the most recently issued refresh token (None = no live session).

    organization is populated by lookups that join the organizations table
    (verify_credentials, refresh) and left None elsewhere.
    """

    email: str
    first_name: str
    last_name: str
    role: Role
    organization_id: str
    hashed_password: str = ""
    id: str | None = None
    refresh_token_hash: str | None = None
    is_active: bool = True
    created_at: str | None = None
    updated_at: str | None = None
    organization: Organization | None = None

    @property
    def full_name(self) -> str:
        return f"{self.first_name} {self.last_name}"


@dataclass(frozen=True)
class Claims:
    """Identity and tenancy claims carried by a validated token."""

    subject_id: str
    email: str
    organization_id: str
    role: Role
    token_type: str  # "access" | "refresh"
    expires_at: int  # unix timestamp


@dataclass(frozen=True)
class TokenPair:
    access_token: str
    refresh_token: str
    token_type: str = "bearer"


@dataclass(frozen=True)
class Actor:
    """The authenticated identity performing an operation.

    Built from access-token claims by the transport layer, or from a User
    record in tests and internal callers.
    """

    id: str
    organization_id: str
    role: Role

    @classmethod
    def from_claims(cls, claims: Claims) -> Actor:
        return cls(id=claims.subject_id, organization_id=claims.organization_id, role=claims.role)

    @classmethod
    def from_user(cls, user: User) -> Actor:
        return cls(id=user.id, organization_id=user.organization_id, role=user.role)
