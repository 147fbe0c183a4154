"""
auth/store.py -- SQLAlchemy Core persistence layer for organizations and users.

Pattern: Repository + Data Mapper (same as tasks/store.py).
UserStore is the repository; _row_to_user / _row_to_organization are the
mappers. Service and route code never touches SQL directly.

Security:
  All queries use bound parameters. No f-strings in SQL.

  Every user lookup that runs on behalf of an actor takes the organization id
  as well as the user id (get_in_organization, list_users, update_user,
  delete_user). get_by_id / get_by_email exist only for the identity layer,
  which runs before there is an actor (login, refresh).

  Uniqueness of email and organization name is left to the database UNIQUE
  constraints. Methods that insert raise sqlalchemy.exc.IntegrityError on a
  duplicate; auth/identity.py turns that into Conflict.

Layer rule: no imports from api/, tasks/, or audit/.
"""

from __future__ import annotations

import uuid

from sqlalchemy import func, select
from sqlalchemy.engine import Engine

from auth.models import Organization, Role, User
from core.database import audit_logs, now_iso, organizations, tasks, users

_user_with_org = select(
    users,
    organizations.c.name.label("organization_name"),
    organizations.c.created_at.label("organization_created_at"),
).select_from(users.join(organizations, users.c.organization_id == organizations.c.id))


class UserStore:
    """Repository for Organization and User entities.

    Usage:
        store = UserStore(engine)
        owner, org = store.create_organization_with_owner(Organization(name="Acme"), owner)
        user = store.get_by_email("alice@acme.test")
    """

    def __init__(self, engine: Engine) -> None:
        self.engine = engine

    # ------------------------------------------------------------------
    # Organizations
    # ------------------------------------------------------------------

    def create_organization_with_owner(self, organization: Organization, owner: User) -> tuple[User, Organization]:
        """Insert an organization and its first user in one transaction.

        Either both rows are written or neither is: a duplicate email on the
        user insert rolls back the organization insert as well, so no
        ownerless organization is left behind.

        Raises sqlalchemy.exc.IntegrityError on a duplicate name or email.
        """
        now = now_iso()
        org_id = str(uuid.uuid4())
        user_id = str(uuid.uuid4())
        with self.engine.begin() as conn:
            conn.execute(organizations.insert().values(id=org_id, name=organization.name, created_at=now))
            conn.execute(
                users.insert().values(
                    id=user_id,
                    organization_id=org_id,
                    email=owner.email,
                    hashed_password=owner.hashed_password,
                    first_name=owner.first_name,
                    last_name=owner.last_name,
                    role=owner.role.value,
                    is_active=owner.is_active,
                    created_at=now,
                    updated_at=now,
                )
            )
        created_org = Organization(id=org_id, name=organization.name, created_at=now)
        created_owner = User(
            id=user_id,
            organization_id=org_id,
            email=owner.email,
            hashed_password=owner.hashed_password,
            first_name=owner.first_name,
            last_name=owner.last_name,
            role=owner.role,
            is_active=owner.is_active,
            created_at=now,
            updated_at=now,
            organization=created_org,
        )
        return created_owner, created_org

    def get_organization(self, org_id: str) -> Organization | None:
        with self.engine.connect() as conn:
            row = conn.execute(organizations.select().where(organizations.c.id == org_id)).fetchone()
        return _row_to_organization(row) if row is not None else None

    def organization_name_exists(self, name: str) -> bool:
        with self.engine.connect() as conn:
            row = conn.execute(select(organizations.c.id).where(organizations.c.name == name)).fetchone()
        return row is not None

    def delete_organization(self, org_id: str) -> bool:
        """Delete an organization with every user, task and audit entry in it.

        Returns True if the organization existed.
        """
        with self.engine.begin() as conn:
            conn.execute(audit_logs.delete().where(audit_logs.c.organization_id == org_id))
            conn.execute(tasks.delete().where(tasks.c.organization_id == org_id))
            conn.execute(users.delete().where(users.c.organization_id == org_id))
            result = conn.execute(organizations.delete().where(organizations.c.id == org_id))
        return result.rowcount > 0

    # ------------------------------------------------------------------
    # Users
    # ------------------------------------------------------------------

    def create_user(self, user: User) -> User:
        """Insert a user into an existing organization and return it with its id.

        Raises sqlalchemy.exc.IntegrityError if the email already exists.
        """
        now = now_iso()
        user_id = str(uuid.uuid4())
        with self.engine.begin() as conn:
            conn.execute(
                users.insert().values(
                    id=user_id,
                    organization_id=user.organization_id,
                    email=user.email,
                    hashed_password=user.hashed_password,
                    first_name=user.first_name,
                    last_name=user.last_name,
                    role=user.role.value,
                    is_active=user.is_active,
                    created_at=now,
                    updated_at=now,
                )
            )
        return self.get_by_id(user_id)

    def email_exists(self, email: str) -> bool:
        with self.engine.connect() as conn:
            row = conn.execute(select(users.c.id).where(users.c.email == email)).fetchone()
        return row is not None

    def get_by_email(self, email: str) -> User | None:
        """Look up a user by exact email, with its organization attached."""
        with self.engine.connect() as conn:
            row = conn.execute(_user_with_org.where(users.c.email == email)).fetchone()
        return _row_to_user(row) if row is not None else None

    def get_by_id(self, user_id: str) -> User | None:
        """Look up a user by primary key, with its organization attached.

        Identity-layer use only (token refresh). Actor-facing reads go through
        get_in_organization().
        """
        with self.engine.connect() as conn:
            row = conn.execute(_user_with_org.where(users.c.id == user_id)).fetchone()
        return _row_to_user(row) if row is not None else None

    def get_in_organization(self, user_id: str, org_id: str) -> User | None:
        """Look up a user by (id, organization_id). Returns None across tenants."""
        with self.engine.connect() as conn:
            row = conn.execute(
                _user_with_org.where((users.c.id == user_id) & (users.c.organization_id == org_id))
            ).fetchone()
        return _row_to_user(row) if row is not None else None

    def list_users(self, org_id: str) -> list[User]:
        """Return the organization's users, oldest first."""
        with self.engine.connect() as conn:
            rows = conn.execute(
                _user_with_org.where(users.c.organization_id == org_id).order_by(users.c.created_at, users.c.email)
            ).fetchall()
        return [_row_to_user(r) for r in rows]

    def update_user(self, user_id: str, org_id: str, **fields) -> bool:
        """Update mutable fields on a user inside org_id.

        Accepted fields: role (Role), is_active (bool), refresh_token_hash,
        first_name, last_name, hashed_password. Returns True if a row was updated.
        """
        if "role" in fields:
            fields["role"] = Role(fields["role"]).value
        fields["updated_at"] = now_iso()
        with self.engine.begin() as conn:
            result = conn.execute(
                users.update().where((users.c.id == user_id) & (users.c.organization_id == org_id)).values(**fields)
            )
        return result.rowcount > 0

    def set_refresh_token_hash(self, user_id: str, token_hash: str | None) -> None:
        """Store (or clear, with None) the reference to the user's live refresh token."""
        with self.engine.begin() as conn:
            conn.execute(users.update().where(users.c.id == user_id).values(refresh_token_hash=token_hash))

    def swap_refresh_token_hash(self, user_id: str, expected: str, replacement: str) -> bool:
        """Replace the session reference only if it still equals expected.

        One conditional UPDATE, so of two callers presenting the same refresh
        token exactly one wins. Returns False if the reference had already
        changed (rotated, revoked, or the user deactivated).
        """
        with self.engine.begin() as conn:
            result = conn.execute(
                users.update()
                .where(
                    (users.c.id == user_id)
                    & (users.c.refresh_token_hash == expected)
                    & (users.c.is_active.is_(True))
                )
                .values(refresh_token_hash=replacement)
            )
        return result.rowcount == 1

    def count_active_owners(self, org_id: str) -> int:
        """Return the number of active OWNER users in the organization."""
        with self.engine.connect() as conn:
            result = conn.execute(
                select(func.count())
                .select_from(users)
                .where(
                    (users.c.organization_id == org_id)
                    & (users.c.role == Role.OWNER.value)
                    & (users.c.is_active.is_(True))
                )
            ).scalar()
        return result or 0

    def delete_user(self, user_id: str, org_id: str) -> bool:
        """Delete a user inside org_id, cascading to their tasks.

        Tasks the user created are deleted. Tasks assigned to the user lose
        their assignee but are kept. Audit entries written by the user stay.
        All three statements run in one transaction.

        Returns True if the user existed in the organization.
        """
        with self.engine.begin() as conn:
            exists = conn.execute(
                select(users.c.id).where((users.c.id == user_id) & (users.c.organization_id == org_id))
            ).fetchone()
            if exists is None:
                return False
            conn.execute(tasks.delete().where(tasks.c.created_by_id == user_id))
            conn.execute(
                tasks.update().where(tasks.c.assignee_id == user_id).values(assignee_id=None, updated_at=now_iso())
            )
            conn.execute(users.delete().where(users.c.id == user_id))
        return True


# ---------------------------------------------------------------------------
# Row mappers (Data Mapper pattern)
# ---------------------------------------------------------------------------


def _row_to_organization(row) -> Organization:
    return Organization(id=row.id, name=row.name, created_at=row.created_at)


def _row_to_user(row) -> User:
    organization = None
    org_name = getattr(row, "organization_name", None)
    if org_name is not None:
        organization = Organization(
            id=row.organization_id,
            name=org_name,
            created_at=row.organization_created_at,
        )
    return User(
        id=row.id,
        organization_id=row.organization_id,
        email=row.email,
        hashed_password=row.hashed_password,
        first_name=row.first_name,
        last_name=row.last_name,
        role=Role(row.role),
        refresh_token_hash=row.refresh_token_hash,
        is_active=bool(row.is_active),
        created_at=row.created_at,
        updated_at=row.updated_at,
        organization=organization,
    )
