"""
auth/identity.py -- Registration, credential verification and user management.

IdentityService is the only writer of users and organizations. It combines
UserStore (persistence), the AuthorizationEngine (who may add/modify whom),
the AuditTrail (what happened) and a Notifier (how temporary credentials
leave the system).

Security:
  [C1] verify_credentials() always runs one bcrypt comparison, against a
       dummy hash when the email is unknown, and raises the same Unauthorized
       for unknown email, wrong password and inactive account. Neither the
       message nor the timing says which it was.

  [C2] Duplicate email / organization name is checked up front for a clear
       error, but the database UNIQUE constraint is what actually decides.
       Two concurrent registrations both pass the pre-check; one insert
       fails with IntegrityError, which becomes Conflict here.

  [C3] Temporary passwords are shown once (return value) and handed to the
       Notifier. Only the bcrypt hash is stored. Nothing logs the plaintext.

  [C4] The last active OWNER of an organization cannot be demoted,
       deactivated or removed.

Layer rule: no imports from api/ or tasks/.
"""

from __future__ import annotations

import logging
from typing import Protocol

from sqlalchemy.exc import IntegrityError

from audit.models import AuditAction
from audit.store import AuditTrail
from auth.models import Actor, Organization, Role, User
from auth.policy import Action, AuthorizationEngine
from auth.store import UserStore
from auth.tokens import generate_temporary_password, hash_password, verify_password
from core.config import Settings
from core.errors import Conflict, Forbidden, NotFound, Unauthorized

logger = logging.getLogger("taskhub.auth")

_BAD_CREDENTIALS = "Invalid email or password."


class Notifier(Protocol):
    """Out-of-band delivery of a new user's temporary credential."""

    def send_temporary_password(self, email: str, temporary_password: str) -> None: ...


class LoggingNotifier:
    """Default Notifier: records that a credential was issued, never the credential."""

    def send_temporary_password(self, email: str, temporary_password: str) -> None:
        logger.info("Temporary credential issued for %s; awaiting out-of-band delivery", email)


def normalize_email(email: str) -> str:
    return email.strip().lower()


class IdentityService:
    """Organizations, users and credentials.

    Usage:
        identity = IdentityService(settings, user_store, engine, audit_trail)
        owner, org = identity.register_organization_owner("alice@acme.test", "pw", "Alice", "A", "Acme")
        user = identity.verify_credentials("alice@acme.test", "pw")
        bob, temp_pw = identity.add_user_to_organization("bob@acme.test", "Bob", "B", Role.ADMIN, owner_actor)
    """

    def __init__(
        self,
        settings: Settings,
        store: UserStore,
        engine: AuthorizationEngine,
        audit: AuditTrail,
        notifier: Notifier | None = None,
    ) -> None:
        self.store = store
        self.engine = engine
        self.audit = audit
        self.notifier = notifier or LoggingNotifier()
        self._rounds = settings.bcrypt_rounds
        self._temp_password_length = settings.temp_password_length
        # Timing equalization [C1]. Same cost factor as real hashes.
        self._dummy_hash = hash_password("taskhub_timing_dummy", rounds=self._rounds)

    # ------------------------------------------------------------------
    # Registration and login
    # ------------------------------------------------------------------

    def register_organization_owner(
        self,
        email: str,
        password: str,
        first_name: str,
        last_name: str,
        organization_name: str,
    ) -> tuple[User, Organization]:
        """Create a new organization and its OWNER atomically."""
        email = normalize_email(email)
        organization_name = organization_name.strip()
        if self.store.email_exists(email):
            raise Conflict("Email already registered.")
        if self.store.organization_name_exists(organization_name):
            raise Conflict("Organization name already taken.")

        owner = User(
            email=email,
            first_name=first_name,
            last_name=last_name,
            role=Role.OWNER,
            organization_id="",
            hashed_password=hash_password(password, rounds=self._rounds),
        )
        try:
            user, organization = self.store.create_organization_with_owner(Organization(name=organization_name), owner)
        except IntegrityError as exc:  # [C2]
            raise Conflict("Email or organization name already registered.") from exc

        logger.info("Organization %s registered by %s", organization.id, user.id)
        self.audit.record(
            AuditAction.REGISTER_ORGANIZATION,
            "Organization",
            organization.id,
            user.id,
            organization.id,
            {"name": organization.name},
        )
        return user, organization

    def verify_credentials(self, email: str, password: str) -> User:
        """Return the user (with organization attached) or raise Unauthorized [C1]."""
        user = self.store.get_by_email(normalize_email(email))
        if user is None:
            # Equalize timing -- do NOT return early before running bcrypt.
            verify_password(password, self._dummy_hash)
            raise Unauthorized(_BAD_CREDENTIALS)
        if not verify_password(password, user.hashed_password):
            raise Unauthorized(_BAD_CREDENTIALS)
        if not user.is_active:
            raise Unauthorized(_BAD_CREDENTIALS)
        return user

    # ------------------------------------------------------------------
    # User management
    # ------------------------------------------------------------------

    def add_user_to_organization(
        self,
        email: str,
        first_name: str,
        last_name: str,
        role: Role,
        actor: Actor,
    ) -> tuple[User, str]:
        """Create a user in actor's organization with a temporary password.

        Returns (user, temporary_password). The password is not retrievable
        again after this call [C3].
        """
        role = Role(role)
        self.engine.authorize(actor, Action.ADD_USER, requested_role=role)
        email = normalize_email(email)
        if self.store.email_exists(email):
            raise Conflict("User with this email already exists.")

        temporary_password = generate_temporary_password(self._temp_password_length)
        try:
            user = self.store.create_user(
                User(
                    email=email,
                    first_name=first_name,
                    last_name=last_name,
                    role=role,
                    organization_id=actor.organization_id,
                    hashed_password=hash_password(temporary_password, rounds=self._rounds),
                )
            )
        except IntegrityError as exc:  # [C2]
            raise Conflict("User with this email already exists.") from exc

        logger.info("User %s (%s) added to org %s by %s", user.id, role.value, actor.organization_id, actor.id)
        self.audit.record(
            AuditAction.ADD_USER,
            "User",
            user.id,
            actor.id,
            actor.organization_id,
            {"email": user.email, "role": role.value},
        )
        self.notifier.send_temporary_password(user.email, temporary_password)
        return user, temporary_password

    def list_users(self, actor: Actor) -> list[User]:
        """Membership directory of actor's organization."""
        self.engine.authorize(actor, Action.LIST_USERS)
        return self.store.list_users(actor.organization_id)

    def get_user(self, actor: Actor, user_id: str) -> User:
        target = self.store.get_in_organization(user_id, actor.organization_id)
        self.engine.authorize(actor, Action.READ_USER, target)
        return target

    def update_user(
        self,
        actor: Actor,
        user_id: str,
        role: Role | None = None,
        is_active: bool | None = None,
    ) -> User:
        """Change a user's role and/or active flag.

        The new role takes effect in tokens at the user's next refresh.
        Deactivation also revokes the user's refresh token.
        """
        role = Role(role) if role is not None else None
        target = self.store.get_in_organization(user_id, actor.organization_id)
        deactivating = is_active is False
        self.engine.authorize(
            actor,
            Action.UPDATE_USER,
            target,
            requested_role=role,
            deactivating=deactivating,
        )

        losing_owner = target.role is Role.OWNER and ((role is not None and role is not Role.OWNER) or deactivating)
        if losing_owner and target.is_active and self.store.count_active_owners(actor.organization_id) <= 1:
            raise Forbidden("Cannot demote or deactivate the last owner of the organization.")  # [C4]

        updates: dict = {}
        if role is not None:
            updates["role"] = role
        if is_active is not None:
            updates["is_active"] = is_active
            if not is_active:
                updates["refresh_token_hash"] = None
        if not updates:
            return target

        self.store.update_user(target.id, actor.organization_id, **updates)
        logger.info("User %s updated by %s: %s", target.id, actor.id, sorted(updates))
        self.audit.record(
            AuditAction.UPDATE_USER,
            "User",
            target.id,
            actor.id,
            actor.organization_id,
            {
                "role": role.value if role is not None else None,
                "is_active": is_active,
            },
        )
        return self.store.get_in_organization(target.id, actor.organization_id)

    def remove_user(self, actor: Actor, user_id: str) -> None:
        """Delete a user. Their created tasks go with them; tasks assigned to them are unassigned."""
        target = self.store.get_in_organization(user_id, actor.organization_id)
        self.engine.authorize(actor, Action.REMOVE_USER, target)
        if target.role is Role.OWNER and target.is_active:
            if self.store.count_active_owners(actor.organization_id) <= 1:
                raise Forbidden("Cannot remove the last owner of the organization.")  # [C4]

        if not self.store.delete_user(target.id, actor.organization_id):
            raise NotFound("User not found.")
        logger.info("User %s removed from org %s by %s", target.id, actor.organization_id, actor.id)
        self.audit.record(
            AuditAction.REMOVE_USER,
            "User",
            target.id,
            actor.id,
            actor.organization_id,
            {"email": target.email},
        )
