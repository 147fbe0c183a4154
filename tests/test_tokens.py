"""
tests/test_tokens.py -- Unit tests for auth/tokens.py.

Coverage:
  - Access token round trip carries subject, email, organization and role
  - Expired, tampered and wrongly signed tokens raise Unauthorized
  - A refresh token is never accepted as an access token (and vice versa)
  - Refresh rotation: the old refresh token is single-use
  - A role change takes effect at the next refresh
  - Deactivation and logout revoke the refresh token
  - Password hashing and temporary password generation
"""

from __future__ import annotations

import string
from datetime import datetime, timedelta, timezone

import pytest
from jose import jwt

from auth.models import Role
from auth.tokens import (
    TokenService,
    generate_temporary_password,
    hash_password,
    verify_password,
)
from core.errors import Unauthorized
from tests.conftest import TEST_SECRET, Org, Services, make_settings


class TestAccessTokens:
    def test_round_trip(self, services: Services, acme: Org) -> None:
        pair = services.tokens.issue(acme.admin)
        claims = services.tokens.validate_access(pair.access_token)
        assert claims.subject_id == acme.admin.id
        assert claims.email == "bob@acme.test"
        assert claims.organization_id == acme.organization_id
        assert claims.role is Role.ADMIN
        assert claims.token_type == "access"
        assert pair.token_type == "bearer"

    def test_expired_token_rejected(self, services: Services, acme: Org) -> None:
        past = datetime.now(timezone.utc) - timedelta(minutes=5)
        token = jwt.encode(
            {
                "sub": acme.owner.id,
                "email": acme.owner.email,
                "org_id": acme.organization_id,
                "role": "OWNER",
                "iat": past - timedelta(minutes=15),
                "exp": past,
            },
            TEST_SECRET,
            algorithm="HS256",
        )
        with pytest.raises(Unauthorized):
            services.tokens.validate_access(token)

    def test_tampered_token_rejected(self, services: Services, acme: Org) -> None:
        token = services.tokens.issue(acme.member).access_token
        header, payload, signature = token.split(".")
        # Flip one signature character.
        flipped = ("A" if signature[0] != "A" else "B") + signature[1:]
        with pytest.raises(Unauthorized):
            services.tokens.validate_access(f"{header}.{payload}.{flipped}")

    def test_token_from_other_secret_rejected(self, services: Services, acme: Org) -> None:
        other = TokenService(make_settings(secret_key="x" * 40, refresh_secret_key="y" * 40))
        token = other.issue(acme.owner).access_token
        with pytest.raises(Unauthorized):
            services.tokens.validate_access(token)

    def test_garbage_rejected(self, services: Services) -> None:
        with pytest.raises(Unauthorized):
            services.tokens.validate_access("not-a-jwt")

    def test_missing_claims_rejected(self, services: Services) -> None:
        exp = datetime.now(timezone.utc) + timedelta(minutes=5)
        token = jwt.encode({"sub": "someone", "exp": exp}, TEST_SECRET, algorithm="HS256")
        with pytest.raises(Unauthorized):
            services.tokens.validate_access(token)

    def test_issue_has_no_side_effects(self, services: Services, acme: Org) -> None:
        services.tokens.issue(acme.owner)
        assert services.users.get_by_id(acme.owner.id).refresh_token_hash is None


class TestTokenTypes:
    def test_refresh_token_is_not_an_access_token(self, services: Services, acme: Org) -> None:
        pair = services.tokens.start_session(acme.owner)
        with pytest.raises(Unauthorized):
            services.tokens.validate_access(pair.refresh_token)

    def test_refresh_token_signed_with_access_secret_still_rejected(self, services: Services, acme: Org) -> None:
        """The type claim alone is enough to reject a refresh token on the access path."""
        exp = datetime.now(timezone.utc) + timedelta(minutes=5)
        token = jwt.encode(
            {
                "sub": acme.owner.id,
                "email": acme.owner.email,
                "org_id": acme.organization_id,
                "role": "OWNER",
                "type": "refresh",
                "exp": exp,
            },
            TEST_SECRET,
            algorithm="HS256",
        )
        with pytest.raises(Unauthorized):
            services.tokens.validate_access(token)

    def test_access_token_is_not_a_refresh_token(self, services: Services, acme: Org) -> None:
        pair = services.tokens.start_session(acme.owner)
        with pytest.raises(Unauthorized):
            services.tokens.validate_refresh(pair.access_token)

    def test_refresh_claims(self, services: Services, acme: Org) -> None:
        pair = services.tokens.start_session(acme.member)
        claims = services.tokens.validate_refresh(pair.refresh_token)
        assert claims.token_type == "refresh"
        assert claims.subject_id == acme.member.id


class TestRefreshRotation:
    def test_refresh_issues_new_pair(self, services: Services, acme: Org) -> None:
        first = services.tokens.start_session(acme.member)
        user, second = services.tokens.refresh_session(first.refresh_token)
        assert user.id == acme.member.id
        assert second.refresh_token != first.refresh_token
        assert services.tokens.validate_access(second.access_token).subject_id == acme.member.id

    def test_old_refresh_token_is_single_use(self, services: Services, acme: Org) -> None:
        first = services.tokens.start_session(acme.member)
        services.tokens.refresh(first.refresh_token)
        with pytest.raises(Unauthorized):
            services.tokens.refresh(first.refresh_token)

    def test_concurrent_refresh_with_same_token_has_one_winner(
        self, services: Services, acme: Org, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        first = services.tokens.start_session(acme.member)
        # Both callers read the user while the first token was still live.
        stale = services.users.get_by_id(acme.member.id)
        services.tokens.refresh(first.refresh_token)

        monkeypatch.setattr(services.users, "get_by_id", lambda _user_id: stale)
        with pytest.raises(Unauthorized):
            services.tokens.refresh(first.refresh_token)

    def test_swap_requires_the_expected_reference(self, services: Services, acme: Org) -> None:
        services.users.set_refresh_token_hash(acme.member.id, "current")
        assert services.users.swap_refresh_token_hash(acme.member.id, "stale", "next") is False
        assert services.users.get_by_id(acme.member.id).refresh_token_hash == "current"
        assert services.users.swap_refresh_token_hash(acme.member.id, "current", "next") is True
        assert services.users.get_by_id(acme.member.id).refresh_token_hash == "next"

    def test_role_change_takes_effect_on_refresh(self, services: Services, acme: Org) -> None:
        pair = services.tokens.start_session(acme.member)
        assert services.tokens.validate_access(pair.access_token).role is Role.MEMBER

        services.identity.update_user(acme.owner_actor, acme.member.id, role=Role.ADMIN)

        # The outstanding access token is stale until refresh.
        assert services.tokens.validate_access(pair.access_token).role is Role.MEMBER
        user, refreshed = services.tokens.refresh_session(pair.refresh_token)
        assert user.role is Role.ADMIN
        assert services.tokens.validate_access(refreshed.access_token).role is Role.ADMIN

    def test_deactivated_user_cannot_refresh(self, services: Services, acme: Org) -> None:
        pair = services.tokens.start_session(acme.member)
        services.identity.update_user(acme.owner_actor, acme.member.id, is_active=False)
        with pytest.raises(Unauthorized):
            services.tokens.refresh(pair.refresh_token)

    def test_removed_user_cannot_refresh(self, services: Services, acme: Org) -> None:
        pair = services.tokens.start_session(acme.member)
        services.identity.remove_user(acme.owner_actor, acme.member.id)
        with pytest.raises(Unauthorized):
            services.tokens.refresh(pair.refresh_token)

    def test_logout_revokes_refresh_token(self, services: Services, acme: Org) -> None:
        pair = services.tokens.start_session(acme.admin)
        services.tokens.end_session(acme.admin.id)
        with pytest.raises(Unauthorized):
            services.tokens.refresh(pair.refresh_token)

    def test_new_login_supersedes_previous_session(self, services: Services, acme: Org) -> None:
        first = services.tokens.start_session(acme.admin)
        services.tokens.start_session(acme.admin)
        with pytest.raises(Unauthorized):
            services.tokens.refresh(first.refresh_token)

    def test_sessions_need_a_store(self, acme: Org) -> None:
        tokens = TokenService(make_settings())
        with pytest.raises(RuntimeError):
            tokens.start_session(acme.owner)


class TestPasswords:
    def test_hash_and_verify(self) -> None:
        hashed = hash_password("correct horse", rounds=4)
        assert hashed != "correct horse"
        assert verify_password("correct horse", hashed)
        assert not verify_password("wrong horse", hashed)

    def test_malformed_hash_does_not_verify(self) -> None:
        assert not verify_password("anything", "not-a-bcrypt-hash")

    def test_temporary_password_character_classes(self) -> None:
        for _ in range(20):
            pw = generate_temporary_password(16)
            assert len(pw) == 16
            assert any(c in string.ascii_uppercase for c in pw)
            assert any(c in string.ascii_lowercase for c in pw)
            assert any(c in string.digits for c in pw)
            assert any(c in "!@#$%^&*-_" for c in pw)

    def test_temporary_passwords_differ(self) -> None:
        assert len({generate_temporary_password() for _ in range(10)}) == 10

    def test_temporary_password_minimum_length(self) -> None:
        with pytest.raises(ValueError):
            generate_temporary_password(8)
