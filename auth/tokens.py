"""
auth/tokens.py -- JWT issuance/validation, password hashing, temporary credentials.

Security design decisions:
  JWT: python-jose with HS256. Access and refresh tokens are signed with
       DIFFERENT secrets and carry different lifetimes, both taken from the
       Settings object passed to TokenService. A leaked access-token secret
       cannot mint refresh tokens, and the two can be rotated independently.
       Refresh tokens additionally carry type="refresh".

       Validation raises Unauthorized with one generic message for every
       failure (expired, bad signature, malformed, wrong type) so a caller
       cannot tell which check failed.

  Sessions: start_session() stores HMAC-SHA256(refresh_secret, refresh_token)
       on the user. refresh() only accepts the token matching that reference
       and swaps it with one conditional UPDATE, so a refresh token is
       single-use even under concurrent use; replaying an old one
       fails. end_session() clears the reference (logout).

  Passwords: bcrypt directly, cost factor from Settings.bcrypt_rounds.
       verify_password() uses bcrypt.checkpw, which compares in constant time.

  Temporary passwords: secrets.choice -- a CSPRNG, never random.choice.

Layer rule: no imports from api/, tasks/, or audit/.
"""

from __future__ import annotations

import hashlib
import hmac
import logging
import secrets
import string
from datetime import datetime, timedelta, timezone
from typing import TYPE_CHECKING

import bcrypt
from jose import JWTError, jwt

from auth.models import Claims, Role, TokenPair, User
from core.config import Settings
from core.errors import Unauthorized

if TYPE_CHECKING:
    from auth.store import UserStore

logger = logging.getLogger("taskhub.auth")

_ALGORITHM = "HS256"
_ACCESS = "access"
_REFRESH = "refresh"
_INVALID_TOKEN = "Invalid or expired token."

# ---------------------------------------------------------------------------
# Password hashing (bcrypt -- direct usage, no passlib wrapper)
# ---------------------------------------------------------------------------


def hash_password(plain: str, rounds: int = 12) -> str:
    """Return a salted bcrypt hash of the given plaintext password.

    bcrypt refuses input longer than 72 bytes with ValueError. The API layer
    rejects such passwords before they get here (api.models.MAX_PASSWORD_BYTES).
    """
    return bcrypt.hashpw(plain.encode("utf-8"), bcrypt.gensalt(rounds=rounds)).decode("utf-8")


def verify_password(plain: str, hashed: str) -> bool:
    """Return True if the plaintext password matches the bcrypt hash."""
    try:
        return bcrypt.checkpw(plain.encode("utf-8"), hashed.encode("utf-8"))
    except ValueError:
        # Malformed stored hash.
        return False


# ---------------------------------------------------------------------------
# Temporary credentials
# ---------------------------------------------------------------------------

_SYMBOLS = "!@#$%^&*-_"
_TEMP_ALPHABET = string.ascii_letters + string.digits + _SYMBOLS


def generate_temporary_password(length: int = 16) -> str:
    """Return a random password with upper, lower, digit and symbol each present.

    One character from each class is drawn first, the rest from the full
    alphabet, then the result is shuffled with the same CSPRNG.
    """
    if length < 12:
        raise ValueError("Temporary passwords must be at least 12 characters.")
    chars = [
        secrets.choice(string.ascii_uppercase),
        secrets.choice(string.ascii_lowercase),
        secrets.choice(string.digits),
        secrets.choice(_SYMBOLS),
    ]
    chars.extend(secrets.choice(_TEMP_ALPHABET) for _ in range(length - len(chars)))
    secrets.SystemRandom().shuffle(chars)
    return "".join(chars)


# ---------------------------------------------------------------------------
# Token service
# ---------------------------------------------------------------------------


class TokenService:
    """Issues and validates access/refresh token pairs.

    Usage:
        tokens = TokenService(settings, user_store)
        pair = tokens.start_session(user)
        claims = tokens.validate_access(pair.access_token)
        pair = tokens.refresh(pair.refresh_token)
    """

    def __init__(self, settings: Settings, user_store: UserStore | None = None) -> None:
        self._access_secret = settings.secret_key
        self._refresh_secret = settings.refresh_secret_key
        self._access_ttl = settings.access_token_expire_seconds
        self._refresh_ttl = settings.refresh_token_expire_seconds
        self._user_store = user_store

    # ------------------------------------------------------------------
    # Issue
    # ------------------------------------------------------------------

    def issue(self, user: User) -> TokenPair:
        """Sign a fresh access/refresh pair from the user's current claims. No side effects."""
        now = datetime.now(timezone.utc)
        base = {
            "sub": user.id,
            "email": user.email,
            "org_id": user.organization_id,
            "role": Role(user.role).value,
            "iat": now,
        }
        access_payload = {
            **base,
            "exp": now + timedelta(seconds=self._access_ttl),
            "jti": secrets.token_hex(8),
        }
        refresh_payload = {
            **base,
            "type": _REFRESH,
            "exp": now + timedelta(seconds=self._refresh_ttl),
            "jti": secrets.token_hex(8),
        }
        return TokenPair(
            access_token=jwt.encode(access_payload, self._access_secret, algorithm=_ALGORITHM),
            refresh_token=jwt.encode(refresh_payload, self._refresh_secret, algorithm=_ALGORITHM),
        )

    # ------------------------------------------------------------------
    # Validate
    # ------------------------------------------------------------------

    def validate_access(self, token: str) -> Claims:
        """Return the claims of a valid access token; raise Unauthorized otherwise.

        A refresh token presented here fails twice over: wrong secret, and
        the type check below.
        """
        payload = self._decode(token, self._access_secret)
        if payload.get("type", _ACCESS) != _ACCESS:
            raise Unauthorized(_INVALID_TOKEN)
        return _payload_to_claims(payload, _ACCESS)

    def validate_refresh(self, token: str) -> Claims:
        """Return the claims of a valid refresh token; raise Unauthorized otherwise."""
        payload = self._decode(token, self._refresh_secret)
        if payload.get("type") != _REFRESH:
            raise Unauthorized(_INVALID_TOKEN)
        return _payload_to_claims(payload, _REFRESH)

    def _decode(self, token: str, secret: str) -> dict:
        try:
            return jwt.decode(token, secret, algorithms=[_ALGORITHM])
        except JWTError as exc:
            logger.debug("Token rejected: %s", exc)
            raise Unauthorized(_INVALID_TOKEN) from exc

    # ------------------------------------------------------------------
    # Sessions
    # ------------------------------------------------------------------

    def start_session(self, user: User) -> TokenPair:
        """Issue a pair and record the refresh token as the user's live session."""
        pair = self.issue(user)
        self._store().set_refresh_token_hash(user.id, self._fingerprint(pair.refresh_token))
        return pair

    def refresh(self, refresh_token: str) -> TokenPair:
        """Exchange a refresh token for a new pair. See refresh_session()."""
        _user, pair = self.refresh_session(refresh_token)
        return pair

    def refresh_session(self, refresh_token: str) -> tuple[User, TokenPair]:
        """Exchange a refresh token for a new pair and return the re-read user with it.

        Re-reads the user instead of trusting the embedded claims, so a role
        change or deactivation since issuance takes effect here. The presented
        token must match the stored session reference; the new refresh token
        replaces it.
        """
        claims = self.validate_refresh(refresh_token)
        store = self._store()
        user = store.get_by_id(claims.subject_id)
        if user is None or not user.is_active:
            raise Unauthorized(_INVALID_TOKEN)
        if user.organization_id != claims.organization_id:
            raise Unauthorized(_INVALID_TOKEN)
        if user.refresh_token_hash is None or not hmac.compare_digest(
            user.refresh_token_hash, self._fingerprint(refresh_token)
        ):
            logger.warning("Refresh token reuse or revoked session for user %s", user.id)
            raise Unauthorized(_INVALID_TOKEN)
        pair = self.issue(user)
        if not store.swap_refresh_token_hash(user.id, user.refresh_token_hash, self._fingerprint(pair.refresh_token)):
            # Another refresh with the same token won between the read and here.
            logger.warning("Concurrent refresh token reuse for user %s", user.id)
            raise Unauthorized(_INVALID_TOKEN)
        if user.role != claims.role:
            logger.info("Role for user %s changed from %s to %s since last refresh", user.id, claims.role.value, user.role.value)
        return user, pair

    def end_session(self, user_id: str) -> None:
        """Revoke the user's live refresh token."""
        self._store().set_refresh_token_hash(user_id, None)

    def _fingerprint(self, refresh_token: str) -> str:
        return hmac.new(self._refresh_secret.encode(), refresh_token.encode(), hashlib.sha256).hexdigest()

    def _store(self) -> UserStore:
        if self._user_store is None:
            raise RuntimeError("TokenService was built without a UserStore; sessions are unavailable.")
        return self._user_store


def _payload_to_claims(payload: dict, token_type: str) -> Claims:
    try:
        return Claims(
            subject_id=str(payload["sub"]),
            email=str(payload["email"]),
            organization_id=str(payload["org_id"]),
            role=Role(payload["role"]),
            token_type=token_type,
            expires_at=int(payload["exp"]),
        )
    except (KeyError, ValueError, TypeError) as exc:
        raise Unauthorized(_INVALID_TOKEN) from exc
