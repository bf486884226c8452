"""
auth/tokens.py -- Password hashing and JWT access tokens.

Security design decisions:
  Passwords: bcrypt used directly (no passlib wrapper). The cost factor makes
       brute-force expensive, and every digest embeds its own salt and work
       factor, so hash_password() needs no extra storage. The _DUMMY_HASH
       constant enables timing equalization in authenticate_user() so response
       time does not reveal whether an email is registered [C1].

  JWT: python-jose with HS256. Tokens carry user_id, role, iat and exp. The
       role is the user's role at login; decode_access_token() never looks at
       storage -- re-resolving the user is the access guard's job. Verification
       returns None on any failure so callers cannot distinguish a forged token
       from an expired one.

  Secret: sourced from core.config.get_settings(), read once at module load.
       Settings refuses to start without JWT_SECRET outside DEBUG mode.

Layer rule: no imports from api/ or surveys/. Import from core/ is allowed.
"""

from __future__ import annotations

import logging
from datetime import datetime, timedelta, timezone
from typing import TYPE_CHECKING

import bcrypt
from jose import JWTError, jwt

from auth.models import InvalidRoleError, Role, TokenClaims
from core.config import get_settings

if TYPE_CHECKING:
    from auth.models import User
    from auth.store import UserStore

logger = logging.getLogger("feedback.auth")

_settings = get_settings()

_ALGORITHM = "HS256"

# bcrypt only looks at the first 72 bytes. Newer bcrypt releases raise on
# longer input instead of truncating, so truncate here to keep hashing total.
_BCRYPT_MAX_BYTES = 72


# ---------------------------------------------------------------------------
# Password hashing
# ---------------------------------------------------------------------------


def _password_bytes(plain: str | bytes) -> bytes:
    raw = plain if isinstance(plain, bytes) else plain.encode("utf-8")
    return raw[:_BCRYPT_MAX_BYTES]


def hash_password(plain: str | bytes) -> str:
    """Return a bcrypt digest of the plaintext. A fresh salt is drawn per call."""
    return bcrypt.hashpw(_password_bytes(plain), bcrypt.gensalt()).decode("utf-8")


def verify_password(plain: str | bytes, hashed: str | None) -> bool:
    """Return True if the plaintext matches the bcrypt digest.

    Never raises: a malformed, empty or None digest is simply a mismatch.
    """
    if not hashed:
        return False
    try:
        return bcrypt.checkpw(_password_bytes(plain), hashed.encode("utf-8"))
    except (ValueError, TypeError):
        return False


# Timing equalization dummy hash [C1]. Computed once at module load so the
# first login attempt is not measurably slower than later ones.
_DUMMY_HASH: str = hash_password("campus_feedback_timing_dummy")


# ---------------------------------------------------------------------------
# JWT encode / decode
# ---------------------------------------------------------------------------


def create_access_token(
    user_id: int,
    role: Role | str,
    *,
    expire_seconds: int = 0,
    secret_key: str | None = None,
    issued_at: datetime | None = None,
) -> str:
    """Encode a signed JWT binding user_id to the role held at login.

    Args:
        user_id:        Numeric user ID stored in the DB.
        role:           The user's role right now. Parsed through Role.parse,
                        so an unknown role string raises InvalidRoleError.
        expire_seconds: Token lifetime. If 0 (default), uses
                        Settings.token_expire_seconds (24 hours).
        secret_key:     Signing key override. Defaults to Settings.jwt_secret.
        issued_at:      Issuance time override. Defaults to now (UTC).
    """
    role = Role.parse(role)
    duration = expire_seconds if expire_seconds > 0 else _settings.token_expire_seconds
    iat = issued_at or datetime.now(timezone.utc)
    payload = {
        "sub": str(user_id),
        "user_id": user_id,
        "role": role.value,
        "iat": iat,
        "exp": iat + timedelta(seconds=duration),
    }
    return jwt.encode(payload, secret_key or _settings.jwt_secret, algorithm=_ALGORITHM)


def decode_access_token(token: str, *, secret_key: str | None = None) -> TokenClaims | None:
    """Decode and verify a JWT. Returns TokenClaims, or None on any failure.

    Fails on a bad signature, malformed structure, past expiry, or a payload
    whose user_id/role are missing or ill-typed.
    """
    try:
        payload = jwt.decode(token, secret_key or _settings.jwt_secret, algorithms=[_ALGORITHM])
    except JWTError:
        return None

    user_id = payload.get("user_id")
    # bool is an int subclass; a token claiming user_id=true is malformed.
    if not isinstance(user_id, int) or isinstance(user_id, bool):
        return None
    try:
        role = Role.parse(payload.get("role"))
    except InvalidRoleError:
        return None
    iat, exp = payload.get("iat"), payload.get("exp")
    if not isinstance(iat, (int, float)) or not isinstance(exp, (int, float)):
        return None

    return TokenClaims(
        user_id=user_id,
        role=role,
        issued_at=datetime.fromtimestamp(iat, tz=timezone.utc),
        expires_at=datetime.fromtimestamp(exp, tz=timezone.utc),
    )


# ---------------------------------------------------------------------------
# User authentication (constant-time) [C1]
# ---------------------------------------------------------------------------


def authenticate_user(store: UserStore, email: str, password: str) -> User | None:
    """Authenticate an email/password login with timing equalization.

    Always runs bcrypt whether or not the user exists:
    - Unknown email: bcrypt runs against _DUMMY_HASH (same cost as real check)
    - Wrong password: bcrypt runs against the real hash (same cost)

    Returns the User on success, None on any failure.
    """
    user = store.get_by_email(email)
    if user is None:
        # Equalize timing -- do NOT return early before running bcrypt [C1]
        verify_password(password, _DUMMY_HASH)
        return None
    if not verify_password(password, user.password_hash):
        return None
    return user
