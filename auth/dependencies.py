"""
auth/dependencies.py -- FastAPI Depends() helpers for role-gated routes.

Every protected route group is guarded by require_roles(...), which runs the
request through a fixed sequence and either returns a Principal or raises
AccessDenied:

  1. Extract  -- Authorization header must be exactly "Bearer <token>".
  2. Validate -- decode_access_token(); any failure is one generic reason.
  3. Authorize -- the token's role must be in the route's allow-list.
  4. Resolve  -- load the user by the token's user_id (one storage read).
  4b. Re-check -- with Settings.strict_role_check, the stored role must also
                  be in the allow-list, so a demotion applies immediately
                  instead of after the old token expires.

Status mapping: insufficient_permissions -> 403, everything else -> 401.

The user store is obtained through get_user_store(), a dependency that reads
app.state. Tests replace it with app.dependency_overrides; nothing here holds
a module-level database handle.

Layer rule: no imports from api/ or surveys/. This module may import fastapi
because it is part of the FastAPI dependency injection system.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from enum import Enum
from typing import Protocol

from fastapi import Depends, HTTPException, Request

from auth.models import Principal, Role, User
from auth.tokens import decode_access_token
from core.config import get_settings

logger = logging.getLogger("feedback.auth")


class UserLookup(Protocol):
    """The one storage capability the guard needs."""

    def get_by_id(self, user_id: int) -> User | None: ...


class RejectReason(str, Enum):
    missing_authorization = "missing_authorization"
    malformed_authorization = "malformed_authorization"
    invalid_or_expired_token = "invalid_or_expired_token"
    insufficient_permissions = "insufficient_permissions"
    user_not_found = "user_not_found"


_REJECTIONS: dict[RejectReason, tuple[int, str]] = {
    RejectReason.missing_authorization: (401, "Authorization header required"),
    RejectReason.malformed_authorization: (401, "Invalid authorization header format"),
    RejectReason.invalid_or_expired_token: (401, "Invalid or expired token"),
    RejectReason.insufficient_permissions: (403, "Insufficient permissions"),
    RejectReason.user_not_found: (401, "User not found"),
}


class AccessDenied(HTTPException):
    """Terminal rejection of the access guard.

    detail is the human-readable message rendered as {"error": detail};
    reason is the machine-readable cause, used for logging and tests.
    """

    def __init__(self, reason: RejectReason) -> None:
        status_code, message = _REJECTIONS[reason]
        super().__init__(status_code=status_code, detail=message)
        self.reason = reason


def extract_bearer_token(header: str | None) -> str:
    """Return the token from an "Authorization: Bearer <token>" header value.

    The header must split on single spaces into exactly two parts, the first
    being the literal "Bearer".
    """
    if not header:
        raise AccessDenied(RejectReason.missing_authorization)
    parts = header.split(" ")
    if len(parts) != 2 or parts[0] != "Bearer":
        raise AccessDenied(RejectReason.malformed_authorization)
    return parts[1]


def authorize(
    header: str | None,
    allowed: frozenset[Role],
    user_store: UserLookup,
    *,
    strict: bool = True,
) -> Principal:
    """Run the access state machine for one request. Raises AccessDenied."""
    token = extract_bearer_token(header)

    claims = decode_access_token(token)
    if claims is None:
        raise AccessDenied(RejectReason.invalid_or_expired_token)

    if claims.role not in allowed:
        raise AccessDenied(RejectReason.insufficient_permissions)

    user = user_store.get_by_id(claims.user_id)
    if user is None:
        raise AccessDenied(RejectReason.user_not_found)

    if not strict:
        return Principal(user=user, user_id=claims.user_id, role=claims.role)

    if user.role not in allowed:
        raise AccessDenied(RejectReason.insufficient_permissions)
    return Principal(user=user, user_id=claims.user_id, role=user.role)


def get_user_store(request: Request) -> UserLookup:
    """Return the user store wired into app.state at startup."""
    return request.app.state.user_store


def require_roles(*roles: Role, strict: bool | None = None) -> Callable[..., Principal]:
    """Build a dependency that admits only the given roles.

    Use as a router or route dependency:
        require_professor = require_roles(Role.professor)

        @router.get("/professor/surveys")
        def list_surveys(principal: Principal = Depends(require_professor)): ...

    strict=None defers to Settings.strict_role_check at request time.
    """
    if not roles:
        raise ValueError("require_roles() needs at least one role")
    allowed = frozenset(Role.parse(r) for r in roles)

    def guard(request: Request, user_store: UserLookup = Depends(get_user_store)) -> Principal:
        recheck = get_settings().strict_role_check if strict is None else strict
        try:
            return authorize(request.headers.get("Authorization"), allowed, user_store, strict=recheck)
        except AccessDenied as exc:
            logger.info("Access denied (%s) %s %s", exc.reason.value, request.method, request.url.path)
            raise

    return guard


require_student = require_roles(Role.student)
require_professor = require_roles(Role.professor)
require_admin = require_roles(Role.admin)
require_any_role = require_roles(Role.student, Role.professor, Role.admin)
