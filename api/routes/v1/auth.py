"""
api/routes/v1/auth.py -- Registration, login, and current-identity endpoints.

Routes:
  POST /api/v1/register  -- create an account; effective role is always student
  POST /api/v1/login     -- email/password login; returns a bearer token
  GET  /api/v1/me        -- current user (any role)

Security:
  [H2] POST /login is rate-limited per IP (Settings.login_rate_limit).
  [C1] authenticate_user() provides timing equalization -- use it, never inline.
  [M5] Cache-Control: no-store on login responses.
  Unknown email and wrong password produce the same 401 "Invalid credentials".
  Registration does reveal that an email is taken (409); that is accepted.
"""

from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, HTTPException, Request
from fastapi.responses import JSONResponse
from sqlalchemy.exc import IntegrityError

from api.limiter import limiter
from api.models import LoginRequest, LoginResponse, RegisterRequest, UserOut
from auth.dependencies import require_any_role
from auth.models import Principal, Role, User
from auth.store import UserStore
from auth.tokens import authenticate_user, create_access_token, hash_password
from core.config import get_settings

logger = logging.getLogger("feedback.api.auth")

_settings = get_settings()

# Checked in this order so the client is told about the first missing field.
_REQUIRED_FIELDS = (
    ("first_name", "First name"),
    ("last_name", "Last name"),
    ("email", "Email"),
    ("password", "Password"),
)

router = APIRouter()


@router.post("/register", response_model=UserOut, status_code=201)
def register(request: Request, body: RegisterRequest) -> UserOut:
    """Create a student account, recording the role the user asked for.

    requested_role is parsed through Role.parse; an unknown role raises
    InvalidRoleError, rendered as 400 "Invalid role" by the app handler.
    The stored role is Role.student no matter what was requested -- only an
    admin can promote the account later.
    """
    for field, label in _REQUIRED_FIELDS:
        if not getattr(body, field):
            raise HTTPException(status_code=400, detail=f"{label} is required")

    raw_role = body.requested_role or body.role
    requested_role = Role.parse(raw_role) if raw_role else Role.student

    user_store: UserStore = request.app.state.user_store
    new_user = User(
        first_name=body.first_name,
        last_name=body.last_name,
        email=body.email,
        password_hash=hash_password(body.password),
        role=Role.student,
        requested_role=requested_role,
    )
    try:
        user_id = user_store.create_user(new_user)
    except IntegrityError as exc:
        raise HTTPException(status_code=409, detail="Email already exists") from exc

    logger.info("User %d registered (requested_role=%s)", user_id, requested_role.value)
    created = user_store.get_by_id(user_id)
    if created is None:
        raise HTTPException(status_code=500, detail="User not found after write")
    return UserOut.from_user(created)


@limiter.limit(_settings.login_rate_limit)  # [H2] must be ABOVE @router to keep FastAPI introspection intact
@router.post("/login", response_model=LoginResponse)
def login(request: Request, body: LoginRequest) -> JSONResponse:
    """Exchange email and password for a 24-hour bearer token.

    The token embeds the user's role at this moment. A later role change is
    picked up by the access guard's stored-role re-check, not by the token.
    """
    user_store: UserStore = request.app.state.user_store
    user = None
    if body.email and body.password:
        user = authenticate_user(user_store, body.email, body.password)
    if user is None:
        resp = JSONResponse(status_code=401, content={"error": "Invalid credentials"})
        resp.headers["Cache-Control"] = "no-store"  # [M5]
        return resp

    token = create_access_token(user.id, user.role)
    logger.info("User %d logged in as %s", user.id, user.role.value)
    resp = JSONResponse(
        status_code=200,
        content=LoginResponse(
            token=token,
            token_type="bearer",  # noqa: S106 # nosec B106 -- OAuth token type, not a password
            expires_in=_settings.token_expire_seconds,
            user=UserOut.from_user(user),
        ).model_dump(),
    )
    resp.headers["Cache-Control"] = "no-store"  # [M5]
    return resp


@router.get("/me", response_model=UserOut)
def me(principal: Principal = Depends(require_any_role)) -> UserOut:
    """Return the profile of the authenticated user, as freshly loaded by the guard."""
    return UserOut.from_user(principal.user)
