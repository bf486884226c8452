"""
tests/test_access_guard.py -- Access guard: header parsing, token checks, role gating.

Two layers are tested:
  - authorize() directly, with an in-memory fake user lookup, to pin down
    the order of checks and every rejection reason.
  - The real dependency through the ASGI stack, to pin down the HTTP status
    codes and the {"error": message} body the front-end reads.

Fixtures used (from conftest.py):
  - api_env: TestClient with seeded admin/professor/student accounts
"""

from __future__ import annotations

import pytest

from auth.dependencies import (
    AccessDenied,
    RejectReason,
    authorize,
    extract_bearer_token,
    require_roles,
)
from auth.models import Role, User
from auth.tokens import create_access_token
from conftest import bearer, make_user

STAFF = frozenset({Role.professor, Role.admin})


class FakeUsers:
    """Minimal UserLookup: a dict of users, counting lookups."""

    def __init__(self, *users: User) -> None:
        self.users = {u.id: u for u in users}
        self.lookups = 0

    def get_by_id(self, user_id: int) -> User | None:
        self.lookups += 1
        return self.users.get(user_id)


def _user(user_id: int, role: Role) -> User:
    return User(
        id=user_id,
        first_name="Test",
        last_name="User",
        email=f"user{user_id}@campus.test",
        password_hash="x",
        role=role,
        requested_role=role,
    )


def _header(user_id: int, role: Role) -> str:
    return f"Bearer {create_access_token(user_id, role)}"


# ---------------------------------------------------------------------------
# Header extraction
# ---------------------------------------------------------------------------


class TestExtractBearerToken:
    def test_valid(self) -> None:
        assert extract_bearer_token("Bearer abc.def.ghi") == "abc.def.ghi"

    @pytest.mark.parametrize("header", [None, ""])
    def test_missing(self, header) -> None:
        with pytest.raises(AccessDenied) as exc_info:
            extract_bearer_token(header)
        assert exc_info.value.reason == RejectReason.missing_authorization

    @pytest.mark.parametrize(
        "header",
        ["Bearer", "Token abc", "bearer abc", "Bearer a b", "Bearer  abc", "abc"],
    )
    def test_malformed(self, header: str) -> None:
        with pytest.raises(AccessDenied) as exc_info:
            extract_bearer_token(header)
        assert exc_info.value.reason == RejectReason.malformed_authorization
        assert exc_info.value.status_code == 401

    def test_empty_token_passes_extraction(self) -> None:
        """A trailing space yields an empty token; validation rejects it in the next step."""
        assert extract_bearer_token("Bearer ") == ""


# ---------------------------------------------------------------------------
# authorize() state machine
# ---------------------------------------------------------------------------


class TestAuthorize:
    def test_admits_allowed_role(self) -> None:
        users = FakeUsers(_user(5, Role.professor))
        principal = authorize(_header(5, Role.professor), STAFF, users)
        assert principal.user_id == 5
        assert principal.role == Role.professor
        assert principal.user.email == "user5@campus.test"
        assert users.lookups == 1

    def test_invalid_token(self) -> None:
        users = FakeUsers()
        with pytest.raises(AccessDenied) as exc_info:
            authorize("Bearer xyz", STAFF, users)
        assert exc_info.value.reason == RejectReason.invalid_or_expired_token
        assert users.lookups == 0

    def test_empty_token_is_invalid(self) -> None:
        with pytest.raises(AccessDenied) as exc_info:
            authorize("Bearer ", STAFF, FakeUsers())
        assert exc_info.value.reason == RejectReason.invalid_or_expired_token

    def test_role_checked_before_lookup(self) -> None:
        """A disallowed token role is rejected without touching storage."""
        users = FakeUsers(_user(1, Role.student))
        with pytest.raises(AccessDenied) as exc_info:
            authorize(_header(1, Role.student), STAFF, users)
        assert exc_info.value.reason == RejectReason.insufficient_permissions
        assert exc_info.value.status_code == 403
        assert users.lookups == 0

    def test_unknown_user(self) -> None:
        with pytest.raises(AccessDenied) as exc_info:
            authorize(_header(99, Role.admin), STAFF, FakeUsers())
        assert exc_info.value.reason == RejectReason.user_not_found
        assert exc_info.value.status_code == 401

    def test_strict_rejects_demoted_user(self) -> None:
        """Token says professor, storage says student: strict mode denies."""
        users = FakeUsers(_user(5, Role.student))
        with pytest.raises(AccessDenied) as exc_info:
            authorize(_header(5, Role.professor), STAFF, users, strict=True)
        assert exc_info.value.reason == RejectReason.insufficient_permissions

    def test_lenient_trusts_token_role(self) -> None:
        users = FakeUsers(_user(5, Role.student))
        principal = authorize(_header(5, Role.professor), STAFF, users, strict=False)
        assert principal.role == Role.professor
        assert principal.user.role == Role.student

    def test_strict_reports_stored_role(self) -> None:
        """A promotion applies immediately when the new role is also allowed."""
        users = FakeUsers(_user(5, Role.admin))
        principal = authorize(_header(5, Role.professor), STAFF, users, strict=True)
        assert principal.role == Role.admin


class TestRequireRoles:
    def test_needs_at_least_one_role(self) -> None:
        with pytest.raises(ValueError):
            require_roles()

    def test_rejects_unknown_role_name(self) -> None:
        with pytest.raises(ValueError):
            require_roles("janitor")


# ---------------------------------------------------------------------------
# Through the HTTP stack
# ---------------------------------------------------------------------------


class TestGuardOverHttp:
    """Status codes and error bodies as the client sees them."""

    def test_no_header(self, api_env) -> None:
        resp = api_env.client.get("/api/v1/professor/subjects")
        assert resp.status_code == 401, f"Expected 401, got {resp.status_code}: {resp.text}"
        assert resp.json() == {"error": "Authorization header required"}

    def test_bearer_without_token(self, api_env) -> None:
        resp = api_env.client.get("/api/v1/professor/subjects", headers={"Authorization": "Bearer"})
        assert resp.status_code == 401
        assert resp.json() == {"error": "Invalid authorization header format"}

    def test_wrong_scheme(self, api_env) -> None:
        resp = api_env.client.get("/api/v1/me", headers={"Authorization": "Basic dXNlcjpwdw=="})
        assert resp.status_code == 401
        assert resp.json() == {"error": "Invalid authorization header format"}

    def test_garbage_token(self, api_env) -> None:
        resp = api_env.client.get("/api/v1/professor/subjects", headers={"Authorization": "Bearer xyz"})
        assert resp.status_code == 401
        assert resp.json() == {"error": "Invalid or expired token"}

    def test_student_on_professor_route(self, api_env) -> None:
        resp = api_env.client.get("/api/v1/professor/subjects", headers=api_env.headers("student"))
        assert resp.status_code == 403, f"Expected 403, got {resp.status_code}: {resp.text}"
        assert resp.json() == {"error": "Insufficient permissions"}

    def test_professor_on_admin_route(self, api_env) -> None:
        resp = api_env.client.get("/api/v1/admin/users", headers=api_env.headers("professor"))
        assert resp.status_code == 403
        assert resp.json() == {"error": "Insufficient permissions"}

    def test_admin_is_not_a_student(self, api_env) -> None:
        resp = api_env.client.get("/api/v1/student/surveys", headers=api_env.headers("admin"))
        assert resp.status_code == 403

    def test_deleted_user(self, api_env) -> None:
        resp = api_env.client.get("/api/v1/me", headers=bearer(987654, Role.student))
        assert resp.status_code == 401
        assert resp.json() == {"error": "User not found"}

    def test_allowed_role(self, api_env) -> None:
        resp = api_env.client.get("/api/v1/professor/subjects", headers=api_env.headers("professor"))
        assert resp.status_code == 200, f"Expected 200, got {resp.status_code}: {resp.text}"

    def test_me_for_every_role(self, api_env) -> None:
        for name in ("student", "professor", "admin"):
            resp = api_env.client.get("/api/v1/me", headers=api_env.headers(name))
            assert resp.status_code == 200, f"{name}: {resp.text}"
            assert resp.json()["id"] == api_env.ids[name]
            assert "password_hash" not in resp.json()

    def test_demotion_applies_to_existing_token(self, api_env) -> None:
        """A token minted while the user was a professor stops working after demotion."""
        uid = make_user(api_env.users, "demoted@campus.test", Role.professor)
        headers = bearer(uid, Role.professor)
        assert api_env.client.get("/api/v1/professor/surveys", headers=headers).status_code == 200

        api_env.users.set_role(uid, Role.student)
        resp = api_env.client.get("/api/v1/professor/surveys", headers=headers)
        assert resp.status_code == 403
        assert resp.json() == {"error": "Insufficient permissions"}
