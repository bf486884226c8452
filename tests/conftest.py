"""
tests/conftest.py -- Shared test fixtures for Campus Feedback integration tests.

This module provides:
  - _make_test_stores(): creates isolated in-memory DBs for users + surveys
  - _patch_lifespan(): wires test stores into app.state, bypassing real startup
  - api_env: module-scoped TestClient plus one seeded account per role
  - make_user(): inserts a user directly through the store

Design: Named shared-memory SQLite URIs (not plain :memory:) are required
because TestClient runs route handlers in a thread pool. Plain :memory: DBs
are per-connection and would present a blank schema to each worker thread.
The named URI format (file:name?mode=memory&cache=shared&uri=true) shares
one in-memory instance across all connections in the same process.

DEBUG and RATE_LIMIT_ENABLED must be set before any project import:
get_settings() is cached on first call, and the limiter reads it at import.
"""

from __future__ import annotations

import os
from collections.abc import Generator
from contextlib import asynccontextmanager
from dataclasses import dataclass, field

# CRITICAL: set before any auth/core import so get_settings() auto-generates
# JWT_SECRET in dev mode instead of raising ValueError.
os.environ.setdefault("DEBUG", "true")
os.environ.setdefault("RATE_LIMIT_ENABLED", "false")

import pytest
from fastapi.testclient import TestClient

from api.main import app
from auth.models import Role, User
from auth.store import UserStore
from auth.tokens import create_access_token, hash_password
from surveys.models import Enrollment, Semester, Subject
from surveys.store import SurveyStore

TEST_PASSWORD = "testpass123"

# ---------------------------------------------------------------------------
# Store helpers
# ---------------------------------------------------------------------------


def _make_test_stores(db_suffix: str) -> tuple[UserStore, SurveyStore]:
    """Create isolated named shared-memory SQLite stores for test isolation.

    Args:
        db_suffix: Unique string appended to the DB name so test modules
                   don't share state (the fixture passes the module name).
    """
    users_url = f"sqlite:///file:test_users_{db_suffix}?mode=memory&cache=shared&uri=true"
    surveys_url = f"sqlite:///file:test_surveys_{db_suffix}?mode=memory&cache=shared&uri=true"
    return UserStore(db_url=users_url), SurveyStore(db_url=surveys_url)


def _patch_lifespan(user_store: UserStore, survey_store: SurveyStore):
    """Return an async context manager that replaces the real lifespan.

    Wires pre-created test stores into app.state so TestClient routes see
    isolated test DBs rather than the production database.
    """

    @asynccontextmanager
    async def test_lifespan(app):
        app.state.user_store = user_store
        app.state.survey_store = survey_store
        yield

    return test_lifespan


def make_user(
    store: UserStore,
    email: str,
    role: Role = Role.student,
    requested_role: Role | None = None,
    password: str = TEST_PASSWORD,
) -> int:
    """Insert a user straight into the store, bypassing registration."""
    return store.create_user(
        User(
            first_name=email.split("@")[0].capitalize(),
            last_name="Tester",
            email=email,
            password_hash=hash_password(password),
            role=role,
            requested_role=requested_role or role,
        )
    )


def bearer(user_id: int, role: Role | str) -> dict[str, str]:
    """Authorization header for a freshly minted token."""
    return {"Authorization": f"Bearer {create_access_token(user_id, role, expire_seconds=3600)}"}


# ---------------------------------------------------------------------------
# Module-scoped fixtures -- one TestClient per test module for speed
# ---------------------------------------------------------------------------


@dataclass
class ApiEnv:
    """A running app plus the seeded accounts and academic records.

    Seed data:
      admin, professor, student            -- one account per role
      other_professor, other_student       -- same roles, no links to anything
      semester_id                          -- the active semester
      subject_id                           -- taught by professor
      other_subject_id                     -- taught by other_professor
      student is enrolled in subject_id for semester_id; other_student is not.
    """

    client: TestClient
    users: UserStore
    surveys: SurveyStore
    ids: dict[str, int] = field(default_factory=dict)

    def headers(self, name: str) -> dict[str, str]:
        user = self.users.get_by_id(self.ids[name])
        assert user is not None, f"seed user {name} missing"
        return bearer(user.id, user.role)


@pytest.fixture(scope="module")
def api_env(request) -> Generator[ApiEnv, None, None]:
    """Yield an ApiEnv backed by in-memory stores private to the test module."""
    suffix = request.module.__name__.replace(".", "_")
    user_store, survey_store = _make_test_stores(suffix)

    ids = {
        "admin": make_user(user_store, "admin@campus.test", Role.admin),
        "professor": make_user(user_store, "prof@campus.test", Role.professor),
        "other_professor": make_user(user_store, "prof2@campus.test", Role.professor),
        "student": make_user(user_store, "student@campus.test", Role.student),
        "other_student": make_user(user_store, "student2@campus.test", Role.student),
    }
    ids["semester_id"] = survey_store.create_semester(
        Semester(
            name="2024.1",
            year=2024,
            period=1,
            start_date="2024-03-01",
            end_date="2024-07-31",
            is_active=True,
        )
    )
    ids["subject_id"] = survey_store.create_subject(
        Subject(name="Algorithms", code="CS101", professor_id=ids["professor"])
    )
    ids["other_subject_id"] = survey_store.create_subject(
        Subject(name="Databases", code="CS202", professor_id=ids["other_professor"])
    )
    survey_store.create_enrollment(
        Enrollment(student_id=ids["student"], subject_id=ids["subject_id"], semester_id=ids["semester_id"])
    )

    app.router.lifespan_context = _patch_lifespan(user_store, survey_store)

    with TestClient(app, raise_server_exceptions=True) as client:
        yield ApiEnv(client=client, users=user_store, surveys=survey_store, ids=ids)

    user_store.close()
    survey_store.close()


@pytest.fixture
def user_store() -> Generator[UserStore, None, None]:
    """Standalone in-memory UserStore for unit tests."""
    store = UserStore("sqlite:///:memory:")
    yield store
    store.close()


@pytest.fixture
def survey_store() -> Generator[SurveyStore, None, None]:
    store = SurveyStore("sqlite:///:memory:")
    yield store
    store.close()
