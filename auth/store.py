"""
auth/store.py -- SQLAlchemy Core persistence layer for users.

Pattern: Repository + Data Mapper (same as surveys/store.py).
UserStore is the repository; _row_to_user is the mapper. Route and dependency
code never touches SQL directly.

The access guard depends only on get_by_id(); it receives the store through a
FastAPI dependency, never through a module-level handle.

Security:
  All queries use bound parameters. No f-strings in SQL.
  The role column carries a CHECK constraint, and _row_to_user parses the value
  through Role.parse, so an out-of-band role string never reaches the guard.

Layer rule: no imports from api/ or surveys/.
"""

from __future__ import annotations

from datetime import datetime, timezone

from sqlalchemy import (
    CheckConstraint,
    Column,
    Integer,
    MetaData,
    String,
    Table,
    Text,
    create_engine,
    event,
    func,
    select,
)
from sqlalchemy.engine import Engine

from auth.models import LastAdminError, Role, User
from core.config import get_settings

# ---------------------------------------------------------------------------
# Schema
# ---------------------------------------------------------------------------

_metadata = MetaData()

_ROLE_CHECK = "role IN ('student', 'professor', 'admin')"

_users = Table(
    "users",
    _metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("first_name", String(100), nullable=False),
    Column("last_name", String(100), nullable=False),
    Column("email", String(255), nullable=False, unique=True),
    Column("password_hash", Text, nullable=False),
    Column("role", String(20), nullable=False, server_default=Role.student.value),
    Column("requested_role", String(20), nullable=False, server_default=Role.student.value),
    Column("created_at", String(32), nullable=False),
    Column("updated_at", String(32), nullable=False),
    CheckConstraint(_ROLE_CHECK, name="ck_users_role"),
    CheckConstraint(_ROLE_CHECK.replace("role", "requested_role", 1), name="ck_users_requested_role"),
)


# ---------------------------------------------------------------------------
# WAL mode
# ---------------------------------------------------------------------------


def _set_wal_mode(dbapi_conn, connection_record) -> None:
    """Enable WAL journal mode so readers do not block during writes."""
    dbapi_conn.execute("PRAGMA journal_mode=WAL")


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def make_engine(db_url: str) -> Engine:
    """Create an engine with the SQLite settings both stores rely on.

    check_same_thread=False lets FastAPI's thread pool share connections.
    """
    connect_args: dict = {}
    if db_url.startswith("sqlite"):
        connect_args["check_same_thread"] = False
    engine = create_engine(db_url, connect_args=connect_args)
    if db_url.startswith("sqlite") and ":memory:" not in db_url and "mode=memory" not in db_url:
        event.listen(engine, "connect", _set_wal_mode)
    return engine


# ---------------------------------------------------------------------------
# Repository
# ---------------------------------------------------------------------------


class UserStore:
    """Repository for User entities.

    Usage:
        store = UserStore()
        uid = store.create_user(User(first_name="Ana", last_name="Costa",
                                     email="ana@example.edu", password_hash=hash_password("pw")))
        user = store.get_by_email("ana@example.edu")
        store.close()
    """

    def __init__(self, db_url: str | None = None) -> None:
        self.engine: Engine = make_engine(db_url or get_settings().database_url)
        _metadata.create_all(self.engine)

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def create_user(self, user: User) -> int:
        """Insert a new user and return its assigned database ID.

        Raises sqlalchemy.exc.IntegrityError if the email already exists.
        The role stored is whatever the caller passes; the registration route
        is responsible for forcing role=student.
        """
        now = _now_iso()
        with self.engine.connect() as conn:
            result = conn.execute(
                _users.insert().values(
                    first_name=user.first_name,
                    last_name=user.last_name,
                    email=user.email,
                    password_hash=user.password_hash,
                    role=Role.parse(user.role).value,
                    requested_role=Role.parse(user.requested_role).value,
                    created_at=now,
                    updated_at=now,
                )
            )
            conn.commit()
            return result.inserted_primary_key[0]

    def get_by_id(self, user_id: int) -> User | None:
        """Look up a user by primary key. Returns None if not found."""
        with self.engine.connect() as conn:
            row = conn.execute(_users.select().where(_users.c.id == user_id)).fetchone()
        return _row_to_user(row) if row is not None else None

    def get_by_email(self, email: str) -> User | None:
        """Look up a user by exact email. Returns None if not found."""
        with self.engine.connect() as conn:
            row = conn.execute(_users.select().where(_users.c.email == email)).fetchone()
        return _row_to_user(row) if row is not None else None

    def list_users(self, pending_only: bool = False) -> list[User]:
        """Return users ordered by id.

        pending_only restricts the list to users whose requested role has not
        been approved yet (requested_role != role).
        """
        query = _users.select().order_by(_users.c.id)
        if pending_only:
            query = query.where(_users.c.requested_role != _users.c.role)
        with self.engine.connect() as conn:
            rows = conn.execute(query).fetchall()
        return [_row_to_user(r) for r in rows]

    def set_role(self, user_id: int, role: Role) -> bool:
        """Make role the user's effective and requested role.

        This is the only write path for role/requested_role after registration.
        Returns True if a row was updated, False if user_id was not found.
        Raises LastAdminError, leaving the row unchanged, if the update would
        leave no admin. The admin count is taken after the update inside the
        same transaction, so two concurrent demotions cannot both commit.
        """
        role = Role.parse(role)
        with self.engine.begin() as conn:
            current = conn.execute(select(_users.c.role).where(_users.c.id == user_id)).scalar()
            if current is None:
                return False
            conn.execute(
                _users.update()
                .where(_users.c.id == user_id)
                .values(role=role.value, requested_role=role.value, updated_at=_now_iso())
            )
            if current == Role.admin.value and role != Role.admin:
                admins = conn.execute(
                    select(func.count()).select_from(_users).where(_users.c.role == Role.admin.value)
                ).scalar()
                if not admins:
                    raise LastAdminError(user_id)
        return True

    def close(self) -> None:
        self.engine.dispose()


# ---------------------------------------------------------------------------
# Row mapper (Data Mapper pattern)
# ---------------------------------------------------------------------------


def _row_to_user(row) -> User:
    return User(
        id=row.id,
        first_name=row.first_name,
        last_name=row.last_name,
        email=row.email,
        password_hash=row.password_hash,
        role=Role.parse(row.role),
        requested_role=Role.parse(row.requested_role),
        created_at=row.created_at,
        updated_at=row.updated_at,
    )
