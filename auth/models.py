"""
auth/models.py -- Domain types for authentication entities.

Pattern: Data class (pure data container, zero logic). Stores and routes do the
work. The only behavior here is Role.parse(), the single ingress check that
turns an untrusted string into a Role.

Layer rule: no imports from api/, core/, or surveys/.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from enum import Enum


class InvalidRoleError(ValueError):
    """Raised when a string is not one of the three known roles."""

    def __init__(self, value: object) -> None:
        super().__init__(f"Invalid role: {value!r}")
        self.value = value


class LastAdminError(Exception):
    """Raised when a role change would leave the service without an admin."""

    def __init__(self, user_id: int) -> None:
        super().__init__(f"User {user_id} is the last admin")
        self.user_id = user_id


class Role(str, Enum):
    """Closed set of roles. Every route group is gated on one or more of these."""

    student = "student"
    professor = "professor"
    admin = "admin"

    @classmethod
    def parse(cls, value: object) -> Role:
        """Return the Role for value, or raise InvalidRoleError.

        Used at every boundary where a role arrives as a string: registration,
        token decoding, and the admin role-update route.
        """
        if isinstance(value, cls):
            return value
        try:
            return cls(value)
        except ValueError as exc:
            raise InvalidRoleError(value) from exc


@dataclass
class User:
    """A registered person: student, professor, or admin.

    role is the effective role used for authorization. requested_role is what
    the user asked for at signup; the two differ until an admin approves the
    request. Registration always stores role=student.

    id is None before the record is written to the database.
    """

    first_name: str
    last_name: str
    email: str
    password_hash: str
    role: Role = Role.student
    requested_role: Role = Role.student
    id: int | None = None
    created_at: str | None = None  # ISO 8601, set by store on insert
    updated_at: str | None = None


@dataclass(frozen=True)
class TokenClaims:
    """Decoded access-token payload.

    role is the role at issuance time, copied from User.role at login. It is
    never refreshed from storage by the token layer.
    """

    user_id: int
    role: Role
    issued_at: datetime
    expires_at: datetime


@dataclass(frozen=True)
class Principal:
    """The authenticated identity handed to route handlers by the access guard."""

    user: User
    user_id: int
    role: Role
