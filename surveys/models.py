"""
surveys/models.py -- Domain dataclasses for the academic survey schema.

These are pure data containers with zero logic. Business rules (answer
validation, open/closed surveys) live in surveys/store.py; the anonymization
policy lives in surveys/anonymize.py.

Dates are ISO 8601 strings, as everywhere else in the stores.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Optional

from auth.models import User


class QuestionType(str, Enum):
    nps = "nps"
    free_text = "free_text"
    rating = "rating"
    multiple_choice = "multiple_choice"


@dataclass
class Semester:
    """An academic period, e.g. "2024.1". At most one semester is active."""

    name: str
    year: int
    period: int  # 1 or 2
    start_date: str  # YYYY-MM-DD
    end_date: str  # YYYY-MM-DD
    is_active: bool = False
    id: Optional[int] = None
    created_at: str = ""


@dataclass
class Subject:
    """A course taught by one professor."""

    name: str
    code: str
    professor_id: int
    description: str = ""
    id: Optional[int] = None
    created_at: str = ""


@dataclass
class Enrollment:
    """A student taking a subject in a semester."""

    student_id: int
    subject_id: int
    semester_id: int
    id: Optional[int] = None
    created_at: str = ""


@dataclass
class Question:
    """One question of a survey.

    options only applies to multiple_choice questions; order is the display
    position within the survey.
    """

    survey_id: int
    type: QuestionType
    text: str
    order: int
    required: bool = False
    options: list[str] = field(default_factory=list)
    id: Optional[int] = None


@dataclass
class Survey:
    """A feedback form created by a professor for one of their subjects."""

    title: str
    subject_id: int
    semester_id: int
    professor_id: int
    description: str = ""
    is_active: bool = True
    open_date: Optional[str] = None  # ISO 8601; None = open immediately
    close_date: Optional[str] = None  # ISO 8601; None = never closes
    questions: list[Question] = field(default_factory=list)
    id: Optional[int] = None
    created_at: str = ""


@dataclass
class Response:
    """A student's answer to one question of a survey.

    This is the owner view: it carries student_id and, when loaded, the
    student record. It must never be handed to a professor or admin; convert
    it with surveys.anonymize.to_anonymous() first.
    """

    survey_id: int
    student_id: int
    question_id: int
    answer: str
    submitted_at: str = ""
    id: Optional[int] = None
    question: Optional[Question] = None
    student: Optional[User] = None


@dataclass(frozen=True)
class AnonymousResponse:
    """A Response with every trace of the student removed.

    There is deliberately no student_id or student attribute, so no serializer
    can emit one.
    """

    id: Optional[int]
    survey_id: int
    question_id: int
    answer: str
    submitted_at: str
    question_text: Optional[str] = None
    question_type: Optional[QuestionType] = None
