"""
surveys/store.py -- SQLAlchemy-backed persistence layer for surveys.

Uses SQLAlchemy Core (not ORM) so the dataclasses in surveys/models.py remain
the authoritative domain representation. Swapping SQLite for PostgreSQL is a
connection string change.

Pattern: Repository + Data Mapper. SurveyStore is the repository; the
_row_to_* functions are the mappers. Route handlers never touch SQL directly.

Business rules kept next to the data they guard:
  validate_answer() -- per-question-type answer format
  is_open()         -- survey accepts submissions right now

Security: all queries use bound parameters. No f-strings in SQL.

Users live in auth/store.py. The tables here refer to users by id only; the
routes check that a referenced user exists and has the right role.
"""

import json
import logging
from datetime import datetime, timezone
from typing import Optional

from sqlalchemy import (
    Boolean,
    Column,
    Integer,
    MetaData,
    String,
    Table,
    Text,
    UniqueConstraint,
    select,
)
from sqlalchemy.engine import Engine

from auth.store import make_engine
from core.config import get_settings
from surveys.models import Enrollment, Question, QuestionType, Response, Semester, Subject, Survey

logger = logging.getLogger("feedback.surveys")

_MAX_FREE_TEXT = 5000

# ---------------------------------------------------------------------------
# Schema
# ---------------------------------------------------------------------------

metadata = MetaData()

_semesters = Table(
    "semesters",
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("name", String(20), nullable=False),
    Column("year", Integer, nullable=False),
    Column("period", Integer, nullable=False),
    Column("start_date", String(10), nullable=False),
    Column("end_date", String(10), nullable=False),
    Column("is_active", Boolean, nullable=False, server_default="0"),
    Column("created_at", String(32), nullable=False),
)

_subjects = Table(
    "subjects",
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("name", String(255), nullable=False),
    Column("code", String(30), nullable=False, unique=True),
    Column("description", Text),
    Column("professor_id", Integer, nullable=False),
    Column("created_at", String(32), nullable=False),
)

_enrollments = Table(
    "student_enrollments",
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("student_id", Integer, nullable=False),
    Column("subject_id", Integer, nullable=False),
    Column("semester_id", Integer, nullable=False),
    Column("created_at", String(32), nullable=False),
    UniqueConstraint("student_id", "subject_id", "semester_id", name="uq_enrollment"),
)

_surveys = Table(
    "surveys",
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("title", String(255), nullable=False),
    Column("description", Text),
    Column("subject_id", Integer, nullable=False),
    Column("semester_id", Integer, nullable=False),
    Column("professor_id", Integer, nullable=False),
    Column("is_active", Boolean, nullable=False, server_default="1"),
    Column("open_date", String(32)),
    Column("close_date", String(32)),
    Column("created_at", String(32), nullable=False),
)

_questions = Table(
    "questions",
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("survey_id", Integer, nullable=False),
    Column("type", String(30), nullable=False),
    Column("text", Text, nullable=False),
    Column("required", Boolean, nullable=False, server_default="0"),
    Column("order", Integer, nullable=False),
    Column("options", Text),  # JSON array, multiple_choice only
)

_responses = Table(
    "responses",
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("survey_id", Integer, nullable=False),
    Column("student_id", Integer, nullable=False),
    Column("question_id", Integer, nullable=False),
    Column("answer", Text, nullable=False),
    Column("submitted_at", String(32), nullable=False),
    UniqueConstraint("survey_id", "student_id", "question_id", name="uq_response"),
)


# ---------------------------------------------------------------------------
# Errors
# ---------------------------------------------------------------------------


class AlreadyAnsweredError(Exception):
    """Raised when a student submits a survey they already have answers for."""

    def __init__(self, survey_id: int, student_id: int) -> None:
        super().__init__(f"Student {student_id} already answered survey {survey_id}")
        self.survey_id = survey_id
        self.student_id = student_id


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def _parse_iso(value: str) -> datetime:
    dt = datetime.fromisoformat(value)
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt


# ---------------------------------------------------------------------------
# Business rules
# ---------------------------------------------------------------------------


def is_open(survey: Survey, now: Optional[datetime] = None) -> bool:
    """Return True if the survey currently accepts responses.

    A survey is open when it is active and now falls inside the optional
    [open_date, close_date] window.
    """
    if not survey.is_active:
        return False
    now = now or datetime.now(timezone.utc)
    if survey.open_date and now < _parse_iso(survey.open_date):
        return False
    if survey.close_date and now > _parse_iso(survey.close_date):
        return False
    return True


def validate_answer(question: Question, answer: str) -> Optional[str]:
    """Return an error message if answer is not valid for question, else None.

    nps             -- integer 0..10
    rating          -- integer 1..5
    multiple_choice -- one of question.options, verbatim
    free_text       -- non-blank, at most 5000 characters
    """
    value = answer.strip()
    if not value:
        return "Answer cannot be empty"
    if question.type in (QuestionType.nps, QuestionType.rating):
        low, high = (0, 10) if question.type == QuestionType.nps else (1, 5)
        try:
            score = int(value)
        except ValueError:
            return f"Answer must be an integer between {low} and {high}"
        if not low <= score <= high:
            return f"Answer must be an integer between {low} and {high}"
        return None
    if question.type == QuestionType.multiple_choice:
        if value not in question.options:
            return "Answer must be one of the question options"
        return None
    if len(value) > _MAX_FREE_TEXT:
        return f"Answer must be at most {_MAX_FREE_TEXT} characters"
    return None


# ---------------------------------------------------------------------------
# Repository
# ---------------------------------------------------------------------------


class SurveyStore:
    """Repository for semesters, subjects, enrollments, surveys, questions and responses.

    Usage:
        store = SurveyStore()
        sem_id = store.create_semester(Semester(name="2024.1", year=2024, period=1,
                                                start_date="2024-03-01", end_date="2024-07-31"))
        store.activate_semester(sem_id)
        store.close()
    """

    def __init__(self, db_url: Optional[str] = None) -> None:
        self.engine: Engine = make_engine(db_url or get_settings().database_url)
        metadata.create_all(self.engine)

    # ------------------------------------------------------------------
    # Semesters
    # ------------------------------------------------------------------

    def create_semester(self, semester: Semester) -> int:
        """Insert a semester. Creating it active deactivates every other semester."""
        with self.engine.connect() as conn:
            if semester.is_active:
                conn.execute(_semesters.update().values(is_active=False))
            result = conn.execute(
                _semesters.insert().values(
                    name=semester.name,
                    year=semester.year,
                    period=semester.period,
                    start_date=semester.start_date,
                    end_date=semester.end_date,
                    is_active=semester.is_active,
                    created_at=_now_iso(),
                )
            )
            conn.commit()
            return result.inserted_primary_key[0]

    def get_semester(self, semester_id: int) -> Optional[Semester]:
        with self.engine.connect() as conn:
            row = conn.execute(_semesters.select().where(_semesters.c.id == semester_id)).fetchone()
        return _row_to_semester(row) if row is not None else None

    def get_active_semester(self) -> Optional[Semester]:
        """Return the current semester, or None when none is active."""
        with self.engine.connect() as conn:
            row = conn.execute(_semesters.select().where(_semesters.c.is_active.is_(True))).fetchone()
        return _row_to_semester(row) if row is not None else None

    def list_semesters(self) -> list[Semester]:
        """Return all semesters, newest first."""
        with self.engine.connect() as conn:
            rows = conn.execute(
                _semesters.select().order_by(_semesters.c.year.desc(), _semesters.c.period.desc())
            ).fetchall()
        return [_row_to_semester(r) for r in rows]

    def activate_semester(self, semester_id: int) -> bool:
        """Make semester_id the only active semester.

        Both updates run in one transaction so there is never a moment with
        two active semesters. Returns False if semester_id does not exist.
        """
        with self.engine.connect() as conn:
            exists = conn.execute(select(_semesters.c.id).where(_semesters.c.id == semester_id)).fetchone()
            if exists is None:
                return False
            conn.execute(_semesters.update().values(is_active=False))
            conn.execute(_semesters.update().where(_semesters.c.id == semester_id).values(is_active=True))
            conn.commit()
        logger.info("Semester %d activated", semester_id)
        return True

    # ------------------------------------------------------------------
    # Subjects
    # ------------------------------------------------------------------

    def create_subject(self, subject: Subject) -> int:
        """Insert a subject. Raises IntegrityError if the code already exists."""
        with self.engine.connect() as conn:
            result = conn.execute(
                _subjects.insert().values(
                    name=subject.name,
                    code=subject.code,
                    description=subject.description,
                    professor_id=subject.professor_id,
                    created_at=_now_iso(),
                )
            )
            conn.commit()
            return result.inserted_primary_key[0]

    def get_subject(self, subject_id: int) -> Optional[Subject]:
        with self.engine.connect() as conn:
            row = conn.execute(_subjects.select().where(_subjects.c.id == subject_id)).fetchone()
        return _row_to_subject(row) if row is not None else None

    def list_subjects(self, professor_id: Optional[int] = None) -> list[Subject]:
        """Return subjects ordered by code, optionally only those one professor teaches."""
        query = _subjects.select().order_by(_subjects.c.code)
        if professor_id is not None:
            query = query.where(_subjects.c.professor_id == professor_id)
        with self.engine.connect() as conn:
            rows = conn.execute(query).fetchall()
        return [_row_to_subject(r) for r in rows]

    # ------------------------------------------------------------------
    # Enrollments
    # ------------------------------------------------------------------

    def create_enrollment(self, enrollment: Enrollment) -> int:
        """Enroll a student. Raises IntegrityError on a duplicate enrollment."""
        with self.engine.connect() as conn:
            result = conn.execute(
                _enrollments.insert().values(
                    student_id=enrollment.student_id,
                    subject_id=enrollment.subject_id,
                    semester_id=enrollment.semester_id,
                    created_at=_now_iso(),
                )
            )
            conn.commit()
            return result.inserted_primary_key[0]

    def list_enrollments(self, student_id: Optional[int] = None) -> list[Enrollment]:
        query = _enrollments.select().order_by(_enrollments.c.id)
        if student_id is not None:
            query = query.where(_enrollments.c.student_id == student_id)
        with self.engine.connect() as conn:
            rows = conn.execute(query).fetchall()
        return [_row_to_enrollment(r) for r in rows]

    def is_enrolled(self, student_id: int, subject_id: int, semester_id: int) -> bool:
        with self.engine.connect() as conn:
            row = conn.execute(
                select(_enrollments.c.id).where(
                    (_enrollments.c.student_id == student_id)
                    & (_enrollments.c.subject_id == subject_id)
                    & (_enrollments.c.semester_id == semester_id)
                )
            ).fetchone()
        return row is not None

    def list_student_subjects(self, student_id: int, semester_id: int) -> list[Subject]:
        """Return the subjects a student is enrolled in for one semester."""
        with self.engine.connect() as conn:
            rows = conn.execute(
                _subjects.select()
                .join(_enrollments, _enrollments.c.subject_id == _subjects.c.id)
                .where((_enrollments.c.student_id == student_id) & (_enrollments.c.semester_id == semester_id))
                .order_by(_subjects.c.code)
            ).fetchall()
        return [_row_to_subject(r) for r in rows]

    # ------------------------------------------------------------------
    # Surveys and questions
    # ------------------------------------------------------------------

    def create_survey(self, survey: Survey) -> int:
        """Insert a survey together with any questions already attached to it."""
        with self.engine.connect() as conn:
            result = conn.execute(
                _surveys.insert().values(
                    title=survey.title,
                    description=survey.description,
                    subject_id=survey.subject_id,
                    semester_id=survey.semester_id,
                    professor_id=survey.professor_id,
                    is_active=survey.is_active,
                    open_date=survey.open_date,
                    close_date=survey.close_date,
                    created_at=_now_iso(),
                )
            )
            survey_id = result.inserted_primary_key[0]
            for question in survey.questions:
                conn.execute(_questions.insert().values(**_question_values(question, survey_id)))
            conn.commit()
            return survey_id

    def get_survey(self, survey_id: int) -> Optional[Survey]:
        """Fetch a survey with its questions in display order. None if not found."""
        with self.engine.connect() as conn:
            row = conn.execute(_surveys.select().where(_surveys.c.id == survey_id)).fetchone()
        if row is None:
            return None
        survey = _row_to_survey(row)
        survey.questions = self.list_questions(survey_id)
        return survey

    def list_surveys(
        self,
        professor_id: Optional[int] = None,
        subject_ids: Optional[list[int]] = None,
        semester_id: Optional[int] = None,
        active_only: bool = False,
    ) -> list[Survey]:
        """Return surveys matching every filter given, newest first. Questions are not loaded."""
        query = _surveys.select().order_by(_surveys.c.id.desc())
        if professor_id is not None:
            query = query.where(_surveys.c.professor_id == professor_id)
        if subject_ids is not None:
            query = query.where(_surveys.c.subject_id.in_(subject_ids))
        if semester_id is not None:
            query = query.where(_surveys.c.semester_id == semester_id)
        if active_only:
            query = query.where(_surveys.c.is_active.is_(True))
        with self.engine.connect() as conn:
            rows = conn.execute(query).fetchall()
        return [_row_to_survey(r) for r in rows]

    def add_question(self, question: Question) -> int:
        with self.engine.connect() as conn:
            result = conn.execute(_questions.insert().values(**_question_values(question, question.survey_id)))
            conn.commit()
            return result.inserted_primary_key[0]

    def list_questions(self, survey_id: int) -> list[Question]:
        with self.engine.connect() as conn:
            rows = conn.execute(
                _questions.select()
                .where(_questions.c.survey_id == survey_id)
                .order_by(_questions.c.order, _questions.c.id)
            ).fetchall()
        return [_row_to_question(r) for r in rows]

    def next_question_order(self, survey_id: int) -> int:
        """Return the display position a newly appended question should take."""
        questions = self.list_questions(survey_id)
        return max((q.order for q in questions), default=0) + 1

    # ------------------------------------------------------------------
    # Responses
    # ------------------------------------------------------------------

    def create_responses(self, responses: list[Response]) -> list[int]:
        """Insert a student's answers for one submission atomically.

        Either every answer is stored or none is. A survey is answered once per
        student: raises AlreadyAnsweredError if the student has any stored
        answer for the survey, even to a question not in this batch. The
        unique key on (survey, student, question) still backs this up with an
        IntegrityError when two submissions race.
        """
        ids: list[int] = []
        submitted_at = _now_iso()
        with self.engine.begin() as conn:
            for survey_id, student_id in {(r.survey_id, r.student_id) for r in responses}:
                existing = conn.execute(
                    select(_responses.c.id)
                    .where(_responses.c.survey_id == survey_id)
                    .where(_responses.c.student_id == student_id)
                    .limit(1)
                ).fetchone()
                if existing is not None:
                    raise AlreadyAnsweredError(survey_id, student_id)
            for response in responses:
                result = conn.execute(
                    _responses.insert().values(
                        survey_id=response.survey_id,
                        student_id=response.student_id,
                        question_id=response.question_id,
                        answer=response.answer,
                        submitted_at=response.submitted_at or submitted_at,
                    )
                )
                ids.append(result.inserted_primary_key[0])
        return ids

    def list_responses(
        self,
        survey_id: Optional[int] = None,
        student_id: Optional[int] = None,
        professor_id: Optional[int] = None,
    ) -> list[Response]:
        """Return responses with their question attached, oldest first.

        professor_id restricts the result to surveys that professor owns.
        The returned Response objects still carry student_id; callers that
        expose them to anyone but the student must anonymize them.
        """
        query = (
            select(
                _responses,
                _questions.c.type.label("q_type"),
                _questions.c.text.label("q_text"),
                _questions.c.required.label("q_required"),
                _questions.c.order.label("q_order"),
                _questions.c.options.label("q_options"),
            )
            .join(_questions, _questions.c.id == _responses.c.question_id)
            .order_by(_responses.c.id)
        )
        if survey_id is not None:
            query = query.where(_responses.c.survey_id == survey_id)
        if student_id is not None:
            query = query.where(_responses.c.student_id == student_id)
        if professor_id is not None:
            query = query.join(_surveys, _surveys.c.id == _responses.c.survey_id).where(
                _surveys.c.professor_id == professor_id
            )
        with self.engine.connect() as conn:
            rows = conn.execute(query).fetchall()
        return [_row_to_response(r) for r in rows]

    def close(self) -> None:
        self.engine.dispose()


# ---------------------------------------------------------------------------
# Row mappers (Data Mapper pattern)
# ---------------------------------------------------------------------------


def _question_values(question: Question, survey_id: int) -> dict:
    return {
        "survey_id": survey_id,
        "type": QuestionType(question.type).value,
        "text": question.text,
        "required": question.required,
        "order": question.order,
        "options": json.dumps(question.options) if question.options else None,
    }


def _row_to_semester(row) -> Semester:
    return Semester(
        id=row.id,
        name=row.name,
        year=row.year,
        period=row.period,
        start_date=row.start_date,
        end_date=row.end_date,
        is_active=bool(row.is_active),
        created_at=row.created_at,
    )


def _row_to_subject(row) -> Subject:
    return Subject(
        id=row.id,
        name=row.name,
        code=row.code,
        description=row.description or "",
        professor_id=row.professor_id,
        created_at=row.created_at,
    )


def _row_to_enrollment(row) -> Enrollment:
    return Enrollment(
        id=row.id,
        student_id=row.student_id,
        subject_id=row.subject_id,
        semester_id=row.semester_id,
        created_at=row.created_at,
    )


def _row_to_survey(row) -> Survey:
    return Survey(
        id=row.id,
        title=row.title,
        description=row.description or "",
        subject_id=row.subject_id,
        semester_id=row.semester_id,
        professor_id=row.professor_id,
        is_active=bool(row.is_active),
        open_date=row.open_date,
        close_date=row.close_date,
        created_at=row.created_at,
    )


def _row_to_question(row) -> Question:
    return Question(
        id=row.id,
        survey_id=row.survey_id,
        type=QuestionType(row.type),
        text=row.text,
        required=bool(row.required),
        order=row.order,
        options=json.loads(row.options) if row.options else [],
    )


def _row_to_response(row) -> Response:
    question = Question(
        id=row.question_id,
        survey_id=row.survey_id,
        type=QuestionType(row.q_type),
        text=row.q_text,
        required=bool(row.q_required),
        order=row.q_order,
        options=json.loads(row.q_options) if row.q_options else [],
    )
    return Response(
        id=row.id,
        survey_id=row.survey_id,
        student_id=row.student_id,
        question_id=row.question_id,
        answer=row.answer,
        submitted_at=row.submitted_at,
        question=question,
    )
