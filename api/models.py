"""
API request and response models for Campus Feedback REST endpoints.

These Pydantic v2 models define the HTTP transport contract for the API layer.
They are intentionally separate from the dataclasses in auth/models.py and
surveys/models.py, which own the internal domain representation. Route
handlers map between the two through the from_* factory methods.

Request models keep role fields as plain strings: routes parse them with
Role.parse so an unknown role is reported as 400 "Invalid role" rather than as
a generic validation failure.
"""

from datetime import date, datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from auth.models import User
from surveys.models import AnonymousResponse, Enrollment, Question, QuestionType, Response, Semester, Subject, Survey

# ---------------------------------------------------------------------------
# Envelopes
# ---------------------------------------------------------------------------


class ErrorResponse(BaseModel):
    """Error body returned on every 4xx/5xx response."""

    model_config = ConfigDict(frozen=True)

    error: str


class HealthResponse(BaseModel):
    model_config = ConfigDict(frozen=True)

    status: str = "ok"
    version: str


# ---------------------------------------------------------------------------
# Auth
# ---------------------------------------------------------------------------


class RegisterRequest(BaseModel):
    """Request body for POST /api/v1/register.

    Required fields default to "" so the route can report which one is missing
    with a specific message. `role` is accepted as a legacy alias for
    requested_role; neither ever becomes the effective role directly.

    Names and email are trimmed. The password is hashed exactly as typed.
    """

    first_name: str = Field(default="", max_length=100)
    last_name: str = Field(default="", max_length=100)
    email: str = Field(default="", max_length=255)
    password: str = Field(default="", max_length=255)
    requested_role: Optional[str] = None
    role: Optional[str] = None

    @field_validator("first_name", "last_name")
    @classmethod
    def strip_name(cls, value: str) -> str:
        return value.strip()

    @field_validator("email")
    @classmethod
    def normalize_email(cls, value: str) -> str:
        return value.strip().lower()


class LoginRequest(BaseModel):
    email: str = Field(default="", max_length=255)
    password: str = Field(default="", max_length=255)

    @field_validator("email")
    @classmethod
    def normalize_email(cls, value: str) -> str:
        return value.strip().lower()


class UserOut(BaseModel):
    """Public view of a user. Never carries the password hash."""

    model_config = ConfigDict(frozen=True)

    id: int
    first_name: str
    last_name: str
    email: str
    role: str
    requested_role: str
    created_at: str
    updated_at: str

    @classmethod
    def from_user(cls, user: User) -> "UserOut":
        return cls(
            id=user.id,
            first_name=user.first_name,
            last_name=user.last_name,
            email=user.email,
            role=user.role.value,
            requested_role=user.requested_role.value,
            created_at=user.created_at or "",
            updated_at=user.updated_at or "",
        )


class LoginResponse(BaseModel):
    model_config = ConfigDict(frozen=True)

    token: str
    token_type: str = "bearer"
    expires_in: int
    user: UserOut


class RoleUpdate(BaseModel):
    """Request body for PATCH /api/v1/admin/users/{id}/role.

    Omitting role approves whatever role the user requested at signup.
    """

    role: Optional[str] = None


# ---------------------------------------------------------------------------
# Academic structure
# ---------------------------------------------------------------------------


class SemesterCreate(BaseModel):
    model_config = ConfigDict(str_strip_whitespace=True)

    name: str = Field(min_length=1, max_length=20)
    year: int = Field(ge=2000, le=2100)
    period: int = Field(ge=1, le=2)
    start_date: date
    end_date: date
    is_active: bool = False

    @model_validator(mode="after")
    def check_dates(self) -> "SemesterCreate":
        if self.end_date < self.start_date:
            raise ValueError("end_date must not be before start_date")
        return self


class SemesterOut(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: int
    name: str
    year: int
    period: int
    start_date: str
    end_date: str
    is_active: bool

    @classmethod
    def from_semester(cls, semester: Semester) -> "SemesterOut":
        return cls(
            id=semester.id,
            name=semester.name,
            year=semester.year,
            period=semester.period,
            start_date=semester.start_date,
            end_date=semester.end_date,
            is_active=semester.is_active,
        )


class CurrentSemesterOut(BaseModel):
    model_config = ConfigDict(frozen=True)

    semester: SemesterOut


class SubjectCreate(BaseModel):
    model_config = ConfigDict(str_strip_whitespace=True)

    name: str = Field(min_length=1, max_length=255)
    code: str = Field(min_length=1, max_length=30)
    description: str = Field(default="", max_length=2000)
    professor_id: int


class SubjectOut(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: int
    name: str
    code: str
    description: str
    professor_id: int

    @classmethod
    def from_subject(cls, subject: Subject) -> "SubjectOut":
        return cls(
            id=subject.id,
            name=subject.name,
            code=subject.code,
            description=subject.description,
            professor_id=subject.professor_id,
        )


class EnrollmentCreate(BaseModel):
    student_id: int
    subject_id: int
    semester_id: int


class EnrollmentOut(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: int
    student_id: int
    subject_id: int
    semester_id: int

    @classmethod
    def from_enrollment(cls, enrollment: Enrollment) -> "EnrollmentOut":
        return cls(
            id=enrollment.id,
            student_id=enrollment.student_id,
            subject_id=enrollment.subject_id,
            semester_id=enrollment.semester_id,
        )


# ---------------------------------------------------------------------------
# Surveys and questions
# ---------------------------------------------------------------------------


class QuestionCreate(BaseModel):
    """A question definition. Options are required for multiple choice and forbidden otherwise."""

    model_config = ConfigDict(str_strip_whitespace=True)

    type: QuestionType
    text: str = Field(min_length=1, max_length=1000)
    required: bool = False
    order: Optional[int] = Field(default=None, ge=1)
    options: list[str] = Field(default_factory=list, max_length=20)

    @model_validator(mode="after")
    def check_options(self) -> "QuestionCreate":
        if self.type == QuestionType.multiple_choice:
            if len(self.options) < 2:
                raise ValueError("multiple_choice questions need at least two options")
            if len(set(self.options)) != len(self.options):
                raise ValueError("options must be unique")
        elif self.options:
            raise ValueError("only multiple_choice questions take options")
        return self


class QuestionOut(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: int
    survey_id: int
    type: QuestionType
    text: str
    required: bool
    order: int
    options: list[str]

    @classmethod
    def from_question(cls, question: Question) -> "QuestionOut":
        return cls(
            id=question.id,
            survey_id=question.survey_id,
            type=question.type,
            text=question.text,
            required=question.required,
            order=question.order,
            options=list(question.options),
        )


class SurveyCreate(BaseModel):
    """Request body for POST /api/v1/professor/surveys.

    semester_id defaults to the active semester.
    """

    model_config = ConfigDict(str_strip_whitespace=True)

    title: str = Field(min_length=1, max_length=255)
    description: str = Field(default="", max_length=2000)
    subject_id: int
    semester_id: Optional[int] = None
    is_active: bool = True
    open_date: Optional[datetime] = None
    close_date: Optional[datetime] = None
    questions: list[QuestionCreate] = Field(default_factory=list, max_length=100)

    @model_validator(mode="after")
    def check_window(self) -> "SurveyCreate":
        if self.open_date and self.close_date and self.close_date <= self.open_date:
            raise ValueError("close_date must be after open_date")
        return self


class SurveyOut(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: int
    title: str
    description: str
    subject_id: int
    semester_id: int
    professor_id: int
    is_active: bool
    open_date: Optional[str]
    close_date: Optional[str]
    questions: list[QuestionOut] = Field(default_factory=list)

    @classmethod
    def from_survey(cls, survey: Survey) -> "SurveyOut":
        return cls(
            id=survey.id,
            title=survey.title,
            description=survey.description,
            subject_id=survey.subject_id,
            semester_id=survey.semester_id,
            professor_id=survey.professor_id,
            is_active=survey.is_active,
            open_date=survey.open_date,
            close_date=survey.close_date,
            questions=[QuestionOut.from_question(q) for q in survey.questions],
        )


# ---------------------------------------------------------------------------
# Responses
# ---------------------------------------------------------------------------


class AnswerIn(BaseModel):
    question_id: int
    answer: str = Field(max_length=5000)


class ResponseSubmit(BaseModel):
    """Request body for POST /api/v1/student/responses -- one whole survey at a time."""

    survey_id: int
    answers: list[AnswerIn] = Field(min_length=1, max_length=100)


class SubmissionResult(BaseModel):
    model_config = ConfigDict(frozen=True)

    survey_id: int
    response_ids: list[int]


class ResponseOut(BaseModel):
    """Owner view of a response, returned only to the student who wrote it."""

    model_config = ConfigDict(frozen=True)

    id: int
    survey_id: int
    student_id: int
    question_id: int
    question_text: Optional[str]
    answer: str
    submitted_at: str

    @classmethod
    def from_response(cls, response: Response) -> "ResponseOut":
        return cls(
            id=response.id,
            survey_id=response.survey_id,
            student_id=response.student_id,
            question_id=response.question_id,
            question_text=response.question.text if response.question else None,
            answer=response.answer,
            submitted_at=response.submitted_at,
        )


class AnonymousResponseOut(BaseModel):
    """Response as seen by professors and admins.

    Built only from an AnonymousResponse, which has no student fields, so the
    JSON body cannot contain student_id or an embedded student.
    """

    model_config = ConfigDict(frozen=True)

    id: Optional[int]
    survey_id: int
    question_id: int
    question_text: Optional[str]
    question_type: Optional[QuestionType]
    answer: str
    submitted_at: str

    @classmethod
    def from_anonymous(cls, response: AnonymousResponse) -> "AnonymousResponseOut":
        return cls(
            id=response.id,
            survey_id=response.survey_id,
            question_id=response.question_id,
            question_text=response.question_text,
            question_type=response.question_type,
            answer=response.answer,
            submitted_at=response.submitted_at,
        )
