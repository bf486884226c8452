"""
api/routes/v1/admin.py -- Administration endpoints.

Routes:
  GET   /api/v1/admin/semesters                  -- list semesters
  POST  /api/v1/admin/semesters                  -- create a semester
  POST  /api/v1/admin/semesters/{id}/activate    -- make it the only active semester
  GET   /api/v1/admin/subjects                   -- list subjects
  POST  /api/v1/admin/subjects                   -- create a subject for a professor
  GET   /api/v1/admin/enrollments                -- list enrollments
  POST  /api/v1/admin/enrollments                -- enroll a student
  GET   /api/v1/admin/responses                  -- every response, anonymized
  GET   /api/v1/admin/users                      -- list users (?pending=true for open requests)
  PATCH /api/v1/admin/users/{id}/role            -- set or approve a user's role

Role changes are the only way an account ever leaves the student role.
The last remaining admin cannot be demoted.
"""

import logging

from fastapi import APIRouter, Depends, HTTPException, Request
from sqlalchemy.exc import IntegrityError

from api.models import (
    AnonymousResponseOut,
    EnrollmentCreate,
    EnrollmentOut,
    RoleUpdate,
    SemesterCreate,
    SemesterOut,
    SubjectCreate,
    SubjectOut,
    UserOut,
)
from auth.dependencies import require_admin
from auth.models import LastAdminError, Principal, Role
from auth.store import UserStore
from surveys.anonymize import to_anonymous_list
from surveys.models import Enrollment, Semester, Subject
from surveys.store import SurveyStore

logger = logging.getLogger("feedback.api.admin")

router = APIRouter(prefix="/admin", dependencies=[Depends(require_admin)])


# ---------------------------------------------------------------------------
# Semesters
# ---------------------------------------------------------------------------


@router.get("/semesters", response_model=list[SemesterOut])
def list_semesters(request: Request) -> list[SemesterOut]:
    store: SurveyStore = request.app.state.survey_store
    return [SemesterOut.from_semester(s) for s in store.list_semesters()]


@router.post("/semesters", response_model=SemesterOut, status_code=201)
def create_semester(request: Request, body: SemesterCreate) -> SemesterOut:
    store: SurveyStore = request.app.state.survey_store
    semester_id = store.create_semester(
        Semester(
            name=body.name,
            year=body.year,
            period=body.period,
            start_date=body.start_date.isoformat(),
            end_date=body.end_date.isoformat(),
            is_active=body.is_active,
        )
    )
    logger.info("Semester %d (%s) created", semester_id, body.name)
    created = store.get_semester(semester_id)
    if created is None:
        raise HTTPException(status_code=500, detail="Semester not found after write")
    return SemesterOut.from_semester(created)


@router.post("/semesters/{semester_id}/activate", response_model=SemesterOut)
def activate_semester(request: Request, semester_id: int) -> SemesterOut:
    store: SurveyStore = request.app.state.survey_store
    if not store.activate_semester(semester_id):
        raise HTTPException(status_code=404, detail="Semester not found")
    semester = store.get_semester(semester_id)
    if semester is None:
        raise HTTPException(status_code=404, detail="Semester not found")
    return SemesterOut.from_semester(semester)


# ---------------------------------------------------------------------------
# Subjects and enrollments
# ---------------------------------------------------------------------------


@router.get("/subjects", response_model=list[SubjectOut])
def list_subjects(request: Request) -> list[SubjectOut]:
    store: SurveyStore = request.app.state.survey_store
    return [SubjectOut.from_subject(s) for s in store.list_subjects()]


@router.post("/subjects", response_model=SubjectOut, status_code=201)
def create_subject(request: Request, body: SubjectCreate) -> SubjectOut:
    user_store: UserStore = request.app.state.user_store
    store: SurveyStore = request.app.state.survey_store

    professor = user_store.get_by_id(body.professor_id)
    if professor is None or professor.role != Role.professor:
        raise HTTPException(status_code=400, detail="Professor not found")

    try:
        subject_id = store.create_subject(
            Subject(
                name=body.name,
                code=body.code,
                description=body.description,
                professor_id=professor.id,
            )
        )
    except IntegrityError as exc:
        raise HTTPException(status_code=409, detail="Subject code already exists") from exc

    logger.info("Subject %d (%s) assigned to professor %d", subject_id, body.code, professor.id)
    created = store.get_subject(subject_id)
    if created is None:
        raise HTTPException(status_code=500, detail="Subject not found after write")
    return SubjectOut.from_subject(created)


@router.get("/enrollments", response_model=list[EnrollmentOut])
def list_enrollments(request: Request) -> list[EnrollmentOut]:
    store: SurveyStore = request.app.state.survey_store
    return [EnrollmentOut.from_enrollment(e) for e in store.list_enrollments()]


@router.post("/enrollments", response_model=EnrollmentOut, status_code=201)
def create_enrollment(request: Request, body: EnrollmentCreate) -> EnrollmentOut:
    user_store: UserStore = request.app.state.user_store
    store: SurveyStore = request.app.state.survey_store

    student = user_store.get_by_id(body.student_id)
    if student is None or student.role != Role.student:
        raise HTTPException(status_code=400, detail="Student not found")
    if store.get_subject(body.subject_id) is None:
        raise HTTPException(status_code=404, detail="Subject not found")
    if store.get_semester(body.semester_id) is None:
        raise HTTPException(status_code=404, detail="Semester not found")

    enrollment = Enrollment(
        student_id=body.student_id,
        subject_id=body.subject_id,
        semester_id=body.semester_id,
    )
    try:
        enrollment.id = store.create_enrollment(enrollment)
    except IntegrityError as exc:
        raise HTTPException(status_code=409, detail="Student already enrolled") from exc

    logger.info(
        "Student %d enrolled in subject %d for semester %d",
        enrollment.student_id,
        enrollment.subject_id,
        enrollment.semester_id,
    )
    return EnrollmentOut.from_enrollment(enrollment)


# ---------------------------------------------------------------------------
# Responses
# ---------------------------------------------------------------------------


@router.get("/responses", response_model=list[AnonymousResponseOut])
def list_responses(request: Request) -> list[AnonymousResponseOut]:
    store: SurveyStore = request.app.state.survey_store
    return [AnonymousResponseOut.from_anonymous(r) for r in to_anonymous_list(store.list_responses())]


# ---------------------------------------------------------------------------
# Users and roles
# ---------------------------------------------------------------------------


@router.get("/users", response_model=list[UserOut])
def list_users(request: Request, pending: bool = False) -> list[UserOut]:
    user_store: UserStore = request.app.state.user_store
    return [UserOut.from_user(u) for u in user_store.list_users(pending_only=pending)]


@router.patch("/users/{user_id}/role", response_model=UserOut)
def update_role(
    request: Request,
    user_id: int,
    body: RoleUpdate,
    principal: Principal = Depends(require_admin),
) -> UserOut:
    """Set a user's effective role.

    With no role in the body, the role the user requested at signup is
    approved. Either way requested_role is aligned with the new role, which
    clears the user from the pending list.
    """
    user_store: UserStore = request.app.state.user_store
    target = user_store.get_by_id(user_id)
    if target is None:
        raise HTTPException(status_code=404, detail="User not found")

    new_role = Role.parse(body.role) if body.role else target.requested_role
    try:
        updated_row = user_store.set_role(user_id, new_role)
    except LastAdminError as exc:
        raise HTTPException(status_code=400, detail="Cannot demote the last admin") from exc
    if not updated_row:
        raise HTTPException(status_code=404, detail="User not found")
    logger.info(
        "Admin %d changed role of user %d: %s -> %s",
        principal.user_id,
        user_id,
        target.role.value,
        new_role.value,
    )
    updated = user_store.get_by_id(user_id)
    if updated is None:
        raise HTTPException(status_code=404, detail="User not found")
    return UserOut.from_user(updated)
