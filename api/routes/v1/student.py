"""
api/routes/v1/student.py -- Endpoints for students.

Routes:
  GET  /api/v1/student/subjects        -- subjects enrolled in this semester
  GET  /api/v1/student/surveys         -- active surveys for those subjects
  GET  /api/v1/student/surveys/{id}    -- one survey with its questions
  POST /api/v1/student/responses       -- answer a survey
  GET  /api/v1/student/responses       -- the student's own answers

Visibility: a student only ever sees surveys of subjects they are enrolled in
for the survey's semester. Anything else is reported as 404 so survey ids of
other classes cannot be discovered.
"""

import logging

from fastapi import APIRouter, Depends, HTTPException, Request
from sqlalchemy.exc import IntegrityError

from api.models import ResponseOut, ResponseSubmit, SubjectOut, SubmissionResult, SurveyOut
from auth.dependencies import require_student
from auth.models import Principal
from surveys.models import Response, Survey
from surveys.store import AlreadyAnsweredError, SurveyStore, is_open, validate_answer

logger = logging.getLogger("feedback.api.student")

# Router-level dependency guards every route; handlers that need the
# principal declare the same dependency and FastAPI resolves it once.
router = APIRouter(prefix="/student", dependencies=[Depends(require_student)])


def _visible_survey(store: SurveyStore, survey_id: int, student_id: int) -> Survey:
    survey = store.get_survey(survey_id)
    if survey is None or not store.is_enrolled(student_id, survey.subject_id, survey.semester_id):
        raise HTTPException(status_code=404, detail="Survey not found")
    return survey


@router.get("/subjects", response_model=list[SubjectOut])
def list_subjects(request: Request, principal: Principal = Depends(require_student)) -> list[SubjectOut]:
    store: SurveyStore = request.app.state.survey_store
    semester = store.get_active_semester()
    if semester is None:
        return []
    return [SubjectOut.from_subject(s) for s in store.list_student_subjects(principal.user_id, semester.id)]


@router.get("/surveys", response_model=list[SurveyOut])
def list_surveys(request: Request, principal: Principal = Depends(require_student)) -> list[SurveyOut]:
    """Active surveys of the current semester for the subjects the student takes."""
    store: SurveyStore = request.app.state.survey_store
    semester = store.get_active_semester()
    if semester is None:
        return []
    subject_ids = [s.id for s in store.list_student_subjects(principal.user_id, semester.id)]
    if not subject_ids:
        return []
    surveys = store.list_surveys(subject_ids=subject_ids, semester_id=semester.id, active_only=True)
    return [SurveyOut.from_survey(s) for s in surveys]


@router.get("/surveys/{survey_id}", response_model=SurveyOut)
def get_survey(request: Request, survey_id: int, principal: Principal = Depends(require_student)) -> SurveyOut:
    store: SurveyStore = request.app.state.survey_store
    return SurveyOut.from_survey(_visible_survey(store, survey_id, principal.user_id))


@router.post("/responses", response_model=SubmissionResult, status_code=201)
def submit_responses(
    request: Request,
    body: ResponseSubmit,
    principal: Principal = Depends(require_student),
) -> SubmissionResult:
    """Store the student's answers to one survey in a single transaction.

    Every answer must target a question of that survey, at most once, and
    match the question's format. All required questions must be answered.
    A survey can be answered once per student (409 on a second attempt).
    """
    store: SurveyStore = request.app.state.survey_store
    survey = _visible_survey(store, body.survey_id, principal.user_id)
    if not is_open(survey):
        raise HTTPException(status_code=400, detail="Survey is not open for responses")

    questions = {q.id: q for q in survey.questions}
    responses: list[Response] = []
    seen: set[int] = set()
    for item in body.answers:
        question = questions.get(item.question_id)
        if question is None:
            raise HTTPException(
                status_code=400, detail=f"Question {item.question_id} does not belong to this survey"
            )
        if item.question_id in seen:
            raise HTTPException(status_code=400, detail=f"Question {item.question_id} answered more than once")
        seen.add(item.question_id)
        error = validate_answer(question, item.answer)
        if error is not None:
            raise HTTPException(status_code=400, detail=f"Question {item.question_id}: {error}")
        responses.append(
            Response(
                survey_id=survey.id,
                student_id=principal.user_id,
                question_id=question.id,
                answer=item.answer.strip(),
            )
        )

    for question in survey.questions:
        if question.required and question.id not in seen:
            raise HTTPException(status_code=400, detail=f"Question {question.id} is required")

    try:
        ids = store.create_responses(responses)
    except (AlreadyAnsweredError, IntegrityError) as exc:
        raise HTTPException(status_code=409, detail="Survey already answered") from exc

    logger.info("Student %d answered survey %d (%d answers)", principal.user_id, survey.id, len(ids))
    return SubmissionResult(survey_id=survey.id, response_ids=ids)


@router.get("/responses", response_model=list[ResponseOut])
def list_own_responses(request: Request, principal: Principal = Depends(require_student)) -> list[ResponseOut]:
    """The student's own answers. This is the only non-anonymized response view."""
    store: SurveyStore = request.app.state.survey_store
    return [ResponseOut.from_response(r) for r in store.list_responses(student_id=principal.user_id)]
