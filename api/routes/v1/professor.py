"""
api/routes/v1/professor.py -- Endpoints for professors.

Routes:
  GET  /api/v1/professor/subjects                   -- subjects this professor teaches
  GET  /api/v1/professor/surveys                    -- surveys this professor created
  POST /api/v1/professor/surveys                    -- create a survey (with questions)
  POST /api/v1/professor/surveys/{id}/questions     -- append a question
  GET  /api/v1/professor/responses                  -- all responses to own surveys
  GET  /api/v1/professor/surveys/{id}/responses     -- responses to one own survey

Every response leaves this module anonymized: the store returns owner-view
Response objects, and to_anonymous_list() strips the student before any of
them reach a serializer.
"""

import logging

from fastapi import APIRouter, Depends, HTTPException, Request

from api.models import AnonymousResponseOut, QuestionCreate, QuestionOut, SubjectOut, SurveyCreate, SurveyOut
from auth.dependencies import require_professor
from auth.models import Principal
from surveys.anonymize import to_anonymous_list
from surveys.models import Question, Survey
from surveys.store import SurveyStore

logger = logging.getLogger("feedback.api.professor")

router = APIRouter(prefix="/professor", dependencies=[Depends(require_professor)])


def _own_survey(store: SurveyStore, survey_id: int, professor_id: int) -> Survey:
    # Someone else's survey is reported exactly like a missing one.
    survey = store.get_survey(survey_id)
    if survey is None or survey.professor_id != professor_id:
        raise HTTPException(status_code=404, detail="Survey not found")
    return survey


def _question_orders(questions: list[QuestionCreate]) -> list[int]:
    """Display positions for new questions.

    Explicit orders are kept. The rest are numbered, in request order, after
    the largest explicit one.
    """
    next_order = max((q.order for q in questions if q.order), default=0)
    orders = []
    for q in questions:
        if q.order:
            orders.append(q.order)
        else:
            next_order += 1
            orders.append(next_order)
    return orders


@router.get("/subjects", response_model=list[SubjectOut])
def list_subjects(request: Request, principal: Principal = Depends(require_professor)) -> list[SubjectOut]:
    store: SurveyStore = request.app.state.survey_store
    return [SubjectOut.from_subject(s) for s in store.list_subjects(professor_id=principal.user_id)]


@router.get("/surveys", response_model=list[SurveyOut])
def list_surveys(request: Request, principal: Principal = Depends(require_professor)) -> list[SurveyOut]:
    store: SurveyStore = request.app.state.survey_store
    return [SurveyOut.from_survey(s) for s in store.list_surveys(professor_id=principal.user_id)]


@router.post("/surveys", response_model=SurveyOut, status_code=201)
def create_survey(
    request: Request,
    body: SurveyCreate,
    principal: Principal = Depends(require_professor),
) -> SurveyOut:
    """Create a survey for one of the professor's subjects.

    Without semester_id the survey is filed under the active semester.
    Questions without an explicit order are numbered after the explicit ones.
    """
    store: SurveyStore = request.app.state.survey_store

    subject = store.get_subject(body.subject_id)
    if subject is None:
        raise HTTPException(status_code=404, detail="Subject not found")
    if subject.professor_id != principal.user_id:
        raise HTTPException(status_code=403, detail="You can only create surveys for your own subjects")

    if body.semester_id is None:
        semester = store.get_active_semester()
        if semester is None:
            raise HTTPException(status_code=400, detail="No active semester found")
    else:
        semester = store.get_semester(body.semester_id)
        if semester is None:
            raise HTTPException(status_code=404, detail="Semester not found")

    survey = Survey(
        title=body.title,
        description=body.description,
        subject_id=subject.id,
        semester_id=semester.id,
        professor_id=principal.user_id,
        is_active=body.is_active,
        open_date=body.open_date.isoformat() if body.open_date else None,
        close_date=body.close_date.isoformat() if body.close_date else None,
        questions=[
            Question(
                survey_id=0,
                type=q.type,
                text=q.text,
                order=order,
                required=q.required,
                options=list(q.options),
            )
            for q, order in zip(body.questions, _question_orders(body.questions))
        ],
    )
    survey_id = store.create_survey(survey)
    logger.info(
        "Professor %d created survey %d for subject %d (%d questions)",
        principal.user_id,
        survey_id,
        subject.id,
        len(survey.questions),
    )

    created = store.get_survey(survey_id)
    if created is None:
        raise HTTPException(status_code=500, detail="Survey not found after write")
    return SurveyOut.from_survey(created)


@router.post("/surveys/{survey_id}/questions", response_model=QuestionOut, status_code=201)
def add_question(
    request: Request,
    survey_id: int,
    body: QuestionCreate,
    principal: Principal = Depends(require_professor),
) -> QuestionOut:
    store: SurveyStore = request.app.state.survey_store
    survey = _own_survey(store, survey_id, principal.user_id)

    question = Question(
        survey_id=survey.id,
        type=body.type,
        text=body.text,
        order=body.order or store.next_question_order(survey.id),
        required=body.required,
        options=list(body.options),
    )
    question.id = store.add_question(question)
    logger.info("Professor %d added question %d to survey %d", principal.user_id, question.id, survey.id)
    return QuestionOut.from_question(question)


@router.get("/responses", response_model=list[AnonymousResponseOut])
def list_responses(
    request: Request, principal: Principal = Depends(require_professor)
) -> list[AnonymousResponseOut]:
    store: SurveyStore = request.app.state.survey_store
    responses = store.list_responses(professor_id=principal.user_id)
    return [AnonymousResponseOut.from_anonymous(r) for r in to_anonymous_list(responses)]


@router.get("/surveys/{survey_id}/responses", response_model=list[AnonymousResponseOut])
def list_survey_responses(
    request: Request,
    survey_id: int,
    principal: Principal = Depends(require_professor),
) -> list[AnonymousResponseOut]:
    store: SurveyStore = request.app.state.survey_store
    survey = _own_survey(store, survey_id, principal.user_id)
    responses = store.list_responses(survey_id=survey.id)
    return [AnonymousResponseOut.from_anonymous(r) for r in to_anonymous_list(responses)]
