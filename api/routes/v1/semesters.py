"""
api/routes/v1/semesters.py -- Public academic calendar endpoint.

Routes:
  GET /api/v1/current-semester  -- the active semester, or 404 when none is active

No authentication: the front-end shows the current semester before login.
"""

from fastapi import APIRouter, HTTPException, Request

from api.models import CurrentSemesterOut, SemesterOut
from surveys.store import SurveyStore

router = APIRouter()


@router.get("/current-semester", response_model=CurrentSemesterOut)
def current_semester(request: Request) -> CurrentSemesterOut:
    store: SurveyStore = request.app.state.survey_store
    semester = store.get_active_semester()
    if semester is None:
        raise HTTPException(status_code=404, detail="No active semester found")
    return CurrentSemesterOut(semester=SemesterOut.from_semester(semester))
