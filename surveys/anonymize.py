"""
surveys/anonymize.py -- Student-identity-free projection of survey responses.

Whenever a response leaves the student who wrote it (professor dashboards,
admin reports), it goes through to_anonymous(). The projection copies only
the fields listed on AnonymousResponse; student_id and the embedded student
record are not copied at all, so there is nothing to null out or forget.
"""

from collections.abc import Iterable

from surveys.models import AnonymousResponse, Response


def to_anonymous(response: Response) -> AnonymousResponse:
    question = response.question
    return AnonymousResponse(
        id=response.id,
        survey_id=response.survey_id,
        question_id=response.question_id,
        answer=response.answer,
        submitted_at=response.submitted_at,
        question_text=question.text if question is not None else None,
        question_type=question.type if question is not None else None,
    )


def to_anonymous_list(responses: Iterable[Response]) -> list[AnonymousResponse]:
    """Anonymize element-wise. Order and length are preserved; nothing is filtered."""
    return [to_anonymous(r) for r in responses]
