"""Session and evaluation façades over the persistence gateway."""
import asyncio
import logging
from typing import Iterable, Optional

from .catalog import QuestionCatalog
from .db import EVALUATIONS, TRAINING_SESSIONS, Gateway, GatewayError
from .schemas import (
    Evaluation,
    EvaluationIn,
    OpenEndedResponse,
    RatingEntry,
    Suggestion,
    TrainingSession,
    TrainingSessionIn,
    TrainingSessionUpdate,
)

logger = logging.getLogger(__name__)


class ServiceError(Exception):
    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class SessionServiceError(ServiceError):
    pass


class SessionNotFoundError(SessionServiceError):
    pass


class EvaluationServiceError(ServiceError):
    pass


class SessionService:
    def __init__(self, gateway: Gateway):
        self.gateway = gateway

    async def create(self, draft: TrainingSessionIn) -> TrainingSession:
        try:
            row = await self.gateway.insert(TRAINING_SESSIONS, draft.model_dump(mode="json"))
        except GatewayError as e:
            raise SessionServiceError(e.message) from e
        logger.info("created training session %s (%s/%s)", row["id"], draft.training_id, draft.batch_id)
        return TrainingSession.model_validate(row)

    async def get_by_id(self, id: str) -> Optional[TrainingSession]:
        try:
            row = await self.gateway.select_one(TRAINING_SESSIONS, {"id": id})
        except GatewayError as e:
            raise SessionServiceError(e.message) from e
        return TrainingSession.model_validate(row) if row else None

    async def get_by_training_and_batch(self, training_id: str, batch_id: str) -> Optional[TrainingSession]:
        try:
            row = await self.gateway.select_one(
                TRAINING_SESSIONS, {"training_id": training_id, "batch_id": batch_id}
            )
        except GatewayError as e:
            raise SessionServiceError(e.message) from e
        return TrainingSession.model_validate(row) if row else None

    async def list_all(self) -> list[TrainingSession]:
        try:
            rows = await self.gateway.select(TRAINING_SESSIONS, order=("created_at", -1))
        except GatewayError as e:
            raise SessionServiceError(e.message) from e
        return [TrainingSession.model_validate(r) for r in rows]

    async def update(self, id: str, changes: TrainingSessionUpdate) -> TrainingSession:
        fields = changes.model_dump(mode="json", exclude_unset=True)
        try:
            row = await self.gateway.update(TRAINING_SESSIONS, id, fields)
        except GatewayError as e:
            raise SessionServiceError(e.message) from e
        if row is None:
            raise SessionNotFoundError(f"Training session {id} not found")
        logger.info("updated training session %s: %s", id, sorted(fields))
        return TrainingSession.model_validate(row)

    async def delete(self, id: str) -> None:
        try:
            deleted = await self.gateway.delete(TRAINING_SESSIONS, id)
        except GatewayError as e:
            raise SessionServiceError(e.message) from e
        if deleted:
            logger.info("deleted training session %s", id)


class EvaluationService:
    def __init__(self, gateway: Gateway):
        self.gateway = gateway

    async def submit(self, draft: EvaluationIn) -> Evaluation:
        try:
            row = await self.gateway.insert(EVALUATIONS, draft.model_dump(mode="json"))
        except GatewayError as e:
            raise EvaluationServiceError(e.message) from e
        logger.info("evaluation %s submitted for session %s", row["id"], draft.training_session_id)
        return Evaluation.model_validate(row)

    async def list_by_session(self, session_id: str) -> list[Evaluation]:
        return await self._list({"training_session_id": session_id})

    async def list_all(self) -> list[Evaluation]:
        return await self._list({})

    async def _list(self, filters: dict) -> list[Evaluation]:
        try:
            rows = await self.gateway.select(
                EVALUATIONS, filters, join=TRAINING_SESSIONS, order=("submitted_at", -1)
            )
        except GatewayError as e:
            raise EvaluationServiceError(e.message) from e
        return [Evaluation.model_validate(r) for r in rows]


def _contains(value: Optional[str], needle: str) -> bool:
    if not needle:
        return True
    return bool(value) and needle.lower() in str(value).lower()


def filter_sessions(
    sessions: Iterable[TrainingSession],
    instructor: str = "",
    training_name: str = "",
    batch: str = "",
) -> list[TrainingSession]:
    """Case-insensitive substring filter used by the session list and dashboard picker."""
    return [
        s for s in sessions
        if _contains(s.instructor_name, instructor.strip())
        and _contains(s.training_name, training_name.strip())
        and _contains(s.batch_id, batch.strip())
    ]


def build_draft_from_form(form, session_id: str, catalog: QuestionCatalog) -> EvaluationIn:
    """Build an evaluation draft from the flat fields posted by the evaluation page.

    Field names: ``rating-{group}-{question}``, ``open-{index}``, ``sources``
    (repeated), ``overall_evaluation`` and the parallel ``suggestion_name``,
    ``suggestion_phone``, ``suggestion_email`` lists.
    """
    ratings = [
        RatingEntry(group=group, question=question, rating=form.get(f"rating-{gi}-{qi}") or "")
        for gi, qi, group, question in catalog.iter_questions()
    ]
    open_ended = [
        OpenEndedResponse(question=q, response=(form.get(f"open-{i}") or "").strip())
        for i, q in enumerate(catalog.open_ended_questions)
    ]

    sources = list(form.getlist("sources"))
    overall = form.get("overall_evaluation")
    if overall:
        sources.append(overall)

    names = form.getlist("suggestion_name")
    phones = form.getlist("suggestion_phone")
    emails = form.getlist("suggestion_email")
    suggestions = []
    for i in range(max(len(names), len(phones), len(emails))):
        s = Suggestion(
            name=names[i] if i < len(names) else "",
            phone=phones[i] if i < len(phones) else "",
            email=emails[i] if i < len(emails) else "",
        )
        if s.is_filled:
            suggestions.append(s)

    return EvaluationIn(
        training_session_id=session_id,
        instructor_name=form.get("instructor_name"),
        course=form.get("course"),
        course_date=form.get("course_date"),
        participant_name=form.get("participant_name"),
        participant_email=form.get("participant_email"),
        ratings=ratings,
        open_ended_responses=open_ended,
        sources=sources,
        additional_comments=form.get("additional_comments"),
        suggestions=suggestions,
    )


async def evaluations_by_session(
    evaluation_service: EvaluationService, sessions: Iterable[TrainingSession]
) -> dict[str, list[Evaluation]]:
    """Fetch each session's evaluations concurrently, keyed by session id."""
    sessions = list(sessions)
    results = await asyncio.gather(*(evaluation_service.list_by_session(s.id) for s in sessions))
    return {s.id: evs for s, evs in zip(sessions, results)}
