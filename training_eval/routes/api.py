import logging
from typing import Literal, Optional

from fastapi import APIRouter, Depends, HTTPException, Request, Response

from .. import analytics, config
from ..auth import AdminUser, AuthError, AuthGateway
from ..catalog import QuestionCatalog
from ..deps import (
    current_admin,
    get_auth,
    get_catalog,
    get_evaluation_service,
    get_session_service,
    request_token,
    require_admin,
)
from ..schemas import (
    Evaluation,
    EvaluationIn,
    LoginIn,
    TrainingSession,
    TrainingSessionIn,
    TrainingSessionUpdate,
)
from ..services import EvaluationService, SessionService, evaluations_by_session

logger = logging.getLogger(__name__)

router = APIRouter()


# ---------- auth ----------
@router.post("/auth/login")
async def api_login(payload: LoginIn, response: Response, auth: AuthGateway = Depends(get_auth)):
    try:
        session = await auth.sign_in(payload.email, payload.password)
    except AuthError as e:
        raise HTTPException(status_code=401, detail=e.message)
    response.set_cookie(
        config.SESSION_COOKIE_NAME, session.token,
        max_age=config.SESSION_TTL_HOURS * 3600, httponly=True, samesite="lax",
    )
    return {
        "access_token": session.token,
        "token_type": "bearer",
        "expires_at": session.expires_at,
        "user": {"id": session.user.id, "email": session.user.email},
    }


@router.post("/auth/logout")
async def api_logout(request: Request, response: Response, auth: AuthGateway = Depends(get_auth)):
    await auth.sign_out(request_token(request))
    response.delete_cookie(config.SESSION_COOKIE_NAME)
    return {"ok": True}


@router.get("/auth/session")
async def api_session(admin: Optional[AdminUser] = Depends(current_admin)):
    if admin is None:
        return {"authenticated": False, "user": None}
    return {"authenticated": True, "user": {"id": admin.id, "email": admin.email}}


# ---------- training sessions ----------
@router.get("/sessions", response_model=list[TrainingSession])
async def api_list_sessions(sessions_svc: SessionService = Depends(get_session_service)):
    return await sessions_svc.list_all()


@router.get("/sessions/lookup", response_model=Optional[TrainingSession])
async def api_lookup_session(
    training_id: str,
    batch_id: str,
    sessions_svc: SessionService = Depends(get_session_service),
):
    return await sessions_svc.get_by_training_and_batch(training_id, batch_id)


@router.get("/sessions/{session_id}", response_model=TrainingSession)
async def api_get_session(session_id: str, sessions_svc: SessionService = Depends(get_session_service)):
    session = await sessions_svc.get_by_id(session_id)
    if session is None:
        raise HTTPException(status_code=404, detail="Training session not found")
    return session


@router.post("/sessions", response_model=TrainingSession, status_code=201)
async def api_create_session(
    payload: TrainingSessionIn,
    sessions_svc: SessionService = Depends(get_session_service),
    admin: AdminUser = Depends(require_admin),
):
    return await sessions_svc.create(payload)


@router.patch("/sessions/{session_id}", response_model=TrainingSession)
async def api_update_session(
    session_id: str,
    payload: TrainingSessionUpdate,
    sessions_svc: SessionService = Depends(get_session_service),
    admin: AdminUser = Depends(require_admin),
):
    return await sessions_svc.update(session_id, payload)


@router.delete("/sessions/{session_id}")
async def api_delete_session(
    session_id: str,
    sessions_svc: SessionService = Depends(get_session_service),
    admin: AdminUser = Depends(require_admin),
):
    await sessions_svc.delete(session_id)
    return {"ok": True}


# ---------- evaluations ----------
@router.post("/evaluations", status_code=201)
async def api_submit_evaluation(
    payload: EvaluationIn,
    sessions_svc: SessionService = Depends(get_session_service),
    evaluations_svc: EvaluationService = Depends(get_evaluation_service),
):
    if await sessions_svc.get_by_id(payload.training_session_id) is None:
        raise HTTPException(status_code=404, detail="Training session not found")
    evaluation = await evaluations_svc.submit(payload)
    return {"ok": True, "id": evaluation.id, "submitted_at": evaluation.submitted_at}


@router.get("/evaluations", response_model=list[Evaluation])
async def api_list_evaluations(
    evaluations_svc: EvaluationService = Depends(get_evaluation_service),
    admin: AdminUser = Depends(require_admin),
):
    return await evaluations_svc.list_all()


@router.get("/sessions/{session_id}/evaluations", response_model=list[Evaluation])
async def api_session_evaluations(
    session_id: str,
    evaluations_svc: EvaluationService = Depends(get_evaluation_service),
    admin: AdminUser = Depends(require_admin),
):
    return await evaluations_svc.list_by_session(session_id)


# ---------- analytics ----------
@router.get("/sessions/{session_id}/analytics")
async def api_session_analytics(
    session_id: str,
    evaluations_svc: EvaluationService = Depends(get_evaluation_service),
    catalog: QuestionCatalog = Depends(get_catalog),
    admin: AdminUser = Depends(require_admin),
):
    evaluations = await evaluations_svc.list_by_session(session_id)
    return analytics.summarize_session(evaluations, catalog)


def instructor_payload(instructor: analytics.InstructorRating) -> dict:
    return {
        "name": instructor.name,
        "average": instructor.average,
        "total_sessions": instructor.total_sessions,
        "total_evaluations": instructor.total_evaluations,
        "total_ratings": instructor.total_ratings,
        "feedback_count": instructor.feedback_count,
        "trends": instructor.recent_trends(),
        "sessions": [
            {"id": s.id, "training_name": s.training_name, "training_id": s.training_id, "batch_id": s.batch_id}
            for s in instructor.sessions
        ],
    }


@router.get("/instructors/ratings")
async def api_instructor_ratings(
    sort_by: Literal["rating", "name", "sessions"] = "rating",
    rating: Optional[int] = None,
    q: str = "",
    time_range: Literal["all", "month", "quarter", "year"] = "all",
    sessions_svc: SessionService = Depends(get_session_service),
    evaluations_svc: EvaluationService = Depends(get_evaluation_service),
    catalog: QuestionCatalog = Depends(get_catalog),
    admin: AdminUser = Depends(require_admin),
):
    sessions = await sessions_svc.list_all()
    by_session = await evaluations_by_session(evaluations_svc, sessions)
    instructors = analytics.sort_instructors(
        analytics.filter_instructors(
            analytics.build_instructor_ratings(sessions, by_session, catalog),
            catalog, search=q, min_rating=rating, time_range=time_range,
        ),
        sort_by,
    )
    return {
        "summary": analytics.summarize_instructors(instructors),
        "instructors": [instructor_payload(i) for i in instructors],
    }
