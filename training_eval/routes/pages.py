import logging
from pathlib import Path
from typing import Literal, Optional

from fastapi import APIRouter, Depends, Form, Request
from fastapi.responses import HTMLResponse, RedirectResponse
from fastapi.templating import Jinja2Templates
from starlette.datastructures import FormData
from pydantic import ValidationError

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
from ..schemas import TrainingSessionIn, TrainingSessionUpdate
from ..services import (
    EvaluationService,
    ServiceError,
    SessionService,
    build_draft_from_form,
    evaluations_by_session,
    filter_sessions,
)

logger = logging.getLogger(__name__)

router = APIRouter()
templates = Jinja2Templates(directory=str(Path(__file__).resolve().parent.parent / "templates"))


def validation_message(e: ValidationError) -> str:
    parts = []
    for err in e.errors():
        field = ".".join(str(p) for p in err.get("loc", ()) if p != "body")
        parts.append(f"{field}: {err['msg']}" if field else err["msg"])
    return "; ".join(parts)


def evaluation_link(session_id: str) -> str:
    return f"{config.BASE_URL.rstrip('/')}/evaluation/{session_id}"


# ---------- session list (home) ----------
@router.get("/", response_class=HTMLResponse)
async def home(
    request: Request,
    instructor: str = "",
    training_name: str = "",
    batch: str = "",
    edit: Optional[str] = None,
    message: Optional[str] = None,
    sessions_svc: SessionService = Depends(get_session_service),
    admin: Optional[AdminUser] = Depends(current_admin),
):
    sessions = await sessions_svc.list_all()
    editing = next((s for s in sessions if s.id == edit), None) if admin else None
    return templates.TemplateResponse(request, "home.html", {
        "admin": admin,
        "sessions": filter_sessions(sessions, instructor, training_name, batch),
        "total_sessions": len(sessions),
        "filters": {"instructor": instructor, "training_name": training_name, "batch": batch},
        "editing": editing,
        "message": message,
        "evaluation_link": evaluation_link,
    })


async def _render_home_error(request, sessions_svc, admin, error, status_code=422):
    sessions = await sessions_svc.list_all()
    return templates.TemplateResponse(request, "home.html", {
        "admin": admin,
        "sessions": sessions,
        "total_sessions": len(sessions),
        "filters": {"instructor": "", "training_name": "", "batch": ""},
        "editing": None,
        "error": error,
        "evaluation_link": evaluation_link,
    }, status_code=status_code)


@router.post("/sessions", response_class=HTMLResponse)
async def create_session(
    request: Request,
    training_id: str = Form(""),
    batch_id: str = Form(""),
    training_name: str = Form(""),
    instructor_name: str = Form(""),
    description: str = Form(""),
    start_date: str = Form(""),
    end_date: str = Form(""),
    sessions_svc: SessionService = Depends(get_session_service),
    admin: AdminUser = Depends(require_admin),
):
    try:
        draft = TrainingSessionIn(
            training_id=training_id, batch_id=batch_id, training_name=training_name,
            instructor_name=instructor_name, description=description,
            start_date=start_date, end_date=end_date,
        )
    except ValidationError as e:
        return await _render_home_error(request, sessions_svc, admin, validation_message(e))
    try:
        await sessions_svc.create(draft)
    except ServiceError as e:
        logger.error("Error saving training session: %s", e.message)
        return await _render_home_error(
            request, sessions_svc, admin, f"Failed to save training session: {e.message}", 502
        )
    return RedirectResponse("/?message=Training+session+created", status_code=303)


@router.post("/sessions/{session_id}/edit", response_class=HTMLResponse)
async def edit_session(
    request: Request,
    session_id: str,
    training_id: str = Form(""),
    batch_id: str = Form(""),
    training_name: str = Form(""),
    instructor_name: str = Form(""),
    description: str = Form(""),
    start_date: str = Form(""),
    end_date: str = Form(""),
    sessions_svc: SessionService = Depends(get_session_service),
    admin: AdminUser = Depends(require_admin),
):
    try:
        changes = TrainingSessionUpdate(
            training_id=training_id, batch_id=batch_id,
            training_name=training_name, instructor_name=instructor_name,
            description=description, start_date=start_date, end_date=end_date,
        )
    except ValidationError as e:
        return await _render_home_error(request, sessions_svc, admin, validation_message(e))
    try:
        await sessions_svc.update(session_id, changes)
    except ServiceError as e:
        logger.error("Error updating training session %s: %s", session_id, e.message)
        return await _render_home_error(
            request, sessions_svc, admin, f"Failed to save training session: {e.message}", 502
        )
    return RedirectResponse("/?message=Training+session+updated", status_code=303)


@router.post("/sessions/{session_id}/delete")
async def delete_session(
    session_id: str,
    sessions_svc: SessionService = Depends(get_session_service),
    admin: AdminUser = Depends(require_admin),
):
    await sessions_svc.delete(session_id)
    return RedirectResponse("/?message=Training+session+deleted", status_code=303)


# ---------- login ----------
@router.get("/login", response_class=HTMLResponse)
async def page_login(request: Request):
    return templates.TemplateResponse(request, "login.html", {"email": ""})


@router.post("/login", response_class=HTMLResponse)
async def submit_login(
    request: Request,
    email: str = Form(...),
    password: str = Form(...),
    auth: AuthGateway = Depends(get_auth),
):
    try:
        session = await auth.sign_in(email, password)
    except AuthError as e:
        return templates.TemplateResponse(
            request, "login.html", {"email": email, "error": e.message}, status_code=401
        )
    response = RedirectResponse("/", status_code=303)
    response.set_cookie(
        config.SESSION_COOKIE_NAME, session.token,
        max_age=config.SESSION_TTL_HOURS * 3600, httponly=True, samesite="lax",
    )
    return response


@router.post("/logout")
async def logout(request: Request, auth: AuthGateway = Depends(get_auth)):
    await auth.sign_out(request_token(request))
    response = RedirectResponse("/?message=Logged+out+successfully", status_code=303)
    response.delete_cookie(config.SESSION_COOKIE_NAME)
    return response


# ---------- evaluation form (participants) ----------
@router.get("/evaluation/{session_id}", response_class=HTMLResponse)
async def page_evaluation(
    request: Request,
    session_id: str,
    sessions_svc: SessionService = Depends(get_session_service),
    catalog: QuestionCatalog = Depends(get_catalog),
):
    session = await sessions_svc.get_by_id(session_id)
    if session is None:
        return templates.TemplateResponse(
            request, "error.html", {"message": "Training session not found."}, status_code=404
        )
    return templates.TemplateResponse(request, "evaluation_form.html", {
        "session": session, "catalog": catalog, "form": FormData(),
    })


@router.post("/evaluation/{session_id}", response_class=HTMLResponse)
async def submit_evaluation(
    request: Request,
    session_id: str,
    sessions_svc: SessionService = Depends(get_session_service),
    evaluations_svc: EvaluationService = Depends(get_evaluation_service),
    catalog: QuestionCatalog = Depends(get_catalog),
):
    session = await sessions_svc.get_by_id(session_id)
    if session is None:
        return templates.TemplateResponse(
            request, "error.html", {"message": "Training session not found."}, status_code=404
        )
    form = await request.form()
    context = {"session": session, "catalog": catalog, "form": form}
    try:
        draft = build_draft_from_form(form, session_id, catalog)
    except ValidationError as e:
        context["error"] = validation_message(e)
        return templates.TemplateResponse(request, "evaluation_form.html", context, status_code=422)
    try:
        await evaluations_svc.submit(draft)
    except ServiceError as e:
        logger.error("Error submitting evaluation for %s: %s", session_id, e.message)
        context["error"] = "Failed to submit evaluation. Please try again."
        return templates.TemplateResponse(request, "evaluation_form.html", context, status_code=502)
    return templates.TemplateResponse(request, "thanks.html", {
        "title": "Thank You!",
        "lines": ["Your evaluation has been submitted successfully.", "We appreciate your feedback!"],
    })


# ---------- admin dashboard ----------
@router.get("/admin", response_class=HTMLResponse)
async def admin_dashboard(
    request: Request,
    session_id: Optional[str] = None,
    batch: str = "",
    sessions_svc: SessionService = Depends(get_session_service),
    evaluations_svc: EvaluationService = Depends(get_evaluation_service),
    catalog: QuestionCatalog = Depends(get_catalog),
    admin: AdminUser = Depends(require_admin),
):
    sessions = await sessions_svc.list_all()
    choices = filter_sessions(sessions, batch=batch)
    selected = next((s for s in sessions if s.id == session_id), None)
    if selected is None and choices:
        selected = choices[0]

    evaluations = await evaluations_svc.list_by_session(selected.id) if selected else []
    return templates.TemplateResponse(request, "admin.html", {
        "admin": admin,
        "sessions": sessions,
        "choices": choices,
        "batch": batch,
        "selected": selected,
        "evaluations": evaluations,
        "analytics": analytics.summarize_session(evaluations, catalog),
        "catalog": catalog,
    })


# ---------- instructor analytics ----------
@router.get("/instructor-ratings", response_class=HTMLResponse)
async def instructor_ratings(
    request: Request,
    sort_by: Literal["rating", "name", "sessions"] = "rating",
    rating: Literal["all", "1", "2", "3", "4", "5"] = "all",
    q: str = "",
    time_range: Literal["all", "month", "quarter", "year"] = "all",
    instructor: Optional[str] = None,
    sessions_svc: SessionService = Depends(get_session_service),
    evaluations_svc: EvaluationService = Depends(get_evaluation_service),
    catalog: QuestionCatalog = Depends(get_catalog),
    admin: AdminUser = Depends(require_admin),
):
    sessions = await sessions_svc.list_all()
    by_session = await evaluations_by_session(evaluations_svc, sessions)
    everyone = analytics.build_instructor_ratings(sessions, by_session, catalog)
    shown = analytics.sort_instructors(
        analytics.filter_instructors(
            everyone, catalog, search=q,
            min_rating=None if rating == "all" else int(rating),
            time_range=time_range,
        ),
        sort_by,
    )
    return templates.TemplateResponse(request, "instructor_ratings.html", {
        "admin": admin,
        "instructors": shown,
        "summary": analytics.summarize_instructors(shown),
        "selected": next((i for i in everyone if i.name == instructor), None),
        "params": {"sort_by": sort_by, "rating": rating, "q": q, "time_range": time_range},
        "scale_max": catalog.instructor_scale.maximum,
    })
