import logging

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse, RedirectResponse

from . import config
from .auth import LOGIN_PATH, LoginRequired
from .db import ensure_indexes
from .deps import get_auth, get_gateway
from .routes.api import router as api_router
from .routes.exports import router as export_router
from .routes.pages import router as pages_router, templates
from .services import ServiceError, SessionNotFoundError

logging.basicConfig(
    level=config.LOG_LEVEL,
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)

app = FastAPI(title="Training Evaluation", version="1.0.0")

app.include_router(api_router, prefix="/api", tags=["API"])
app.include_router(export_router, prefix="/api", tags=["Export"])
app.include_router(pages_router, tags=["Pages"])


def wants_json(request: Request) -> bool:
    return request.url.path.startswith("/api/")


@app.exception_handler(LoginRequired)
async def login_required_handler(request: Request, exc: LoginRequired):
    if wants_json(request):
        return JSONResponse({"detail": "Not authenticated"}, status_code=401)
    return RedirectResponse(LOGIN_PATH, status_code=303)


@app.exception_handler(ServiceError)
async def service_error_handler(request: Request, exc: ServiceError):
    status_code = 404 if isinstance(exc, SessionNotFoundError) else 502
    logger.error("%s %s failed: %s", request.method, request.url.path, exc.message)
    if wants_json(request):
        return JSONResponse({"detail": exc.message}, status_code=status_code)
    return templates.TemplateResponse(
        request, "error.html", {"message": exc.message}, status_code=status_code
    )


@app.on_event("startup")
async def on_startup():
    try:
        await ensure_indexes()
        logger.info("Indexes ensured.")
    except Exception as e:
        logger.warning("Could not connect to MongoDB/ensure indexes: %s", e)
        return

    if config.ADMIN_EMAIL and config.ADMIN_PASSWORD:
        auth = get_auth(get_gateway())
        try:
            await auth.ensure_admin(config.ADMIN_EMAIL, config.ADMIN_PASSWORD)
        except Exception as e:
            logger.warning("Could not seed admin %s: %s", config.ADMIN_EMAIL, e)
