from datetime import timedelta
from functools import lru_cache
from typing import Optional

from fastapi import Depends, Request

from . import config
from .auth import AdminUser, AuthGate, AuthGateway, LoginRequired
from .catalog import CATALOG, QuestionCatalog
from .db import Gateway, gateway
from .services import EvaluationService, SessionService


def get_gateway() -> Gateway:
    return gateway


def get_catalog() -> QuestionCatalog:
    return CATALOG


@lru_cache
def _auth_gateway(store: Gateway) -> AuthGateway:
    return AuthGateway(store, ttl=timedelta(hours=config.SESSION_TTL_HOURS))


def get_auth(gateway: Gateway = Depends(get_gateway)) -> AuthGateway:
    # one instance per gateway so listeners are shared across requests
    return _auth_gateway(gateway)


def get_session_service(gateway: Gateway = Depends(get_gateway)) -> SessionService:
    return SessionService(gateway)


def get_evaluation_service(gateway: Gateway = Depends(get_gateway)) -> EvaluationService:
    return EvaluationService(gateway)


def request_token(request: Request) -> Optional[str]:
    header = request.headers.get("authorization", "")
    if header.lower().startswith("bearer "):
        return header[7:].strip() or None
    return request.cookies.get(config.SESSION_COOKIE_NAME)


async def current_admin(request: Request, auth: AuthGateway = Depends(get_auth)) -> Optional[AdminUser]:
    """The signed-in admin, or None. For pages that are public but show admin controls."""
    session = await auth.get_current_session(request_token(request))
    return session.user if session else None


async def require_admin(request: Request, auth: AuthGateway = Depends(get_auth)):
    async with AuthGate(auth, request_token(request)) as gate:
        if not gate.allowed:
            raise LoginRequired()
        yield gate.user
