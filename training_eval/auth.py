"""Admin authentication.

``AuthGateway`` signs admins in and out against the ``admins`` table and keeps
opaque session tokens in ``auth_sessions``. Views guard themselves with an
``AuthGate``, which resolves the caller's token and follows sign-outs for as
long as it is open.
"""
import logging
import secrets
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Callable, Optional

import bcrypt

from .db import ADMINS, AUTH_SESSIONS, Gateway, GatewayError, now_utc
from .services import ServiceError

logger = logging.getLogger(__name__)

LOGIN_PATH = "/login"

SIGNED_IN = "SIGNED_IN"
SIGNED_OUT = "SIGNED_OUT"


class AuthError(Exception):
    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class LoginRequired(Exception):
    """Raised by gated views when the caller is anonymous."""


class AuthServiceError(ServiceError):
    """The auth store could not be reached."""


class PasswordHasher:
    def __init__(self, rounds: int = 12):
        self._rounds = rounds

    def hash(self, password: str) -> str:
        if not password:
            raise ValueError("Password cannot be empty")
        return bcrypt.hashpw(password.encode("utf-8"), bcrypt.gensalt(rounds=self._rounds)).decode("utf-8")

    def verify(self, password: str, password_hash: str) -> bool:
        if not password or not password_hash:
            return False
        try:
            return bcrypt.checkpw(password.encode("utf-8"), password_hash.encode("utf-8"))
        except ValueError:
            logger.warning("stored password hash is malformed")
            return False


@dataclass(frozen=True)
class AdminUser:
    id: str
    email: str


@dataclass(frozen=True)
class AuthSession:
    token: str
    user: AdminUser
    expires_at: datetime


AuthCallback = Callable[[str, Optional[AuthSession]], None]


class Subscription:
    def __init__(self, listeners: list, callback: AuthCallback):
        self._listeners = listeners
        self._callback = callback
        listeners.append(callback)

    @property
    def active(self) -> bool:
        return self._callback in self._listeners

    def unsubscribe(self):
        if self._callback in self._listeners:
            self._listeners.remove(self._callback)


class AuthGateway:
    def __init__(self, gateway: Gateway, ttl: timedelta = timedelta(hours=12), hasher: PasswordHasher | None = None):
        self.gateway = gateway
        self.ttl = ttl
        self.hasher = hasher or PasswordHasher()
        self._listeners: list[AuthCallback] = []

    async def create_admin(self, email: str, password: str) -> AdminUser:
        email = email.strip().lower()
        row = await self._insert(ADMINS, {"email": email, "password_hash": self.hasher.hash(password)})
        logger.info("created admin %s", email)
        return AdminUser(row["id"], row["email"])

    async def ensure_admin(self, email: str, password: str) -> AdminUser:
        row = await self._select_one(ADMINS, {"email": email.strip().lower()})
        if row:
            return AdminUser(row["id"], row["email"])
        return await self.create_admin(email, password)

    async def sign_in(self, email: str, password: str) -> AuthSession:
        row = await self._select_one(ADMINS, {"email": email.strip().lower()})
        if not row or not self.hasher.verify(password, row.get("password_hash", "")):
            logger.info("failed sign-in for %s", email)
            raise AuthError("Invalid login credentials")

        user = AdminUser(row["id"], row["email"])
        session = AuthSession(secrets.token_urlsafe(32), user, now_utc() + self.ttl)
        await self._insert(AUTH_SESSIONS, {
            "token": session.token,
            "user_id": user.id,
            "email": user.email,
            "expires_at": session.expires_at,
        })
        logger.info("admin %s signed in", user.email)
        self._notify(SIGNED_IN, session)
        return session

    async def sign_out(self, token: Optional[str]) -> None:
        if not token:
            return
        row = await self._select_one(AUTH_SESSIONS, {"token": token})
        if not row:
            return
        await self._delete(AUTH_SESSIONS, row["id"])
        session = self._session_from_row(row)
        logger.info("admin %s signed out", session.user.email)
        self._notify(SIGNED_OUT, session)

    async def get_current_session(self, token: Optional[str]) -> Optional[AuthSession]:
        if not token:
            return None
        row = await self._select_one(AUTH_SESSIONS, {"token": token})
        if not row:
            return None
        session = self._session_from_row(row)
        if session.expires_at <= now_utc():
            await self._delete(AUTH_SESSIONS, row["id"])
            return None
        return session

    async def _select_one(self, table: str, filters: dict) -> Optional[dict]:
        try:
            return await self.gateway.select_one(table, filters)
        except GatewayError as e:
            raise AuthServiceError(e.message) from e

    async def _insert(self, table: str, record: dict) -> dict:
        try:
            return await self.gateway.insert(table, record)
        except GatewayError as e:
            raise AuthServiceError(e.message) from e

    async def _delete(self, table: str, id: str) -> bool:
        try:
            return await self.gateway.delete(table, id)
        except GatewayError as e:
            raise AuthServiceError(e.message) from e

    def on_auth_state_change(self, callback: AuthCallback) -> Subscription:
        return Subscription(self._listeners, callback)

    def _notify(self, event: str, session: Optional[AuthSession]):
        for callback in list(self._listeners):
            try:
                callback(event, session)
            except Exception:
                logger.exception("auth state listener failed on %s", event)

    @staticmethod
    def _session_from_row(row: dict) -> AuthSession:
        expires_at = row["expires_at"]
        if expires_at.tzinfo is None:
            expires_at = expires_at.replace(tzinfo=timezone.utc)
        return AuthSession(row["token"], AdminUser(row["user_id"], row["email"]), expires_at)


class AuthState(str, Enum):
    CHECKING = "checking"
    AUTHENTICATED = "authenticated"
    ANONYMOUS = "anonymous"


class AuthGate:
    """Access decision for one protected view.

    Usage::

        async with AuthGate(auth, token) as gate:
            if not gate.allowed:
                ...redirect to gate.redirect_to...

    The gate listens for auth changes while open and always unsubscribes on exit.
    """

    def __init__(self, auth: AuthGateway, token: Optional[str]):
        self.auth = auth
        self.token = token
        self.state = AuthState.CHECKING
        self.user: Optional[AdminUser] = None
        self._subscription: Optional[Subscription] = None

    @property
    def pending(self) -> bool:
        return self.state is AuthState.CHECKING

    @property
    def allowed(self) -> bool:
        return self.state is AuthState.AUTHENTICATED

    @property
    def redirect_to(self) -> Optional[str]:
        return LOGIN_PATH if self.state is AuthState.ANONYMOUS else None

    async def open(self):
        self._subscription = self.auth.on_auth_state_change(self._on_change)
        session = await self.auth.get_current_session(self.token)
        if self.state is AuthState.CHECKING:
            self._apply(session)
        return self

    def close(self):
        if self._subscription is not None:
            self._subscription.unsubscribe()
            self._subscription = None

    async def __aenter__(self):
        try:
            return await self.open()
        except BaseException:
            self.close()
            raise

    async def __aexit__(self, exc_type, exc, tb):
        self.close()

    def _apply(self, session: Optional[AuthSession]):
        if session is None:
            self.state, self.user = AuthState.ANONYMOUS, None
        else:
            self.state, self.user = AuthState.AUTHENTICATED, session.user

    def _on_change(self, event: str, session: Optional[AuthSession]):
        if session is None or session.token != self.token:
            return
        self._apply(None if event == SIGNED_OUT else session)
