"""Account management: sign-up, sign-in with throttling, tokens and password reset."""
from __future__ import annotations

import logging
import re
from collections import defaultdict
from dataclasses import dataclass
from typing import Callable, Optional
from uuid import uuid4

import pendulum
from sqlmodel import select

from ..config import Settings, get_settings
from ..db import get_session
from ..errors import AuthError
from ..events import AUTH_STATE, EventBus
from ..models import Language, User
from ..schemas import Credentials, SignUpRequest
from .security import TokenError, decode_token, generate_token, hash_password, verify_password

logger = logging.getLogger(__name__)

EMAIL_PATTERN = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")

ACCESS = "access"
PASSWORD_RESET = "password-reset"


@dataclass(frozen=True)
class UserHandle:
    uid: str
    email: str
    display_name: Optional[str] = None
    language: str = Language.ES.value


@dataclass(frozen=True)
class AuthStateChange:
    uid: str
    user: Optional[UserHandle]


def _handle(user: User) -> UserHandle:
    return UserHandle(uid=user.uid, email=user.email, display_name=user.display_name, language=user.language.value)


class AuthService:
    def __init__(self, events: EventBus, settings: Optional[Settings] = None) -> None:
        self.events = events
        self.settings = settings or get_settings()
        self._failures: dict[str, list[float]] = defaultdict(list)
        # jti -> expiry of tokens withdrawn before they run out
        self._revoked: dict[str, float] = {}

    def on_auth_state_change(self, callback: Callable[[Optional[UserHandle]], None]) -> Callable[[], None]:
        """Call ``callback`` with the signed-in user, or ``None`` after a sign-out."""

        return self.events.subscribe(AUTH_STATE, lambda change: callback(change.user))

    def sign_up(self, request: SignUpRequest) -> UserHandle:
        language = request.language.value
        email = request.email.strip().lower()
        if not EMAIL_PATTERN.match(email):
            raise AuthError("invalid-email", language)
        if len(request.password) < self.settings.min_password_length:
            raise AuthError("weak-password", language)
        with get_session() as session:
            existing = session.exec(select(User).where(User.email == email)).one_or_none()
            if existing:
                raise AuthError("email-already-in-use", language)
            user = User(
                uid=uuid4().hex,
                email=email,
                display_name=request.display_name,
                hashed_password=hash_password(request.password),
                language=request.language,
            )
            session.add(user)
            session.flush()
            session.refresh(user)
            handle = _handle(user)
        logger.info("Created account %s", handle.uid)
        self.events.publish(AUTH_STATE, AuthStateChange(handle.uid, handle))
        return handle

    def authenticate(self, credentials: Credentials, language: str = "ES") -> UserHandle:
        email = credentials.email.strip().lower()
        if self._is_throttled(email):
            raise AuthError("too-many-requests", language)
        with get_session() as session:
            user = session.exec(select(User).where(User.email == email)).one_or_none()
            if user is None:
                self._record_failure(email)
                raise AuthError("user-not-found", language)
            if not verify_password(credentials.password, user.hashed_password):
                self._record_failure(email)
                raise AuthError("wrong-password", language)
            if not user.is_active:
                raise AuthError("user-disabled", language)
            handle = _handle(user)
        self._failures.pop(email, None)
        self.events.publish(AUTH_STATE, AuthStateChange(handle.uid, handle))
        return handle

    def issue_token(self, user: UserHandle) -> str:
        return generate_token(user.uid, ACCESS, self.settings.access_token_ttl_seconds)

    def resolve(self, token: str, language: str = "ES") -> UserHandle:
        try:
            payload = decode_token(token, ACCESS)
        except TokenError as exc:
            raise AuthError(exc.code, language) from exc
        if self._is_revoked(payload.get("jti")):
            raise AuthError("invalid-token", language)
        with get_session() as session:
            user = session.exec(select(User).where(User.uid == payload["sub"])).one_or_none()
            if user is None:
                raise AuthError("user-not-found", language)
            if not user.is_active:
                raise AuthError("user-disabled", language)
            return _handle(user)

    def current_user(self, token: Optional[str]) -> Optional[UserHandle]:
        if not token:
            return None
        try:
            return self.resolve(token)
        except AuthError:
            return None

    def sign_out(self, token: str) -> None:
        try:
            payload = decode_token(token, ACCESS)
        except TokenError:
            return
        self._revoke(payload)
        self.events.publish(AUTH_STATE, AuthStateChange(payload["sub"], None))

    def request_password_reset(self, email: str, language: str = "ES") -> str:
        email = email.strip().lower()
        with get_session() as session:
            user = session.exec(select(User).where(User.email == email)).one_or_none()
            if user is None:
                raise AuthError("user-not-found", language)
            uid = user.uid
        logger.info("Password reset requested for %s", uid)
        return generate_token(uid, PASSWORD_RESET, self.settings.reset_token_ttl_seconds)

    def confirm_password_reset(self, token: str, new_password: str, language: str = "ES") -> None:
        try:
            payload = decode_token(token, PASSWORD_RESET)
        except TokenError as exc:
            raise AuthError(exc.code, language) from exc
        if self._is_revoked(payload["jti"]):
            raise AuthError("invalid-token", language)
        if len(new_password) < self.settings.min_password_length:
            raise AuthError("weak-password", language)
        with get_session() as session:
            user = session.exec(select(User).where(User.uid == payload["sub"])).one_or_none()
            if user is None:
                raise AuthError("user-not-found", language)
            user.hashed_password = hash_password(new_password)
            user.touch()
            session.add(user)
            self._failures.pop(user.email, None)
        self._revoke(payload)

    def _revoke(self, payload: dict) -> None:
        self._prune_revoked()
        self._revoked[payload["jti"]] = payload.get("exp") or 0

    def _is_revoked(self, jti: Optional[str]) -> bool:
        self._prune_revoked()
        return jti in self._revoked

    def _prune_revoked(self) -> None:
        """Expired tokens are rejected on decode, so their revocations can go."""

        now = pendulum.now("UTC").timestamp()
        for expired in [key for key, expiry in self._revoked.items() if expiry < now]:
            del self._revoked[expired]

    def _is_throttled(self, email: str) -> bool:
        window_start = pendulum.now("UTC").timestamp() - self.settings.auth_lockout_seconds
        recent = [stamp for stamp in self._failures.get(email, []) if stamp >= window_start]
        if recent:
            self._failures[email] = recent
        else:
            self._failures.pop(email, None)
        return len(recent) >= self.settings.auth_max_failed_attempts

    def _record_failure(self, email: str) -> None:
        self._failures[email].append(pendulum.now("UTC").timestamp())
        logger.warning("Failed sign-in for %s (%s recent failures)", email, len(self._failures[email]))


class AuthSession:
    """Client-side view of one signed-in user, holding the access token."""

    def __init__(self, auth: AuthService) -> None:
        self.auth = auth
        self.token: Optional[str] = None

    def sign_in(self, credentials: Credentials, language: str = "ES") -> UserHandle:
        user = self.auth.authenticate(credentials, language)
        self.token = self.auth.issue_token(user)
        return user

    def current_user(self) -> Optional[UserHandle]:
        return self.auth.current_user(self.token)

    def sign_out(self) -> None:
        if self.token:
            self.auth.sign_out(self.token)
        self.token = None
