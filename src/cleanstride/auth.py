"""Sign-in and the current-session holder.

`AuthContext` replaces process-wide session state: whoever needs the current
user gets the context passed in and may subscribe to session changes.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Callable

from psycopg import Connection
from werkzeug.security import check_password_hash, generate_password_hash

from .domain import Profile
from .errors import ValidationError
from .lifecycle import UserRole
from .repositories.profile_repo import ProfileRepository

logger = logging.getLogger(__name__)

SIGNED_IN = "SIGNED_IN"
SIGNED_OUT = "SIGNED_OUT"

MIN_PASSWORD_LENGTH = 8


class AuthError(Exception):
    pass


@dataclass(frozen=True)
class AuthSession:
    profile: Profile
    email: str
    signed_in_at: datetime


Listener = Callable[[str, "AuthSession | None"], None]


class AuthContext:
    def __init__(self) -> None:
        self._session: AuthSession | None = None
        self._listeners: list[Listener] = []

    @property
    def session(self) -> AuthSession | None:
        return self._session

    @property
    def profile(self) -> Profile | None:
        return self._session.profile if self._session else None

    def require_profile(self) -> Profile:
        if self._session is None:
            raise AuthError("Not signed in.")
        return self._session.profile

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        """Register `listener(event, session)`; returns the matching unsubscribe call."""
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def _emit(self, event: str) -> None:
        for listener in list(self._listeners):
            try:
                listener(event, self._session)
            except Exception:
                logger.exception("Auth listener %r failed on %s", listener, event)

    def set_session(self, session: AuthSession) -> None:
        self._session = session
        self._emit(SIGNED_IN)

    def clear(self) -> None:
        if self._session is None:
            return
        self._session = None
        self._emit(SIGNED_OUT)


class AuthService:
    def __init__(self, *, profile_repo: ProfileRepository) -> None:
        self.profile_repo = profile_repo

    def sign_up(
        self,
        conn: Connection,
        *,
        email: str,
        password: str,
        full_name: str,
        phone: str | None = None,
        address: str | None = None,
    ) -> int:
        email = email.strip().lower()
        if "@" not in email:
            raise ValidationError("Enter a valid e-mail address.")
        if len(password) < MIN_PASSWORD_LENGTH:
            raise ValidationError(f"Password must have at least {MIN_PASSWORD_LENGTH} characters.")
        if not full_name.strip():
            raise ValidationError("Full name cannot be empty.")
        if self.profile_repo.get_account(conn, email) is not None:
            raise ValidationError("An account with this e-mail already exists.")

        profile_id = self.profile_repo.create(
            conn,
            full_name=full_name.strip(),
            phone=(phone.strip() if phone else None),
            address=(address.strip() if address else None),
            role=UserRole.CUSTOMER,
        )
        self.profile_repo.create_account(
            conn, profile_id=profile_id, email=email, password_hash=generate_password_hash(password)
        )
        logger.info("New customer account %s (profile %s)", email, profile_id)
        return profile_id

    def sign_in(self, conn: Connection, *, email: str, password: str, now: datetime | None = None) -> AuthSession:
        email = email.strip().lower()
        account = self.profile_repo.get_account(conn, email)
        if account is None or not check_password_hash(account["password_hash"], password):
            logger.warning("Failed sign-in for %s", email)
            raise AuthError("Invalid e-mail or password.")

        profile = self.profile_repo.get(conn, int(account["profile_id"]))
        if profile is None or not profile.is_active:
            raise AuthError("This account is disabled.")
        return AuthSession(profile=profile, email=email, signed_in_at=now or datetime.now())

    def load_profile(self, conn: Connection, profile_id: int) -> Profile | None:
        profile = self.profile_repo.get(conn, profile_id)
        if profile is None or not profile.is_active:
            return None
        return profile
