"""Session lifecycle -- login, registration, OTP, logout.

:class:`SessionManager` is the thin layer the app's auth screens talk to.
It calls the public ``/auth/*`` endpoints through a
:class:`~flavormind.client.sync_client.SyncClient`, stores the returned token
pair in the client's credential store, and keeps the non-secret parts of the
session (signed-in user, remember-me email) in a :class:`SessionStore`.

Clearing the credential store is how the rest of the app learns that the
user must log in again; :meth:`SessionManager.is_authenticated` simply asks
the store.
"""

from __future__ import annotations

import json
import logging
import threading
from pathlib import Path
from typing import TYPE_CHECKING, Any, Optional

from pydantic import ValidationError

from flavormind.client.response import parse_envelope
from flavormind.config import atomic_write, get_data_dir
from flavormind.exceptions import AuthError
from flavormind.models import AuthUser, Credential, SessionData

if TYPE_CHECKING:
    from flavormind.client.sync_client import SyncClient

logger = logging.getLogger(__name__)

_SESSION_FILENAME = "session.json"


class SessionStore:
    """Persists :class:`~flavormind.models.SessionData` as JSON.

    Unreadable files load as an empty session; the data here is a
    convenience, never a reason to fail.

    Args:
        path: File location.  Defaults to ``<data dir>/session.json``.
    """

    def __init__(self, path: Optional[Path] = None) -> None:
        self._path = path if path is not None else get_data_dir() / _SESSION_FILENAME
        self._lock = threading.Lock()

    @property
    def path(self) -> Path:
        return self._path

    def load(self) -> SessionData:
        with self._lock:
            if not self._path.is_file():
                return SessionData()
            try:
                data = json.loads(self._path.read_text(encoding="utf-8"))
                return SessionData.model_validate(data)
            except (OSError, ValueError, ValidationError) as exc:
                logger.warning("Could not read session data: %s", exc)
                return SessionData()

    def save(self, session: SessionData) -> None:
        text = json.dumps(session.model_dump(mode="json", by_alias=True), indent=2) + "\n"
        with self._lock:
            atomic_write(self._path, text, mode=0o600)


class SessionManager:
    """Signs users in and out.

    Args:
        client: An open :class:`~flavormind.client.sync_client.SyncClient`.
            Its credential store receives the tokens.
        session_store: Where user details and remember-me live.

    Example::

        with SyncClient.from_settings(settings) as client:
            user = SessionManager(client).login("ada@example.com", "secret")
    """

    def __init__(self, client: SyncClient, session_store: Optional[SessionStore] = None) -> None:
        self._client = client
        self._sessions = session_store if session_store is not None else SessionStore()

    # ------------------------------------------------------------------ #
    # Sign-in flows
    # ------------------------------------------------------------------ #

    def login(self, email: str, password: str, remember_me: bool = False) -> AuthUser:
        """Log in with email and password and start a session.

        Raises:
            AuthError: If the credentials are rejected or the response lacks
                a token pair.
            ApiError: For other error statuses (e.g. validation failures).
        """
        data = self._post("/auth/login", {"email": email, "password": password}, "Login")
        user = self._start_session(data)

        session = self._sessions.load()
        session.user = user
        session.remember_me = remember_me
        session.remembered_email = email if remember_me else None
        self._sessions.save(session)
        logger.info("Logged in as %s", user.email)
        return user

    def register(self, name: str, email: str, password: str) -> AuthUser:
        """Create an account and start a session for it."""
        data = self._post(
            "/auth/register",
            {"name": name, "email": email, "password": password},
            "Registration",
        )
        user = self._start_session(data)
        self._remember_user(user)
        return user

    def send_otp(self, phone_number: str) -> str:
        """Ask the backend to text a one-time code.  Returns the server message."""
        response = self._client.post("/auth/send-otp", json_body={"phoneNumber": phone_number})
        return parse_envelope(response).message

    def verify_otp(self, phone_number: str, otp: str) -> AuthUser:
        """Complete an OTP login."""
        data = self._post(
            "/auth/verify-otp",
            {"phoneNumber": phone_number, "otp": otp},
            "OTP verification",
        )
        user = self._start_session(data)
        self._remember_user(user)
        return user

    def send_password_reset(self, email: str) -> str:
        """Request a password-reset email.  Returns the server message."""
        response = self._client.post("/auth/forgot-password", json_body={"email": email})
        return parse_envelope(response).message or "Password reset email sent"

    # ------------------------------------------------------------------ #
    # Session state
    # ------------------------------------------------------------------ #

    def logout(self) -> None:
        """End the session.

        Tokens and the stored user are removed.  The remembered email
        survives only if the user asked to be remembered.
        """
        self._client.store.delete()
        session = self._sessions.load()
        session.user = None
        if not session.remember_me:
            session.remembered_email = None
        self._sessions.save(session)

    def is_authenticated(self) -> bool:
        return self._client.store.load() is not None

    def current_user(self) -> Optional[AuthUser]:
        """The user from the last login, if a session is active."""
        if not self.is_authenticated():
            return None
        return self._sessions.load().user

    def remembered_email(self) -> Optional[str]:
        session = self._sessions.load()
        return session.remembered_email if session.remember_me else None

    # ------------------------------------------------------------------ #
    # Private helpers
    # ------------------------------------------------------------------ #

    def _post(self, path: str, payload: dict[str, Any], action: str) -> dict[str, Any]:
        response = self._client.post(path, json_body=payload, authenticate=False)
        if response.status_code == 401:
            raise AuthError(f"{action} failed: credentials were rejected")
        envelope = parse_envelope(response)
        if not envelope.success or not isinstance(envelope.data, dict):
            raise AuthError(f"{action} failed: {envelope.message or 'unexpected response'}")
        return envelope.data

    def _start_session(self, data: dict[str, Any]) -> AuthUser:
        access_token = data.get("token") or data.get("accessToken")
        refresh_token = data.get("refreshToken") or data.get("refresh_token")
        if not access_token or not refresh_token:
            raise AuthError("Sign-in response did not include an access and refresh token")
        try:
            user = AuthUser.model_validate(data.get("user") or {})
        except ValidationError as exc:
            raise AuthError(f"Sign-in response contained an invalid user: {exc}") from exc

        self._client.store.save(Credential(access_token=access_token, refresh_token=refresh_token))
        return user

    def _remember_user(self, user: AuthUser) -> None:
        session = self._sessions.load()
        session.user = user
        self._sessions.save(session)
