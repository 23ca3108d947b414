"""Canonical Pydantic models shared across all flavormind modules.

This is the single source of truth for data shapes in the project. The models
fall into three groups:

**Credentials and session** -- persisted on disk by the auth layer:
    :class:`Credential`, :class:`AuthUser`, and :class:`SessionData`.

**Wire envelopes** -- the uniform body shape every FlavorMind endpoint returns:
    :class:`ApiResponse` and :class:`ApiErrorBody`.

**Configuration** -- serialised as JSON in the user's config directory:
    :class:`ClientSettings`.

Models that mirror JSON written by the backend or by the mobile app use
camelCase aliases and ``populate_by_name=True`` so Python code can use
snake_case names while the files and payloads keep their original keys.
"""

from __future__ import annotations

from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field


# --- Credentials ---


class Credential(BaseModel):
    """An access/refresh token pair.

    Both tokens are opaque strings and must be non-empty. The pair is only
    ever written as a whole, so a reader never sees an access token from
    one login next to the refresh token from another.

    The aliases are the two persistence keys used on disk (``authToken`` and
    ``refreshToken``).

    Example::

        cred = Credential(access_token="A1", refresh_token="R1")
        cred.model_dump(by_alias=True)
        # {"authToken": "A1", "refreshToken": "R1"}
    """

    model_config = ConfigDict(populate_by_name=True, frozen=True)

    access_token: str = Field(alias="authToken", min_length=1)
    refresh_token: str = Field(alias="refreshToken", min_length=1)


class AuthUser(BaseModel):
    """The signed-in user as returned by the ``/auth/*`` endpoints."""

    model_config = ConfigDict(populate_by_name=True, extra="allow")

    uid: str
    email: Optional[str] = None
    display_name: Optional[str] = Field(default=None, alias="displayName")
    photo_url: Optional[str] = Field(default=None, alias="photoURL")
    email_verified: bool = Field(default=False, alias="emailVerified")


class SessionData(BaseModel):
    """Non-secret session state kept next to the credential file.

    Attributes:
        user: The last user returned by a successful login, if any.
        remember_me: Whether the user asked to be remembered on this device.
        remembered_email: Email to pre-fill on the next login.  Survives
            :meth:`~flavormind.auth.session.SessionManager.logout` only when
            ``remember_me`` is set.
    """

    model_config = ConfigDict(populate_by_name=True)

    user: Optional[AuthUser] = None
    remember_me: bool = Field(default=False, alias="rememberMe")
    remembered_email: Optional[str] = Field(default=None, alias="userEmail")


# --- Envelopes ---


class ApiResponse(BaseModel):
    """Success envelope shared by every FlavorMind endpoint.

    ``data`` is endpoint-specific and left untyped here; the resource
    wrappers that consume the client validate it further.
    """

    model_config = ConfigDict(extra="allow")

    success: bool = True
    message: str = ""
    data: Any = None
    timestamp: str = ""


class ApiErrorBody(BaseModel):
    """Failure envelope: ``{"success": false, "message", "errors"?, "timestamp"}``."""

    model_config = ConfigDict(extra="allow")

    success: bool = False
    message: str = ""
    errors: Optional[list[Any]] = None
    timestamp: str = ""


# --- Configuration ---


DEFAULT_BASE_URL = "https://api.flavormind.com/api/v1"
DEFAULT_TOKEN_URL = "https://securetoken.googleapis.com/v1/token"


class ClientSettings(BaseModel):
    """Settings for the HTTP client and the token refresher.

    Loaded from ``config.json`` in the config directory and overridden by
    environment variables and CLI flags (see
    :func:`flavormind.config.resolve_settings`).

    Example::

        ClientSettings(
            base_url="http://192.168.8.218:5000/api/v1",
            api_key_source="env:FLAVORMIND_API_KEY",
        )
    """

    base_url: str = Field(
        default=DEFAULT_BASE_URL, description="Base URL every API path is appended to"
    )
    timeout: float = Field(
        default=10.0, gt=0, description="Timeout for ordinary API calls, in seconds"
    )
    refresh_timeout: float = Field(
        default=15.0,
        gt=0,
        description="Timeout for the token refresh call, in seconds",
    )
    token_url: str = Field(
        default=DEFAULT_TOKEN_URL, description="Identity provider refresh endpoint"
    )
    api_key_source: Optional[str] = Field(
        default=None,
        description="Credential source for the service key sent to the token "
        "endpoint: env:VAR, file:/path, value:LITERAL.  None sends no key",
    )
    verify_ssl: bool = True
    debug_logging: bool = Field(
        default=False, description="Log every request and response at DEBUG level"
    )
