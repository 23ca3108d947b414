"""Exception hierarchy for flavormind.

All exceptions inherit from :class:`FlavormindError`, which carries an
``exit_code`` attribute mapped to a constant from :mod:`flavormind.exit_codes`.
The CLI entry point catches ``FlavormindError`` and exits with that code.

Subclass hierarchy::

    FlavormindError (exit 1)
    +-- InvalidUsageError      (exit 2)
    +-- AuthError              (exit 3)
    |   +-- Unauthenticated
    |   +-- RefreshDenied
    +-- ApiError               (exit 4)
    +-- TransientError         (exit 6)
    |   +-- RefreshUnreachable
    +-- ConfigError            (exit 1)

Only :class:`Unauthenticated` means "the user must log in again".
:class:`RefreshUnreachable` deliberately sits under :class:`TransientError`
so callers that retry on network trouble also retry when the identity
provider could not be reached.
"""

from __future__ import annotations

from typing import Any, Optional

from flavormind.exit_codes import (
    EXIT_API_ERROR,
    EXIT_AUTH_FAILURE,
    EXIT_CONNECTION_ERROR,
    EXIT_GENERIC_FAILURE,
    EXIT_INVALID_USAGE,
)


class FlavormindError(Exception):
    """Base exception for all flavormind errors.

    Args:
        message: Human-readable error description printed to stderr.
        exit_code: Optional override for the class-level exit code.
    """

    exit_code: int = EXIT_GENERIC_FAILURE

    def __init__(self, message: str, exit_code: int | None = None):
        super().__init__(message)
        if exit_code is not None:
            self.exit_code = exit_code


class InvalidUsageError(FlavormindError):
    """Raised for invalid CLI arguments or missing required parameters."""

    exit_code = EXIT_INVALID_USAGE


class AuthError(FlavormindError):
    """Raised when authentication fails (bad login, rejected token)."""

    exit_code = EXIT_AUTH_FAILURE


class Unauthenticated(AuthError):
    """The session could not be recovered; stored credentials have been cleared."""


class RefreshDenied(AuthError):
    """The identity provider rejected the refresh token (revoked or expired)."""


class TransientError(FlavormindError):
    """Raised on network-level failures (timeout, DNS resolution, connection refused).

    Never retried by the client itself; retry policy belongs to the caller.
    """

    exit_code = EXIT_CONNECTION_ERROR


class RefreshUnreachable(TransientError):
    """The identity provider could not be reached; credentials were kept."""


class ApiError(FlavormindError):
    """Raised when the API returns a non-2xx status other than 401.

    Carries the HTTP status and the optional validation details from the
    error envelope (``{"success": false, "message": ..., "errors": [...]}``).

    Args:
        message: The envelope's ``message`` or a generic ``HTTP <status>``.
        status_code: The HTTP status code of the response.
        errors: Validation details from the envelope, if any.
    """

    exit_code = EXIT_API_ERROR

    def __init__(
        self,
        message: str,
        status_code: int,
        errors: Optional[list[Any]] = None,
    ):
        super().__init__(message)
        self.status_code = status_code
        self.errors = errors or []


class ConfigError(FlavormindError):
    """Raised for configuration problems (invalid JSON, bad credential sources)."""

    exit_code = EXIT_GENERIC_FAILURE
