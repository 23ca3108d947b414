"""Numeric process exit codes following `clig.dev <https://clig.dev/>`_ conventions.

Each constant maps to a specific error category and is referenced by the
corresponding :class:`~flavormind.exceptions.FlavormindError` subclass.
Shell wrappers can inspect the exit code to tell an expired session apart
from a flaky network without parsing stderr.

Example::

    $ flavormind call GET /users/me
    $ echo $?
    3   # EXIT_AUTH_FAILURE -- log in again
"""

EXIT_SUCCESS = 0
"""The command completed successfully."""

EXIT_GENERIC_FAILURE = 1
"""An unclassified error occurred."""

EXIT_INVALID_USAGE = 2
"""The command was invoked with invalid arguments or missing required parameters."""

EXIT_AUTH_FAILURE = 3
"""The session is gone: refresh was denied or the retried call was still rejected."""

EXIT_API_ERROR = 4
"""The API answered with a non-2xx status other than 401."""

EXIT_CONNECTION_ERROR = 6
"""A network-level error occurred (timeout, DNS failure, connection refused)."""
