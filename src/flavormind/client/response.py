"""Response envelope handling -- maps :class:`httpx.Response` to FlavorMind envelopes.

Every FlavorMind endpoint answers with the same JSON envelope::

    {"success": true,  "message": "...", "data": ..., "timestamp": "..."}
    {"success": false, "message": "...", "errors": [...], "timestamp": "..."}

The request pipeline itself never touches bodies.  These helpers sit on top
of it for callers that want the parsed envelope (the ``call`` methods on the
clients and the CLI).

See Also:
    :mod:`flavormind.output` -- renders the parsed data on the command line.
"""

from __future__ import annotations

from typing import Any

import httpx

from flavormind.exceptions import ApiError
from flavormind.models import ApiErrorBody, ApiResponse
from flavormind.output import get_output


def extract_response_data(response: httpx.Response) -> Any:
    """Extract the body from an HTTP response.

    Attempts to parse the body as JSON first, falling back to the raw text.
    Returns ``None`` for responses with no content.
    """
    if not response.content:
        return None
    try:
        return response.json()
    except ValueError:
        return response.text


def parse_envelope(response: httpx.Response) -> ApiResponse:
    """Return the success envelope of a 2xx response.

    Non-JSON or non-object bodies are wrapped as ``data`` so callers always
    get an :class:`~flavormind.models.ApiResponse`.

    Raises:
        ApiError: If the status is not 2xx.
    """
    if not response.is_success:
        raise api_error_from_response(response)
    body = extract_response_data(response)
    if isinstance(body, dict) and ("data" in body or "success" in body):
        return ApiResponse.model_validate(body)
    return ApiResponse(success=True, data=body)


def api_error_from_response(response: httpx.Response) -> ApiError:
    """Build an :class:`~flavormind.exceptions.ApiError` from a failed response.

    Uses the envelope's ``message`` and ``errors`` when present and a plain
    ``HTTP <status>`` message otherwise.
    """
    status = response.status_code
    body = extract_response_data(response)

    message = ""
    errors: list[Any] = []
    if isinstance(body, dict):
        parsed = ApiErrorBody.model_validate(body)
        message = parsed.message or str(body.get("error") or body.get("detail") or "")
        errors = parsed.errors or []
    elif isinstance(body, str):
        message = body[:200]

    prefix = f"HTTP {status}"
    full_msg = f"{prefix}: {message}" if message else prefix
    return ApiError(full_msg, status_code=status, errors=errors)


def format_api_response(response: httpx.Response) -> None:
    """Print an API response through the global output system.

    The status line goes to stderr; the envelope's ``data`` (or the whole
    body when it is not an envelope) goes to stdout.
    """
    output = get_output()
    output.info(f"HTTP {response.status_code} {response.reason_phrase or ''}")

    data = extract_response_data(response)
    if isinstance(data, dict) and "data" in data:
        if data.get("message"):
            output.debug(str(data["message"]))
        data = data["data"]
    if data is not None:
        output.format_response(data)
