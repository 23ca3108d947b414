"""Call command -- send one request through the refreshing pipeline.

Useful for poking at any endpoint with the current session::

    flavormind call GET /recipes --param page=2
    flavormind call POST /recipes --json-body '{"title": "Soup"}'
"""

from __future__ import annotations

import json
from typing import Any, Optional

import typer

from flavormind.exceptions import FlavormindError, InvalidUsageError
from flavormind.output import error

_METHODS = ("GET", "POST", "PUT", "PATCH", "DELETE")


def call_command(
    ctx: typer.Context,
    method: str = typer.Argument(help="HTTP method (GET, POST, PUT, PATCH, DELETE)."),
    path: str = typer.Argument(help="Path relative to the API base URL, e.g. /recipes."),
    param: Optional[list[str]] = typer.Option(
        None, "--param", "-P", help="Query parameter as key=value. Repeatable."
    ),
    json_body: Optional[str] = typer.Option(
        None, "--json-body", "-d", help="JSON request body."
    ),
) -> None:
    """Send a request and print the response data.

    The status line goes to stderr and the envelope's ``data`` to stdout.
    Non-2xx statuses exit with code 4.
    """
    from flavormind import commands
    from flavormind.client.response import api_error_from_response, format_api_response

    try:
        verb = _parse_method(method)
        params = _parse_params(param or [])
        body = _parse_json_body(json_body)

        with commands.open_client(ctx) as client:
            response = client.request(verb, path, params=params or None, json_body=body)

        format_api_response(response)
        if not response.is_success:
            raise api_error_from_response(response)
    except FlavormindError as exc:
        error(str(exc))
        raise typer.Exit(code=exc.exit_code) from None


def _parse_method(method: str) -> str:
    verb = method.upper()
    if verb not in _METHODS:
        raise InvalidUsageError(f"Unsupported method: {method}")
    return verb


def _parse_params(pairs: list[str]) -> dict[str, str]:
    """Turn ``key=value`` strings into a dict."""
    params: dict[str, str] = {}
    for pair in pairs:
        key, sep, value = pair.partition("=")
        if not sep or not key:
            raise InvalidUsageError(f"Expected key=value, got: {pair}")
        params[key] = value
    return params


def _parse_json_body(text: Optional[str]) -> Any:  # noqa: ANN401
    if text is None:
        return None
    try:
        return json.loads(text)
    except json.JSONDecodeError as exc:
        raise InvalidUsageError(f"Invalid JSON body: {exc}") from None
