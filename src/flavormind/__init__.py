"""flavormind -- authenticated HTTP client core for the FlavorMind recipe API.

Every call the FlavorMind app makes to its backend goes through one client
that attaches the stored bearer token, notices when the token has expired,
refreshes it exactly once no matter how many requests failed at the same
time, and replays the failed requests with the new token.

Typical usage::

    from flavormind.client import AsyncClient

    async with AsyncClient.from_settings(settings) as client:
        envelope = await client.call("GET", "/recipes")

Modules:
    app: Typer application and CLI entry point.
    models: Pydantic models shared across the package.
    config: XDG-aware settings storage and credential-source resolution.
    exceptions: Exception hierarchy with exit-code mapping.
    exit_codes: Numeric exit codes following clig.dev conventions.
    output: stdout/stderr formatting system with Rich support.
"""

__version__ = "0.1.0"
