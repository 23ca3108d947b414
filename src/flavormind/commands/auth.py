"""Auth commands -- manage the signed-in session.

Provides the ``flavormind auth`` sub-command group.  Tokens obtained by
``login`` are stored in the credential store and refreshed transparently by
every later command; ``refresh`` forces that refresh on demand.

Typical workflow::

    flavormind auth login --email ada@example.com
    flavormind auth status
    flavormind auth logout
"""

from __future__ import annotations

from typing import Optional

import typer

from flavormind.exceptions import FlavormindError
from flavormind.output import error, get_output, info, success, suggest


auth_app = typer.Typer(no_args_is_help=True)


@auth_app.command("login")
def auth_login(
    ctx: typer.Context,
    email: Optional[str] = typer.Option(
        None, "--email", "-e", help="Account email. Defaults to the remembered one."
    ),
    password: Optional[str] = typer.Option(
        None, "--password", help="Account password. Prompted for when omitted."
    ),
    remember: bool = typer.Option(
        False, "--remember", help="Remember the email for the next login."
    ),
) -> None:
    """Log in with email and password.

    Example::

        flavormind auth login --email ada@example.com --remember
    """
    from flavormind import commands
    from flavormind.auth.session import SessionManager

    with commands.open_client(ctx) as client:
        manager = SessionManager(client)
        email = email or manager.remembered_email()
        if not email:
            email = typer.prompt("Email")
        if password is None:
            password = typer.prompt("Password", hide_input=True)

        try:
            user = manager.login(email, password, remember_me=remember)
        except FlavormindError as exc:
            error(str(exc))
            raise typer.Exit(code=exc.exit_code) from None

    success(f"Logged in as {user.email or user.uid}.")


@auth_app.command("logout")
def auth_logout(ctx: typer.Context) -> None:
    """Log out and remove the stored tokens."""
    from flavormind import commands
    from flavormind.auth.session import SessionManager

    with commands.open_client(ctx) as client:
        manager = SessionManager(client)
        if not manager.is_authenticated():
            info("Not logged in.")
            return
        manager.logout()
    success("Logged out.")


@auth_app.command("status")
def auth_status(ctx: typer.Context) -> None:
    """Show whether a session is active and who it belongs to.

    Example::

        flavormind auth status
        flavormind --json auth status
    """
    from flavormind import commands
    from flavormind.auth.session import SessionManager

    with commands.open_client(ctx) as client:
        manager = SessionManager(client)
        credential = client.store.load()
        user = manager.current_user()
        remembered = manager.remembered_email()

    if credential is None:
        info("Not logged in.")
        if remembered:
            suggest(f"Log in: flavormind auth login --email {remembered}")
        else:
            suggest("Log in: flavormind auth login")
        return

    rows = [
        ["Logged in", "yes"],
        ["Email", (user.email if user else None) or "-"],
        ["Name", (user.display_name if user else None) or "-"],
        ["Access token", _preview(credential.access_token)],
        ["Refresh token", _preview(credential.refresh_token)],
    ]
    get_output().print_table(["Field", "Value"], rows, title="Session")


@auth_app.command("refresh")
def auth_refresh(ctx: typer.Context) -> None:
    """Exchange the refresh token for a new access token now."""
    from flavormind import commands
    from flavormind.auth.coordinator import RefreshOutcome

    with commands.open_client(ctx) as client:
        coordinator = client.coordinator
        if coordinator is None or client.store.load() is None:
            error("Not logged in.")
            suggest("Log in: flavormind auth login")
            raise typer.Exit(code=3)

        try:
            outcome = coordinator.on_auth_failure()
        except FlavormindError as exc:
            error(str(exc))
            raise typer.Exit(code=exc.exit_code) from None

    if outcome is RefreshOutcome.RETRIED:
        success("Session refreshed.")
    elif outcome is RefreshOutcome.DENIED:
        error("Session expired, log in again.")
        suggest("Log in: flavormind auth login")
        raise typer.Exit(code=3)
    else:
        error("Identity provider unreachable. Stored tokens were kept.")
        raise typer.Exit(code=6)


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _preview(token: str) -> str:
    return token[:8] + "..." if len(token) > 8 else token
