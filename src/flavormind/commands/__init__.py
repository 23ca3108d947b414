"""Built-in CLI sub-commands for flavormind.

This package groups the Typer sub-command modules that form the CLI's
top-level command tree:

* :mod:`~flavormind.commands.auth` -- log in, log out, inspect and refresh
  the session.
* :mod:`~flavormind.commands.call` -- send an arbitrary API request through
  the refreshing pipeline.
* :mod:`~flavormind.commands.config` -- view and modify settings.

Commands obtain their client through :func:`open_client`, which resolves
settings from the ``--base-url`` flag, the environment, and the config file.
"""

from __future__ import annotations

import typer

from flavormind.client.sync_client import SyncClient


def open_client(ctx: typer.Context) -> SyncClient:
    """Build a :class:`SyncClient` for the current invocation.

    The caller is responsible for entering the returned client as a
    context manager.
    """
    from flavormind.config import resolve_settings

    base_url = ctx.obj.get("base_url") if ctx.obj else None
    settings = resolve_settings(cli_base_url=base_url)
    return SyncClient.from_settings(settings)
