"""Config commands -- view and modify settings.

Provides the ``flavormind config`` sub-command group for reading and
updating the settings file (:class:`~flavormind.models.ClientSettings`).
Settings are persisted in the flavormind config directory; environment
variables and ``--base-url`` still take precedence at run time.
"""

from __future__ import annotations

import typer
from pydantic import ValidationError

from flavormind.output import error, format_response, info, success


config_app = typer.Typer(no_args_is_help=True)

_NULL_VALUES = ("", "none", "null")


@config_app.command("show")
def config_show() -> None:
    """Show the settings stored on disk.

    Example::

        flavormind config show
        flavormind --json config show
    """
    from flavormind.config import load_settings, settings_path
    from flavormind.exceptions import ConfigError

    try:
        settings = load_settings()
    except ConfigError as exc:
        error(str(exc))
        raise typer.Exit(code=exc.exit_code) from None

    info(f"Config file: {settings_path()}")
    format_response(settings.model_dump(mode="json"))


@config_app.command("set")
def config_set(
    key: str = typer.Argument(help="Settings key, e.g. 'base_url' or 'timeout'."),
    value: str = typer.Argument(help="Value to set. 'none' restores the default."),
) -> None:
    """Set a configuration value.

    The value is coerced to match the field's type (bool or float) and the
    result is validated against :class:`~flavormind.models.ClientSettings`
    before saving.

    Example::

        flavormind config set base_url http://localhost:5000/api/v1
        flavormind config set api_key_source env:FLAVORMIND_API_KEY
        flavormind config set timeout 20
    """
    from flavormind.config import load_settings, save_settings
    from flavormind.exceptions import ConfigError
    from flavormind.models import ClientSettings

    try:
        settings = load_settings()
    except ConfigError as exc:
        error(str(exc))
        raise typer.Exit(code=exc.exit_code) from None
    data = settings.model_dump(mode="json")

    if key not in ClientSettings.model_fields:
        error(f"Unknown config key: {key}")
        raise typer.Exit(code=2)

    current = data[key]
    if isinstance(current, bool):
        coerced = value.lower() in ("true", "1", "yes")
    elif isinstance(current, float):
        try:
            coerced = float(value)
        except ValueError:
            error(f"Expected a number for {key}, got: {value}")
            raise typer.Exit(code=2) from None
    elif value.lower() in _NULL_VALUES and not ClientSettings.model_fields[key].is_required():
        coerced = ClientSettings.model_fields[key].default
    else:
        coerced = value

    data[key] = coerced

    try:
        new_settings = ClientSettings.model_validate(data)
    except ValidationError as exc:
        error(f"Validation error: {exc}")
        raise typer.Exit(code=2) from None

    save_settings(new_settings)
    success(f"Set {key} = {coerced}")
