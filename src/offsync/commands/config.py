"""Config commands -- view and modify global configuration.

Provides the ``offsync config`` sub-command group for reading, updating
and resetting the user's global configuration file
(:class:`~offsync.models.GlobalConfig`). Settings are persisted in the
offsync config directory and control the base URL, cache generation,
strategy timing, routing rules and sync behaviour.
"""

from __future__ import annotations

import json

import typer

from offsync.exceptions import ConfigError
from offsync.exit_codes import EXIT_INVALID_USAGE
from offsync.output import error, format_response, info, success


config_app = typer.Typer(no_args_is_help=True)


@config_app.command("show")
def config_show() -> None:
    """Show current configuration.

    Loads the global config from disk and prints the config directory
    path followed by the full configuration.

    Example::

        offsync config show
        offsync config show --json
    """
    from offsync.config import get_config_dir, load_global_config

    try:
        config = load_global_config()
    except ConfigError as exc:
        error(str(exc))
        raise typer.Exit(code=exc.exit_code) from None
    info(f"Config directory: {get_config_dir()}")
    format_response(config.model_dump(mode="json"))


def _coerce(key: str, current: object, value: str) -> object:
    if isinstance(current, bool):
        return value.lower() in ("true", "1", "yes")
    if isinstance(current, int):
        try:
            return int(value)
        except ValueError:
            error(f"Expected integer for {key}, got: {value}")
            raise typer.Exit(code=EXIT_INVALID_USAGE) from None
    if isinstance(current, float):
        try:
            return float(value)
        except ValueError:
            error(f"Expected number for {key}, got: {value}")
            raise typer.Exit(code=EXIT_INVALID_USAGE) from None
    if isinstance(current, list):
        try:
            parsed = json.loads(value)
        except json.JSONDecodeError:
            parsed = [item.strip() for item in value.split(",") if item.strip()]
        if not isinstance(parsed, list):
            error(f"Expected a list for {key}, got: {value}")
            raise typer.Exit(code=EXIT_INVALID_USAGE)
        return parsed
    return value


@config_app.command("set")
def config_set(
    key: str = typer.Argument(
        help="Config key (dot notation, e.g., 'cache.generation')."
    ),
    value: str = typer.Argument(help="Value to set."),
) -> None:
    """Set a configuration value.

    Uses dot notation for nested keys. The value is coerced to the type of
    the existing field (bool, int, float, list or str); lists accept a JSON
    array or a comma-separated string. The updated config is validated
    against :class:`~offsync.models.GlobalConfig` before saving.

    Raises:
        typer.Exit: With code 2 if the key path is invalid, the value
            cannot be coerced, or validation fails.

    Example::

        offsync config set base_url https://app.example.com
        offsync config set cache.generation v2
        offsync config set cache.api_timeout_ms 3000
        offsync config set sync.refresh_urls /api/teams,/api/users
    """
    from pydantic import ValidationError

    from offsync.config import load_global_config, save_global_config
    from offsync.models import GlobalConfig

    try:
        config = load_global_config()
    except ConfigError as exc:
        error(str(exc))
        raise typer.Exit(code=exc.exit_code) from None
    data = config.model_dump(mode="json")

    keys = key.split(".")
    target = data
    for k in keys[:-1]:
        if k not in target or not isinstance(target[k], dict):
            error(f"Invalid config key: {key}")
            raise typer.Exit(code=EXIT_INVALID_USAGE)
        target = target[k]

    final_key = keys[-1]
    if final_key not in target or isinstance(target[final_key], dict):
        error(f"Unknown config key: {key}")
        raise typer.Exit(code=EXIT_INVALID_USAGE)

    coerced = _coerce(key, target[final_key], value)
    target[final_key] = coerced

    try:
        new_config = GlobalConfig.model_validate(data)
    except ValidationError as exc:
        error(f"Validation error: {exc}")
        raise typer.Exit(code=EXIT_INVALID_USAGE) from None

    save_global_config(new_config)
    success(f"Set {key} = {coerced}")


@config_app.command("reset")
def config_reset(
    ctx: typer.Context,
) -> None:
    """Reset configuration to defaults.

    Asks for confirmation unless ``--force`` is active.

    Example::

        offsync config reset
        offsync --force config reset
    """
    from offsync.config import save_global_config
    from offsync.models import GlobalConfig

    force = ctx.obj.get("force", False) if ctx.obj else False
    if not force:
        confirmed = typer.confirm("Reset all config to defaults?")
        if not confirmed:
            info("Cancelled.")
            raise typer.Exit()

    save_global_config(GlobalConfig())
    success("Configuration reset to defaults.")
