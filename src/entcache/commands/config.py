"""``entcache config`` -- defaults shared by every entity API.

Most users only touch two keys: ``default_profile`` (which API ``query``
and ``get`` talk to when ``-p`` is omitted) and ``cache.ttl_seconds`` (how
long a query result is replayed before the API is asked again). A profile
with its own ``cache`` section ignores the global TTL.
"""

from __future__ import annotations

import typer

from entcache.output import error, format_response, info, success


config_app = typer.Typer(no_args_is_help=True)


@config_app.command("show")
def config_show() -> None:
    """Show the shared defaults, including the query TTL.

    Example::

        entcache config show --json
    """
    from entcache.config import get_config_dir, load_global_config

    config = load_global_config()
    info(f"Config directory: {get_config_dir()}")
    format_response(config.model_dump(mode="json"))


@config_app.command("set")
def config_set(
    key: str = typer.Argument(help="Config key (dot notation, e.g. 'cache.ttl_seconds')."),
    value: str = typer.Argument(help="Value to set."),
) -> None:
    """Change one default, e.g. the query TTL.

    VALUE is read as the type the key already holds, and a value the
    config would reject (a negative TTL, say) is never saved.

    Example::

        entcache config set default_profile chat
        entcache config set cache.ttl_seconds 600
    """
    from entcache.config import load_global_config, save_global_config
    from entcache.models import GlobalConfig

    data = load_global_config().model_dump(mode="json")

    keys = key.split(".")
    target = data
    for k in keys[:-1]:
        if k not in target or not isinstance(target[k], dict):
            error(f"Invalid config key: {key}")
            raise typer.Exit(code=2)
        target = target[k]

    final_key = keys[-1]
    if final_key not in target:
        error(f"Unknown config key: {key}")
        raise typer.Exit(code=2)

    current = target[final_key]
    coerced: object = value
    if isinstance(current, bool):
        coerced = value.lower() in ("true", "1", "yes")
    elif isinstance(current, (int, float)):
        try:
            coerced = type(current)(value)
        except ValueError:
            error(f"Expected a number for {key}, got: {value}")
            raise typer.Exit(code=2) from None

    target[final_key] = coerced

    try:
        new_config = GlobalConfig.model_validate(data)
    except ValueError as exc:
        error(f"Validation error: {exc}")
        raise typer.Exit(code=2) from None

    save_global_config(new_config)
    success(f"Set {key} = {coerced}")
    if key == "cache.ttl_seconds":
        info("Profiles with their own cache.ttl_seconds keep their TTL.")


@config_app.command("reset")
def config_reset(ctx: typer.Context) -> None:
    """Back to defaults: no default profile and a 24 hour TTL. Asks unless ``--force``."""
    from entcache.config import save_global_config
    from entcache.models import GlobalConfig

    force = ctx.obj.get("force", False) if ctx.obj else False
    if not force and not typer.confirm("Reset all config to defaults?"):
        info("Cancelled.")
        raise typer.Exit()

    save_global_config(GlobalConfig())
    success("Configuration reset to defaults.")
