"""Profile commands -- register the entity APIs the CLI talks to."""

from __future__ import annotations

from typing import Optional

import typer

from entcache.output import error, format_response, info, print_records, success


profile_app = typer.Typer(no_args_is_help=True)


@profile_app.command("add")
def profile_add(
    name: str = typer.Argument(help="Profile name."),
    base_url: str = typer.Option(..., "--base-url", "-u", help="Root URL of the entity API."),
    ttl_seconds: Optional[float] = typer.Option(
        None, "--ttl", help="Query TTL in seconds for this profile."
    ),
    timeout: int = typer.Option(30, "--timeout", help="Request timeout in seconds."),
    max_retries: int = typer.Option(3, "--retries", help="Retries on 5xx and network errors."),
    overwrite: bool = typer.Option(False, "--overwrite", help="Replace an existing profile."),
) -> None:
    """Create a profile.

    Example::

        entcache profile add chat --base-url http://localhost:3000/api/ --ttl 60
    """
    from entcache.config import profile_exists, save_profile
    from entcache.models import CacheConfig, Profile, RequestConfig

    if profile_exists(name) and not overwrite:
        error(f"Profile '{name}' already exists (use --overwrite to replace it)")
        raise typer.Exit(code=2)

    profile = Profile(
        name=name,
        base_url=base_url,
        request=RequestConfig(timeout=timeout, max_retries=max_retries),
        cache=CacheConfig(ttl_seconds=ttl_seconds) if ttl_seconds is not None else None,
    )
    save_profile(profile)
    success(f"Saved profile '{name}'")


@profile_app.command("list")
def profile_list() -> None:
    """List configured profiles."""
    from entcache.config import list_profiles, load_profile

    names = list_profiles()
    if not names:
        info("No profiles configured.")
        return
    print_records(
        [{"name": n, "base_url": load_profile(n).base_url} for n in names],
        title="Profiles",
    )


@profile_app.command("show")
def profile_show(name: str = typer.Argument(help="Profile name.")) -> None:
    """Show one profile."""
    from entcache.config import load_profile

    format_response(load_profile(name).model_dump(mode="json"))


@profile_app.command("remove")
def profile_remove(
    ctx: typer.Context,
    name: str = typer.Argument(help="Profile name."),
) -> None:
    """Delete a profile. Asks for confirmation unless ``--force``."""
    from entcache.config import delete_profile

    force = ctx.obj.get("force", False) if ctx.obj else False
    if not force and not typer.confirm(f"Delete profile '{name}'?"):
        info("Cancelled.")
        raise typer.Exit()

    delete_profile(name)
    success(f"Deleted profile '{name}'")
