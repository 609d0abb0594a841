"""Configuration management CLI commands."""

from __future__ import annotations

from typing import TYPE_CHECKING

import typer

from sql_proxy.cli.commands._shared import get_resolved_config
from sql_proxy.core.config import (
    DEFAULT_CONFIG_PATH,
    load_config,
    resolve_server_settings,
)

if TYPE_CHECKING:
    from pathlib import Path

config_app = typer.Typer(help="Configuration management commands")


@config_app.callback(invoke_without_command=True)
def config_callback(ctx: typer.Context) -> None:
    if not ctx.invoked_subcommand:
        typer.echo(ctx.get_help())
        raise typer.Exit()


def _mask_password(value: str | None) -> str:
    if not value:
        return "not set"
    return "***"


@config_app.command("show")
def config_show(ctx: typer.Context) -> None:
    """Display resolved configuration with source attribution."""
    config_path: Path | None = ctx.obj.get("config_file")
    resolved = get_resolved_config(ctx)
    connection = resolved.connection
    sources = resolved.sources

    typer.echo("Connection Settings (resolved):")
    connection_fields = [
        ("host", connection.host),
        ("port", str(connection.port)),
        ("database", connection.database),
        ("username", connection.username),
        ("password", _mask_password(connection.password)),
        ("ssl", "on" if connection.ssl else "off"),
    ]
    for field_name, value in connection_fields:
        source = sources.get(field_name, "default")
        typer.echo(f"  {field_name}: {value} ({source})")

    settings = resolve_server_settings(load_config(config_path))
    typer.echo("")
    typer.echo("Server:")
    typer.echo(f"  listen: {settings.host}:{settings.port}")
    typer.echo(f"  identifier policy: {settings.identifier_policy}")
    typer.echo(f"  client configs: {'accepted' if settings.allow_client_config else 'ignored'}")
    typer.echo(f"  auth: {'jwt' if settings.jwt_secret else 'none'}")

    typer.echo("")
    typer.echo(f"Active Profile: {resolved.active_profile or 'none'}")
    display_path = config_path or DEFAULT_CONFIG_PATH
    typer.echo(f"Config File: {display_path}")


@config_app.command("profiles")
def config_profiles(ctx: typer.Context) -> None:
    """List available connection profiles."""
    config_path: Path | None = ctx.obj.get("config_file")
    app_config = load_config(config_path)
    active_profile = ctx.obj.get("profile") or app_config.default_profile

    if not app_config.profiles:
        typer.echo("No profiles configured.")
        display_path = config_path or DEFAULT_CONFIG_PATH
        typer.echo(f"Add profiles to: {display_path}")
        return

    typer.echo("Available Profiles:")
    typer.echo("")
    for name, profile in sorted(app_config.profiles.items()):
        is_active = name == active_profile
        marker = "* " if is_active else "  "
        label = " (active)" if is_active else ""
        typer.echo(f"{marker}{name}{label}")

        display_fields = [
            ("host", profile.host),
            ("port", str(profile.port)),
            ("database", profile.database),
            ("username", profile.username),
        ]
        if profile.ssl:
            display_fields.append(("ssl", "on"))

        for field_name, value in display_fields:
            typer.echo(f"      {field_name}: {value}")
        typer.echo("")
