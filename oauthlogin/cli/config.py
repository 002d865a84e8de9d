"""Configuration management CLI commands."""

from __future__ import annotations

from pathlib import Path

import click

from oauthlogin.cli.common import get_oauth2_settings, json_option, output_result


@click.group()
def config() -> None:
    """Manage oauthlogin configuration."""
    pass


@config.command("init")
@click.option(
    "--path",
    "path",
    type=click.Path(dir_okay=False, path_type=Path),  # type: ignore[type-var]
    default=None,
    help="Where to write the file (default: ~/.oauthlogin/config.yaml)",
)
@click.option(
    "--force",
    is_flag=True,
    help="Overwrite an existing config file.",
)
def config_init(path: Path | None, force: bool) -> None:
    """Write an example configuration file.

    Examples:

        # Write ~/.oauthlogin/config.yaml
        oauthlogin config init

        # Write somewhere else
        oauthlogin config init --path ./config.yaml
    """
    from oauthlogin.core.config import DEFAULT_CONFIG_FILE, get_default_config_yaml

    config_path = path or DEFAULT_CONFIG_FILE

    if config_path.exists() and not force:
        raise click.ClickException(
            f"Config file already exists: {config_path} (use --force to overwrite)"
        )

    config_path.parent.mkdir(parents=True, exist_ok=True)
    config_path.write_text(get_default_config_yaml())
    # The file holds the client secret
    config_path.chmod(0o600)

    click.echo(f"Configuration written to: {config_path}")
    click.echo("")
    click.echo("Next steps:")
    click.echo("  1. Fill in the oauth2-* endpoints and client credentials")
    click.echo("  2. Run 'oauthlogin login-url' to check the login redirect")


@config.command("show")
@click.option("--show-secrets", is_flag=True, help="Do not redact secrets.")
@json_option
@click.pass_context
def config_show(ctx: click.Context, show_secrets: bool, output_json: bool) -> None:
    """Show the effective OAuth2 properties."""
    settings = get_oauth2_settings(ctx)
    output_result(settings.to_properties(redact=not show_secrets), as_json=output_json)
