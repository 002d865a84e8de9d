"""Helpers shared by the CLI commands."""

from __future__ import annotations

import json
from typing import TYPE_CHECKING, Any

import click

from oauthlogin.core.oauth2.errors import ConfigurationError

if TYPE_CHECKING:
    from oauthlogin.core.config import AppConfig, OAuth2Settings

# Common option for JSON output
json_option = click.option(
    "--json",
    "output_json",
    is_flag=True,
    help="Output results as JSON for scripting",
)


def get_app_config(ctx: click.Context) -> AppConfig:
    """Load the configuration selected with --config.

    Configuration errors are reported as click errors.
    """
    from oauthlogin.core.config import load_config

    obj = ctx.find_root().ensure_object(dict)
    if "app_config" not in obj:
        try:
            obj["app_config"] = load_config(obj.get("config_path"))
        except ConfigurationError as e:
            raise click.ClickException(str(e)) from None
    return obj["app_config"]


def get_oauth2_settings(ctx: click.Context) -> OAuth2Settings:
    """Load the OAuth2 settings, failing with a click error if incomplete."""
    try:
        return get_app_config(ctx).require_oauth2()
    except ConfigurationError as e:
        raise click.ClickException(str(e)) from None


def output_result(data: dict[str, Any], as_json: bool = False) -> None:
    """Output result as JSON or as key/value lines.

    Args:
        data: Data to output
        as_json: If True, output as JSON
    """
    if as_json:
        click.echo(json.dumps(data, indent=2, default=str))
        return
    for key, value in data.items():
        if isinstance(value, list):
            value = ", ".join(str(v) for v in value) or "-"
        click.echo(f"{key}: {value}")


def require_state_secret(settings: OAuth2Settings) -> None:
    """Fail if states from an earlier run cannot verify.

    Without oauth2-state-secret every run signs with a new random secret.
    """
    if settings.state_secret_generated:
        raise click.ClickException(
            "oauth2-state-secret is not set, so a state issued by another run cannot be "
            "verified. Set it in the config file or OAUTHLOGIN_OAUTH2_STATE_SECRET."
        )
