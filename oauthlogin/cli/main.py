"""CLI entry point for oauthlogin."""

from __future__ import annotations

import sys
from pathlib import Path

import click

from oauthlogin import __version__
from oauthlogin.cli import config as config_commands
from oauthlogin.cli import serve as serve_commands
from oauthlogin.cli import state as state_commands
from oauthlogin.cli.common import (
    get_app_config,
    get_oauth2_settings,
    json_option,
    output_result,
    require_state_secret,
)


@click.group()
@click.version_option(version=__version__, prog_name="oauthlogin")
@click.option(
    "--config",
    "config_path",
    type=click.Path(dir_okay=False, path_type=Path),  # type: ignore[type-var]
    default=None,
    help="Path to config.yaml (default: ~/.oauthlogin/config.yaml)",
)
@click.pass_context
def cli(ctx: click.Context, config_path: Path | None) -> None:
    """oauthlogin - OAuth2 Authorization Code Login."""
    ctx.ensure_object(dict)
    ctx.obj["config_path"] = config_path


@cli.command("login-url")
@click.pass_context
def login_url(ctx: click.Context) -> None:
    """Print a login URL with a fresh state value."""
    from oauthlogin.core.oauth2.flows import AuthenticationFlow

    with AuthenticationFlow(get_oauth2_settings(ctx)) as flow:
        click.echo(flow.build_login_uri())


@cli.command()
@click.argument("code")
@click.option("--state", default=None, help="State value returned by the identity provider")
@json_option
@click.pass_context
def authenticate(ctx: click.Context, code: str, state: str | None, output_json: bool) -> None:
    """Complete a login with an authorization CODE.

    Exchanges the code, fetches the user info and prints the identity.
    Exits with status 1 and prints the login URL to retry with if the
    attempt fails.

    Examples:

        oauthlogin authenticate 4/P7q7W91 --state eyJhbGciOi...
    """
    from oauthlogin.core.logging import configure_logging
    from oauthlogin.core.oauth2.flows import Authenticated, AuthenticationFlow

    app_config = get_app_config(ctx)
    settings = get_oauth2_settings(ctx)
    if settings.verify_state:
        require_state_secret(settings)
    configure_logging(
        level=app_config.logging.level,
        trace_enabled=app_config.logging.trace_enabled,
        log_file=app_config.logging.log_file,
    )

    params = {"code": code}
    if state:
        params["state"] = state

    with AuthenticationFlow(settings) as flow:
        outcome = flow.authenticate(params)

    if isinstance(outcome, Authenticated):
        output_result({"status": "authenticated", **outcome.identity.to_dict()}, as_json=output_json)
        return

    output_result(
        {"status": "redirect_required", "reason": str(outcome.reason), "login_uri": outcome.login_uri},
        as_json=output_json,
    )
    sys.exit(1)


cli.add_command(config_commands.config)
cli.add_command(state_commands.state)
cli.add_command(serve_commands.serve)
