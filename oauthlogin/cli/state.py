"""State value CLI commands."""

import sys

import click

from oauthlogin.cli.common import get_oauth2_settings, require_state_secret


@click.group()
def state() -> None:
    """Generate and check OAuth2 state values."""
    pass


@state.command("generate")
@click.option(
    "--minutes",
    type=click.IntRange(min=1),
    default=None,
    help="Validity in minutes (default: oauth2-max-state-validity)",
)
@click.pass_context
def state_generate(ctx: click.Context, minutes: int | None) -> None:
    """Print a new state value signed with the configured state secret."""
    from oauthlogin.core.oauth2.state import StateCodec

    settings = get_oauth2_settings(ctx)
    validity = minutes or settings.max_state_validity
    click.echo(StateCodec(settings.state_secret).generate(validity * 60000))


@state.command("verify")
@click.argument("token")
@click.pass_context
def state_verify(ctx: click.Context, token: str) -> None:
    """Check that TOKEN is a valid, unexpired state value.

    Exits with status 1 if it is not. Requires
    oauth2-state-secret, since a generated secret changes with every run.
    """
    from oauthlogin.core.oauth2.state import StateCodec

    settings = get_oauth2_settings(ctx)
    require_state_secret(settings)
    if StateCodec(settings.state_secret).is_valid(token):
        click.echo("valid")
        return

    click.echo("invalid")
    sys.exit(1)
