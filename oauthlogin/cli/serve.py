"""Server CLI commands."""

import click

from oauthlogin.cli.common import get_app_config, get_oauth2_settings


@click.command()
@click.option(
    "--host",
    "-h",
    default=None,
    help="Host to bind to (default: from config or 127.0.0.1)",
)
@click.option(
    "--port",
    "-p",
    type=int,
    default=None,
    help="Port to bind to (default: from config or 8080)",
)
@click.option(
    "--debug",
    is_flag=True,
    help="Enable debug mode",
)
@click.pass_context
def serve(
    ctx: click.Context,
    host: str | None,
    port: int | None,
    debug: bool,
) -> None:
    """Start the oauthlogin web server.

    Serves /auth/login, /auth/callback and a protected / that shows the
    logged-in identity. The configured oauth2-redirect-uri must point at
    /auth/callback on this server.

    Examples:

        # Start with settings from ~/.oauthlogin/config.yaml
        oauthlogin serve

        # Start on custom port
        oauthlogin serve --port 9000
    """
    from oauthlogin.app import run_server

    config = get_app_config(ctx)
    # Fail early with a readable error
    get_oauth2_settings(ctx)

    if debug:
        config.server.debug = True

    run_server(app_config=config, host=host, port=port)
