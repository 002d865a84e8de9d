"""Flask application factory.

A small host application around AuthenticationFlow: it redirects anonymous
users to the identity provider and keeps the authenticated identity in the
Flask session.
"""

from __future__ import annotations

import secrets
from typing import TYPE_CHECKING

from flask import Flask

from oauthlogin.core.oauth2.flows import AuthenticationFlow

if TYPE_CHECKING:
    from oauthlogin.core.config import AppConfig

# Key of the flow in app.extensions
EXTENSION_KEY = "oauthlogin"


def create_app(
    app_config: AppConfig | None = None,
    flow: AuthenticationFlow | None = None,
    config: dict | None = None,
) -> Flask:
    """Create and configure the Flask application.

    Args:
        app_config: Application configuration. Loaded from file/env if
            neither it nor a flow is given.
        flow: Pre-built authentication flow (takes precedence over the
            OAuth2 settings in app_config).
        config: Optional Flask configuration overrides.

    Returns:
        Configured Flask application instance.

    Raises:
        ConfigurationError: If no usable OAuth2 settings are available.
    """
    if flow is None:
        if app_config is None:
            from oauthlogin.core.config import load_config

            app_config = load_config()
        flow = AuthenticationFlow(app_config.require_oauth2())

    app = Flask(__name__)

    secret_key = app_config.server.secret_key if app_config else None

    # Default configuration
    app.config.from_mapping(
        SECRET_KEY=secret_key or secrets.token_hex(32),
        SESSION_COOKIE_HTTPONLY=True,
        SESSION_COOKIE_SAMESITE="Lax",
    )

    if config:
        app.config.from_mapping(config)

    app.extensions[EXTENSION_KEY] = flow

    from oauthlogin.web import routes

    routes.init_app(app)

    return app


def run_server(
    app_config: AppConfig | None = None,
    host: str | None = None,
    port: int | None = None,
) -> None:
    """Run the Flask development server.

    Args:
        app_config: Application configuration. Loads from file/env if not provided.
        host: Override host from config.
        port: Override port from config.
    """
    from oauthlogin.core.config import load_config
    from oauthlogin.core.logging import configure_logging

    # Load configuration
    if app_config is None:
        app_config = load_config()

    configure_logging(
        level=app_config.logging.level,
        trace_enabled=app_config.logging.trace_enabled,
        log_file=app_config.logging.log_file,
    )

    # Apply overrides
    server_host = host or app_config.server.host
    server_port = port or app_config.server.port

    app = create_app(app_config)
    app.debug = app_config.server.debug

    print("Starting oauthlogin server...")
    print(f"  URL: http://{server_host}:{server_port}")
    print(f"  Identity provider: {app_config.require_oauth2().authorization_endpoint}")
    print("")

    app.run(host=server_host, port=server_port)
