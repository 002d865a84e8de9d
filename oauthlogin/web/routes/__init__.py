"""Web routes for oauthlogin."""

from flask import Blueprint, Flask

from oauthlogin.web.routes.auth import current_identity, login_required

main_bp = Blueprint("main", __name__)


@main_bp.route("/")
@login_required
def index() -> dict:
    """Show the identity of the logged-in user."""
    return current_identity()


@main_bp.route("/health")
def health() -> dict[str, str]:
    """Health check endpoint (unauthenticated)."""
    return {"status": "healthy"}


def init_app(app: Flask) -> None:
    """Register blueprints with the Flask app."""
    from oauthlogin.web.routes.auth import auth_bp

    app.register_blueprint(main_bp)
    app.register_blueprint(auth_bp)
