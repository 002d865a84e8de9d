"""Login routes: redirect to the identity provider and handle its callback."""

from __future__ import annotations

from collections.abc import Callable
from functools import wraps
from typing import TYPE_CHECKING, Any, cast

from flask import Blueprint, current_app, redirect, request, session, url_for

from oauthlogin.core.oauth2.flows import Authenticated, AuthenticationFlow

if TYPE_CHECKING:
    from werkzeug.wrappers import Response as WerkzeugResponse

auth_bp = Blueprint(
    "auth",
    __name__,
    url_prefix="/auth",
)

# Session key of the authenticated identity
IDENTITY_KEY = "identity"


def get_flow() -> AuthenticationFlow:
    """Get the authentication flow from the app context."""
    return cast("AuthenticationFlow", current_app.extensions["oauthlogin"])


def current_identity() -> dict[str, Any] | None:
    """Identity stored in the session, if the user has logged in."""
    return session.get(IDENTITY_KEY)


def login_required(f: Callable[..., Any]) -> Callable[..., Any]:
    """Decorator to require a logged-in user for a route."""
    @wraps(f)
    def decorated_function(*args: Any, **kwargs: Any) -> Any:
        if current_identity() is None:
            return redirect(url_for("auth.login"))
        return f(*args, **kwargs)

    return decorated_function


@auth_bp.route("/login")
def login() -> WerkzeugResponse:
    """Send the browser to the identity provider."""
    return redirect(get_flow().build_login_uri())


@auth_bp.route("/callback")
def callback() -> WerkzeugResponse:
    """Handle the authorization callback from the identity provider."""
    outcome = get_flow().authenticate(request.args)

    if isinstance(outcome, Authenticated):
        session.clear()
        session[IDENTITY_KEY] = outcome.identity.to_dict()
        return redirect(url_for("main.index"))

    # Failure details are in the logs; the user just logs in again
    return redirect(outcome.login_uri)
