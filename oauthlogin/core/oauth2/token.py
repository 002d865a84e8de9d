"""Authorization code exchange against the IdP token endpoint."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any

import httpx

from oauthlogin.core.oauth2.errors import InvalidAttemptError, ProtocolError, TransportError

if TYPE_CHECKING:
    from oauthlogin.core.config import OAuth2Settings
    from oauthlogin.core.logging import LoggingClient

_LOGGER = logging.getLogger(__name__)


def describe_error_body(response: httpx.Response) -> str:
    """Summarize an OAuth2 error body (``error``/``error_description``) if there is one."""
    try:
        body = response.json()
    except ValueError:
        return ""
    if not isinstance(body, dict) or "error" not in body:
        return ""
    description = body.get("error_description")
    if description:
        return f"{body['error']}: {description}"
    return str(body["error"])


class TokenExchangeClient:
    """Exchanges authorization codes for access tokens."""

    def __init__(self, settings: OAuth2Settings, http_client: LoggingClient) -> None:
        self.settings = settings
        self.http_client = http_client

    def exchange(self, code: str) -> str:
        """Exchange an authorization code for an access token.

        A single POST is made to the token endpoint; nothing is retried.

        Args:
            code: Authorization code from the callback.

        Returns:
            The access token.

        Raises:
            InvalidAttemptError: If the code is empty.
            TransportError: On network failure or a non-200 status.
            ProtocolError: If the 200 response has no usable access_token.
        """
        if not code:
            raise InvalidAttemptError("Authorization code is empty")

        data = {
            "grant_type": "authorization_code",
            "code": code,
            "redirect_uri": self.settings.redirect_uri,
            "client_id": self.settings.client_id,
            "client_secret": self.settings.client_secret,
        }

        try:
            response = self.http_client.post(
                self.settings.token_endpoint,
                data=data,
                headers={"Accept": "application/json"},
            )
        except httpx.HTTPError as e:
            raise TransportError(f"HTTP error during token exchange: {type(e).__name__}: {e}") from e

        if response.status_code != 200:
            message = f"Failed to exchange authorization code for token. HTTP {response.status_code}"
            oauth_error = describe_error_body(response)
            if oauth_error:
                message += f" ({oauth_error})"
            raise TransportError(message, status_code=response.status_code)

        try:
            body: Any = response.json()
        except ValueError as e:
            raise ProtocolError(f"Token response is not valid JSON: {e}") from e

        if not isinstance(body, dict):
            raise ProtocolError(f"Token response is not a JSON object (got {type(body).__name__})")

        access_token = body.get("access_token")
        if access_token is None:
            raise ProtocolError("Access token not found in the token response", missing_claim="access_token")
        if not isinstance(access_token, str) or not access_token:
            raise ProtocolError("Access token in the token response is not a non-empty string")

        _LOGGER.debug(
            "Token exchange succeeded (token_type=%s, expires_in=%s)",
            body.get("token_type", "unknown"),
            body.get("expires_in", "unknown"),
        )
        return access_token
