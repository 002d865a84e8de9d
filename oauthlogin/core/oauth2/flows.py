"""OAuth2 authorization code login flow.

Turns the state codec, the token exchange and the user info retrieval into
the two operations a host needs:

- build_login_uri(): where to send the browser to log in
- authenticate(params): what to do with the callback request

Any transport, protocol or invalid-attempt failure during authenticate()
degrades to a RedirectRequired outcome pointing at a fresh login URI. The
cause is logged for operators, never shown to the user. Configuration
errors are not caught.
"""

from __future__ import annotations

import logging
import secrets
from collections.abc import Mapping
from dataclasses import dataclass
from typing import TYPE_CHECKING, TypeAlias
from urllib.parse import parse_qsl, urlencode, urlsplit, urlunsplit

import httpx

from oauthlogin.core.logging import LoggingClient, ProtocolLogger
from oauthlogin.core.oauth2.errors import (
    ErrorKind,
    InvalidAttemptError,
    OAuth2Error,
    ProtocolError,
    TransportError,
)
from oauthlogin.core.oauth2.state import StateCodec
from oauthlogin.core.oauth2.token import TokenExchangeClient
from oauthlogin.core.oauth2.userinfo import IdentityClaims, UserInfoRetriever

if TYPE_CHECKING:
    from oauthlogin.core.config import OAuth2Settings

_LOGGER = logging.getLogger(__name__)

# Query parameters of the callback request
CODE_PARAMETER = "code"
STATE_PARAMETER = "state"
ERROR_PARAMETER = "error"
ERROR_DESCRIPTION_PARAMETER = "error_description"


@dataclass(frozen=True)
class Authenticated:
    """The callback was valid; the user is identified."""

    identity: IdentityClaims


@dataclass(frozen=True)
class RedirectRequired:
    """The user has to (re)start the login at the IdP."""

    login_uri: str
    reason: ErrorKind | None = None


FlowOutcome: TypeAlias = Authenticated | RedirectRequired


def append_query(uri: str, params: Mapping[str, str]) -> str:
    """Add query parameters to a URI, keeping the ones already there."""
    scheme, netloc, path, query, fragment = urlsplit(uri)
    pairs = parse_qsl(query, keep_blank_values=True)
    pairs.extend(params.items())
    return urlunsplit((scheme, netloc, path, urlencode(pairs), fragment))


def create_http_client(
    settings: OAuth2Settings,
    protocol_logger: ProtocolLogger | None = None,
) -> LoggingClient:
    """Create the HTTP client used for IdP calls, with bounded timeouts."""
    return LoggingClient(
        protocol_logger=protocol_logger,
        timeout=httpx.Timeout(settings.read_timeout, connect=settings.connect_timeout),
        verify=settings.tls_verify,
    )


class AuthenticationFlow:
    """Authorization code flow controller.

    Holds only read-only collaborators, so a single instance can serve
    concurrent login attempts.
    """

    def __init__(
        self,
        settings: OAuth2Settings,
        state_codec: StateCodec | None = None,
        http_client: LoggingClient | None = None,
        protocol_logger: ProtocolLogger | None = None,
    ) -> None:
        """Initialize the flow.

        Args:
            settings: OAuth2 client settings.
            state_codec: Codec for state values. Built from the settings'
                state secret if not provided.
            http_client: HTTP client for IdP calls. Built from the settings'
                timeouts if not provided.
            protocol_logger: Protocol logger for a client built here.
        """
        self.settings = settings
        self.state_codec = state_codec or StateCodec(settings.state_secret)
        self._owns_http_client = http_client is None
        self.http_client = http_client or create_http_client(settings, protocol_logger)
        self.token_client = TokenExchangeClient(settings, self.http_client)
        self.userinfo = UserInfoRetriever(settings, self.http_client)

    def __enter__(self) -> AuthenticationFlow:
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()

    def close(self) -> None:
        """Close the HTTP client if this flow created it."""
        if self._owns_http_client:
            self.http_client.close()

    def build_login_uri(self) -> str:
        """Build the authorization redirect URI with a fresh state value."""
        params = {
            "scope": self.settings.scope,
            "response_type": "code",
            "client_id": self.settings.client_id,
            "redirect_uri": self.settings.redirect_uri,
            "state": self.state_codec.generate(self.settings.max_state_validity_millis),
        }
        return append_query(self.settings.authorization_endpoint, params)

    def authenticate(self, params: Mapping[str, str]) -> FlowOutcome:
        """Handle a callback request.

        Args:
            params: Query parameters of the incoming request.

        Returns:
            Authenticated with the user's identity, or RedirectRequired with
            a fresh login URI.

        Raises:
            ConfigurationError: If the settings are unusable.
        """
        attempt_id = secrets.token_hex(6)

        if not params.get(CODE_PARAMETER) and not params.get(ERROR_PARAMETER):
            # First visit, nothing went wrong yet
            _LOGGER.info("[%s] No authorization code, redirecting to identity provider", attempt_id)
            return RedirectRequired(login_uri=self.build_login_uri(), reason=ErrorKind.INVALID_ATTEMPT)

        try:
            identity = self._complete(params, attempt_id)
        except (TransportError, ProtocolError, InvalidAttemptError) as e:
            return self._redirect(e, attempt_id)

        _LOGGER.info(
            "[%s] Authenticated user '%s' (%d groups)",
            attempt_id,
            identity.username,
            len(identity.groups),
        )
        return Authenticated(identity)

    def _complete(self, params: Mapping[str, str], attempt_id: str) -> IdentityClaims:
        error = params.get(ERROR_PARAMETER)
        if error:
            description = params.get(ERROR_DESCRIPTION_PARAMETER)
            detail = f"{error}: {description}" if description else error
            raise InvalidAttemptError(f"Identity provider returned an error ({detail})")

        code = params.get(CODE_PARAMETER)
        if not code:
            raise InvalidAttemptError("Authorization code is missing")

        if self.settings.verify_state:
            state = params.get(STATE_PARAMETER)
            if not state:
                raise InvalidAttemptError("State parameter is missing")
            if not self.state_codec.is_valid(state):
                raise InvalidAttemptError("State parameter is invalid or expired")

        _LOGGER.debug("[%s] Exchanging authorization code", attempt_id)
        access_token = self.token_client.exchange(code)

        _LOGGER.debug("[%s] Retrieving user info", attempt_id)
        return self.userinfo.fetch(access_token)

    def _redirect(self, error: OAuth2Error, attempt_id: str) -> RedirectRequired:
        _LOGGER.warning(
            "[%s] Login attempt failed, redirecting to identity provider (%s)",
            attempt_id,
            error.get_detail_string(),
        )
        return RedirectRequired(login_uri=self.build_login_uri(), reason=error.kind)
