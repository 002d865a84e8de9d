"""OAuth2 authorization code flow implementation."""

from oauthlogin.core.oauth2.errors import (
    ConfigurationError,
    ErrorKind,
    InvalidAttemptError,
    OAuth2Error,
    ProtocolError,
    TransportError,
)
from oauthlogin.core.oauth2.flows import (
    Authenticated,
    AuthenticationFlow,
    FlowOutcome,
    RedirectRequired,
)
from oauthlogin.core.oauth2.state import StateCodec, generate_state_secret
from oauthlogin.core.oauth2.token import TokenExchangeClient
from oauthlogin.core.oauth2.userinfo import IdentityClaims, UserInfoRetriever, parse_claims

__all__ = [
    # Errors
    "ConfigurationError",
    "ErrorKind",
    "InvalidAttemptError",
    "OAuth2Error",
    "ProtocolError",
    "TransportError",
    # Flow
    "Authenticated",
    "AuthenticationFlow",
    "FlowOutcome",
    "RedirectRequired",
    # Building blocks
    "IdentityClaims",
    "StateCodec",
    "TokenExchangeClient",
    "UserInfoRetriever",
    "generate_state_secret",
    "parse_claims",
]
