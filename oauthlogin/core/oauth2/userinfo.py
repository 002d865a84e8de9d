"""User info retrieval and claim parsing."""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

import httpx

from oauthlogin.core.oauth2.errors import ProtocolError, TransportError
from oauthlogin.core.oauth2.token import describe_error_body

if TYPE_CHECKING:
    from oauthlogin.core.config import OAuth2Settings
    from oauthlogin.core.logging import LoggingClient

_LOGGER = logging.getLogger(__name__)


@dataclass(frozen=True)
class IdentityClaims:
    """The authenticated user: a username and the groups they belong to."""

    username: str
    groups: frozenset[str] = field(default_factory=frozenset)

    def __post_init__(self) -> None:
        if not self.username:
            raise ProtocolError("Username must not be empty")
        # Accept any iterable of group names
        if not isinstance(self.groups, frozenset):
            object.__setattr__(self, "groups", frozenset(self.groups))

    def to_dict(self) -> dict[str, Any]:
        """Convert to a JSON-friendly dictionary (groups sorted)."""
        return {"username": self.username, "groups": sorted(self.groups)}


def claim_text(value: Any) -> str:
    """Text form of a claim value.

    JSON strings are used as-is; any other JSON value is rendered as JSON
    text (``42`` -> ``"42"``, ``true`` -> ``"true"``).
    """
    if isinstance(value, str):
        return value
    return json.dumps(value, separators=(",", ":"))


def parse_claims(claims: dict[str, Any], username_claim: str, groups_claim: str) -> IdentityClaims:
    """Extract the identity from a user info document.

    The username claim is required, the groups claim is optional. A groups
    claim that is not an array counts as no groups.

    Raises:
        ProtocolError: If the username claim is absent, null or empty.
    """
    username_value = claims.get(username_claim)
    if username_value is None:
        raise ProtocolError(
            f"Username claim '{username_claim}' not found in user info response",
            missing_claim=username_claim,
        )
    if isinstance(username_value, (dict, list)):
        raise ProtocolError(f"Username claim '{username_claim}' is not a scalar value")

    username = claim_text(username_value)
    if not username:
        raise ProtocolError(
            f"Username claim '{username_claim}' is empty",
            missing_claim=username_claim,
        )

    groups_value = claims.get(groups_claim)
    if isinstance(groups_value, list):
        groups = frozenset(claim_text(group) for group in groups_value)
    else:
        if groups_value is not None:
            _LOGGER.debug("Ignoring groups claim '%s' which is not an array", groups_claim)
        groups = frozenset()

    return IdentityClaims(username=username, groups=groups)


class UserInfoRetriever:
    """Fetches the user's claims from the IdP user info endpoint."""

    def __init__(self, settings: OAuth2Settings, http_client: LoggingClient) -> None:
        self.settings = settings
        self.http_client = http_client

    def fetch(self, access_token: str) -> IdentityClaims:
        """Fetch and parse the claims of the user the access token belongs to.

        Args:
            access_token: Bearer token from the token exchange.

        Returns:
            IdentityClaims of the user.

        Raises:
            TransportError: On network failure or a non-200 status.
            ProtocolError: On a non-JSON body or a missing username claim.
        """
        try:
            response = self.http_client.get(
                self.settings.user_info_endpoint,
                headers={
                    "Authorization": f"Bearer {access_token}",
                    "Accept": "application/json",
                },
            )
        except httpx.HTTPError as e:
            raise TransportError(f"HTTP error fetching user info: {type(e).__name__}: {e}") from e

        if response.status_code != 200:
            message = f"Failed to retrieve user info. HTTP {response.status_code}"
            oauth_error = describe_error_body(response)
            if oauth_error:
                message += f" ({oauth_error})"
            raise TransportError(message, status_code=response.status_code)

        try:
            claims = response.json()
        except ValueError as e:
            raise ProtocolError(f"User info response is not valid JSON: {e}") from e

        if not isinstance(claims, dict):
            raise ProtocolError(f"User info response is not a JSON object (got {type(claims).__name__})")

        return parse_claims(claims, self.settings.username_claim, self.settings.groups_claim)
