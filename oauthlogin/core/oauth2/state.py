"""Signed, time-bounded OAuth2 state values.

A state value is a compact HS256 JWT holding a random ``jti`` and an
absolute ``exp``. It is validated from its own content, so no server-side
storage is involved.
"""

from __future__ import annotations

import secrets
import time
from collections.abc import Callable

import jwt

STATE_ALGORITHM = "HS256"

# Random bytes in each state's jti claim
STATE_ID_BYTES = 24


def generate_state_secret() -> str:
    """Generate a random 256-bit signing secret as hex."""
    return secrets.token_hex(32)


class StateCodec:
    """Generates and validates anti-forgery state values."""

    def __init__(
        self,
        secret: str,
        clock: Callable[[], float] = time.time,
    ) -> None:
        """Initialize the codec.

        Args:
            secret: HMAC secret used to sign state values. Every process that
                validates a state must share the secret that generated it.
            clock: Returns the current time in seconds since the epoch.
        """
        if not secret:
            raise ValueError("State secret must not be empty")
        self._secret = secret
        self._clock = clock

    def generate(self, validity_millis: int) -> str:
        """Create a new state value.

        Args:
            validity_millis: How long the state stays valid, in milliseconds.

        Returns:
            Opaque state string, unique per call.

        Raises:
            ValueError: If validity_millis is not a positive integer.
        """
        if isinstance(validity_millis, bool) or not isinstance(validity_millis, int) or validity_millis <= 0:
            raise ValueError(f"State validity must be a positive integer, got {validity_millis!r}")

        claims = {
            "jti": secrets.token_urlsafe(STATE_ID_BYTES),
            "exp": self._clock() + validity_millis / 1000,
        }
        return jwt.encode(claims, self._secret, algorithm=STATE_ALGORITHM)

    def is_valid(self, token: str | None) -> bool:
        """Check that a state value was issued by this codec and has not expired."""
        if not token:
            return False

        try:
            claims = jwt.decode(
                token,
                self._secret,
                algorithms=[STATE_ALGORITHM],
                options={
                    # Expiry is checked below with sub-second precision
                    "verify_exp": False,
                    "require": ["exp", "jti"],
                },
            )
        except jwt.InvalidTokenError:
            return False

        expires_at = claims["exp"]
        if isinstance(expires_at, bool) or not isinstance(expires_at, (int, float)):
            return False

        return self._clock() < expires_at
