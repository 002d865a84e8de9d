"""Error taxonomy for the OAuth2 login flow.

Every failure the flow can run into belongs to exactly one ErrorKind.
Transport, protocol and invalid-attempt errors are recoverable by sending
the user back to the IdP; configuration errors are deployment defects and
propagate to the caller.
"""

from __future__ import annotations

from enum import StrEnum


class ErrorKind(StrEnum):
    """Closed set of failure kinds."""

    CONFIGURATION = "configuration"
    TRANSPORT = "transport"
    PROTOCOL = "protocol"
    INVALID_ATTEMPT = "invalid_attempt"


class OAuth2Error(Exception):
    """Base class for all errors raised by the login flow."""

    kind: ErrorKind

    def __init__(self, message: str) -> None:
        self.message = message
        super().__init__(message)

    def details(self) -> dict[str, object]:
        """Extra diagnostic fields for logging."""
        return {}

    def get_detail_string(self) -> str:
        """Returns a detailed string for logging purposes."""
        parts = [f"kind: {self.kind}"]
        for key, value in self.details().items():
            if value is not None:
                parts.append(f"{key}: {value}")
        parts.append(f"message: {self.message}")
        return ", ".join(parts)


class ConfigurationError(OAuth2Error):
    "Raised when a required setting is missing or malformed."

    kind = ErrorKind.CONFIGURATION


class TransportError(OAuth2Error):
    "Raised on network failures, timeouts and non-200 responses from the IdP."

    kind = ErrorKind.TRANSPORT

    def __init__(self, message: str, status_code: int | None = None) -> None:
        self.status_code = status_code
        super().__init__(message)

    def details(self) -> dict[str, object]:
        return {"status_code": self.status_code}


class ProtocolError(OAuth2Error):
    "Raised when the IdP answers 200 with an unparseable or incomplete body."

    kind = ErrorKind.PROTOCOL

    def __init__(self, message: str, missing_claim: str | None = None) -> None:
        self.missing_claim = missing_claim
        super().__init__(message)

    def details(self) -> dict[str, object]:
        return {"missing_claim": self.missing_claim}


class InvalidAttemptError(OAuth2Error):
    "Raised when a callback carries no usable authorization code or state."

    kind = ErrorKind.INVALID_ATTEMPT
