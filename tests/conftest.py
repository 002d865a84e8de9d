"""Pytest configuration and fixtures."""

import logging
from collections.abc import Generator
from typing import Any

import pytest
from flask import Flask
from flask.testing import FlaskClient

import oauthlogin.core.logging as logging_module
from oauthlogin.app import create_app
from oauthlogin.core.config import OAuth2Settings
from oauthlogin.core.logging import LoggingClient, ProtocolLogger
from oauthlogin.core.oauth2.flows import AuthenticationFlow

from tests.mocks.idp import AUTHORIZATION_URL, TOKEN_URL, USER_INFO_URL, MockIdentityProvider

STATE_SECRET = "test-state-secret-0123456789abcdef0123456789abcdef"

PROPERTIES: dict[str, Any] = {
    "oauth2-authorization-endpoint": AUTHORIZATION_URL,
    "oauth2-token-endpoint": TOKEN_URL,
    "oauth2-user-info-endpoint": USER_INFO_URL,
    "oauth2-redirect-uri": "https://app.example.com/auth/callback",
    "oauth2-client-id": "my-client",
    "oauth2-client-secret": "my-client-secret",
    "oauth2-issuer": "https://idp.example.com",
    "oauth2-state-secret": STATE_SECRET,
}


@pytest.fixture
def properties() -> dict[str, Any]:
    """A complete set of OAuth2 properties."""
    return dict(PROPERTIES)


@pytest.fixture
def settings(properties: dict[str, Any]) -> OAuth2Settings:
    """Settings pointing at the mock IdP."""
    return OAuth2Settings.from_properties(properties)


@pytest.fixture
def idp() -> MockIdentityProvider:
    """Mock identity provider."""
    return MockIdentityProvider()


@pytest.fixture
def http_client(idp: MockIdentityProvider) -> Generator[LoggingClient, None, None]:
    """Logging HTTP client wired to the mock IdP."""
    client = LoggingClient(protocol_logger=ProtocolLogger(), transport=idp.transport())
    yield client
    client.close()


@pytest.fixture
def flow(settings: OAuth2Settings, http_client: LoggingClient) -> AuthenticationFlow:
    """Authentication flow talking to the mock IdP."""
    return AuthenticationFlow(settings, http_client=http_client)


@pytest.fixture
def app(flow: AuthenticationFlow) -> Flask:
    """Create application for testing."""
    return create_app(
        flow=flow,
        config={
            "TESTING": True,
            "SECRET_KEY": "test-secret-key",
        },
    )


@pytest.fixture
def client(app: Flask) -> FlaskClient:
    """Create test client."""
    return app.test_client()


@pytest.fixture
def restore_logging() -> Generator[None, None, None]:
    """Undo changes made by configure_logging and set_protocol_logger."""
    package_logger = logging.getLogger("oauthlogin")
    level = package_logger.level
    handlers = list(package_logger.handlers)
    global_logger = logging_module._global_logger
    yield
    package_logger.setLevel(level)
    package_logger.handlers[:] = handlers
    logging_module._global_logger = global_logger
