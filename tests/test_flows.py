"""Tests for the authentication flow controller."""

import dataclasses
import logging
from concurrent.futures import ThreadPoolExecutor
from urllib.parse import parse_qs, urlsplit

import httpx
import pytest

from oauthlogin.core.config import OAuth2Settings
from oauthlogin.core.logging import TRACE, LoggingClient, LogLevel, ProtocolLogger
from oauthlogin.core.oauth2.errors import ConfigurationError, ErrorKind
from oauthlogin.core.oauth2.flows import (
    Authenticated,
    AuthenticationFlow,
    RedirectRequired,
    append_query,
)
from oauthlogin.core.oauth2.state import StateCodec
from oauthlogin.core.oauth2.userinfo import IdentityClaims

from tests.mocks.idp import AUTHORIZATION_URL, VALID_CODE, MockIdentityProvider


def query_of(uri: str) -> dict[str, list[str]]:
    return parse_qs(urlsplit(uri).query)


def callback_params(flow: AuthenticationFlow, code: str = VALID_CODE) -> dict[str, str]:
    """Parameters of a callback for a login started by this flow."""
    return {"code": code, "state": flow.state_codec.generate(600_000)}


def assert_redirect(outcome: object, reason: ErrorKind) -> RedirectRequired:
    assert isinstance(outcome, RedirectRequired)
    assert outcome.reason == reason
    assert outcome.login_uri.startswith(AUTHORIZATION_URL)
    return outcome


class TestBuildLoginURI:
    """Tests for AuthenticationFlow.build_login_uri."""

    def test_query_parameters(self, flow: AuthenticationFlow) -> None:
        """Test that exactly the five parameters are present with config values."""
        uri = flow.build_login_uri()

        assert uri.startswith(AUTHORIZATION_URL + "?")
        query = query_of(uri)
        assert set(query) == {"scope", "response_type", "client_id", "redirect_uri", "state"}
        assert query["scope"] == ["email profile"]
        assert query["response_type"] == ["code"]
        assert query["client_id"] == ["my-client"]
        assert query["redirect_uri"] == ["https://app.example.com/auth/callback"]
        assert query["state"][0]

    def test_state_is_fresh_and_valid(self, flow: AuthenticationFlow) -> None:
        """Test that each call generates a new, valid state."""
        first = query_of(flow.build_login_uri())["state"][0]
        second = query_of(flow.build_login_uri())["state"][0]

        assert first != second
        assert flow.state_codec.is_valid(first)
        assert flow.state_codec.is_valid(second)

    def test_identical_apart_from_state(self, flow: AuthenticationFlow) -> None:
        """Test that two URIs only differ in their state."""
        first = query_of(flow.build_login_uri())
        second = query_of(flow.build_login_uri())
        first.pop("state")
        second.pop("state")
        assert first == second

    def test_state_validity_from_settings(self, settings: OAuth2Settings, http_client: LoggingClient) -> None:
        """Test that the state expires after oauth2-max-state-validity minutes."""
        now = [1_700_000_000.0]
        codec = StateCodec(settings.state_secret, clock=lambda: now[0])
        flow = AuthenticationFlow(
            dataclasses.replace(settings, max_state_validity=3),
            state_codec=codec,
            http_client=http_client,
        )
        state = query_of(flow.build_login_uri())["state"][0]

        now[0] += 179
        assert codec.is_valid(state)
        now[0] += 1
        assert not codec.is_valid(state)

    def test_custom_scope(self, settings: OAuth2Settings, http_client: LoggingClient) -> None:
        """Test that the configured scope is used."""
        flow = AuthenticationFlow(dataclasses.replace(settings, scope="openid groups"), http_client=http_client)
        assert query_of(flow.build_login_uri())["scope"] == ["openid groups"]

    def test_existing_query_preserved(self, settings: OAuth2Settings, http_client: LoggingClient) -> None:
        """Test that query parameters on the endpoint survive."""
        flow = AuthenticationFlow(
            dataclasses.replace(settings, authorization_endpoint=f"{AUTHORIZATION_URL}?tenant=acme"),
            http_client=http_client,
        )
        query = query_of(flow.build_login_uri())
        assert query["tenant"] == ["acme"]
        assert query["response_type"] == ["code"]

    def test_no_http_call(self, flow: AuthenticationFlow, idp: MockIdentityProvider) -> None:
        """Test that building the URI talks to nobody."""
        flow.build_login_uri()
        assert idp.requests == []


class TestAuthenticate:
    """Tests for AuthenticationFlow.authenticate."""

    def test_success(self, flow: AuthenticationFlow) -> None:
        """Test the happy path."""
        outcome = flow.authenticate(callback_params(flow))

        assert outcome == Authenticated(IdentityClaims(username="alice", groups=frozenset({"ops", "dev"})))

    def test_calls_are_sequential(self, flow: AuthenticationFlow, idp: MockIdentityProvider) -> None:
        """Test token exchange precedes user info, one call each."""
        flow.authenticate(callback_params(flow))

        assert [r.method for r in idp.requests] == ["POST", "GET"]
        assert len(idp.token_requests) == 1
        assert len(idp.userinfo_requests) == 1

    def test_missing_code_redirects_without_http(self, flow: AuthenticationFlow, idp: MockIdentityProvider) -> None:
        """Test that a request without code is sent to the IdP."""
        outcome = flow.authenticate({})

        assert_redirect(outcome, ErrorKind.INVALID_ATTEMPT)
        assert idp.requests == []

    def test_missing_code_with_state_redirects(self, flow: AuthenticationFlow, idp: MockIdentityProvider) -> None:
        """Test that a state alone is not enough."""
        outcome = flow.authenticate({"state": flow.state_codec.generate(600_000)})

        assert_redirect(outcome, ErrorKind.INVALID_ATTEMPT)
        assert idp.requests == []

    def test_token_exchange_400_redirects_and_logs(
        self, flow: AuthenticationFlow, caplog: pytest.LogCaptureFixture
    ) -> None:
        """Test that an exchange failure becomes a redirect with a log record."""
        with caplog.at_level(logging.WARNING, logger="oauthlogin.core.oauth2.flows"):
            outcome = flow.authenticate(callback_params(flow, code="bad-code"))

        assert_redirect(outcome, ErrorKind.TRANSPORT)
        records = [r for r in caplog.records if r.name == "oauthlogin.core.oauth2.flows"]
        assert records
        assert "status_code: 400" in records[-1].getMessage()

    def test_token_exchange_network_failure_redirects(
        self, flow: AuthenticationFlow, idp: MockIdentityProvider
    ) -> None:
        """Test that a connection failure becomes a redirect."""
        idp.token_response = httpx.ConnectError("Connection refused")

        outcome = flow.authenticate(callback_params(flow))

        assert_redirect(outcome, ErrorKind.TRANSPORT)
        assert idp.userinfo_requests == []

    def test_token_without_access_token_redirects(self, flow: AuthenticationFlow, idp: MockIdentityProvider) -> None:
        """Test that an incomplete token response becomes a redirect."""
        idp.token_response = (200, {"token_type": "Bearer"})

        outcome = flow.authenticate(callback_params(flow))

        assert_redirect(outcome, ErrorKind.PROTOCOL)
        assert idp.userinfo_requests == []

    def test_missing_username_redirects(self, flow: AuthenticationFlow, idp: MockIdentityProvider) -> None:
        """Test that user info without the username claim becomes a redirect."""
        idp.claims = {"email": "alice@example.com", "groups": ["ops"]}

        outcome = flow.authenticate(callback_params(flow))

        assert_redirect(outcome, ErrorKind.PROTOCOL)

    def test_empty_username_redirects(self, flow: AuthenticationFlow, idp: MockIdentityProvider) -> None:
        """Test that an empty username becomes a redirect."""
        idp.claims = {"username": ""}

        outcome = flow.authenticate(callback_params(flow))

        assert_redirect(outcome, ErrorKind.PROTOCOL)

    def test_missing_groups_is_authenticated(self, flow: AuthenticationFlow, idp: MockIdentityProvider) -> None:
        """Test that a missing groups claim yields an empty group set."""
        idp.claims = {"username": "alice"}

        outcome = flow.authenticate(callback_params(flow))

        assert isinstance(outcome, Authenticated)
        assert outcome.identity.groups == frozenset()

    def test_userinfo_failure_redirects(self, flow: AuthenticationFlow, idp: MockIdentityProvider) -> None:
        """Test that a user info error becomes a redirect."""
        idp.userinfo_response = (503, {"error": "temporarily_unavailable"})

        outcome = flow.authenticate(callback_params(flow))

        assert_redirect(outcome, ErrorKind.TRANSPORT)

    def test_idp_error_callback_redirects(self, flow: AuthenticationFlow, idp: MockIdentityProvider) -> None:
        """Test that an error returned by the IdP is not exchanged."""
        outcome = flow.authenticate({"error": "access_denied", "error_description": "User cancelled"})

        assert_redirect(outcome, ErrorKind.INVALID_ATTEMPT)
        assert idp.requests == []

    def test_redirect_has_fresh_state(self, flow: AuthenticationFlow) -> None:
        """Test that the retry URI carries a new, valid state."""
        params = callback_params(flow, code="bad-code")

        outcome = flow.authenticate(params)

        assert isinstance(outcome, RedirectRequired)
        new_state = query_of(outcome.login_uri)["state"][0]
        assert new_state != params["state"]
        assert flow.state_codec.is_valid(new_state)

    def test_access_token_not_logged(
        self, flow: AuthenticationFlow, caplog: pytest.LogCaptureFixture
    ) -> None:
        """Test that neither the code nor the access token reach the logs."""
        with caplog.at_level(logging.DEBUG, logger="oauthlogin"):
            flow.authenticate(callback_params(flow))

        assert "access-token-123" not in caplog.text
        assert VALID_CODE not in caplog.text
        assert "my-client-secret" not in caplog.text

    def test_access_token_not_logged_at_trace(
        self, settings: OAuth2Settings, idp: MockIdentityProvider, caplog: pytest.LogCaptureFixture
    ) -> None:
        """Test that TRACE logs message bodies without any credential."""
        protocol_logger = ProtocolLogger(level=LogLevel.TRACE, trace_enabled=True)
        with LoggingClient(protocol_logger=protocol_logger, transport=idp.transport()) as http_client:
            flow = AuthenticationFlow(settings, http_client=http_client)
            with caplog.at_level(TRACE, logger="oauthlogin"):
                outcome = flow.authenticate(callback_params(flow))

        assert isinstance(outcome, Authenticated)
        assert "Response Body" in caplog.text
        assert "access-token-123" not in caplog.text
        assert VALID_CODE not in caplog.text
        assert "my-client-secret" not in caplog.text


class TestConcurrency:
    """A single flow and HTTP client serve parallel login attempts."""

    def test_parallel_attempts_keep_their_identity(
        self, flow: AuthenticationFlow, idp: MockIdentityProvider
    ) -> None:
        """Test that concurrent callbacks each get back their own user."""
        attempts = 16
        for i in range(attempts):
            idp.add_user(f"code-{i}", {"username": f"user-{i}", "groups": [f"group-{i}"]})

        def login(i: int) -> object:
            return flow.authenticate(callback_params(flow, code=f"code-{i}"))

        with ThreadPoolExecutor(max_workers=8) as executor:
            outcomes = list(executor.map(login, range(attempts)))

        for i, outcome in enumerate(outcomes):
            assert outcome == Authenticated(
                IdentityClaims(username=f"user-{i}", groups=frozenset({f"group-{i}"}))
            )
        assert len(idp.requests) == 2 * attempts
        assert len(idp.token_requests) == attempts
        assert len(idp.userinfo_requests) == attempts


class TestStateVerification:
    """Tests for verification of the returned state."""

    def test_missing_state_redirects(self, flow: AuthenticationFlow, idp: MockIdentityProvider) -> None:
        """Test that a code without state is refused."""
        outcome = flow.authenticate({"code": VALID_CODE})

        assert_redirect(outcome, ErrorKind.INVALID_ATTEMPT)
        assert idp.requests == []

    def test_forged_state_redirects(self, flow: AuthenticationFlow, idp: MockIdentityProvider) -> None:
        """Test that a state signed with another secret is refused."""
        forged = StateCodec("another-secret-0123456789abcdef0123456789abcdef").generate(600_000)

        outcome = flow.authenticate({"code": VALID_CODE, "state": forged})

        assert_redirect(outcome, ErrorKind.INVALID_ATTEMPT)
        assert idp.requests == []

    def test_expired_state_redirects(
        self, settings: OAuth2Settings, http_client: LoggingClient, idp: MockIdentityProvider
    ) -> None:
        """Test that a state older than its validity is refused."""
        now = [1_700_000_000.0]
        codec = StateCodec(settings.state_secret, clock=lambda: now[0])
        flow = AuthenticationFlow(settings, state_codec=codec, http_client=http_client)
        state = codec.generate(settings.max_state_validity_millis)

        now[0] += settings.max_state_validity * 60

        outcome = flow.authenticate({"code": VALID_CODE, "state": state})
        assert_redirect(outcome, ErrorKind.INVALID_ATTEMPT)
        assert idp.requests == []

    def test_verification_disabled(
        self, settings: OAuth2Settings, http_client: LoggingClient
    ) -> None:
        """Test that any code is accepted when state verification is off."""
        flow = AuthenticationFlow(dataclasses.replace(settings, verify_state=False), http_client=http_client)

        outcome = flow.authenticate({"code": VALID_CODE})

        assert isinstance(outcome, Authenticated)
        assert outcome.identity.username == "alice"


class TestConfigurationErrors:
    """Configuration errors are not turned into redirects."""

    def test_configuration_error_propagates(
        self, flow: AuthenticationFlow, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        """Test that a configuration error escapes authenticate."""
        def broken_exchange(code: str) -> str:
            raise ConfigurationError("Missing required properties: oauth2-token-endpoint")

        monkeypatch.setattr(flow.token_client, "exchange", broken_exchange)

        with pytest.raises(ConfigurationError):
            flow.authenticate(callback_params(flow))


class TestLifecycle:
    """Tests for HTTP client ownership."""

    def test_builds_client_with_timeouts(self, settings: OAuth2Settings) -> None:
        """Test that a flow without a client creates a bounded one."""
        with AuthenticationFlow(dataclasses.replace(settings, connect_timeout=2.0, read_timeout=7.0)) as flow:
            timeout = flow.http_client.timeout
            assert timeout.connect == 2.0
            assert timeout.read == 7.0
        assert flow.http_client.is_closed

    def test_injected_client_not_closed(self, flow: AuthenticationFlow, http_client: LoggingClient) -> None:
        """Test that a caller-supplied client stays open."""
        flow.close()
        assert not http_client.is_closed


def test_append_query() -> None:
    """Test appending parameters to a URI."""
    assert append_query("https://idp/authorize", {"a": "1 2"}) == "https://idp/authorize?a=1+2"
    assert append_query("https://idp/authorize?x=y", {"a": "b"}) == "https://idp/authorize?x=y&a=b"
