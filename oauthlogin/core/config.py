"""Application configuration management.

Loads configuration from config.yaml files and environment variables.
Environment variables take precedence over config file settings.

The OAuth2 settings are addressed by the flat property names operators
already know (``oauth2-client-id``, ``oauth2-token-endpoint``, ...). In the
YAML file they live under the ``oauth2`` section; in the environment they
are spelled ``OAUTHLOGIN_OAUTH2_CLIENT_ID`` and so on.
"""

from __future__ import annotations

import os
from collections.abc import Mapping
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any
from urllib.parse import urlparse

import yaml

from oauthlogin.core.oauth2.errors import ConfigurationError
from oauthlogin.core.oauth2.state import generate_state_secret

# Default config locations
DEFAULT_CONFIG_DIR = Path.home() / ".oauthlogin"
DEFAULT_CONFIG_FILE = DEFAULT_CONFIG_DIR / "config.yaml"

# Environment variable prefix
ENV_PREFIX = "OAUTHLOGIN_"

# Recognized OAuth2 property keys
AUTHORIZATION_ENDPOINT = "oauth2-authorization-endpoint"
TOKEN_ENDPOINT = "oauth2-token-endpoint"
USER_INFO_ENDPOINT = "oauth2-user-info-endpoint"
REDIRECT_URI = "oauth2-redirect-uri"
CLIENT_ID = "oauth2-client-id"
CLIENT_SECRET = "oauth2-client-secret"
ISSUER = "oauth2-issuer"
USERNAME_CLAIM_TYPE = "oauth2-username-claim-type"
GROUPS_CLAIM_TYPE = "oauth2-groups-claim-type"
SCOPE = "oauth2-scope"
MAX_STATE_VALIDITY = "oauth2-max-state-validity"
STATE_SECRET = "oauth2-state-secret"
VERIFY_STATE = "oauth2-verify-state"
CONNECT_TIMEOUT = "oauth2-connect-timeout"
READ_TIMEOUT = "oauth2-read-timeout"
TLS_VERIFY = "oauth2-tls-verify"

DEFAULT_USERNAME_CLAIM_TYPE = "username"
DEFAULT_GROUPS_CLAIM_TYPE = "groups"
DEFAULT_SCOPE = "email profile"
DEFAULT_MAX_STATE_VALIDITY = 10  # minutes
DEFAULT_CONNECT_TIMEOUT = 5.0  # seconds
DEFAULT_READ_TIMEOUT = 10.0  # seconds

REQUIRED_PROPERTIES = (
    AUTHORIZATION_ENDPOINT,
    TOKEN_ENDPOINT,
    USER_INFO_ENDPOINT,
    REDIRECT_URI,
    CLIENT_ID,
    CLIENT_SECRET,
    ISSUER,
)

OAUTH2_PROPERTIES = REQUIRED_PROPERTIES + (
    USERNAME_CLAIM_TYPE,
    GROUPS_CLAIM_TYPE,
    SCOPE,
    MAX_STATE_VALIDITY,
    STATE_SECRET,
    VERIFY_STATE,
    CONNECT_TIMEOUT,
    READ_TIMEOUT,
    TLS_VERIFY,
)

_SECRET_PROPERTIES = (CLIENT_SECRET, STATE_SECRET)
_URI_PROPERTIES = (AUTHORIZATION_ENDPOINT, TOKEN_ENDPOINT, USER_INFO_ENDPOINT, REDIRECT_URI)

_TRUE_VALUES = ("true", "1", "yes", "on")
_FALSE_VALUES = ("false", "0", "no", "off")


def property_env_var(key: str) -> str:
    """Environment variable name for an OAuth2 property key."""
    return ENV_PREFIX + key.upper().replace("-", "_")


def _is_blank(value: Any) -> bool:
    return value is None or (isinstance(value, str) and not value.strip())


def _parse_uri(key: str, value: Any) -> str:
    uri = str(value).strip()
    parsed = urlparse(uri)
    if parsed.scheme not in ("http", "https") or not parsed.netloc:
        raise ConfigurationError(f"Property '{key}' must be an absolute http(s) URI, got {uri!r}")
    return uri


def _parse_bool(key: str, value: Any) -> bool:
    if isinstance(value, bool):
        return value
    text = str(value).strip().lower()
    if text in _TRUE_VALUES:
        return True
    if text in _FALSE_VALUES:
        return False
    raise ConfigurationError(f"Property '{key}' must be a boolean, got {value!r}")


def _parse_positive_int(key: str, value: Any) -> int:
    if isinstance(value, bool):
        raise ConfigurationError(f"Property '{key}' must be an integer, got {value!r}")
    try:
        number = int(str(value).strip())
    except ValueError:
        raise ConfigurationError(f"Property '{key}' must be an integer, got {value!r}") from None
    if number <= 0:
        raise ConfigurationError(f"Property '{key}' must be positive, got {number}")
    return number


def _parse_timeout(key: str, value: Any) -> float:
    if isinstance(value, bool):
        raise ConfigurationError(f"Property '{key}' must be a number of seconds, got {value!r}")
    try:
        seconds = float(str(value).strip())
    except ValueError:
        raise ConfigurationError(f"Property '{key}' must be a number of seconds, got {value!r}") from None
    if seconds <= 0:
        raise ConfigurationError(f"Property '{key}' must be positive, got {seconds}")
    return seconds


@dataclass
class OAuth2Settings:
    """OAuth2 client settings, read-only once the application has started."""

    authorization_endpoint: str
    token_endpoint: str
    user_info_endpoint: str
    redirect_uri: str
    client_id: str
    client_secret: str
    # Reserved for ID token signature verification, not used by the flow
    issuer: str
    username_claim: str = DEFAULT_USERNAME_CLAIM_TYPE
    groups_claim: str = DEFAULT_GROUPS_CLAIM_TYPE
    scope: str = DEFAULT_SCOPE
    max_state_validity: int = DEFAULT_MAX_STATE_VALIDITY
    # Empty means a random secret is generated for this process
    state_secret: str = ""
    verify_state: bool = True
    connect_timeout: float = DEFAULT_CONNECT_TIMEOUT
    read_timeout: float = DEFAULT_READ_TIMEOUT
    tls_verify: bool = True
    state_secret_generated: bool = field(default=False, compare=False, repr=False)

    def __post_init__(self) -> None:
        if not self.state_secret:
            self.state_secret = generate_state_secret()
            self.state_secret_generated = True

    @property
    def max_state_validity_millis(self) -> int:
        """State validity window in milliseconds."""
        return self.max_state_validity * 60000

    @classmethod
    def from_properties(cls, properties: Mapping[str, Any]) -> OAuth2Settings:
        """Create OAuth2Settings from a flat property mapping.

        Args:
            properties: Mapping of property keys (e.g. ``oauth2-client-id``)
                to values.

        Returns:
            Validated settings.

        Raises:
            ConfigurationError: If required properties are missing or a value
                is malformed.
        """
        missing = [key for key in REQUIRED_PROPERTIES if _is_blank(properties.get(key))]
        if missing:
            raise ConfigurationError(f"Missing required properties: {', '.join(missing)}")

        def optional(key: str, default: Any) -> Any:
            value = properties.get(key)
            return default if _is_blank(value) else value

        uris = {key: _parse_uri(key, properties[key]) for key in _URI_PROPERTIES}

        state_secret = optional(STATE_SECRET, None)

        return cls(
            authorization_endpoint=uris[AUTHORIZATION_ENDPOINT],
            token_endpoint=uris[TOKEN_ENDPOINT],
            user_info_endpoint=uris[USER_INFO_ENDPOINT],
            redirect_uri=uris[REDIRECT_URI],
            client_id=str(properties[CLIENT_ID]).strip(),
            client_secret=str(properties[CLIENT_SECRET]),
            issuer=str(properties[ISSUER]).strip(),
            username_claim=str(optional(USERNAME_CLAIM_TYPE, DEFAULT_USERNAME_CLAIM_TYPE)).strip(),
            groups_claim=str(optional(GROUPS_CLAIM_TYPE, DEFAULT_GROUPS_CLAIM_TYPE)).strip(),
            scope=str(optional(SCOPE, DEFAULT_SCOPE)).strip(),
            max_state_validity=_parse_positive_int(
                MAX_STATE_VALIDITY, optional(MAX_STATE_VALIDITY, DEFAULT_MAX_STATE_VALIDITY)
            ),
            state_secret=str(state_secret) if state_secret is not None else "",
            verify_state=_parse_bool(VERIFY_STATE, optional(VERIFY_STATE, True)),
            connect_timeout=_parse_timeout(CONNECT_TIMEOUT, optional(CONNECT_TIMEOUT, DEFAULT_CONNECT_TIMEOUT)),
            read_timeout=_parse_timeout(READ_TIMEOUT, optional(READ_TIMEOUT, DEFAULT_READ_TIMEOUT)),
            tls_verify=_parse_bool(TLS_VERIFY, optional(TLS_VERIFY, True)),
        )

    def to_properties(self, redact: bool = True) -> dict[str, Any]:
        """Convert back to the flat property mapping.

        Args:
            redact: Replace secrets with a placeholder.

        Returns:
            Dictionary keyed by property name.
        """
        properties: dict[str, Any] = {
            AUTHORIZATION_ENDPOINT: self.authorization_endpoint,
            TOKEN_ENDPOINT: self.token_endpoint,
            USER_INFO_ENDPOINT: self.user_info_endpoint,
            REDIRECT_URI: self.redirect_uri,
            CLIENT_ID: self.client_id,
            CLIENT_SECRET: self.client_secret,
            ISSUER: self.issuer,
            USERNAME_CLAIM_TYPE: self.username_claim,
            GROUPS_CLAIM_TYPE: self.groups_claim,
            SCOPE: self.scope,
            MAX_STATE_VALIDITY: self.max_state_validity,
            STATE_SECRET: self.state_secret,
            VERIFY_STATE: self.verify_state,
            CONNECT_TIMEOUT: self.connect_timeout,
            READ_TIMEOUT: self.read_timeout,
            TLS_VERIFY: self.tls_verify,
        }
        if redact:
            for key in _SECRET_PROPERTIES:
                properties[key] = "[REDACTED]"
        return properties


@dataclass
class ServerSettings:
    """Settings for the bundled Flask host."""

    host: str = "127.0.0.1"
    port: int = 8080
    debug: bool = False
    secret_key: str | None = None

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> ServerSettings:
        """Create ServerSettings from a dictionary."""
        return cls(
            host=data.get("host", "127.0.0.1"),
            port=data.get("port", 8080),
            debug=data.get("debug", False),
            secret_key=data.get("secret_key"),
        )


@dataclass
class LoggingSettings:
    """Protocol logging settings."""

    level: str = "INFO"
    trace_enabled: bool = False
    log_file: str | None = None

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> LoggingSettings:
        """Create LoggingSettings from a dictionary."""
        return cls(
            level=str(data.get("level", "INFO")).upper(),
            trace_enabled=data.get("trace_enabled", False),
            log_file=data.get("log_file"),
        )


@dataclass
class AppConfig:
    """Main application configuration."""

    oauth2: OAuth2Settings | None = None
    server: ServerSettings = field(default_factory=ServerSettings)
    logging: LoggingSettings = field(default_factory=LoggingSettings)
    config_path: Path | None = None

    def require_oauth2(self) -> OAuth2Settings:
        """Return the OAuth2 settings, failing if none are configured."""
        if self.oauth2 is None:
            raise ConfigurationError(
                "No OAuth2 properties configured "
                f"(add an 'oauth2' section to {self.config_path or DEFAULT_CONFIG_FILE} "
                f"or set {ENV_PREFIX}OAUTH2_* environment variables)"
            )
        return self.oauth2


def _get_env_bool(key: str, default: bool) -> bool:
    """Get a boolean from environment variable."""
    value = os.environ.get(key)
    if value is None:
        return default
    return value.lower() in _TRUE_VALUES


def _get_env_int(key: str, default: int) -> int:
    """Get an integer from environment variable."""
    value = os.environ.get(key)
    if value is None:
        return default
    try:
        return int(value)
    except ValueError:
        return default


def _read_config_file(file_path: Path) -> dict[str, Any]:
    try:
        with open(file_path) as f:
            data = yaml.safe_load(f) or {}
    except (OSError, yaml.YAMLError) as e:
        raise ConfigurationError(f"Cannot read config file {file_path}: {e}") from e

    if not isinstance(data, dict):
        raise ConfigurationError(f"Config file {file_path} must contain a mapping")
    return data


def _section(data: dict[str, Any], name: str, file_path: Path) -> dict[str, Any]:
    section = data.get(name) or {}
    if not isinstance(section, dict):
        raise ConfigurationError(f"Section '{name}' in config file {file_path} must be a mapping")
    return section


def load_config(config_path: Path | None = None) -> AppConfig:
    """Load application configuration.

    Configuration is loaded in this order (later values override earlier):
    1. Default values
    2. config.yaml file (if exists)
    3. Environment variables

    Args:
        config_path: Path to config file. Uses default if not specified.

    Returns:
        AppConfig with merged settings.

    Raises:
        ConfigurationError: If the file is unreadable or the OAuth2
            properties are incomplete.
    """
    file_path = config_path or DEFAULT_CONFIG_FILE
    data: dict[str, Any] = {}
    if file_path.exists():
        data = _read_config_file(file_path)

    config = AppConfig(
        server=ServerSettings.from_dict(_section(data, "server", file_path)),
        logging=LoggingSettings.from_dict(_section(data, "logging", file_path)),
        config_path=file_path if file_path.exists() else None,
    )

    # OAuth2 properties: file section, then environment
    properties: dict[str, Any] = dict(_section(data, "oauth2", file_path))
    for key in OAUTH2_PROPERTIES:
        env_value = os.environ.get(property_env_var(key))
        if env_value is not None:
            properties[key] = env_value

    if properties:
        config.oauth2 = OAuth2Settings.from_properties(properties)

    # Server settings
    if os.environ.get(f"{ENV_PREFIX}HOST"):
        config.server.host = os.environ[f"{ENV_PREFIX}HOST"]

    if os.environ.get(f"{ENV_PREFIX}PORT"):
        config.server.port = _get_env_int(f"{ENV_PREFIX}PORT", config.server.port)

    config.server.debug = _get_env_bool(f"{ENV_PREFIX}DEBUG", config.server.debug)

    if os.environ.get(f"{ENV_PREFIX}SECRET_KEY"):
        config.server.secret_key = os.environ[f"{ENV_PREFIX}SECRET_KEY"]

    # Logging settings
    if os.environ.get(f"{ENV_PREFIX}LOG_LEVEL"):
        config.logging.level = os.environ[f"{ENV_PREFIX}LOG_LEVEL"].upper()

    if os.environ.get(f"{ENV_PREFIX}LOG_FILE"):
        config.logging.log_file = os.environ[f"{ENV_PREFIX}LOG_FILE"]

    return config


def get_default_config_yaml() -> str:
    """Get the default config.yaml content as a string.

    Useful for generating example configuration files.
    """
    return """\
# oauthlogin configuration file
# Environment variables override these settings (prefix: OAUTHLOGIN_,
# e.g. OAUTHLOGIN_OAUTH2_CLIENT_SECRET)

oauth2:
  # IdP endpoints (required)
  oauth2-authorization-endpoint: "https://idp.example.com/oauth2/authorize"
  oauth2-token-endpoint: "https://idp.example.com/oauth2/token"
  oauth2-user-info-endpoint: "https://idp.example.com/oauth2/userinfo"

  # Where the IdP sends the browser back to (required)
  oauth2-redirect-uri: "https://app.example.com/auth/callback"

  # Client credentials (required)
  oauth2-client-id: "my-client"
  oauth2-client-secret: "change-me"

  # Issuer identifier (required, reserved for token verification)
  oauth2-issuer: "https://idp.example.com"

  # Claims read from the user info response
  oauth2-username-claim-type: "username"
  oauth2-groups-claim-type: "groups"

  # Requested scope
  oauth2-scope: "email profile"

  # Minutes a login redirect stays valid
  oauth2-max-state-validity: 10

  # Secret used to sign state values; share it between all instances.
  # A random secret is generated per process if not set.
  # oauth2-state-secret: ""

  # Reject callbacks whose state is missing, forged or expired
  oauth2-verify-state: true

  # HTTP timeouts (seconds) and TLS verification for IdP calls
  oauth2-connect-timeout: 5
  oauth2-read-timeout: 10
  oauth2-tls-verify: true

server:
  # Server bind address
  host: "127.0.0.1"

  # Server port
  port: 8080

  # Enable debug mode (not recommended for production)
  debug: false

logging:
  # ERROR, INFO, DEBUG or TRACE
  level: "INFO"

  # Allow TRACE to log request and response bodies (credentials stay redacted)
  trace_enabled: false

  # Optional log file
  # log_file: ~/.oauthlogin/oauthlogin.log
"""
