"""oauthlogin - OAuth2 authorization code login for host applications."""

__version__ = "0.1.0"
