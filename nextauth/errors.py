"""
Error Taxonomy
==============

Exceptions raised by the token engine, the cookie engine and the flow
handlers.

Only ``ConfigurationError`` is allowed to reach the host application.
Everything else is caught by the flow dispatcher and turned into either
"no session" or a redirect to the error page carrying ``code``.
"""

from typing import Optional


class NextAuthError(Exception):
    """Base exception for all authentication core errors"""

    code = "Default"

    def __init__(self, message: str = "", code: Optional[str] = None):
        super().__init__(message)
        if code:
            self.code = code


# =============================================================================
# Fatal (host misconfiguration)
# =============================================================================

class ConfigurationError(NextAuthError):
    """Invalid options supplied by the host application."""

    code = "Configuration"


# =============================================================================
# Degrade to "no session"
# =============================================================================

class TokenInvalid(NextAuthError):
    """Token failed signature, decryption, structure or expiry checks."""

    code = "Verification"


# =============================================================================
# Redirect to the error page
# =============================================================================

class CSRFMismatch(NextAuthError):
    code = "MissingCSRF"


class ProviderError(NextAuthError):
    """Upstream identity provider failure."""

    code = "OAuthCallback"


class OAuthSignInError(ProviderError):
    code = "OAuthSignin"


class OAuthCallbackError(ProviderError):
    code = "OAuthCallback"


class OAuthStateMismatch(OAuthCallbackError):
    """The ``state`` returned by the provider does not match the CSRF cookie."""


class EmailSignInError(ProviderError):
    code = "EmailSignin"


class AccountNotLinked(NextAuthError):
    """The profile email belongs to a user signed in through another provider."""

    code = "OAuthAccountNotLinked"


class AccessDenied(NextAuthError):
    code = "AccessDenied"


class AdapterError(NextAuthError):
    """Persistence adapter failure."""

    code = "Callback"


__all__ = [
    "NextAuthError",
    "ConfigurationError",
    "TokenInvalid",
    "CSRFMismatch",
    "ProviderError",
    "OAuthSignInError",
    "OAuthCallbackError",
    "OAuthStateMismatch",
    "EmailSignInError",
    "AccountNotLinked",
    "AccessDenied",
    "AdapterError",
]
