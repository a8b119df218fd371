"""
nextauth
========

Session and sign-in flows for web applications: signed (optionally
encrypted) JWT sessions, the session/CSRF/callback-url/PKCE cookie set,
and the sign-in, callback, session and sign-out flows for OAuth, OIDC,
credentials and email providers.

Components:
    - lib.jwt: JWT Session Engine (encode, decode, get_token)
    - lib.cookie: Cookie Policy Engine (serialize, set_cookie, default_cookies)
    - server.handler: Flow Dispatcher (handle)
    - integrations.fastapi: Request Adapter and router for FastAPI
"""

from .adapters import Adapter, InMemoryAdapter
from .errors import ConfigurationError, NextAuthError
from .lib.jwt import decode, encode, get_token
from .models import (
    AuthOptions,
    CallbacksOptions,
    CredentialsProvider,
    EmailProvider,
    JWTOptions,
    OAuthProvider,
    OIDCProvider,
    PagesOptions,
    SessionOptions,
)
from .server.handler import handle

__version__ = "1.0.0"

__all__ = [
    "Adapter",
    "AuthOptions",
    "CallbacksOptions",
    "ConfigurationError",
    "CredentialsProvider",
    "EmailProvider",
    "InMemoryAdapter",
    "JWTOptions",
    "NextAuthError",
    "OAuthProvider",
    "OIDCProvider",
    "PagesOptions",
    "SessionOptions",
    "decode",
    "encode",
    "get_token",
    "handle",
]
