"""
Data Models Module

This module defines the Pydantic models consumed by the flow dispatcher.

Models are organized by functional area:
- Provider descriptors (tagged on ``type``: oauth, oidc, credentials, email)
- Auth options (session strategy, JWT, pages, callbacks, cookie overrides)
- Adapter records (users, accounts, sessions, verification tokens)
"""

from datetime import datetime
from typing import Annotated, Any, Callable, Dict, List, Literal, Optional, Union
from urllib.parse import urlparse

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from .lib.cookie import CookieDescriptor


THIRTY_DAYS = 30 * 24 * 60 * 60
ONE_DAY = 24 * 60 * 60


# ============================================================================
# Provider Descriptors
# ============================================================================

class OAuthProvider(BaseModel):
    """OAuth 2.0 authorization code provider."""

    model_config = ConfigDict(arbitrary_types_allowed=True)

    type: Literal["oauth"] = "oauth"
    id: str = Field(..., description="Provider id used in URLs (e.g. 'github')")
    name: str = Field(..., description="Display name")
    client_id: str
    client_secret: Optional[str] = None
    authorization_url: str
    token_url: str
    userinfo_url: Optional[str] = None
    scope: str = ""
    authorization_params: Dict[str, str] = Field(default_factory=dict)
    checks: List[Literal["state", "pkce"]] = Field(default_factory=lambda: ["state"])
    profile: Optional[Callable[..., Any]] = Field(
        None,
        description="Maps the raw provider profile to {id, name, email, image}",
    )


class OIDCProvider(OAuthProvider):
    """OpenID Connect provider; identity comes from a verified id_token."""

    type: Literal["oidc"] = "oidc"
    issuer: str
    jwks_url: str
    scope: str = "openid profile email"
    checks: List[Literal["state", "pkce"]] = Field(default_factory=lambda: ["pkce", "state"])


class CredentialsProvider(BaseModel):
    """Username/password style provider backed by an ``authorize`` callable."""

    model_config = ConfigDict(arbitrary_types_allowed=True)

    type: Literal["credentials"] = "credentials"
    id: str = "credentials"
    name: str = "Credentials"
    credentials: Dict[str, Dict[str, Any]] = Field(default_factory=dict)
    authorize: Callable[..., Any] = Field(
        ...,
        description="(credentials, req) -> user dict or None; may be async",
    )


class EmailProvider(BaseModel):
    """Passwordless sign-in through a one-time link sent by email."""

    model_config = ConfigDict(arbitrary_types_allowed=True)

    type: Literal["email"] = "email"
    id: str = "email"
    name: str = "Email"
    max_age: int = Field(default=ONE_DAY, description="Link lifetime in seconds")
    from_address: Optional[str] = None
    send_verification_request: Callable[..., Any] = Field(
        ...,
        description="(identifier, url, token, provider) -> None; may be async",
    )


Provider = Annotated[
    Union[OAuthProvider, OIDCProvider, CredentialsProvider, EmailProvider],
    Field(discriminator="type"),
]


# ============================================================================
# Default Callbacks
# ============================================================================

async def default_sign_in_callback(user: Dict[str, Any], account: Dict[str, Any], **kwargs) -> bool:
    return True


async def default_redirect_callback(url: str, base_url: str) -> str:
    """Allow relative URLs and URLs on the same origin as the site."""
    if url.startswith("/") and not url.startswith("//"):
        return f"{base_url}{url}"

    target = urlparse(url)
    base = urlparse(base_url)
    if (target.scheme, target.netloc) == (base.scheme, base.netloc):
        return url

    return base_url


async def default_session_callback(session: Dict[str, Any], **kwargs) -> Dict[str, Any]:
    return session


async def default_jwt_callback(token: Dict[str, Any], **kwargs) -> Dict[str, Any]:
    return token


# ============================================================================
# Auth Options
# ============================================================================

class SessionOptions(BaseModel):
    strategy: Literal["jwt", "database"] = "jwt"
    max_age: int = Field(default=THIRTY_DAYS, description="Session lifetime in seconds")
    update_age: int = Field(default=ONE_DAY, description="Minimum seconds between database session extensions")


class JWTOptions(BaseModel):
    secret: Optional[str] = None
    max_age: Optional[int] = Field(None, description="Defaults to the session max_age")
    encryption: Optional[bool] = Field(None, description="Defaults to JWT_ENCRYPTION")


class PagesOptions(BaseModel):
    """Host application pages; unset pages get machine-readable JSON responses."""

    sign_in: Optional[str] = None
    sign_out: Optional[str] = None
    error: Optional[str] = None
    verify_request: Optional[str] = None
    new_user: Optional[str] = None


class CallbacksOptions(BaseModel):
    """
    Hooks invoked during the flows. Each may be sync or async and is
    called with keyword arguments.

    - sign_in(user, account, profile, credentials) -> bool | str (redirect URL)
    - redirect(url, base_url) -> str
    - session(session, token, user) -> dict
    - jwt(token, user, account, profile, is_new_user) -> dict
    """

    model_config = ConfigDict(arbitrary_types_allowed=True)

    sign_in: Callable[..., Any] = default_sign_in_callback
    redirect: Callable[..., Any] = default_redirect_callback
    session: Callable[..., Any] = default_session_callback
    jwt: Callable[..., Any] = default_jwt_callback


class AuthOptions(BaseModel):
    """
    Everything the flow dispatcher needs, assembled once at startup.

    Providers are registered explicitly; ids must be unique.
    """

    model_config = ConfigDict(arbitrary_types_allowed=True)

    providers: List[Provider] = Field(default_factory=list)
    secret: Optional[str] = Field(None, description="Defaults to NEXTAUTH_SECRET")
    url: Optional[str] = Field(None, description="Public base URL; defaults to NEXTAUTH_URL, then the request origin")
    base_path: Optional[str] = Field(None, description="Defaults to NEXTAUTH_BASE_PATH")
    session: SessionOptions = Field(default_factory=SessionOptions)
    jwt: JWTOptions = Field(default_factory=JWTOptions)
    pages: PagesOptions = Field(default_factory=PagesOptions)
    callbacks: CallbacksOptions = Field(default_factory=CallbacksOptions)
    cookies: Dict[str, CookieDescriptor] = Field(
        default_factory=dict,
        description="Overrides keyed by session_token, callback_url, csrf_token, pkce_code_verifier",
    )
    use_secure_cookies: Optional[bool] = None
    adapter: Optional[Any] = Field(None, description="Persistence adapter (see nextauth.adapters.Adapter)")

    @field_validator("providers")
    @classmethod
    def validate_unique_ids(cls, v: List[Any]) -> List[Any]:
        ids = [provider.id for provider in v]
        duplicates = sorted({pid for pid in ids if ids.count(pid) > 1})
        if duplicates:
            raise ValueError(f"Duplicate provider ids: {duplicates}")
        return v

    @field_validator("url")
    @classmethod
    def validate_url(cls, v: Optional[str]) -> Optional[str]:
        if v is None:
            return v
        if not v.startswith(("http://", "https://")):
            raise ValueError(f"url must start with http:// or https://, got: {v}")
        return v.rstrip("/")

    @field_validator("base_path")
    @classmethod
    def validate_base_path(cls, v: Optional[str]) -> Optional[str]:
        if v is None:
            return v
        v = "/" + v.strip("/")
        if v.rsplit("/", 1)[-1] != "auth":
            raise ValueError(f"base_path must end with an 'auth' segment, got: {v}")
        return v

    @model_validator(mode="after")
    def validate_strategy(self) -> "AuthOptions":
        if self.session.strategy == "database" and self.adapter is None:
            raise ValueError("session strategy 'database' requires an adapter")
        for provider in self.providers:
            if provider.type == "credentials" and self.session.strategy != "jwt":
                raise ValueError("Credentials providers only support the 'jwt' session strategy")
            if provider.type == "email" and self.adapter is None:
                raise ValueError(f"Email provider '{provider.id}' requires an adapter")
        return self


# ============================================================================
# Adapter Records
# ============================================================================

class AdapterUser(BaseModel):
    id: str
    name: Optional[str] = None
    email: Optional[str] = None
    image: Optional[str] = None
    email_verified: Optional[datetime] = None


class AdapterAccount(BaseModel):
    user_id: str
    type: str
    provider: str
    provider_account_id: str
    access_token: Optional[str] = None
    refresh_token: Optional[str] = None
    expires_at: Optional[int] = None
    token_type: Optional[str] = None
    scope: Optional[str] = None
    id_token: Optional[str] = None


class AdapterSession(BaseModel):
    session_token: str
    user_id: str
    expires: datetime


class VerificationToken(BaseModel):
    identifier: str
    token: str
    expires: datetime
