"""
OAuth 2.0 / OIDC client.

This module handles:
- Building the authorization URL (state bound to the CSRF cookie, PKCE)
- Exchanging the authorization code for tokens
- Fetching the user profile (userinfo endpoint, or a verified id_token
  checked against the provider JWKS for OIDC providers)

Every upstream failure is raised as ``OAuthCallbackError``; the caller logs
it and redirects to the error page.
"""

import hmac
import logging
import time
from typing import Any, Dict, Optional, Tuple
from urllib.parse import urlencode

import httpx
from jose import jwt as jose_jwt
from jose import JWTError

from ..errors import OAuthCallbackError, OAuthStateMismatch
from ..models import OIDCProvider
from .csrf import oauth_state
from .pkce import create_pkce, use_pkce_code_verifier
from .types import InternalOptions, InternalRequest, InternalResponse
from .utils import maybe_await

logger = logging.getLogger(__name__)


ID_TOKEN_ALGORITHMS = ["RS256", "RS384", "RS512", "ES256", "ES384", "ES512", "PS256", "PS384", "PS512"]


# =============================================================================
# Authorization URL
# =============================================================================

def get_authorization_url(res: InternalResponse, options: InternalOptions) -> str:
    """
    Build the provider authorization URL for the current provider.

    Args:
        res: Response the PKCE cookie is queued on
        options: Per-request options (provider and CSRF token resolved)

    Returns:
        Absolute URL to redirect the user agent to
    """
    provider = options.provider

    params = {
        "client_id": provider.client_id,
        "response_type": "code",
        "redirect_uri": options.action_url("callback", provider.id),
    }
    if provider.scope:
        params["scope"] = provider.scope
    params.update(provider.authorization_params)

    if "state" in provider.checks:
        params["state"] = oauth_state(options.csrf_token)

    if "pkce" in provider.checks:
        params.update(create_pkce(res, options))

    separator = "&" if "?" in provider.authorization_url else "?"
    return f"{provider.authorization_url}{separator}{urlencode(params)}"


# =============================================================================
# Token Exchange
# =============================================================================

async def exchange_code_for_tokens(
    options: InternalOptions,
    code: str,
    code_verifier: Optional[str] = None,
) -> Dict[str, Any]:
    """
    Exchange authorization code for access (and ID) tokens.

    Args:
        options: Per-request options (provider resolved)
        code: Authorization code from callback
        code_verifier: PKCE code verifier

    Returns:
        Token response dictionary

    Raises:
        OAuthCallbackError: If the token endpoint rejects the exchange
    """
    provider = options.provider

    payload = {
        "client_id": provider.client_id,
        "grant_type": "authorization_code",
        "code": code,
        "redirect_uri": options.action_url("callback", provider.id),
    }

    # Confidential client
    if provider.client_secret:
        payload["client_secret"] = provider.client_secret

    if code_verifier:
        payload["code_verifier"] = code_verifier

    async with httpx.AsyncClient() as client:
        response = await client.post(
            provider.token_url,
            data=payload,
            headers={
                "Content-Type": "application/x-www-form-urlencoded",
                "Accept": "application/json",
            },
            timeout=options.http_timeout,
        )

        if not response.is_success:
            error_data = response.json() if response.headers.get("content-type", "").startswith("application/json") else {}
            error_msg = error_data.get("error_description") or error_data.get("error") or f"HTTP {response.status_code}"
            raise OAuthCallbackError(f"Token exchange failed: {error_msg}")

        token_data = response.json()

    if not isinstance(token_data, dict):
        raise OAuthCallbackError("Token response is not a JSON object")

    # Only OIDC providers may omit access_token; they sign in from the id_token
    id_token_only = isinstance(options.provider, OIDCProvider) and token_data.get("id_token")
    if not token_data.get("access_token") and not id_token_only:
        raise OAuthCallbackError("Token response missing access_token")

    return token_data


# =============================================================================
# Profile Retrieval
# =============================================================================

async def fetch_userinfo(options: InternalOptions, access_token: str) -> Dict[str, Any]:
    provider = options.provider
    if not provider.userinfo_url:
        raise OAuthCallbackError(f"Provider {provider.id} has no userinfo_url")

    async with httpx.AsyncClient() as client:
        response = await client.get(
            provider.userinfo_url,
            headers={
                "Authorization": f"Bearer {access_token}",
                "Accept": "application/json",
            },
            timeout=options.http_timeout,
        )
        response.raise_for_status()
        userinfo = response.json()

    if not isinstance(userinfo, dict):
        raise OAuthCallbackError("Userinfo response is not a JSON object")
    return userinfo


async def fetch_jwks(jwks_url: str, timeout: float) -> Dict[str, Any]:
    """
    Fetch the provider JWKS.

    Raises:
        httpx.HTTPError: If JWKS endpoint is unreachable
        ValueError: If response is invalid
    """
    async with httpx.AsyncClient() as client:
        response = await client.get(jwks_url, timeout=timeout)
        response.raise_for_status()

        jwks_data = response.json()

        if "keys" not in jwks_data:
            raise ValueError("Invalid JWKS response: missing 'keys' field")

        return jwks_data


def get_signing_key(token: str, jwks: Dict[str, Any]) -> Optional[Dict[str, Any]]:
    """
    Extract the public key from JWKS that matches the token's kid.

    A token without ``kid`` is accepted only when the JWKS holds exactly one key.

    Raises:
        JWTError: If token header is malformed
    """
    unverified_header = jose_jwt.get_unverified_header(token)
    keys = jwks.get("keys", [])

    kid = unverified_header.get("kid")
    if not kid:
        return keys[0] if len(keys) == 1 else None

    for key in keys:
        if key.get("kid") == kid:
            return key

    return None


async def verify_id_token(options: InternalOptions, id_token: str, access_token: Optional[str] = None) -> Dict[str, Any]:
    """
    Verify and decode an ID token from an OIDC provider.

    Checks the signature against the provider JWKS plus ``iss``, ``aud``,
    ``exp``, ``nbf`` and ``iat`` (10 seconds of clock skew tolerated).

    Raises:
        OAuthCallbackError: If the token cannot be verified
    """
    provider: OIDCProvider = options.provider

    try:
        jwks = await fetch_jwks(provider.jwks_url, options.http_timeout)
        signing_key = get_signing_key(id_token, jwks)
        if not signing_key:
            raise OAuthCallbackError("Unable to find matching signing key in JWKS")

        return jose_jwt.decode(
            id_token,
            signing_key,
            algorithms=ID_TOKEN_ALGORITHMS,
            audience=provider.client_id,
            issuer=provider.issuer,
            access_token=access_token,
            options={
                "verify_at_hash": access_token is not None,
                "leeway": 10,
            },
        )
    except JWTError as e:
        raise OAuthCallbackError(f"ID token verification failed: {e}") from e
    except (httpx.HTTPError, ValueError) as e:
        raise OAuthCallbackError(f"Unable to fetch JWKS: {e}") from e


def default_profile(raw_profile: Dict[str, Any]) -> Dict[str, Any]:
    return {
        "id": raw_profile.get("sub") or raw_profile.get("id"),
        "name": raw_profile.get("name"),
        "email": raw_profile.get("email"),
        "image": raw_profile.get("picture") or raw_profile.get("image"),
    }


# =============================================================================
# Callback
# =============================================================================

async def oauth_callback(
    req: InternalRequest,
    res: InternalResponse,
    options: InternalOptions,
) -> Tuple[Dict[str, Any], Dict[str, Any], Dict[str, Any]]:
    """
    Complete the authorization code flow.

    Returns:
        (profile, account, raw_profile)

    Raises:
        OAuthStateMismatch: If ``state`` does not match the CSRF cookie
        OAuthCallbackError: For any other provider failure
    """
    provider = options.provider
    params = {**req.body, **req.query}

    if params.get("error"):
        error_msg = params.get("error_description") or params["error"]
        raise OAuthCallbackError(f"Provider returned an error: {error_msg}")

    if "state" in provider.checks:
        state = params.get("state")
        expected_state = oauth_state(options.csrf_token)
        if not isinstance(state, str) or not hmac.compare_digest(state, expected_state):
            raise OAuthStateMismatch("Invalid state parameter")

    code = params.get("code")
    if not code:
        raise OAuthCallbackError("Missing authorization code")

    code_verifier = None
    if "pkce" in provider.checks:
        code_verifier = use_pkce_code_verifier(req, res, options)

    try:
        tokens = await exchange_code_for_tokens(options, code, code_verifier)

        if isinstance(provider, OIDCProvider) and tokens.get("id_token"):
            raw_profile = await verify_id_token(options, tokens["id_token"], tokens.get("access_token"))
        else:
            raw_profile = await fetch_userinfo(options, tokens["access_token"])
    except (httpx.HTTPError, ValueError) as e:
        # ValueError covers non-JSON bodies
        raise OAuthCallbackError(f"Unable to communicate with {provider.id}: {e}") from e

    if provider.profile:
        profile = await maybe_await(provider.profile, raw_profile)
    else:
        profile = default_profile(raw_profile)

    if not profile or not profile.get("id"):
        raise OAuthCallbackError("Profile is missing an id")

    try:
        expires_at = int(time.time()) + int(tokens["expires_in"]) if tokens.get("expires_in") else None
    except (TypeError, ValueError) as e:
        raise OAuthCallbackError(f"Invalid expires_in from {provider.id}") from e

    account = {
        "provider": provider.id,
        "type": provider.type,
        "provider_account_id": str(profile["id"]),
        "access_token": tokens.get("access_token"),
        "refresh_token": tokens.get("refresh_token"),
        "expires_at": expires_at,
        "token_type": tokens.get("token_type"),
        "scope": tokens.get("scope"),
        "id_token": tokens.get("id_token"),
    }

    return profile, account, raw_profile
