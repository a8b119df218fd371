"""
PKCE (RFC 7636) for the OAuth authorization code flow.

The code verifier never leaves the user agent unencrypted: it is stored in
the PKCE cookie as an encrypted token and read back on callback.
"""

import base64
import hashlib
import logging
import secrets
from typing import Dict, Optional

from ..errors import OAuthCallbackError, TokenInvalid
from ..lib.cookie import set_cookie
from .types import InternalOptions, InternalRequest, InternalResponse

logger = logging.getLogger(__name__)


PKCE_CODE_CHALLENGE_METHOD = "S256"
PKCE_MAX_AGE = 60 * 15  # 15 minutes


def generate_code_verifier() -> str:
    """
    Generate a cryptographically random code verifier for PKCE.

    Returns:
        Base64-URL-encoded random string (43-128 characters)
    """
    verifier_bytes = secrets.token_bytes(32)
    return base64.urlsafe_b64encode(verifier_bytes).decode("utf-8").rstrip("=")


def generate_code_challenge(verifier: str) -> str:
    """
    Generate code challenge from verifier using S256 method.

    Args:
        verifier: Code verifier string

    Returns:
        Base64-URL-encoded SHA256 hash of verifier
    """
    digest = hashlib.sha256(verifier.encode("utf-8")).digest()
    return base64.urlsafe_b64encode(digest).decode("utf-8").rstrip("=")


def create_pkce(res: InternalResponse, options: InternalOptions) -> Dict[str, str]:
    """
    Generate a verifier, persist it in the PKCE cookie, and return the
    authorization URL parameters.
    """
    code_verifier = generate_code_verifier()
    encrypted = options.encode_token(
        {"code_verifier": code_verifier},
        max_age=PKCE_MAX_AGE,
        encryption=True,
    )

    cookie = options.cookies["pkce_code_verifier"]
    set_cookie(res, cookie.name, encrypted, cookie.options.model_copy(update={"max_age": PKCE_MAX_AGE}))

    return {
        "code_challenge": generate_code_challenge(code_verifier),
        "code_challenge_method": PKCE_CODE_CHALLENGE_METHOD,
    }


def use_pkce_code_verifier(
    req: InternalRequest,
    res: InternalResponse,
    options: InternalOptions,
) -> str:
    """
    Read the verifier back from the PKCE cookie and clear the cookie.

    Raises:
        OAuthCallbackError: If the cookie is missing, expired or tampered with
    """
    cookie = options.cookies["pkce_code_verifier"]
    value: Optional[str] = req.cookies.get(cookie.name)
    if not value or not isinstance(value, str):
        raise OAuthCallbackError("PKCE code verifier cookie is missing")

    try:
        decoded = options.decode_token(value, max_age=PKCE_MAX_AGE, encryption=True)
    except TokenInvalid as e:
        raise OAuthCallbackError(f"PKCE code verifier cookie is invalid: {e}") from e

    set_cookie(res, cookie.name, "", cookie.options.model_copy(update={"max_age": 0}))

    code_verifier = (decoded or {}).get("code_verifier")
    if not code_verifier:
        raise OAuthCallbackError("PKCE code verifier cookie is empty")
    return code_verifier
