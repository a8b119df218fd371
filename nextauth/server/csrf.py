"""
CSRF protection using the double submit cookie pattern.

The cookie holds ``<token>|sha256(<token><secret>)`` so the server can tell
that it issued the token without storing anything. A state-changing POST
is accepted only when its ``csrfToken`` body field equals the token in a
cookie whose hash checks out.
"""

import hmac
import logging
import secrets
from dataclasses import dataclass
from typing import Any, Optional

from .utils import hash_token

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CsrfToken:
    token: str
    verified: bool
    cookie: Optional[str] = None  # new cookie value to set, None if the existing one is valid


def create_csrf_token(
    secret: str,
    cookie_value: Optional[Any],
    is_post: bool,
    body_value: Optional[Any],
) -> CsrfToken:
    """
    Reuse the token from a valid cookie, or mint a new one.

    Args:
        secret: Site secret used to sign the cookie
        cookie_value: Current CSRF cookie value, if any
        is_post: Whether the request is a POST
        body_value: ``csrfToken`` submitted in the request body

    Returns:
        CsrfToken with ``verified`` set when the submitted token matches
    """
    if isinstance(cookie_value, str) and "|" in cookie_value:
        token, token_hash = cookie_value.split("|", 1)
        if token and hmac.compare_digest(token_hash, hash_token(token, secret)):
            verified = bool(
                is_post
                and isinstance(body_value, str)
                and hmac.compare_digest(body_value, token)
            )
            return CsrfToken(token=token, verified=verified)
        logger.debug("Discarding CSRF cookie with an invalid signature")

    token = secrets.token_hex(32)
    return CsrfToken(token=token, verified=False, cookie=f"{token}|{hash_token(token, secret)}")


def oauth_state(csrf_token: str) -> str:
    """OAuth ``state`` parameter bound to the CSRF cookie."""
    return hash_token(csrf_token)
