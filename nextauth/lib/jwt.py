"""
JWT Session Token Module
========================

Encodes session claims into compact tokens and decodes them back.

Tokens are always signed (HS512, PyJWT). When encryption is enabled the
signed token is additionally wrapped in a compact JWE (``dir`` +
``A256GCM``, python-jose). Both keys are derived from the configured
secret with HKDF-SHA256 and fixed info strings, so the same secret always
yields the same keys and tokens survive process restarts.

Failure policy:
- ``decode`` raises ``TokenInvalid`` for anything it cannot verify
- ``get_token`` never raises for bad tokens; it returns None
- a missing secret is a ``ConfigurationError`` everywhere
"""

import logging
import time
from typing import Any, Dict, Mapping, Optional, Union
from urllib.parse import unquote

import jwt
from jwt.exceptions import ExpiredSignatureError, InvalidTokenError
from jose import jwe
from jose.exceptions import JOSEError
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.kdf.hkdf import HKDF

from ..config import get_settings
from ..errors import ConfigurationError, TokenInvalid

logger = logging.getLogger(__name__)


DEFAULT_MAX_AGE = 30 * 24 * 60 * 60  # 30 days
DEFAULT_SIGNATURE_ALGORITHM = "HS512"
DEFAULT_ENCRYPTION_ALGORITHM = "A256GCM"

SIGNING_KEY_INFO = b"NextAuth.js Generated Signing Key"
ENCRYPTION_KEY_INFO = b"NextAuth.js Generated Encryption Key"
SIGNING_KEY_LENGTH = 64
ENCRYPTION_KEY_LENGTH = 32

SESSION_COOKIE_NAME = "next-auth.session-token"
SECURE_SESSION_COOKIE_NAME = "__Secure-next-auth.session-token"


# =============================================================================
# Key Derivation
# =============================================================================

def derive_key(secret: Optional[Union[str, bytes]], info: bytes, length: int) -> bytes:
    """
    Derive a fixed-length key from the secret with HKDF-SHA256.

    Args:
        secret: Raw key material or passphrase
        info: Context string separating signing and encryption keys
        length: Key length in bytes

    Returns:
        Derived key bytes

    Raises:
        ConfigurationError: If no secret is supplied
    """
    if not secret:
        raise ConfigurationError("A secret is required to sign or verify session tokens")

    if isinstance(secret, str):
        secret = secret.encode("utf-8")

    hkdf = HKDF(
        algorithm=hashes.SHA256(),
        length=length,
        salt=None,
        info=info,
    )
    return hkdf.derive(secret)


def _now() -> int:
    return int(time.time())


# =============================================================================
# Token Creation
# =============================================================================

def encode(
    token: Mapping[str, Any],
    secret: Optional[Union[str, bytes]] = None,
    max_age: int = DEFAULT_MAX_AGE,
    encryption: bool = False,
    signing_key: Optional[bytes] = None,
    encryption_key: Optional[bytes] = None,
) -> str:
    """
    Encode claims into a signed (and optionally encrypted) compact token.

    ``iat`` and ``exp`` are always (re)set; any values already present in
    ``token`` are replaced.

    Args:
        token: JSON-serializable claims (``sub``, ``name``, ``email``, ...)
        secret: Secret the keys are derived from
        max_age: Seconds from now until the token expires
        encryption: Wrap the signed token in a JWE
        signing_key: Explicit HS512 key (skips derivation)
        encryption_key: Explicit 32-byte A256GCM key (skips derivation)

    Returns:
        Compact token string

    Example:
        >>> token = encode({"sub": "user-123"}, secret="s3cret")
        >>> decode(token, secret="s3cret")["sub"]
        'user-123'
    """
    key = signing_key or derive_key(secret, SIGNING_KEY_INFO, SIGNING_KEY_LENGTH)

    payload = dict(token)
    issued_at = _now()
    payload["iat"] = issued_at
    payload["exp"] = issued_at + max_age

    signed = jwt.encode(payload, key, algorithm=DEFAULT_SIGNATURE_ALGORITHM)

    if not encryption:
        return signed

    content_key = encryption_key or derive_key(secret, ENCRYPTION_KEY_INFO, ENCRYPTION_KEY_LENGTH)
    encrypted = jwe.encrypt(
        signed,
        content_key,
        algorithm="dir",
        encryption=DEFAULT_ENCRYPTION_ALGORITHM,
    )
    return encrypted.decode("utf-8") if isinstance(encrypted, bytes) else encrypted


# =============================================================================
# Token Verification
# =============================================================================

def decode(
    token: Optional[str],
    secret: Optional[Union[str, bytes]] = None,
    max_age: int = DEFAULT_MAX_AGE,
    encryption: bool = False,
    signing_key: Optional[bytes] = None,
    encryption_key: Optional[bytes] = None,
) -> Optional[Dict[str, Any]]:
    """
    Verify (and decrypt) a token produced by ``encode``.

    Args:
        token: Compact token string, or None when there is no session
        secret: Secret the keys are derived from
        max_age: Maximum accepted age in seconds, counted from ``iat``
        encryption: Token is a JWE produced with ``encryption=True``
        signing_key: Explicit HS512 key
        encryption_key: Explicit A256GCM key

    Returns:
        Claims dictionary including ``iat`` and ``exp``, or None if no
        token was given

    Raises:
        TokenInvalid: Bad signature, wrong key, malformed, or expired
    """
    if not token:
        return None

    key = signing_key or derive_key(secret, SIGNING_KEY_INFO, SIGNING_KEY_LENGTH)

    signed = token
    if encryption:
        content_key = encryption_key or derive_key(secret, ENCRYPTION_KEY_INFO, ENCRYPTION_KEY_LENGTH)
        try:
            plaintext = jwe.decrypt(token, content_key)
        except JOSEError as e:
            raise TokenInvalid(f"Unable to decrypt token: {e}") from e
        except Exception as e:
            raise TokenInvalid(f"Malformed encrypted token: {e}") from e
        if plaintext is None:
            raise TokenInvalid("Unable to decrypt token")
        signed = plaintext.decode("utf-8") if isinstance(plaintext, bytes) else plaintext

    try:
        claims = jwt.decode(
            signed,
            key,
            algorithms=[DEFAULT_SIGNATURE_ALGORITHM],
            options={
                "verify_signature": True,
                "verify_exp": True,
                "verify_iat": True,
                "require": ["exp", "iat"],
            },
        )
    except ExpiredSignatureError as e:
        raise TokenInvalid("Token has expired") from e
    except InvalidTokenError as e:
        raise TokenInvalid(f"Invalid token: {e}") from e

    if claims["iat"] + max_age < _now():
        raise TokenInvalid("Token is older than the maximum session age")

    return claims


# =============================================================================
# Request Helpers
# =============================================================================

def extract_token_from_header(authorization: Optional[str]) -> Optional[str]:
    """
    Extract a percent-encoded Bearer token from an Authorization header.

    Args:
        authorization: Authorization header value

    Returns:
        Decoded token string, or None if the header is not a Bearer header
    """
    if not authorization:
        return None

    parts = authorization.split(" ")
    if len(parts) < 2 or parts[0] != "Bearer" or not parts[1]:
        return None

    return unquote(parts[1])


def _header(req: Any, name: str) -> Optional[str]:
    headers = getattr(req, "headers", None) or {}
    return headers.get(name) or headers.get(name.title())


def get_token(
    req: Any = None,
    secret: Optional[Union[str, bytes]] = None,
    secure_cookie: Optional[bool] = None,
    cookie_name: Optional[str] = None,
    raw: bool = False,
    encryption: Optional[bool] = None,
    max_age: int = DEFAULT_MAX_AGE,
    signing_key: Optional[bytes] = None,
    encryption_key: Optional[bytes] = None,
) -> Optional[Union[Dict[str, Any], str]]:
    """
    Read the session token from a request.

    The session cookie is checked first, then an
    ``Authorization: Bearer <percent-encoded token>`` header.

    Args:
        req: Any object exposing ``cookies`` and ``headers`` mappings
             (``InternalRequest``, a Starlette ``Request``, ...)
        secret: Secret (defaults to NEXTAUTH_SECRET)
        secure_cookie: Use the ``__Secure-`` cookie name (defaults to
                       whether NEXTAUTH_URL is https)
        cookie_name: Explicit cookie name, overrides ``secure_cookie``
        raw: Return the token string without decoding it
        encryption: Token is encrypted (defaults to JWT_ENCRYPTION)
        max_age: Maximum accepted token age in seconds

    Returns:
        Decoded claims, the raw token string when ``raw`` is set, or None

    Raises:
        ConfigurationError: If no request is supplied
    """
    if req is None:
        raise ConfigurationError("Must pass `req` to JWT getToken()")

    settings = get_settings()

    if cookie_name is None:
        if secure_cookie is None:
            secure_cookie = settings.use_secure_cookies
        cookie_name = SECURE_SESSION_COOKIE_NAME if secure_cookie else SESSION_COOKIE_NAME

    cookies = getattr(req, "cookies", None) or {}
    token = cookies.get(cookie_name)

    if not token:
        token = extract_token_from_header(_header(req, "authorization"))

    if raw:
        return token

    if not token or not isinstance(token, str):
        return None

    if encryption is None:
        encryption = settings.JWT_ENCRYPTION

    try:
        return decode(
            token,
            secret=secret or settings.NEXTAUTH_SECRET,
            max_age=max_age,
            encryption=encryption,
            signing_key=signing_key,
            encryption_key=encryption_key,
        )
    except TokenInvalid as e:
        logger.debug(f"Ignoring invalid session token: {e}")
        return None


__all__ = [
    "encode",
    "decode",
    "get_token",
    "derive_key",
    "extract_token_from_header",
    "DEFAULT_MAX_AGE",
    "SESSION_COOKIE_NAME",
    "SECURE_SESSION_COOKIE_NAME",
]
