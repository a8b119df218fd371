"""
Cookie Policy Module
====================

Builds ``Set-Cookie`` header values and the default cookie set used by
the authentication flows.

This module has no dependency on the rest of the package apart from the
error types. Any response object exposing ``get_header(name)`` and
``set_header(name, value)`` can be written to.
"""

import json
import math
import re
import time
from datetime import datetime, timezone
from email.utils import formatdate
from typing import Any, Dict, Mapping, Optional, Union
from urllib.parse import quote, unquote

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from ..errors import ConfigurationError


# RFC 7230 field-content
FIELD_CONTENT_RE = re.compile(r"^[\u0009\u0020-\u007e\u0080-\u00ff]+\Z")

# encodeURIComponent leaves these unescaped in addition to [A-Za-z0-9_.-~]
URI_COMPONENT_SAFE = "!*'()"

JSON_PREFIX = "j:"

SAME_SITE_VALUES = {
    "lax": "Lax",
    "strict": "Strict",
    "none": "None",
}


# =============================================================================
# Models
# =============================================================================

class CookieOptions(BaseModel):
    """
    Attributes of a cookie.

    Accepts snake_case names or the camelCase names used on the wire
    (``maxAge``, ``httpOnly``, ``sameSite``).
    """

    model_config = ConfigDict(populate_by_name=True, frozen=True, extra="ignore")

    max_age: Optional[float] = Field(None, alias="maxAge", description="Lifetime in seconds")
    expires: Optional[datetime] = Field(None, description="Absolute expiry (ignored when max_age is set)")
    domain: Optional[str] = None
    path: Optional[str] = "/"
    http_only: bool = Field(False, alias="httpOnly")
    secure: bool = False
    same_site: Optional[Union[bool, str]] = Field(None, alias="sameSite")


class CookieDescriptor(BaseModel):
    """A named cookie together with its options."""

    model_config = ConfigDict(frozen=True)

    name: str
    options: CookieOptions = Field(default_factory=CookieOptions)


# =============================================================================
# Value Encoding
# =============================================================================

def encode_value(value: Any) -> str:
    """
    Convert a cookie value to its string form.

    Strings pass through; numbers and booleans are stringified; everything
    else is serialized as ``j:<json>`` so ``decode_value`` can restore it.
    """
    if isinstance(value, str):
        return value
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, (int, float)):
        return str(value)

    try:
        return JSON_PREFIX + json.dumps(value, separators=(",", ":"))
    except (TypeError, ValueError) as e:
        raise ConfigurationError(f"argument val is not JSON serializable: {e}") from e


def decode_value(raw: str) -> Any:
    """
    Inverse of the value encoding: percent-decode, then parse ``j:`` JSON.

    Args:
        raw: Cookie value as received from the user agent

    Returns:
        The decoded string, or the structured value for ``j:`` cookies
    """
    value = unquote(raw) if "%" in raw else raw

    if value.startswith(JSON_PREFIX):
        try:
            return json.loads(value[len(JSON_PREFIX):])
        except ValueError:
            return value

    return value


# =============================================================================
# Serialization
# =============================================================================

def _coerce_options(options: Optional[Union[CookieOptions, Mapping[str, Any]]]) -> CookieOptions:
    if options is None:
        return CookieOptions()
    if isinstance(options, CookieOptions):
        return options
    try:
        return CookieOptions.model_validate(dict(options))
    except ValidationError as e:
        raise ConfigurationError(f"invalid cookie options: {e}") from e


def _same_site_attribute(same_site: Optional[Union[bool, str]]) -> Optional[str]:
    if same_site is None or same_site is False:
        return None
    if same_site is True:
        return "Strict"
    rendered = SAME_SITE_VALUES.get(str(same_site).lower())
    if rendered is None:
        raise ConfigurationError("option sameSite is invalid")
    return rendered


def _http_date(value: datetime) -> str:
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return formatdate(value.timestamp(), usegmt=True)


def serialize(
    name: str,
    value: str,
    options: Optional[Union[CookieOptions, Mapping[str, Any]]] = None,
) -> str:
    """
    Build a single ``Set-Cookie`` header value.

    When both ``max_age`` and ``expires`` are given, ``max_age`` wins and
    ``Expires`` is derived from it.

    Args:
        name: Cookie name
        value: String value (percent-encoded here)
        options: Cookie options

    Returns:
        Header value, e.g. ``name=value; Path=/; HttpOnly; SameSite=Lax``

    Raises:
        ConfigurationError: For an invalid name, domain, path or sameSite
    """
    opts = _coerce_options(options)
    same_site = _same_site_attribute(opts.same_site)

    if not name or not FIELD_CONTENT_RE.match(name):
        raise ConfigurationError("argument name is invalid")

    encoded = quote(value, safe=URI_COMPONENT_SAFE)
    if encoded and not FIELD_CONTENT_RE.match(encoded):
        raise ConfigurationError("argument val is invalid")

    parts = [f"{name}={encoded}"]

    expires = opts.expires
    if opts.max_age is not None:
        if math.isnan(opts.max_age):
            raise ConfigurationError("maxAge should be a Number")
        parts.append(f"Max-Age={math.floor(opts.max_age)}")
        expires = datetime.fromtimestamp(time.time() + opts.max_age, tz=timezone.utc)

    if opts.domain:
        if not FIELD_CONTENT_RE.match(opts.domain):
            raise ConfigurationError("option domain is invalid")
        parts.append(f"Domain={opts.domain}")

    path = opts.path or "/"
    if not FIELD_CONTENT_RE.match(path):
        raise ConfigurationError("option path is invalid")
    parts.append(f"Path={path}")

    if expires is not None:
        parts.append(f"Expires={_http_date(expires)}")

    if opts.http_only:
        parts.append("HttpOnly")

    if opts.secure:
        parts.append("Secure")

    if same_site:
        parts.append(f"SameSite={same_site}")

    return "; ".join(parts)


def set_cookie(
    res: Any,
    name: str,
    value: Any,
    options: Optional[Union[CookieOptions, Mapping[str, Any]]] = None,
) -> None:
    """
    Queue a cookie on a response without dropping cookies set earlier.

    The options are validated and the header built before the response is
    touched, so an invalid option leaves the response unchanged.

    Args:
        res: Response exposing ``get_header`` / ``set_header``
        name: Cookie name
        value: String or JSON-serializable value
        options: Cookie options (model or mapping)

    Raises:
        ConfigurationError: If any option is invalid
    """
    header = serialize(name, encode_value(value), options)

    existing = res.get_header("Set-Cookie")
    if existing is None:
        cookies = []
    elif isinstance(existing, (list, tuple)):
        cookies = list(existing)
    else:
        cookies = [existing]

    cookies.append(header)
    res.set_header("Set-Cookie", cookies)


# =============================================================================
# Default Cookie Set
# =============================================================================

def default_cookies(use_secure_cookies: bool) -> Dict[str, CookieDescriptor]:
    """
    Names and options of the cookies used by the authentication flows.

    Secure contexts get the ``__Secure-`` prefix, except the CSRF cookie
    which gets ``__Host-`` (no Domain, Path=/).

    Args:
        use_secure_cookies: Whether the site is served over HTTPS

    Returns:
        Mapping of ``session_token``, ``callback_url``, ``csrf_token`` and
        ``pkce_code_verifier`` to descriptors
    """
    cookie_prefix = "__Secure-" if use_secure_cookies else ""
    host_prefix = "__Host-" if use_secure_cookies else ""

    return {
        "session_token": CookieDescriptor(
            name=f"{cookie_prefix}next-auth.session-token",
            options=CookieOptions(http_only=True, same_site="lax", path="/", secure=use_secure_cookies),
        ),
        "callback_url": CookieDescriptor(
            name=f"{cookie_prefix}next-auth.callback-url",
            options=CookieOptions(same_site="lax", path="/", secure=use_secure_cookies),
        ),
        "csrf_token": CookieDescriptor(
            name=f"{host_prefix}next-auth.csrf-token",
            options=CookieOptions(http_only=True, same_site="lax", path="/", secure=use_secure_cookies),
        ),
        "pkce_code_verifier": CookieDescriptor(
            name=f"{cookie_prefix}next-auth.pkce.code_verifier",
            options=CookieOptions(http_only=True, same_site="lax", path="/", secure=use_secure_cookies),
        ),
    }


__all__ = [
    "CookieOptions",
    "CookieDescriptor",
    "encode_value",
    "decode_value",
    "serialize",
    "set_cookie",
    "default_cookies",
]
