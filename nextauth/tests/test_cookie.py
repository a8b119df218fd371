"""
Cookie Policy Tests
===================

Tests for nextauth/lib/cookie.py

Test Coverage:
--------------
1. Set-Cookie serialization and attribute order
2. max_age precedence over expires
3. Option validation (sameSite, name, domain)
4. Accumulation of several cookies on one response
5. Value encoding (percent-encoding, ``j:`` JSON values)
6. Default cookie set for secure and non-secure sites
"""

from datetime import datetime, timezone

import pytest

from nextauth.errors import ConfigurationError
from nextauth.lib.cookie import (
    CookieOptions,
    decode_value,
    default_cookies,
    encode_value,
    serialize,
    set_cookie,
)
from nextauth.server.types import InternalResponse


# ============================================================================
# serialize
# ============================================================================

class TestSerialize:
    """Test suite for building Set-Cookie values"""

    def test_defaults_to_root_path(self):
        assert serialize("name", "value") == "name=value; Path=/"

    def test_attribute_order(self):
        header = serialize(
            "session",
            "abc",
            {"maxAge": 60, "domain": "example.com", "path": "/app", "httpOnly": True, "secure": True, "sameSite": "lax"},
        )

        parts = header.split("; ")
        assert parts[0] == "session=abc"
        assert parts[1] == "Max-Age=60"
        assert parts[2] == "Domain=example.com"
        assert parts[3] == "Path=/app"
        assert parts[4].startswith("Expires=")
        assert parts[5:] == ["HttpOnly", "Secure", "SameSite=Lax"]

    def test_max_age_wins_over_expires(self):
        header = serialize(
            "session",
            "abc",
            CookieOptions(max_age=0, expires=datetime(2099, 1, 1, tzinfo=timezone.utc)),
        )

        assert "Max-Age=0" in header
        assert "2099" not in header

    def test_expires_only(self):
        header = serialize("session", "abc", CookieOptions(expires=datetime(2030, 1, 1, tzinfo=timezone.utc)))

        assert "Expires=Tue, 01 Jan 2030 00:00:00 GMT" in header
        assert "Max-Age" not in header

    def test_max_age_is_floored(self):
        assert "Max-Age=59;" in serialize("a", "b", {"maxAge": 59.9})

    def test_same_site_true_is_strict(self):
        assert serialize("a", "b", {"sameSite": True}).endswith("SameSite=Strict")

    def test_same_site_none(self):
        assert serialize("a", "b", {"sameSite": "none", "secure": True}).endswith("Secure; SameSite=None")

    def test_invalid_same_site(self):
        with pytest.raises(ConfigurationError, match="sameSite"):
            serialize("a", "b", {"sameSite": "sometimes"})

    def test_invalid_name(self):
        with pytest.raises(ConfigurationError):
            serialize("bad\nname", "b")

    def test_invalid_domain(self):
        with pytest.raises(ConfigurationError):
            serialize("a", "b", {"domain": "example.com\n"})

    def test_value_is_percent_encoded(self):
        assert serialize("a", "x|y z;") == "a=x%7Cy%20z%3B; Path=/"


# ============================================================================
# set_cookie
# ============================================================================

class TestSetCookie:
    """Test suite for queuing cookies on a response"""

    def test_cookies_accumulate(self):
        res = InternalResponse()

        set_cookie(res, "one", "1")
        set_cookie(res, "two", "2")
        set_cookie(res, "three", "3")

        assert [c.split(";")[0] for c in res.cookies] == ["one=1", "two=2", "three=3"]

    def test_existing_single_header_is_kept(self):
        res = InternalResponse()
        res.set_header("Set-Cookie", "first=1; Path=/")

        set_cookie(res, "second", "2")

        assert res.get_header("set-cookie") == ["first=1; Path=/", "second=2; Path=/"]

    def test_invalid_option_leaves_response_untouched(self):
        res = InternalResponse()
        set_cookie(res, "one", "1")

        with pytest.raises(ConfigurationError):
            set_cookie(res, "two", "2", {"sameSite": "bogus"})

        assert res.cookies == ["one=1; Path=/"]

    def test_structured_value(self):
        res = InternalResponse()

        set_cookie(res, "prefs", {"theme": "dark"})

        assert res.cookies[0].startswith("prefs=j%3A%7B%22theme%22%3A%22dark%22%7D;")


# ============================================================================
# Value encoding
# ============================================================================

class TestValueEncoding:
    """Test suite for cookie value conversion"""

    def test_encode_value(self):
        assert encode_value("plain") == "plain"
        assert encode_value(True) == "true"
        assert encode_value(3) == "3"
        assert encode_value({"a": [1, 2]}) == 'j:{"a":[1,2]}'

    def test_encode_unserializable_value(self):
        with pytest.raises(ConfigurationError):
            encode_value({"when": object()})

    def test_decode_value(self):
        assert decode_value("abc%7Cdef") == "abc|def"
        assert decode_value("j%3A%7B%22a%22%3A1%7D") == {"a": 1}
        assert decode_value("j:not-json") == "j:not-json"


# ============================================================================
# default_cookies
# ============================================================================

class TestDefaultCookies:
    """Test suite for the cookie set used by the flows"""

    def test_plain_names(self):
        cookies = default_cookies(False)

        assert cookies["session_token"].name == "next-auth.session-token"
        assert cookies["callback_url"].name == "next-auth.callback-url"
        assert cookies["csrf_token"].name == "next-auth.csrf-token"
        assert cookies["pkce_code_verifier"].name == "next-auth.pkce.code_verifier"
        assert all(not c.options.secure for c in cookies.values())

    def test_secure_prefixes(self):
        cookies = default_cookies(True)

        assert cookies["session_token"].name == "__Secure-next-auth.session-token"
        assert cookies["callback_url"].name == "__Secure-next-auth.callback-url"
        assert cookies["csrf_token"].name == "__Host-next-auth.csrf-token"
        assert cookies["pkce_code_verifier"].name == "__Secure-next-auth.pkce.code_verifier"
        assert all(c.options.secure for c in cookies.values())

    def test_http_only_except_callback_url(self):
        cookies = default_cookies(False)

        assert cookies["session_token"].options.http_only
        assert cookies["csrf_token"].options.http_only
        assert cookies["pkce_code_verifier"].options.http_only
        assert not cookies["callback_url"].options.http_only

    def test_fresh_objects_each_call(self):
        assert default_cookies(False) is not default_cookies(False)
