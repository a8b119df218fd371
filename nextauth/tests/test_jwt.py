"""
Session Token Tests
===================

Tests for nextauth/lib/jwt.py

Test Coverage:
--------------
1. Signed and encrypted round trips
2. Rejection of tampered, foreign and expired tokens
3. Maximum session age counted from ``iat``
4. get_token: cookie, Bearer header, raw mode, secure cookie names
"""

import time
from urllib.parse import quote
from unittest.mock import patch

import pytest

from nextauth.errors import ConfigurationError, TokenInvalid
from nextauth.lib.jwt import (
    SECURE_SESSION_COOKIE_NAME,
    SESSION_COOKIE_NAME,
    decode,
    derive_key,
    encode,
    extract_token_from_header,
    get_token,
)
from nextauth.server.types import InternalRequest


SECRET = "test-secret-that-is-long-enough-for-hkdf-0123456789"

CLAIMS = {
    "sub": "user-123",
    "name": "Ada Lovelace",
    "email": "ada@example.com",
}


# ============================================================================
# encode / decode
# ============================================================================

class TestEncodeDecode:
    """Test suite for token creation and verification"""

    def test_signed_round_trip(self):
        token = encode(CLAIMS, secret=SECRET)

        assert token.count(".") == 2

        claims = decode(token, secret=SECRET)
        assert claims["sub"] == "user-123"
        assert claims["email"] == "ada@example.com"
        assert claims["exp"] - claims["iat"] == 30 * 24 * 60 * 60

    def test_encrypted_round_trip(self):
        token = encode(CLAIMS, secret=SECRET, encryption=True)

        # JWE compact serialization has five segments
        assert token.count(".") == 4
        assert "ada@example.com" not in token

        claims = decode(token, secret=SECRET, encryption=True)
        assert claims["name"] == "Ada Lovelace"

    def test_iat_and_exp_are_replaced(self):
        token = encode({**CLAIMS, "iat": 1, "exp": 2}, secret=SECRET, max_age=60)
        claims = decode(token, secret=SECRET)

        assert claims["iat"] > 1
        assert claims["exp"] == claims["iat"] + 60

    def test_decode_without_token_returns_none(self):
        assert decode(None, secret=SECRET) is None
        assert decode("", secret=SECRET) is None

    def test_wrong_secret_rejected(self):
        token = encode(CLAIMS, secret=SECRET)

        with pytest.raises(TokenInvalid):
            decode(token, secret="another-secret")

    def test_tampered_token_rejected(self):
        header, payload, signature = encode(CLAIMS, secret=SECRET).split(".")
        tampered = ".".join([header, payload, signature[:-4] + "AAAA"])

        with pytest.raises(TokenInvalid):
            decode(tampered, secret=SECRET)

    def test_encrypted_token_with_wrong_secret_rejected(self):
        token = encode(CLAIMS, secret=SECRET, encryption=True)

        with pytest.raises(TokenInvalid):
            decode(token, secret="another-secret", encryption=True)

    def test_garbage_rejected(self):
        with pytest.raises(TokenInvalid):
            decode("not-a-token", secret=SECRET)

        with pytest.raises(TokenInvalid):
            decode("not-a-token", secret=SECRET, encryption=True)

    def test_expired_token_rejected(self):
        issued = int(time.time()) - 3600
        with patch("nextauth.lib.jwt._now", return_value=issued):
            token = encode(CLAIMS, secret=SECRET, max_age=60)

        with pytest.raises(TokenInvalid):
            decode(token, secret=SECRET, max_age=60)

    def test_token_older_than_max_age_rejected(self):
        issued = int(time.time()) - 120
        with patch("nextauth.lib.jwt._now", return_value=issued):
            token = encode(CLAIMS, secret=SECRET)

        # Still inside its own exp, but older than the caller accepts
        assert decode(token, secret=SECRET)["sub"] == "user-123"
        with pytest.raises(TokenInvalid):
            decode(token, secret=SECRET, max_age=60)

    def test_missing_secret_is_configuration_error(self):
        with pytest.raises(ConfigurationError):
            encode(CLAIMS, secret=None)

    def test_derived_keys_have_expected_lengths(self):
        assert len(derive_key(SECRET, b"NextAuth.js Generated Signing Key", 64)) == 64
        assert len(derive_key(SECRET, b"NextAuth.js Generated Encryption Key", 32)) == 32
        assert derive_key(SECRET, b"a", 32) != derive_key(SECRET, b"b", 32)


# ============================================================================
# get_token
# ============================================================================

class TestGetToken:
    """Test suite for reading the session token from a request"""

    def test_requires_request(self):
        with pytest.raises(ConfigurationError):
            get_token(secret=SECRET)

    def test_reads_session_cookie(self):
        token = encode(CLAIMS, secret=SECRET)
        req = InternalRequest(cookies={SESSION_COOKIE_NAME: token})

        claims = get_token(req, secret=SECRET)

        assert claims["sub"] == "user-123"

    def test_falls_back_to_bearer_header(self):
        token = encode(CLAIMS, secret=SECRET)
        req = InternalRequest(headers={"authorization": f"Bearer {quote(token)}"})

        assert get_token(req, secret=SECRET)["email"] == "ada@example.com"

    def test_cookie_wins_over_header(self):
        from_cookie = encode({"sub": "cookie-user"}, secret=SECRET)
        from_header = encode({"sub": "header-user"}, secret=SECRET)
        req = InternalRequest(
            cookies={SESSION_COOKIE_NAME: from_cookie},
            headers={"authorization": f"Bearer {from_header}"},
        )

        assert get_token(req, secret=SECRET)["sub"] == "cookie-user"

    def test_raw_returns_token_string(self):
        token = encode(CLAIMS, secret=SECRET)
        req = InternalRequest(cookies={SESSION_COOKIE_NAME: token})

        assert get_token(req, secret=SECRET, raw=True) == token

    def test_invalid_token_returns_none(self):
        req = InternalRequest(cookies={SESSION_COOKIE_NAME: "garbage"})

        assert get_token(req, secret=SECRET) is None

    def test_no_token_returns_none(self):
        assert get_token(InternalRequest(), secret=SECRET) is None

    def test_secure_cookie_name(self):
        token = encode(CLAIMS, secret=SECRET)
        req = InternalRequest(cookies={SECURE_SESSION_COOKIE_NAME: token})

        assert get_token(req, secret=SECRET) is None
        assert get_token(req, secret=SECRET, secure_cookie=True)["sub"] == "user-123"

    def test_secret_defaults_to_settings(self):
        token = encode(CLAIMS, secret=SECRET)
        req = InternalRequest(cookies={SESSION_COOKIE_NAME: token})

        assert get_token(req)["sub"] == "user-123"

    def test_encrypted_token(self):
        token = encode(CLAIMS, secret=SECRET, encryption=True)
        req = InternalRequest(cookies={SESSION_COOKIE_NAME: token})

        assert get_token(req, secret=SECRET) is None
        assert get_token(req, secret=SECRET, encryption=True)["sub"] == "user-123"


class TestExtractTokenFromHeader:
    """Test suite for Bearer header parsing"""

    def test_bearer(self):
        assert extract_token_from_header("Bearer abc%2Edef") == "abc.def"

    def test_not_bearer(self):
        assert extract_token_from_header("Basic dXNlcjpwYXNz") is None
        assert extract_token_from_header("Bearer") is None
        assert extract_token_from_header(None) is None
