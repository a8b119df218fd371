"""
FastAPI Integration Tests
=========================

Tests for nextauth/integrations/fastapi.py

Test Coverage:
--------------
1. Request translation (path segments, query, cookies, form/JSON body)
2. Response materialisation (redirect status, headers, body encoding)
3. Multiple Set-Cookie header lines, also on redirects
4. End-to-end credentials sign-in through the router
"""

from datetime import datetime, timezone

import pytest
from fastapi import FastAPI, Request
from fastapi.testclient import TestClient
from pydantic import ValidationError

from nextauth.integrations.fastapi import NextAuth, adapt_request, to_response
from nextauth.lib.jwt import decode
from nextauth.models import AuthOptions, CredentialsProvider
from nextauth.server.types import InternalResponse


SECRET = "test-secret-that-is-long-enough-for-hkdf-0123456789"


def authorize(credentials, req):
    if credentials.get("password") == "secret":
        return {"id": "1", "name": "Alice", "email": "alice@example.com"}
    return None


@pytest.fixture
def client():
    app = FastAPI()
    app.include_router(NextAuth(AuthOptions(providers=[CredentialsProvider(authorize=authorize)])))
    return TestClient(app)


@pytest.fixture
def echo_client():
    """App that returns the adapted request as JSON"""
    app = FastAPI()

    @app.api_route("/api/auth/{rest:path}", methods=["GET", "POST"])
    async def echo(request: Request):
        adapted = await adapt_request(request)
        return adapted.model_dump()

    return TestClient(app)


# ============================================================================
# adapt_request
# ============================================================================

class TestAdaptRequest:
    """Test suite for Starlette request translation"""

    def test_get_request(self, echo_client):
        response = echo_client.get(
            "/api/auth/callback/github?code=abc&state=xyz",
            headers={
                "Referer": "http://localhost:3000/login",
                "Cookie": "next-auth.csrf-token=tok%7Chash; prefs=j%3A%7B%22a%22%3A1%7D",
            },
        )

        data = response.json()
        assert data["method"] == "GET"
        assert data["query"] == {"code": "abc", "state": "xyz", "nextauth": ["callback", "github"]}
        assert data["cookies"]["next-auth.csrf-token"] == "tok|hash"
        assert data["cookies"]["prefs"] == {"a": 1}
        assert data["referrer"] == "http://localhost:3000/login"
        assert data["body"] == {}
        assert data["url"].endswith("/api/auth/callback/github?code=abc&state=xyz")

    def test_form_body(self, echo_client):
        response = echo_client.post("/api/auth/signin/email", data={"email": "a@example.com", "csrfToken": "t"})

        data = response.json()
        assert data["body"] == {"email": "a@example.com", "csrfToken": "t"}
        assert data["query"]["nextauth"] == ["signin", "email"]

    def test_json_body(self, echo_client):
        response = echo_client.post("/api/auth/callback/credentials", json={"username": "alice"})

        assert response.json()["body"] == {"username": "alice"}

    def test_missing_referer(self, echo_client):
        assert echo_client.get("/api/auth/session").json()["referrer"] == ""


# ============================================================================
# to_response
# ============================================================================

class TestToResponse:
    """Test suite for materialising the canonical response"""

    def test_redirect_defaults_to_302(self):
        res = InternalResponse().redirect("http://localhost:3000/next")

        response = to_response(res)

        assert response.status_code == 302
        assert response.headers["location"] == "http://localhost:3000/next"

    def test_redirect_keeps_3xx_status(self):
        res = InternalResponse().status(307).redirect("/next")

        assert to_response(res).status_code == 307

    def test_redirect_wins_over_body(self):
        res = InternalResponse().json({"ignored": True}).redirect("/next")

        response = to_response(res)

        assert response.status_code == 302
        assert response.body == b""

    def test_each_cookie_is_its_own_header_line(self):
        res = InternalResponse()
        res.set_header("Set-Cookie", ["a=1; Path=/", "b=2; Path=/"])
        res.redirect("/next")

        response = to_response(res)

        assert response.headers.getlist("set-cookie") == ["a=1; Path=/", "b=2; Path=/"]

    def test_json_body_with_fallback(self):
        res = InternalResponse().json({"when": datetime(2030, 1, 1, tzinfo=timezone.utc)})

        response = to_response(res)

        assert response.headers["content-type"] == "application/json"
        assert response.body == b'{"when": "2030-01-01 00:00:00+00:00"}'

    def test_string_and_bytes_verbatim(self):
        assert to_response(InternalResponse().send("plain")).body == b"plain"
        assert to_response(InternalResponse().send(b"\x00raw")).body == b"\x00raw"

    def test_empty_response(self):
        res = InternalResponse().status(204)
        res.set_header("X-Custom", "yes")

        response = to_response(res)

        assert response.status_code == 204
        assert response.headers["x-custom"] == "yes"
        assert response.body == b""


# ============================================================================
# Router
# ============================================================================

class TestRouter:
    """Test suite for the mounted auth routes"""

    def test_csrf_sets_multiple_cookies(self, client):
        response = client.get("/api/auth/csrf")

        assert response.status_code == 200
        assert "csrfToken" in response.json()

        cookies = response.headers.get_list("set-cookie")
        names = [c.split("=", 1)[0] for c in cookies]
        assert names == ["next-auth.csrf-token", "next-auth.callback-url"]

    def test_unknown_action(self, client):
        response = client.get("/api/auth/nope")

        assert response.status_code == 400
        assert "set-cookie" not in response.headers

    def test_credentials_sign_in(self, client):
        csrf_token = client.get("/api/auth/csrf").json()["csrfToken"]

        response = client.post(
            "/api/auth/callback/credentials",
            data={"csrfToken": csrf_token, "password": "secret"},
            follow_redirects=False,
        )

        assert response.status_code == 302
        assert response.headers["location"] == "http://localhost:3000"

        session_token = response.cookies.get("next-auth.session-token")
        assert decode(session_token, secret=SECRET)["email"] == "alice@example.com"

        session = client.get("/api/auth/session").json()
        assert session["user"]["name"] == "Alice"

    def test_sign_in_without_csrf_cookie(self):
        app = FastAPI()
        app.include_router(NextAuth(AuthOptions(providers=[CredentialsProvider(authorize=authorize)])))
        fresh = TestClient(app)

        response = fresh.post(
            "/api/auth/callback/credentials",
            data={"csrfToken": "guess", "password": "secret"},
            follow_redirects=False,
        )

        assert response.status_code == 302
        assert "error=MissingCSRF" in response.headers["location"]
        assert "next-auth.session-token" not in response.cookies

    def test_host_prefix_containing_auth_segment(self):
        app = FastAPI()
        app.include_router(
            NextAuth(AuthOptions(providers=[CredentialsProvider(authorize=authorize)])),
            prefix="/auth",
        )
        prefixed = TestClient(app)

        response = prefixed.get("/auth/api/auth/csrf")

        assert response.status_code == 200
        assert "csrfToken" in response.json()

    def test_base_path_must_end_in_auth(self):
        with pytest.raises(ValidationError):
            AuthOptions(base_path="/api/login")

    def test_custom_base_path(self):
        app = FastAPI()
        app.include_router(NextAuth(AuthOptions(base_path="/v1/auth/", providers=[CredentialsProvider(authorize=authorize)])))
        custom = TestClient(app)

        response = custom.get("/v1/auth/providers")

        assert response.status_code == 200
        assert response.json()["credentials"]["signinUrl"] == "http://localhost:3000/v1/auth/signin/credentials"
