"""
FastAPI / Starlette Request Adapter

Translates a Starlette request into the canonical ``InternalRequest`` and
the populated ``InternalResponse`` back into a Starlette response.

Usage:
    from nextauth.integrations.fastapi import NextAuth

    app.include_router(NextAuth(auth_options))
"""

import json
import logging
from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Request, Response
from fastapi.responses import RedirectResponse

from ..config import get_settings
from ..lib.cookie import decode_value
from ..models import AuthOptions
from ..server.handler import handle
from ..server.types import InternalRequest, InternalResponse

logger = logging.getLogger(__name__)


FORM_CONTENT_TYPES = ("application/x-www-form-urlencoded", "multipart/form-data")


def _nextauth_segments(request: Request, base_path: str) -> List[str]:
    """Path segments after the auth base path, e.g. ``["callback", "github"]``."""
    if "nextauth" in request.path_params:
        fragment = request.path_params["nextauth"]
    else:
        prefix = base_path.rstrip("/") + "/"
        if not request.url.path.startswith(prefix):
            return []
        fragment = request.url.path[len(prefix):]
    return [s for s in fragment.split("/") if s]


async def _read_body(request: Request) -> Dict[str, Any]:
    if request.method.upper() != "POST":
        return {}

    content_type = request.headers.get("content-type", "")
    if content_type.startswith(FORM_CONTENT_TYPES):
        form = await request.form()
        return {key: value for key, value in form.items() if isinstance(value, str)}

    if content_type.startswith("application/json"):
        try:
            data = await request.json()
        except ValueError:
            logger.debug("Ignoring malformed JSON body")
            return {}
        return data if isinstance(data, dict) else {}

    return {}


async def adapt_request(request: Request, base_path: Optional[str] = None) -> InternalRequest:
    """
    Build the canonical request from a Starlette request.

    Args:
        request: Incoming FastAPI/Starlette request
        base_path: Auth base path (defaults to NEXTAUTH_BASE_PATH); only used
            when the route has no ``nextauth`` path parameter

    Returns:
        InternalRequest with ``query["nextauth"]`` holding the path segments
        after the base path
    """
    query: Dict[str, Any] = dict(request.query_params)
    query["nextauth"] = _nextauth_segments(request, base_path or get_settings().NEXTAUTH_BASE_PATH)

    return InternalRequest(
        method=request.method.upper(),
        url=str(request.url),
        query=query,
        headers=dict(request.headers),
        cookies={name: decode_value(value) for name, value in request.cookies.items()},
        body=await _read_body(request),
        referrer=request.headers.get("referer", ""),
    )


def _encode_body(body: Any) -> bytes:
    if isinstance(body, bytes):
        return body
    if isinstance(body, str):
        return body.encode("utf-8")
    return json.dumps(body, default=str).encode("utf-8")


def to_response(res: InternalResponse) -> Response:
    """
    Materialise the canonical response exactly once.

    A redirect wins over any body. Every queued ``Set-Cookie`` value is
    emitted as its own header line.
    """
    if res.redirect_url:
        status_code = res.status_code if 300 <= res.status_code < 400 else 302
        response: Response = RedirectResponse(res.redirect_url, status_code=status_code)
    elif res.body is None:
        response = Response(status_code=res.status_code)
    else:
        response = Response(content=_encode_body(res.body), status_code=res.status_code)

    for name, value in res.get_headers().items():
        if name == "set-cookie":
            continue
        if res.redirect_url and name == "content-type":
            continue
        response.headers[name] = value if isinstance(value, str) else ", ".join(value)

    for cookie in res.cookies:
        response.headers.append("set-cookie", cookie)

    return response


def NextAuth(options: AuthOptions) -> APIRouter:
    """
    Create the router serving every auth action under the base path.

    Args:
        options: Site-wide auth configuration

    Returns:
        APIRouter to include in the host application
    """
    base_path = "/" + (options.base_path or get_settings().NEXTAUTH_BASE_PATH).strip("/")
    router = APIRouter(prefix=base_path, tags=["Authentication"])

    @router.api_route("/{nextauth:path}", methods=["GET", "POST"])
    async def nextauth_route(request: Request) -> Response:
        req = await adapt_request(request, base_path)
        res = await handle(req, options)
        return to_response(res)

    return router


__all__ = ["NextAuth", "adapt_request", "to_response"]
