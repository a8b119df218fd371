"""
Canonical request/response shapes shared by every host integration.

A host integration converts its native request into ``InternalRequest``,
runs the dispatcher, and materialises the resulting ``InternalResponse``
exactly once.
"""

from typing import Any, Dict, List, Optional, Union
from urllib.parse import urlencode

from pydantic import BaseModel, Field

from ..lib import jwt
from ..lib.cookie import CookieDescriptor
from ..models import AuthOptions


class InternalRequest(BaseModel):
    """Framework-neutral inbound request."""

    method: str = "GET"
    url: str = ""
    query: Dict[str, Any] = Field(default_factory=dict)
    headers: Dict[str, str] = Field(default_factory=dict)
    cookies: Dict[str, Any] = Field(default_factory=dict)
    body: Dict[str, Any] = Field(default_factory=dict)
    referrer: str = ""

    # Resolved by the dispatcher
    action: Optional[str] = None
    provider_id: Optional[str] = None


class InternalResponse:
    """
    Mutable response accumulator written to by the flow handlers.

    Header names are stored lower-cased. ``Set-Cookie`` is kept as a list
    so every queued cookie becomes its own header line.
    """

    def __init__(self):
        self.status_code: int = 200
        self.headers: Dict[str, Union[str, List[str]]] = {}
        self.body: Any = None
        self.redirect_url: Optional[str] = None
        self.ended: bool = False

    def status(self, code: int) -> "InternalResponse":
        self.status_code = code
        return self

    def json(self, data: Any) -> "InternalResponse":
        self.set_header("Content-Type", "application/json")
        self.body = data
        return self

    def send(self, data: Any) -> "InternalResponse":
        self.body = data
        return self

    def end(self, data: Any = None) -> "InternalResponse":
        if data is not None:
            self.body = data
        self.ended = True
        return self

    def redirect(self, url: str) -> "InternalResponse":
        self.redirect_url = url
        return self

    def set_header(self, name: str, value: Union[str, List[str]]) -> "InternalResponse":
        self.headers[name.lower()] = value
        return self

    def get_header(self, name: str) -> Optional[Union[str, List[str]]]:
        return self.headers.get(name.lower())

    def get_headers(self) -> Dict[str, Union[str, List[str]]]:
        return dict(self.headers)

    @property
    def cookies(self) -> List[str]:
        """Queued ``Set-Cookie`` values, in the order they were set."""
        value = self.headers.get("set-cookie")
        if value is None:
            return []
        if isinstance(value, list):
            return list(value)
        return [value]


class InternalOptions:
    """
    Per-request view of the configuration, resolved by the dispatcher.

    Read-only configuration (``auth``, ``providers``, ``cookies``) is shared
    by reference; the flow fields are filled in for this request only.
    """

    def __init__(
        self,
        auth: AuthOptions,
        secret: str,
        base_url: str,
        base_path: str,
        cookies: Dict[str, CookieDescriptor],
        providers: Dict[str, Any],
        session_max_age: int,
        jwt_max_age: int,
        jwt_encryption: bool,
        http_timeout: float,
    ):
        self.auth = auth
        self.secret = secret
        self.base_url = base_url
        self.base_path = base_path
        self.cookies = cookies
        self.providers = providers
        self.session_max_age = session_max_age
        self.jwt_max_age = jwt_max_age
        self.jwt_encryption = jwt_encryption
        self.http_timeout = http_timeout

        self.provider: Optional[Any] = None
        self.csrf_token: Optional[str] = None
        self.csrf_token_verified: bool = False
        self.callback_url: Optional[str] = None

    @property
    def adapter(self) -> Optional[Any]:
        return self.auth.adapter

    @property
    def callbacks(self):
        return self.auth.callbacks

    @property
    def pages(self):
        return self.auth.pages

    def action_url(self, action: str, provider_id: Optional[str] = None) -> str:
        url = f"{self.base_url}{self.base_path}/{action}"
        if provider_id:
            url = f"{url}/{provider_id}"
        return url

    def error_url(self, code: str, provider_id: Optional[str] = None) -> str:
        params = {"error": code}
        if provider_id:
            params["provider"] = provider_id
        page = self.pages.error or self.action_url("error")
        separator = "&" if "?" in page else "?"
        return f"{page}{separator}{urlencode(params)}"

    def encode_token(self, token: Dict[str, Any], max_age: Optional[int] = None, encryption: Optional[bool] = None) -> str:
        return jwt.encode(
            token,
            secret=self.auth.jwt.secret or self.secret,
            max_age=self.jwt_max_age if max_age is None else max_age,
            encryption=self.jwt_encryption if encryption is None else encryption,
        )

    def decode_token(self, token: Optional[str], max_age: Optional[int] = None, encryption: Optional[bool] = None) -> Optional[Dict[str, Any]]:
        return jwt.decode(
            token,
            secret=self.auth.jwt.secret or self.secret,
            max_age=self.jwt_max_age if max_age is None else max_age,
            encryption=self.jwt_encryption if encryption is None else encryption,
        )
