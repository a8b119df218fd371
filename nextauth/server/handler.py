"""
Flow Dispatcher

``handle()`` is the single entry point host integrations call. It resolves
the action and provider from the ``nextauth`` path segments, rejects
anything it cannot route before touching cookies, assembles the
per-request options (secret, base URL, cookie set, CSRF token, callback
URL) and runs the matching flow handler.

Recoverable failures become a redirect to the error page carrying the
failure code; ``ConfigurationError`` propagates to the host.
"""

import logging
from typing import Awaitable, Callable, Dict, List, Optional, Tuple, Union
from urllib.parse import urlparse

from ..config import get_settings
from ..errors import AdapterError, ConfigurationError, NextAuthError, ProviderError
from ..lib.cookie import default_cookies, set_cookie
from ..models import AuthOptions
from . import routes
from .callback_url import resolve_callback_url
from .csrf import create_csrf_token
from .types import InternalOptions, InternalRequest, InternalResponse

logger = logging.getLogger(__name__)


Route = Callable[[InternalRequest, InternalResponse, InternalOptions], Awaitable[None]]

ROUTES: Dict[Tuple[str, str], Route] = {
    ("GET", "providers"): routes.providers,
    ("GET", "csrf"): routes.csrf,
    ("GET", "session"): routes.session,
    ("GET", "signin"): routes.signin_page,
    ("POST", "signin"): routes.signin,
    ("GET", "callback"): routes.callback,
    ("POST", "callback"): routes.callback,
    ("GET", "signout"): routes.signout_page,
    ("POST", "signout"): routes.signout,
    ("GET", "error"): routes.error,
    ("GET", "verify-request"): routes.verify_request,
}

# Actions that take a provider id as the second path segment
PROVIDER_ACTIONS = {"signin", "callback"}


# =============================================================================
# Request Resolution
# =============================================================================

def parse_action(nextauth: Union[str, List[str], None]) -> Tuple[Optional[str], Optional[str]]:
    """
    Split the catch-all path segments into (action, provider_id).

    Args:
        nextauth: Segments after the base path, as a list or a ``/``-joined string
    """
    if isinstance(nextauth, str):
        segments = [s for s in nextauth.split("/") if s]
    else:
        segments = [s for s in (nextauth or []) if s]

    action = segments[0] if segments else None
    provider_id = segments[1] if len(segments) > 1 else None
    return action, provider_id


def _request_origin(req: InternalRequest) -> str:
    headers = {k.lower(): v for k, v in req.headers.items()}
    parsed = urlparse(req.url)

    proto = headers.get("x-forwarded-proto") or parsed.scheme or "http"
    host = headers.get("x-forwarded-host") or headers.get("host") or parsed.netloc
    if not host:
        raise ConfigurationError("Unable to determine the site URL; set NEXTAUTH_URL")
    return f"{proto.split(',')[0].strip()}://{host.split(',')[0].strip()}"


def _normalize_base_path(path: str) -> str:
    return "/" + path.strip("/")


def init_options(req: InternalRequest, auth: AuthOptions) -> InternalOptions:
    """
    Build the per-request options.

    Raises:
        ConfigurationError: If no secret is configured or the site URL is unknown
    """
    settings = get_settings()

    secret = auth.secret or settings.NEXTAUTH_SECRET
    if not secret:
        raise ConfigurationError("NO_SECRET: Please define a `secret` in production.")

    base_url = (auth.url or settings.NEXTAUTH_URL or _request_origin(req)).rstrip("/")
    base_path = _normalize_base_path(auth.base_path or settings.NEXTAUTH_BASE_PATH)

    use_secure_cookies = auth.use_secure_cookies
    if use_secure_cookies is None:
        use_secure_cookies = base_url.startswith("https://")

    cookies = default_cookies(use_secure_cookies)
    cookies.update(auth.cookies)

    session_max_age = auth.session.max_age
    if "max_age" not in auth.session.model_fields_set:
        session_max_age = settings.SESSION_MAX_AGE_SECONDS

    jwt_encryption = auth.jwt.encryption
    if jwt_encryption is None:
        jwt_encryption = settings.JWT_ENCRYPTION

    return InternalOptions(
        auth=auth,
        secret=secret,
        base_url=base_url,
        base_path=base_path,
        cookies=cookies,
        providers={provider.id: provider for provider in auth.providers},
        session_max_age=session_max_age,
        jwt_max_age=auth.jwt.max_age or session_max_age,
        jwt_encryption=jwt_encryption,
        http_timeout=settings.HTTP_TIMEOUT_SECONDS,
    )


def _bad_request(res: InternalResponse, message: str) -> InternalResponse:
    return res.status(400).json({"error": message})


# =============================================================================
# Dispatch
# =============================================================================

async def handle(
    req: InternalRequest,
    options: AuthOptions,
    res: Optional[InternalResponse] = None,
) -> InternalResponse:
    """
    Run one authentication request.

    Args:
        req: Canonical request; ``query["nextauth"]`` holds the path segments
        options: Site-wide auth configuration
        res: Response accumulator (a new one is created if omitted)

    Returns:
        The populated response

    Raises:
        ConfigurationError: For contract violations (no secret, bad cookie options)
    """
    res = res if res is not None else InternalResponse()

    method = req.method.upper()
    action, provider_id = parse_action(req.query.get("nextauth"))
    req.action = action
    req.provider_id = provider_id

    route = ROUTES.get((method, action))
    if route is None:
        logger.debug(f"Unsupported action: {method} {action}")
        return _bad_request(res, f"Cannot handle action: {action}")

    providers = {provider.id: provider for provider in options.providers}
    if provider_id is not None:
        if action not in PROVIDER_ACTIONS or provider_id not in providers:
            return _bad_request(res, f"Unknown provider: {provider_id}")
    elif method == "POST" and action in PROVIDER_ACTIONS:
        return _bad_request(res, f"Action {action} requires a provider")
    elif action == "callback":
        return _bad_request(res, "Action callback requires a provider")

    internal = init_options(req, options)
    internal.provider = providers.get(provider_id) if provider_id else None

    csrf_cookie = internal.cookies["csrf_token"]
    csrf_token = create_csrf_token(
        internal.secret,
        req.cookies.get(csrf_cookie.name),
        method == "POST",
        req.body.get("csrfToken"),
    )
    internal.csrf_token = csrf_token.token
    internal.csrf_token_verified = csrf_token.verified
    if csrf_token.cookie:
        set_cookie(res, csrf_cookie.name, csrf_token.cookie, csrf_cookie.options)

    internal.callback_url = await resolve_callback_url(req, res, internal)

    try:
        await route(req, res, internal)
    except ConfigurationError:
        raise
    except NextAuthError as e:
        if isinstance(e, AdapterError):
            logger.error(f"ADAPTER_ERROR: {e}")
        elif isinstance(e, ProviderError):
            event = "SIGNIN_EMAIL_ERROR" if e.code == "EmailSignin" else "OAUTH_CALLBACK_ERROR"
            logger.error(f"{event}: {e}")
        else:
            logger.warning(f"Authentication failed ({e.code}): {e}")
        res.redirect(internal.error_url(e.code, provider_id))

    return res
