"""
Flow Handlers

One coroutine per action. Each receives the canonical request, the response
accumulator and the per-request options (provider, CSRF token and callback
URL already resolved by the dispatcher), and writes its outcome to the
response.

Recoverable failures are raised as ``NextAuthError`` subclasses and turned
into error-page redirects by the dispatcher. The session cookie is always
written last, so a failed flow never leaves a session behind.
"""

import logging
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Optional
from urllib.parse import urlencode

from ..errors import AccessDenied, AdapterError, CSRFMismatch, NextAuthError, OAuthSignInError, TokenInvalid
from ..lib.cookie import set_cookie
from ..models import AdapterSession, CredentialsProvider, EmailProvider, OAuthProvider
from .callback_handler import handle_login
from .email import normalize_email, send_verification_request, use_verification_request
from .oauth import get_authorization_url, oauth_callback
from .types import InternalOptions, InternalRequest, InternalResponse
from .utils import call_adapter, maybe_await

logger = logging.getLogger(__name__)


ERROR_STATUS = {
    "Configuration": 500,
    "AccessDenied": 403,
    "Verification": 403,
}


# =============================================================================
# Helpers
# =============================================================================

def _require_csrf(options: InternalOptions) -> None:
    if not options.csrf_token_verified:
        raise CSRFMismatch("CSRF token missing or invalid")


def _with_params(url: str, **params: Optional[str]) -> str:
    query = urlencode({k: v for k, v in params.items() if v})
    if not query:
        return url
    separator = "&" if "?" in url else "?"
    return f"{url}{separator}{query}"


def _iso(dt: datetime) -> str:
    return dt.astimezone(timezone.utc).isoformat().replace("+00:00", "Z")


def _clear_session_cookie(res: InternalResponse, options: InternalOptions) -> None:
    cookie = options.cookies["session_token"]
    set_cookie(res, cookie.name, "", cookie.options.model_copy(update={"max_age": 0}))


def _provider_summary(provider: Any, options: InternalOptions) -> Dict[str, str]:
    return {
        "id": provider.id,
        "name": provider.name,
        "type": provider.type,
        "signinUrl": options.action_url("signin", provider.id),
        "callbackUrl": options.action_url("callback", provider.id),
    }


async def _run_sign_in_callback(res: InternalResponse, options: InternalOptions, **kwargs) -> bool:
    """
    Run the ``sign_in`` callback.

    Returns:
        True to continue, False if the callback already redirected

    Raises:
        AccessDenied: If the callback refused the sign-in
    """
    allowed = await maybe_await(options.callbacks.sign_in, **kwargs)
    if isinstance(allowed, str):
        res.redirect(allowed)
        return False
    if not allowed:
        raise AccessDenied("sign_in callback refused the sign-in")
    return True


async def establish_session(
    res: InternalResponse,
    options: InternalOptions,
    user: Dict[str, Any],
    account: Dict[str, Any],
    profile: Optional[Dict[str, Any]] = None,
    is_new_user: bool = False,
    session: Optional[AdapterSession] = None,
) -> None:
    """Write the session cookie for a signed-in user."""
    cookie = options.cookies["session_token"]

    if session is not None:
        set_cookie(res, cookie.name, session.session_token, cookie.options.model_copy(update={"expires": session.expires}))
        return

    default_token = {
        "name": user.get("name"),
        "email": user.get("email"),
        "picture": user.get("image"),
        "sub": str(user["id"]) if user.get("id") is not None else None,
    }
    default_token = {k: v for k, v in default_token.items() if v is not None}

    token = await maybe_await(
        options.callbacks.jwt,
        token=default_token,
        user=user,
        account=account,
        profile=profile,
        is_new_user=is_new_user,
    )

    expires = datetime.now(timezone.utc) + timedelta(seconds=options.session_max_age)
    encoded = options.encode_token(token)
    set_cookie(res, cookie.name, encoded, cookie.options.model_copy(update={"expires": expires}))


# =============================================================================
# Informational Endpoints
# =============================================================================

async def providers(req: InternalRequest, res: InternalResponse, options: InternalOptions) -> None:
    res.json({pid: _provider_summary(p, options) for pid, p in options.providers.items()})


async def csrf(req: InternalRequest, res: InternalResponse, options: InternalOptions) -> None:
    res.json({"csrfToken": options.csrf_token})


async def error(req: InternalRequest, res: InternalResponse, options: InternalOptions) -> None:
    code = req.query.get("error") or "Default"
    if options.pages.error:
        res.redirect(_with_params(options.pages.error, error=code))
        return
    res.status(ERROR_STATUS.get(code, 400)).json({"error": code})


async def verify_request(req: InternalRequest, res: InternalResponse, options: InternalOptions) -> None:
    if options.pages.verify_request:
        res.redirect(options.pages.verify_request)
        return
    res.json({})


# =============================================================================
# Session
# =============================================================================

async def session(req: InternalRequest, res: InternalResponse, options: InternalOptions) -> None:
    """
    Return the current session as JSON, or ``{}`` when signed out.

    JWT sessions are re-issued on every call (rolling expiry). Database
    sessions are extended once ``update_age`` has passed.
    """
    cookie = options.cookies["session_token"]
    session_token = req.cookies.get(cookie.name)
    if not session_token or not isinstance(session_token, str):
        res.json({})
        return

    max_age = options.session_max_age
    expires = datetime.now(timezone.utc) + timedelta(seconds=max_age)

    if options.auth.session.strategy == "jwt":
        try:
            decoded = options.decode_token(session_token)
        except TokenInvalid as e:
            logger.warning(f"JWT_SESSION_ERROR: {e}")
            _clear_session_cookie(res, options)
            res.json({})
            return

        token = await maybe_await(options.callbacks.jwt, token=decoded)
        default_session = {
            "user": {
                "name": decoded.get("name"),
                "email": decoded.get("email"),
                "image": decoded.get("picture"),
            },
            "expires": _iso(expires),
        }
        payload = await maybe_await(options.callbacks.session, session=default_session, token=token)

        set_cookie(res, cookie.name, options.encode_token(token), cookie.options.model_copy(update={"expires": expires}))
        res.json(payload)
        return

    try:
        result = await call_adapter(options.adapter, "get_session_and_user", session_token)
        if not result:
            _clear_session_cookie(res, options)
            res.json({})
            return

        stored, user = result
        now = datetime.now(timezone.utc)
        stored_expires = stored.expires if stored.expires.tzinfo else stored.expires.replace(tzinfo=timezone.utc)

        if stored_expires < now:
            await call_adapter(options.adapter, "delete_session", session_token)
            _clear_session_cookie(res, options)
            res.json({})
            return

        update_due = stored_expires - timedelta(seconds=max_age) + timedelta(seconds=options.auth.session.update_age)
        if update_due <= now:
            stored = stored.model_copy(update={"expires": expires})
            await call_adapter(options.adapter, "update_session", stored)
            set_cookie(res, cookie.name, session_token, cookie.options.model_copy(update={"expires": expires}))

        default_session = {
            "user": {"name": user.name, "email": user.email, "image": user.image},
            "expires": _iso(stored.expires),
        }
        payload = await maybe_await(options.callbacks.session, session=default_session, user=user.model_dump())
        res.json(payload)
    except AdapterError as e:
        logger.error(f"ADAPTER_ERROR: session lookup failed: {e}")
        res.json({})


# =============================================================================
# Sign In
# =============================================================================

async def signin_page(req: InternalRequest, res: InternalResponse, options: InternalOptions) -> None:
    if options.pages.sign_in:
        res.redirect(_with_params(
            options.pages.sign_in,
            callbackUrl=options.callback_url,
            error=req.query.get("error"),
        ))
        return

    res.json({
        "csrfToken": options.csrf_token,
        "providers": [_provider_summary(p, options) for p in options.providers.values()],
    })


async def signin(req: InternalRequest, res: InternalResponse, options: InternalOptions) -> None:
    """
    Start a sign-in with the provider named in the URL.

    Raises:
        CSRFMismatch: If the submitted CSRF token is missing or wrong
    """
    _require_csrf(options)
    provider = options.provider

    if isinstance(provider, OAuthProvider):
        try:
            url = get_authorization_url(res, options)
        except (KeyError, ValueError) as e:
            raise OAuthSignInError(f"Unable to build authorization URL: {e}") from e
        logger.debug(f"Redirecting to {provider.id} authorization endpoint")
        res.redirect(url)

    elif isinstance(provider, EmailProvider):
        email = normalize_email(req.body.get("email"))
        user = await call_adapter(options.adapter, "get_user_by_email", email)
        user_data = user.model_dump() if user else {"id": email, "email": email}
        account = {"provider": provider.id, "type": "email", "provider_account_id": email}

        if not await _run_sign_in_callback(res, options, user=user_data, account=account, email={"verification_request": True}):
            return

        await send_verification_request(email, options)
        page = options.pages.verify_request or options.action_url("verify-request")
        res.redirect(_with_params(page, provider=provider.id, type="email"))

    elif isinstance(provider, CredentialsProvider):
        await _credentials_callback(req, res, options)


# =============================================================================
# Callback
# =============================================================================

async def callback(req: InternalRequest, res: InternalResponse, options: InternalOptions) -> None:
    provider = options.provider
    session_token = req.cookies.get(options.cookies["session_token"].name)

    if isinstance(provider, OAuthProvider):
        profile, account, raw_profile = await oauth_callback(req, res, options)

        if not await _run_sign_in_callback(res, options, user=profile, account=account, profile=raw_profile):
            return

        user, db_session, is_new_user = await handle_login(session_token, profile, account, options)
        await establish_session(res, options, user, account, raw_profile, is_new_user, db_session)
        logger.info(f"Signed in with {provider.id}")

        if is_new_user and options.pages.new_user:
            res.redirect(_with_params(options.pages.new_user, callbackUrl=options.callback_url))
        else:
            res.redirect(options.callback_url)

    elif isinstance(provider, EmailProvider):
        email = await use_verification_request(req, options)
        profile = {"id": email, "email": email}
        account = {"provider": provider.id, "type": "email", "provider_account_id": email}

        if not await _run_sign_in_callback(res, options, user=profile, account=account):
            return

        user, db_session, is_new_user = await handle_login(session_token, profile, account, options)
        await establish_session(res, options, user, account, None, is_new_user, db_session)
        logger.info(f"Signed in with {provider.id}")

        if is_new_user and options.pages.new_user:
            res.redirect(_with_params(options.pages.new_user, callbackUrl=options.callback_url))
        else:
            res.redirect(options.callback_url)

    elif isinstance(provider, CredentialsProvider):
        if req.method.upper() != "POST":
            res.status(405).json({"error": "Credentials callback requires POST"})
            return
        _require_csrf(options)
        await _credentials_callback(req, res, options)


async def _credentials_callback(req: InternalRequest, res: InternalResponse, options: InternalOptions) -> None:
    provider: CredentialsProvider = options.provider
    credentials = {k: v for k, v in req.body.items() if k not in ("csrfToken", "callbackUrl", "json")}

    try:
        user = await maybe_await(provider.authorize, credentials, req)
    except NextAuthError:
        raise
    except Exception as e:
        logger.error(f"CREDENTIALS_AUTHORIZE_ERROR: {type(e).__name__}")
        user = None

    if not user:
        res.redirect(options.error_url("CredentialsSignin", provider.id))
        return

    user = dict(user)
    account = {
        "provider": provider.id,
        "type": "credentials",
        "provider_account_id": str(user.get("id", "")),
    }

    if not await _run_sign_in_callback(res, options, user=user, account=account, credentials=credentials):
        return

    await establish_session(res, options, user, account)
    logger.info(f"Signed in with {provider.id}")
    res.redirect(options.callback_url)


# =============================================================================
# Sign Out
# =============================================================================

async def signout_page(req: InternalRequest, res: InternalResponse, options: InternalOptions) -> None:
    if options.pages.sign_out:
        res.redirect(_with_params(options.pages.sign_out, callbackUrl=options.callback_url))
        return
    res.json({"csrfToken": options.csrf_token})


async def signout(req: InternalRequest, res: InternalResponse, options: InternalOptions) -> None:
    """
    Clear the session cookie (and database session) and redirect.

    Raises:
        CSRFMismatch: If the submitted CSRF token is missing or wrong
    """
    _require_csrf(options)

    session_token = req.cookies.get(options.cookies["session_token"].name)
    if session_token and options.auth.session.strategy == "database":
        try:
            await call_adapter(options.adapter, "delete_session", session_token)
        except AdapterError as e:
            logger.error(f"ADAPTER_ERROR: unable to delete session: {e}")

    _clear_session_cookie(res, options)
    res.redirect(options.callback_url)
