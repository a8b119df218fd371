"""
Callback URL resolution.

The URL to return to after a flow completes comes from the request
(``callbackUrl`` body or query field), then from the callback-url cookie,
then defaults to the site base URL. Every candidate is passed through the
``redirect`` callback so open redirects can be refused.
"""

from ..lib.cookie import set_cookie
from .types import InternalOptions, InternalRequest, InternalResponse
from .utils import maybe_await


async def resolve_callback_url(
    req: InternalRequest,
    res: InternalResponse,
    options: InternalOptions,
) -> str:
    """
    Args:
        req: Canonical request
        res: Response the cookie is queued on when the URL changes
        options: Per-request options

    Returns:
        Absolute callback URL
    """
    cookie = options.cookies["callback_url"]
    from_request = req.body.get("callbackUrl") or req.query.get("callbackUrl")
    from_cookie = req.cookies.get(cookie.name)

    callback_url = options.base_url
    if isinstance(from_request, str) and from_request:
        callback_url = await maybe_await(options.callbacks.redirect, url=from_request, base_url=options.base_url)
    elif isinstance(from_cookie, str) and from_cookie:
        callback_url = await maybe_await(options.callbacks.redirect, url=from_cookie, base_url=options.base_url)

    if callback_url and callback_url != from_cookie:
        set_cookie(res, cookie.name, callback_url, cookie.options)

    return callback_url
