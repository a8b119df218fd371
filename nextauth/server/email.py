"""
Email ("magic link") sign-in.

Sign-in stores a hashed one-time token through the adapter and hands a
callback URL carrying the plain token to the provider's
``send_verification_request``. The callback consumes the token; each link
works once.
"""

import hmac
import logging
import secrets
from datetime import datetime, timedelta, timezone
from urllib.parse import urlencode

from pydantic import EmailStr, TypeAdapter, ValidationError

from ..errors import EmailSignInError, NextAuthError, TokenInvalid
from ..models import VerificationToken
from .types import InternalOptions, InternalRequest
from .utils import call_adapter, hash_token, maybe_await

logger = logging.getLogger(__name__)

EMAIL_ADAPTER = TypeAdapter(EmailStr)


def normalize_email(value: object) -> str:
    """
    Lower-case and strip an email address, then validate it as ``EmailStr``.

    Raises:
        EmailSignInError: If the value is not a valid email address
    """
    if not isinstance(value, str):
        raise EmailSignInError("Missing email address")

    try:
        return EMAIL_ADAPTER.validate_python(value.strip().lower())
    except ValidationError as e:
        raise EmailSignInError("Invalid email address") from e


async def send_verification_request(email: str, options: InternalOptions) -> None:
    """
    Create a verification token and send the sign-in link.

    Raises:
        AdapterError: If the token cannot be stored
        EmailSignInError: If sending fails
    """
    provider = options.provider
    token = secrets.token_hex(32)
    expires = datetime.now(timezone.utc) + timedelta(seconds=provider.max_age)

    await call_adapter(
        options.adapter,
        "create_verification_token",
        VerificationToken(identifier=email, token=hash_token(token, options.secret), expires=expires),
    )

    params = {"callbackUrl": options.callback_url, "token": token, "email": email}
    url = f"{options.action_url('callback', provider.id)}?{urlencode(params)}"

    try:
        await maybe_await(
            provider.send_verification_request,
            identifier=email,
            url=url,
            token=token,
            provider=provider,
        )
    except NextAuthError:
        raise
    except Exception as e:
        raise EmailSignInError(f"Unable to send verification email: {e}") from e

    logger.info(f"Sent sign-in link via provider {provider.id}")


async def use_verification_request(req: InternalRequest, options: InternalOptions) -> str:
    """
    Consume the token from a sign-in link.

    Returns:
        The verified email address

    Raises:
        TokenInvalid: If the token is unknown, already used or expired
    """
    token = req.query.get("token")
    email = req.query.get("email")
    if not token or not email:
        raise TokenInvalid("Missing token or email")

    email = normalize_email(email)
    hashed = hash_token(token, options.secret)

    invite = await call_adapter(options.adapter, "use_verification_token", identifier=email, token=hashed)
    if not invite or not hmac.compare_digest(invite.token, hashed):
        raise TokenInvalid("Verification token is invalid or was already used")

    expires = invite.expires
    if expires.tzinfo is None:
        expires = expires.replace(tzinfo=timezone.utc)
    if expires < datetime.now(timezone.utc):
        raise TokenInvalid("Verification token has expired")

    return email
