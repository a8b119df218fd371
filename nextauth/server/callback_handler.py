"""
Resolve who is signing in once a provider has vouched for an identity.

Without an adapter the provider profile is the user. With an adapter the
user is looked up (or created) and the provider account linked to it, and
for the database strategy a session record is created.
"""

import logging
import secrets
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Optional, Tuple

from ..errors import AccountNotLinked, TokenInvalid
from ..models import AdapterAccount, AdapterSession, AdapterUser
from .types import InternalOptions
from .utils import call_adapter

logger = logging.getLogger(__name__)


def generate_session_token() -> str:
    return secrets.token_hex(32)


async def create_database_session(user_id: str, options: InternalOptions) -> AdapterSession:
    expires = datetime.now(timezone.utc) + timedelta(seconds=options.session_max_age)
    return await call_adapter(
        options.adapter,
        "create_session",
        AdapterSession(session_token=generate_session_token(), user_id=user_id, expires=expires),
    )


async def _current_user(session_token: Optional[str], options: InternalOptions) -> Optional[AdapterUser]:
    if not session_token or not isinstance(session_token, str):
        return None

    if options.auth.session.strategy == "jwt":
        try:
            decoded = options.decode_token(session_token)
        except TokenInvalid:
            return None
        if not decoded or not decoded.get("sub"):
            return None
        return await call_adapter(options.adapter, "get_user", decoded["sub"])

    result = await call_adapter(options.adapter, "get_session_and_user", session_token)
    return result[1] if result else None


async def handle_login(
    session_token: Optional[str],
    profile: Dict[str, Any],
    account: Dict[str, Any],
    options: InternalOptions,
) -> Tuple[Dict[str, Any], Optional[AdapterSession], bool]:
    """
    Find or create the user for a verified identity.

    Args:
        session_token: Current session cookie value, if any
        profile: Normalised profile ({id, name, email, image})
        account: Provider account ({provider, type, provider_account_id, ...})
        options: Per-request options

    Returns:
        (user, database session or None, is_new_user)

    Raises:
        AccountNotLinked: If the identity belongs to, or collides with, another user
        AdapterError: If the adapter fails
    """
    if options.adapter is None:
        return dict(profile), None, False

    use_database = options.auth.session.strategy == "database"
    current_user = await _current_user(session_token, options)
    is_new_user = False

    if account["type"] == "email":
        user = await call_adapter(options.adapter, "get_user_by_email", profile["email"])
        if user:
            if current_user and current_user.id != user.id:
                logger.warning("Email sign-in for a different user than the one signed in")
            user = await call_adapter(
                options.adapter,
                "update_user",
                {"id": user.id, "email_verified": datetime.now(timezone.utc)},
            )
        else:
            user = await call_adapter(
                options.adapter,
                "create_user",
                {"email": profile["email"], "email_verified": datetime.now(timezone.utc)},
            )
            is_new_user = True

        session = await create_database_session(user.id, options) if use_database else None
        return user.model_dump(), session, is_new_user

    user_by_account = await call_adapter(
        options.adapter,
        "get_user_by_account",
        account["provider"],
        account["provider_account_id"],
    )

    if user_by_account:
        if current_user and current_user.id != user_by_account.id:
            raise AccountNotLinked("Account is already linked to another user")
        session = await create_database_session(user_by_account.id, options) if use_database else None
        return user_by_account.model_dump(), session, False

    if current_user:
        # Signed in already: attach the new provider account to this user
        await call_adapter(options.adapter, "link_account", AdapterAccount(user_id=current_user.id, **account))
        return current_user.model_dump(), None, False

    if profile.get("email"):
        existing = await call_adapter(options.adapter, "get_user_by_email", profile["email"])
        if existing:
            raise AccountNotLinked("Email is already associated with another account")

    user = await call_adapter(
        options.adapter,
        "create_user",
        {k: profile.get(k) for k in ("name", "email", "image")},
    )
    is_new_user = True
    await call_adapter(options.adapter, "link_account", AdapterAccount(user_id=user.id, **account))

    session = await create_database_session(user.id, options) if use_database else None
    return user.model_dump(), session, is_new_user
