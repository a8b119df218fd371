"""
Persistence Adapter Contract
============================

The flows reach user, account, session and verification-token storage only
through the async methods of ``Adapter``. Adapters are external
collaborators; ``InMemoryAdapter`` is a reference implementation for
development and tests (data is lost on restart, use a database-backed
adapter in production).

Any exception raised by an adapter is wrapped in ``AdapterError`` by the
flow handlers.
"""

import asyncio
import logging
import uuid
from datetime import datetime, timezone
from typing import Dict, Optional, Protocol, Tuple, runtime_checkable

from .models import AdapterAccount, AdapterSession, AdapterUser, VerificationToken

logger = logging.getLogger(__name__)


@runtime_checkable
class Adapter(Protocol):
    async def create_user(self, user: Dict) -> AdapterUser: ...

    async def get_user(self, user_id: str) -> Optional[AdapterUser]: ...

    async def get_user_by_email(self, email: str) -> Optional[AdapterUser]: ...

    async def get_user_by_account(self, provider: str, provider_account_id: str) -> Optional[AdapterUser]: ...

    async def update_user(self, user: Dict) -> AdapterUser: ...

    async def link_account(self, account: AdapterAccount) -> None: ...

    async def create_session(self, session: AdapterSession) -> AdapterSession: ...

    async def get_session_and_user(self, session_token: str) -> Optional[Tuple[AdapterSession, AdapterUser]]: ...

    async def update_session(self, session: AdapterSession) -> Optional[AdapterSession]: ...

    async def delete_session(self, session_token: str) -> None: ...

    async def create_verification_token(self, token: VerificationToken) -> VerificationToken: ...

    async def use_verification_token(self, identifier: str, token: str) -> Optional[VerificationToken]: ...


class InMemoryAdapter:
    """
    Dictionary-backed adapter.

    Thread-safe within one event loop using asyncio.Lock.
    """

    def __init__(self):
        self._users: Dict[str, AdapterUser] = {}
        self._accounts: Dict[Tuple[str, str], AdapterAccount] = {}
        self._sessions: Dict[str, AdapterSession] = {}
        self._verification_tokens: Dict[Tuple[str, str], VerificationToken] = {}
        self._lock = asyncio.Lock()

    # =========================================================================
    # Users
    # =========================================================================

    async def create_user(self, user: Dict) -> AdapterUser:
        async with self._lock:
            data = {k: v for k, v in user.items() if k != "id"}
            created = AdapterUser(id=str(uuid.uuid4()), **data)
            self._users[created.id] = created
            logger.debug(f"Created user {created.id}")
            return created

    async def get_user(self, user_id: str) -> Optional[AdapterUser]:
        return self._users.get(user_id)

    async def get_user_by_email(self, email: str) -> Optional[AdapterUser]:
        for user in self._users.values():
            if user.email and user.email.lower() == email.lower():
                return user
        return None

    async def get_user_by_account(self, provider: str, provider_account_id: str) -> Optional[AdapterUser]:
        account = self._accounts.get((provider, provider_account_id))
        if not account:
            return None
        return self._users.get(account.user_id)

    async def update_user(self, user: Dict) -> AdapterUser:
        async with self._lock:
            current = self._users[user["id"]]
            updated = current.model_copy(update=user)
            self._users[updated.id] = updated
            return updated

    async def link_account(self, account: AdapterAccount) -> None:
        async with self._lock:
            self._accounts[(account.provider, account.provider_account_id)] = account

    # =========================================================================
    # Sessions
    # =========================================================================

    async def create_session(self, session: AdapterSession) -> AdapterSession:
        async with self._lock:
            self._sessions[session.session_token] = session
            return session

    async def get_session_and_user(self, session_token: str) -> Optional[Tuple[AdapterSession, AdapterUser]]:
        session = self._sessions.get(session_token)
        if not session:
            return None
        user = self._users.get(session.user_id)
        if not user:
            return None
        return session, user

    async def update_session(self, session: AdapterSession) -> Optional[AdapterSession]:
        async with self._lock:
            if session.session_token not in self._sessions:
                return None
            self._sessions[session.session_token] = session
            return session

    async def delete_session(self, session_token: str) -> None:
        async with self._lock:
            self._sessions.pop(session_token, None)

    # =========================================================================
    # Verification Tokens
    # =========================================================================

    async def create_verification_token(self, token: VerificationToken) -> VerificationToken:
        async with self._lock:
            self._verification_tokens[(token.identifier, token.token)] = token
            return token

    async def use_verification_token(self, identifier: str, token: str) -> Optional[VerificationToken]:
        async with self._lock:
            found = self._verification_tokens.pop((identifier, token), None)
            if found and found.expires < datetime.now(timezone.utc):
                return None
            return found


__all__ = ["Adapter", "InMemoryAdapter"]
