"""
Identity provider clients.

:class:`IdentityProvider` is the contract the session context consumes.
:class:`LocalIdentityProvider` implements it in-process, for development and
tests: accounts are held in memory, and the signed-in session is a signed
access token (see :mod:`authstate.tokens`).
"""

import asyncio
import logging
import uuid
from abc import ABC, abstractmethod
from datetime import datetime
from functools import partial
from itertools import count
from typing import Any, Dict, NamedTuple, Optional

from pytz import UTC

from .. import domain, tokens
from ..exceptions import AuthenticationFailed, RegistrationFailed, \
    InvalidToken, PasswordAuthenticationFailed
from . import passwords

logger = logging.getLogger(__name__)


class IdentityProvider(ABC):
    """Capabilities of an external identity provider."""

    @abstractmethod
    async def get_current_session(self) -> Optional[domain.Identity]:
        """Get the identity of the current session, if there is one."""

    @abstractmethod
    def on_session_change(self, handler: domain.SessionHandler) \
            -> domain.Subscription:
        """
        Register ``handler`` for session change notifications.

        The handler is called with ``(event, identity)``, zero or more times,
        in delivery order, until the returned subscription is cancelled.
        """

    @abstractmethod
    async def sign_up(self, email: str, password: str, **attrs: Any) -> None:
        """Register a new principal. Raises :class:`.RegistrationFailed`."""

    @abstractmethod
    async def sign_in(self, email: str, password: str) -> domain.Identity:
        """Start a session. Raises :class:`.AuthenticationFailed`."""

    @abstractmethod
    async def sign_out(self) -> None:
        """End the current session. Raises :class:`.SignOutFailed`."""


class _Account(NamedTuple):
    identity: domain.Identity
    password_hash: str


class LocalIdentityProvider(IdentityProvider):
    """
    In-process identity provider.

    Sign-up does not start a session. Notifications are scheduled on the
    running event loop, so handlers are never called re-entrantly from
    :meth:`sign_in` or :meth:`sign_out`.
    """

    def __init__(self, secret: str, duration: int = 7200) -> None:
        self._secret = secret
        self._duration = duration
        self._accounts: Dict[str, _Account] = {}
        self._token: Optional[str] = None
        self._handlers: Dict[int, domain.SessionHandler] = {}
        self._ids = count()

    @property
    def access_token(self) -> Optional[str]:
        """The access token of the current session."""
        return self._token

    @property
    def subscriber_count(self) -> int:
        """Number of live session change handlers."""
        return len(self._handlers)

    async def get_current_session(self) -> Optional[domain.Identity]:
        if self._token is None:
            return None
        try:
            return tokens.decode(self._token, self._secret)
        except InvalidToken as e:
            logger.info('Discarding current session: %s', e)
            self._token = None
            return None

    def on_session_change(self, handler: domain.SessionHandler) \
            -> domain.Subscription:
        key = next(self._ids)
        self._handlers[key] = handler
        return domain.Subscription(partial(self._handlers.pop, key, None))

    async def sign_up(self, email: str, password: str, **attrs: Any) -> None:
        email = email.strip().lower()
        if not email or not password:
            raise RegistrationFailed('Email and password are required')
        if email in self._accounts:
            raise RegistrationFailed('User already registered')
        identity = domain.Identity(
            user_id=str(uuid.uuid4()),
            email=email,
            metadata=dict(attrs),
            created_at=datetime.now(tz=UTC)
        )
        self._accounts[email] = _Account(identity,
                                         passwords.hash_password(password))
        logger.info('Registered user %s', identity.user_id)

    async def sign_in(self, email: str, password: str) -> domain.Identity:
        account = self._accounts.get(email.strip().lower())
        if account is None:
            raise AuthenticationFailed('Invalid login credentials')
        try:
            passwords.check_password(password, account.password_hash)
        except PasswordAuthenticationFailed as e:
            raise AuthenticationFailed('Invalid login credentials') from e
        self._token = tokens.encode(account.identity, self._secret,
                                    self._duration)
        self._emit(domain.events.SIGNED_IN, account.identity)
        return account.identity

    async def sign_out(self) -> None:
        self._token = None
        self._emit(domain.events.SIGNED_OUT, None)

    def _emit(self, event: str, identity: Optional[domain.Identity]) -> None:
        loop = asyncio.get_running_loop()
        for key in list(self._handlers):
            loop.call_soon(self._deliver, key, event, identity)

    def _deliver(self, key: int, event: str,
                 identity: Optional[domain.Identity]) -> None:
        handler = self._handlers.get(key)
        if handler is None:     # Unsubscribed since the event was emitted.
            return
        handler(event, identity)
