"""Fakes for the external collaborators."""

import asyncio
from functools import partial
from itertools import count
from typing import Any, Dict, List, Optional, Tuple

from .. import domain
from ..exceptions import ProfileNotFound
from ..services.identity import IdentityProvider
from ..services.profiles import ProfileStore


class FakeProfileStore(ProfileStore):
    """Profile store with scriptable latency, failures and hangs."""

    def __init__(self, profiles: Optional[Dict[str, domain.Profile]] = None,
                 delay: float = 0.0) -> None:
        self.profiles = dict(profiles or {})
        self.delay = delay
        self.delays: Dict[str, float] = {}
        self.errors: Dict[str, BaseException] = {}
        self.gates: Dict[str, asyncio.Event] = {}
        self.calls: List[str] = []
        self.completed: List[str] = []

    async def fetch_profile_row(self, user_id: str) -> domain.Profile:
        self.calls.append(user_id)
        if user_id in self.gates:
            await self.gates[user_id].wait()
        delay = self.delays.get(user_id, self.delay)
        if delay:
            await asyncio.sleep(delay)
        self.completed.append(user_id)
        if user_id in self.errors:
            raise self.errors[user_id]
        try:
            return self.profiles[user_id]
        except KeyError as e:
            raise ProfileNotFound(f'No profile for {user_id}') from e

    async def upsert_profile_row(self, profile: domain.Profile) \
            -> domain.Profile:
        if profile.user_id in self.errors:
            raise self.errors[profile.user_id]
        self.profiles[profile.user_id] = profile
        return profile


class FakeIdentityProvider(IdentityProvider):
    """Identity provider whose notifications are pushed by the test."""

    def __init__(self, session: Optional[domain.Identity] = None) -> None:
        self.session = session
        self.session_error: Optional[BaseException] = None
        self.sign_out_error: Optional[BaseException] = None
        self.handlers: Dict[int, domain.SessionHandler] = {}
        self._ids = count()

    async def get_current_session(self) -> Optional[domain.Identity]:
        if self.session_error is not None:
            raise self.session_error
        return self.session

    def on_session_change(self, handler: domain.SessionHandler) \
            -> domain.Subscription:
        key = next(self._ids)
        self.handlers[key] = handler
        return domain.Subscription(partial(self.handlers.pop, key, None))

    def emit(self, event: str, identity: Optional[domain.Identity]) -> None:
        """Deliver a notification to every handler, synchronously."""
        self.session = identity
        for handler in list(self.handlers.values()):
            handler(event, identity)

    async def sign_up(self, email: str, password: str, **attrs: Any) -> None:
        return None

    async def sign_in(self, email: str, password: str) -> domain.Identity:
        identity = domain.Identity(user_id=email.split('@')[0], email=email)
        self.emit(domain.events.SIGNED_IN, identity)
        return identity

    async def sign_out(self) -> None:
        if self.sign_out_error is not None:
            raise self.sign_out_error
        self.emit(domain.events.SIGNED_OUT, None)


def identity(user_id: str) -> domain.Identity:
    """Make an identity for ``user_id``."""
    return domain.Identity(user_id=user_id, email=f'{user_id}@example.com')


def profile(user_id: str, username: str = '') -> domain.Profile:
    """Make a profile for ``user_id``."""
    return domain.Profile(user_id=user_id, username=username or user_id)


class Recorder(object):
    """Collects every snapshot published to a subscriber."""

    def __init__(self) -> None:
        self.snapshots: List[domain.SessionState] = []

    def __call__(self, snapshot: domain.SessionState) -> None:
        self.snapshots.append(snapshot)

    def states(self) -> List[Tuple[Optional[str], Optional[str], bool]]:
        """Snapshots as ``(user_id, username, ready)`` tuples."""
        return [(s.identity.user_id if s.identity else None,
                 s.profile.username if s.profile else None,
                 s.ready) for s in self.snapshots]
