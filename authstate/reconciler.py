"""
Resolves the profile of an identity and writes it into the session state.

Each identity change is reconciled exactly once, under the generation that
:meth:`.state.SessionState.begin` issued for it::

    Idle -> Fetching -> Resolved | ResolvedAbsent | TimedOut | Failed

The lookup races a deadline. Whichever settles first wins; the loser is not
interrupted, and its eventual outcome is consumed and ignored. Every terminal
state writes ``{identity, profile, ready=True}`` back to the session state,
unless the generation has been superseded or the owner has torn down, in which
case the result is dropped and readiness is left to the superseding change.
Nothing is raised out of :meth:`ProfileReconciler.reconcile`; errors become
outcomes on the returned :class:`Reconciliation`.
"""

import asyncio
import logging
from functools import partial
from typing import NamedTuple, Optional

from . import domain
from .exceptions import classify, NOT_FOUND, CANCELLED, TRANSIENT
from .lifecycle import MountGuard
from .services.profiles import ProfileStore
from .state import SessionState

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT = 5.0


class Reconciliation(NamedTuple):
    """Result of reconciling one identity change."""

    RESOLVED = 'resolved'  # type: ignore
    ABSENT = 'absent'  # type: ignore
    TIMED_OUT = 'timed_out'  # type: ignore
    FAILED = 'failed'  # type: ignore

    outcome: str
    """One of the terminal states above."""

    generation: int
    """The generation the reconciliation was started under."""

    profile: Optional[domain.Profile] = None
    """The resolved profile, only for :attr:`RESOLVED`."""

    error: Optional[BaseException] = None
    """The error behind an absent or failed outcome, if any."""

    applied: bool = False
    """Whether the result was written into the session state."""


class ProfileReconciler(object):
    """
    Derives a profile (or its absence) from an identity.

    Parameters
    ----------
    state : :class:`.SessionState`
    store : :class:`.ProfileStore`
    timeout : float
        Deadline for a single lookup, in seconds.
    guard : :class:`.MountGuard`
        Liveness of the owning context. Results are dropped once unmounted.
    barrier : :class:`asyncio.Event`
        Lookups wait for this to be set before they are issued.

    """

    def __init__(self, state: SessionState, store: ProfileStore,
                 timeout: float = DEFAULT_TIMEOUT,
                 guard: Optional[MountGuard] = None,
                 barrier: Optional[asyncio.Event] = None) -> None:
        self.state = state
        self.store = store
        self.timeout = timeout
        self.guard = guard
        self.barrier = barrier

    async def reconcile(self, identity: Optional[domain.Identity],
                        generation: int) -> Reconciliation:
        """Reconcile ``identity`` under ``generation``."""
        if identity is None:
            result = Reconciliation(Reconciliation.ABSENT, generation)
        else:
            result = await self._fetch(identity, generation)
        return self._settle(identity, result)

    async def _fetch(self, identity: domain.Identity,
                     generation: int) -> Reconciliation:
        if self.barrier is not None:
            await self.barrier.wait()
        user_id = identity.user_id
        logger.debug('Fetching profile for %s (generation %i)', user_id,
                     generation)
        lookup = asyncio.ensure_future(self.store.fetch_profile_row(user_id))
        try:
            done, _ = await asyncio.wait({lookup}, timeout=self.timeout)
        except asyncio.CancelledError:
            lookup.add_done_callback(partial(_consume_late, user_id))
            raise

        if lookup not in done:
            lookup.add_done_callback(partial(_consume_late, user_id))
            logger.warning('Profile lookup for %s timed out after %ss',
                           user_id, self.timeout)
            return Reconciliation(Reconciliation.TIMED_OUT, generation)

        try:
            profile = lookup.result()
        except (Exception, asyncio.CancelledError) as e:
            return self._on_error(user_id, generation, e)
        logger.debug('Profile loaded for %s', user_id)
        return Reconciliation(Reconciliation.RESOLVED, generation,
                              profile=profile)

    def _on_error(self, user_id: str, generation: int,
                  exc: BaseException) -> Reconciliation:
        kind = classify(exc)
        if kind == NOT_FOUND:
            logger.info('Profile does not exist for %s', user_id)
            return Reconciliation(Reconciliation.ABSENT, generation)
        if kind == CANCELLED:
            logger.debug('Profile lookup for %s was cancelled: %s', user_id,
                         exc)
            return Reconciliation(Reconciliation.ABSENT, generation,
                                  error=exc)
        if kind == TRANSIENT:
            logger.warning('Profile lookup for %s failed: %s', user_id, exc)
            return Reconciliation(Reconciliation.ABSENT, generation,
                                  error=exc)
        logger.error('Unexpected error fetching profile for %s: %s', user_id,
                     exc, exc_info=(type(exc), exc, exc.__traceback__))
        return Reconciliation(Reconciliation.FAILED, generation, error=exc)

    def _settle(self, identity: Optional[domain.Identity],
                result: Reconciliation) -> Reconciliation:
        if self.guard is not None and not self.guard.mounted:
            logger.debug('Owner torn down; dropping %s result of generation '
                         '%i', result.outcome, result.generation)
            return result
        applied = self.state.apply({
            'identity': identity,
            'profile': result.profile,
            'ready': True
        }, result.generation)
        return result._replace(applied=applied)


def _consume_late(user_id: str, lookup: asyncio.Future) -> None:
    """Retrieve the outcome of a lookup that lost its race, and drop it."""
    if lookup.cancelled():
        return
    exc = lookup.exception()
    if exc is None:
        logger.debug('Late profile lookup for %s completed; ignored', user_id)
    else:
        logger.debug('Late profile lookup for %s failed; ignored: %s',
                     user_id, exc)
