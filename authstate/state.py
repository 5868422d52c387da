"""
The authoritative, process-lifetime holder of the current session.

Reads are snapshot reads: :meth:`SessionState.get` returns an immutable
:class:`.domain.SessionState`. Writes are by generation. Every identity change
is announced with :meth:`SessionState.begin`, which issues a new generation,
and results are written back with :meth:`SessionState.apply`, which refuses
any generation but the latest. Only the reconciler and sign-out write.
"""

import asyncio
import logging
from functools import partial
from itertools import count
from typing import Callable, Dict, Optional

from . import domain

logger = logging.getLogger(__name__)

Callback = Callable[[domain.SessionState], None]


class SessionState(object):
    """Holds the current :class:`.domain.SessionState` snapshot."""

    def __init__(self) -> None:
        self._snapshot = domain.SessionState()
        self._generation = 0
        self._subscribers: Dict[int, Callback] = {}
        self._ids = count()

    @property
    def generation(self) -> int:
        """The latest generation issued by :meth:`begin`."""
        return self._generation

    def get(self) -> domain.SessionState:
        """Get the current snapshot."""
        return self._snapshot

    def is_current(self, generation: int) -> bool:
        """Whether ``generation`` is the latest."""
        return generation == self._generation

    def subscribe(self, callback: Callback) -> domain.Subscription:
        """Register ``callback`` to receive every new snapshot."""
        key = next(self._ids)
        self._subscribers[key] = callback
        return domain.Subscription(partial(self._subscribers.pop, key, None))

    def begin(self, identity: Optional[domain.Identity]) -> int:
        """
        Record an identity change and issue a new generation.

        For a present identity the pending snapshot is published right away,
        keeping the profile only if the principal did not change. For an
        absent identity nothing is published until the result is applied, so
        that signing out is observed as a single step.

        Returns
        -------
        int
            The generation that the change's reconciliation must carry.

        """
        self._generation += 1
        if identity is not None:
            current = self._snapshot
            profile = current.profile \
                if identity.same_principal(current.identity) else None
            self._publish(domain.SessionState(identity=identity,
                                              profile=profile,
                                              ready=False))
        logger.debug('Began generation %i', self._generation)
        return self._generation

    def apply(self, patch: dict, generation: int) -> bool:
        """
        Apply ``patch`` to the snapshot, if ``generation`` is still current.

        Parameters
        ----------
        patch : dict
            Field values for :class:`.domain.SessionState`.
        generation : int

        Returns
        -------
        bool
            ``False`` if the patch was discarded as stale.

        """
        if generation != self._generation:
            logger.debug('Discarding stale result of generation %i '
                         '(latest is %i)', generation, self._generation)
            return False
        self._publish(self._snapshot._replace(**patch))
        return True

    async def wait_ready(self) -> domain.SessionState:
        """Wait for the first snapshot that is ready, and return it."""
        if self._snapshot.ready:
            return self._snapshot
        future = asyncio.get_running_loop().create_future()

        def _on_change(snapshot: domain.SessionState) -> None:
            if snapshot.ready and not future.done():
                future.set_result(snapshot)

        subscription = self.subscribe(_on_change)
        try:
            snapshot: domain.SessionState = await future
        finally:
            subscription.unsubscribe()
        return snapshot

    def _publish(self, snapshot: domain.SessionState) -> None:
        if snapshot == self._snapshot:
            return
        self._snapshot = snapshot
        for callback in list(self._subscribers.values()):
            try:
                callback(snapshot)
            except Exception as e:
                # One broken consumer must not starve the others.
                logger.error('Session subscriber failed: %s', e,
                             exc_info=True)
