"""Forwards identity provider notifications to the profile reconciler."""

import asyncio
import logging
from typing import Optional, Set

from . import domain
from .reconciler import ProfileReconciler
from .services.identity import IdentityProvider
from .state import SessionState

logger = logging.getLogger(__name__)


class ChangeListener(object):
    """
    Subscribes once to the identity provider.

    Each notification begins a new generation, in delivery order, and starts
    its own reconciliation without waiting for outstanding ones. Which result
    lands is decided by the generation, not by completion order.
    """

    def __init__(self, provider: IdentityProvider, state: SessionState,
                 reconciler: ProfileReconciler) -> None:
        self.provider = provider
        self.state = state
        self.reconciler = reconciler
        self._subscription: Optional[domain.Subscription] = None
        self._tasks: Set[asyncio.Task] = set()

    @property
    def attached(self) -> bool:
        """Whether the provider subscription is live."""
        return self._subscription is not None and self._subscription.active

    @property
    def pending(self) -> int:
        """Number of reconciliations still in flight."""
        return len(self._tasks)

    def attach(self) -> None:
        """Subscribe to the provider. Has no effect if already attached."""
        if self.attached:
            return
        self._subscription = self.provider.on_session_change(self.notify)
        logger.debug('Attached to identity provider')

    def detach(self) -> None:
        """Stop receiving notifications. In-flight work runs to completion."""
        if self._subscription is not None:
            self._subscription.unsubscribe()
            self._subscription = None
            logger.debug('Detached from identity provider')

    def notify(self, event: str, identity: Optional[domain.Identity]) \
            -> asyncio.Task:
        """Handle one notification from the provider."""
        logger.info('Session change: %s (%s)', event,
                    identity.user_id if identity else 'no session')
        return self.dispatch(identity)

    def dispatch(self, identity: Optional[domain.Identity]) -> asyncio.Task:
        """Begin a new generation for ``identity`` and reconcile it."""
        generation = self.state.begin(identity)
        task = asyncio.ensure_future(
            self.reconciler.reconcile(identity, generation)
        )
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    async def drain(self) -> None:
        """Wait for every in-flight reconciliation to finish."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)
