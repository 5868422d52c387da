"""
The session context handed to consumers.

A :class:`SessionContext` is created once at application start and lives for
the process lifetime. :meth:`SessionContext.init` attaches the change
listener, reads the current session once, and then opens the readiness
barrier that profile lookups wait on. Consumers read through :meth:`get`,
:meth:`subscribe` and :meth:`wait_ready`, and act through the sign-in/up/out
pass-throughs and :meth:`refresh_profile`; they never write the session state
directly.
"""

import asyncio
import logging
from typing import Any, Optional

from . import domain, suppression
from .exceptions import SignOutFailed, is_cancellation
from .lifecycle import MountGuard
from .listener import ChangeListener
from .reconciler import ProfileReconciler, Reconciliation, DEFAULT_TIMEOUT
from .services.identity import IdentityProvider
from .services.profiles import ProfileStore
from .state import SessionState, Callback

logger = logging.getLogger(__name__)


class SessionContext(object):
    """
    Authoritative answer to "who is signed in, and what is their profile".

    Parameters
    ----------
    provider : :class:`.IdentityProvider`
    store : :class:`.ProfileStore`
    timeout : float
        Deadline for each profile lookup, in seconds.

    """

    def __init__(self, provider: IdentityProvider, store: ProfileStore,
                 timeout: float = DEFAULT_TIMEOUT) -> None:
        self.provider = provider
        self.store = store
        self.state = SessionState()
        self.guard = MountGuard('session context')
        self._setup_complete = asyncio.Event()
        self._initialized = False
        self.reconciler = ProfileReconciler(self.state, store,
                                            timeout=timeout,
                                            guard=self.guard,
                                            barrier=self._setup_complete)
        self.listener = ChangeListener(provider, self.state, self.reconciler)

    async def init(self) -> None:
        """
        Attach to the identity provider and reconcile the current session.

        The session read is bounded by the lookup deadline; a read that
        fails or times out counts as no session. Returns once the bootstrap
        reconciliation has been dispatched; use :meth:`wait_ready` to wait
        for it to settle. Calling this more than once has no effect.
        """
        if self._initialized:
            return
        self._initialized = True
        suppression.install()
        self.listener.attach()

        baseline = self.state.generation
        try:
            identity = await self._read_session()
            if self.state.generation == baseline:
                logger.info('Bootstrap session: %s',
                            identity.user_id if identity else 'no session')
                self.listener.dispatch(identity)
            else:
                # A notification arrived while we were reading; it is newer.
                logger.debug('Bootstrap read superseded by a notification')
        finally:
            self._setup_complete.set()

    async def _read_session(self) -> Optional[domain.Identity]:
        """Read the current session, bounded by the lookup deadline."""
        read = asyncio.ensure_future(self.provider.get_current_session())
        try:
            done, _ = await asyncio.wait({read},
                                         timeout=self.reconciler.timeout)
        except asyncio.CancelledError:
            read.add_done_callback(_consume_late_read)
            raise

        if read not in done:
            read.add_done_callback(_consume_late_read)
            logger.warning('Reading the current session timed out after %ss',
                           self.reconciler.timeout)
            return None
        try:
            identity: Optional[domain.Identity] = read.result()
        except (Exception, asyncio.CancelledError) as e:
            if is_cancellation(e):
                logger.debug('Bootstrap session read cancelled: %s', e)
            else:
                logger.warning('Could not read current session: %s', e)
            return None
        return identity

    def get(self) -> domain.SessionState:
        """Get the current session snapshot."""
        return self.state.get()

    def subscribe(self, callback: Callback) -> domain.Subscription:
        """Call ``callback`` with every new session snapshot."""
        return self.state.subscribe(callback)

    async def wait_ready(self) -> domain.SessionState:
        """Wait until the current identity's reconciliation has settled."""
        return await self.state.wait_ready()

    async def sign_up(self, email: str, password: str, **attrs: Any) -> None:
        """Register a new principal with the identity provider."""
        await self.provider.sign_up(email, password, **attrs)

    async def sign_in(self, email: str, password: str) -> domain.Identity:
        """
        Sign in with the identity provider.

        The session state follows through the provider's notification.
        """
        return await self.provider.sign_in(email, password)

    async def sign_out(self) -> None:
        """
        Sign out, and clear the session in a single step.

        Raises
        ------
        :class:`.SignOutFailed`
            The session state is left untouched.

        """
        logger.info('Signing out')
        try:
            await self.provider.sign_out()
        except SignOutFailed:
            raise
        except Exception as e:
            logger.error('Error signing out: %s', e)
            raise SignOutFailed(f'Could not sign out: {e}') from e
        await self.reconciler.reconcile(None, self.state.begin(None))
        logger.info('Sign out successful')

    async def refresh_profile(self, user_id: str) -> Optional[Reconciliation]:
        """
        Reconcile the current identity again, e.g. after a profile edit.

        Returns ``None`` without doing anything if ``user_id`` is not the
        current identity.
        """
        identity = self.state.get().identity
        if identity is None or identity.user_id != user_id:
            logger.debug('Not refreshing profile of %s: not signed in',
                         user_id)
            return None
        result: Reconciliation = await self.listener.dispatch(identity)
        return result

    def close(self) -> None:
        """Detach from the provider and drop any results still in flight."""
        self.guard.unmount()
        self.listener.detach()


def _consume_late_read(read: asyncio.Future) -> None:
    """Retrieve the outcome of a session read that lost its race."""
    if read.cancelled():
        return
    exc = read.exception()
    if exc is None:
        logger.debug('Late session read completed; ignored')
    else:
        logger.debug('Late session read failed; ignored: %s', exc)
