"""Tests for :mod:`authstate.context`."""

import asyncio

import pytest

from .. import suppression
from ..context import SessionContext
from ..domain import events, SessionState as Snapshot
from ..exceptions import SignOutFailed, Unavailable, Cancelled
from ..reconciler import Reconciliation
from .util import identity, profile


async def settle(context):
    """Wait for every in-flight reconciliation of ``context``."""
    await context.listener.drain()


class TestBootstrap:
    """Reading the current session when the context starts."""

    @pytest.mark.asyncio
    async def test_no_session(self, context, store):
        """Without a session, the context becomes ready with nothing."""
        await context.init()
        assert await context.wait_ready() == Snapshot(None, None, True)
        assert store.calls == []

    @pytest.mark.asyncio
    async def test_session_with_profile(self, context, provider, store):
        """An existing session is reconciled with its profile."""
        provider.session = identity('alice')
        store.profiles['alice'] = profile('alice')
        await context.init()
        assert context.get() == Snapshot(identity('alice'), None, False)

        state = await context.wait_ready()
        assert state == Snapshot(identity('alice'), profile('alice'), True)

    @pytest.mark.asyncio
    async def test_session_without_profile(self, context, provider):
        """A principal with no profile row yet is signed in, without one."""
        provider.session = identity('alice')
        await context.init()
        state = await context.wait_ready()
        assert state == Snapshot(identity('alice'), None, True)

    @pytest.mark.asyncio
    @pytest.mark.parametrize('error', [Unavailable('provider is down'),
                                       Cancelled('aborted')])
    async def test_session_read_fails(self, context, provider, error):
        """A failed session read counts as no session."""
        provider.session_error = error
        await context.init()
        assert await context.wait_ready() == Snapshot(None, None, True)

    @pytest.mark.asyncio
    async def test_init_once(self, context, provider):
        """Initializing again does not subscribe again."""
        await context.init()
        await context.init()
        assert len(provider.handlers) == 1
        await settle(context)
        assert context.listener.pending == 0

    @pytest.mark.asyncio
    async def test_notification_during_read(self, context, provider, store):
        """A notification that arrives mid-read supersedes the read."""
        store.profiles.update(alice=profile('alice'), bob=profile('bob'))
        calls_before_setup = []

        async def get_current_session():
            provider.emit(events.SIGNED_IN, identity('bob'))
            await asyncio.sleep(0.01)
            calls_before_setup.extend(store.calls)
            return identity('alice')

        provider.get_current_session = get_current_session
        await context.init()
        state = await context.wait_ready()

        assert calls_before_setup == []
        assert store.calls == ['bob']
        assert state == Snapshot(identity('bob'), profile('bob'), True)

    @pytest.mark.asyncio
    async def test_hanging_read(self, provider, store):
        """A session read that never returns counts as no session."""
        context = SessionContext(provider, store, timeout=0.05)
        gate = asyncio.Event()

        async def get_current_session():
            await gate.wait()
            return identity('alice')

        provider.get_current_session = get_current_session
        await asyncio.wait_for(context.init(), 1)
        state = await asyncio.wait_for(context.wait_ready(), 1)
        assert state == Snapshot(None, None, True)

        gate.set()
        await asyncio.sleep(0.01)
        assert context.get() == Snapshot(None, None, True)
        context.close()
        suppression.uninstall()

    @pytest.mark.asyncio
    async def test_notification_during_hanging_read(self, provider, store):
        """A notification is reconciled even if the session read hangs."""
        context = SessionContext(provider, store, timeout=0.05)
        store.profiles['bob'] = profile('bob')
        gate = asyncio.Event()

        async def get_current_session():
            provider.emit(events.SIGNED_IN, identity('bob'))
            await gate.wait()
            return identity('alice')

        provider.get_current_session = get_current_session
        await asyncio.wait_for(context.init(), 1)
        state = await asyncio.wait_for(context.wait_ready(), 1)
        assert state == Snapshot(identity('bob'), profile('bob'), True)
        assert store.calls == ['bob']

        gate.set()
        await asyncio.sleep(0.01)
        assert context.get() == state
        context.close()
        suppression.uninstall()

    @pytest.mark.asyncio
    async def test_cancelled_init_opens_barrier(self, provider, store):
        """Lookups are not held up forever if initialization is cancelled."""
        context = SessionContext(provider, store, timeout=5)
        store.profiles['bob'] = profile('bob')
        gate = asyncio.Event()

        async def get_current_session():
            await gate.wait()
            return None

        provider.get_current_session = get_current_session
        init = asyncio.ensure_future(context.init())
        await asyncio.sleep(0.01)
        init.cancel()
        with pytest.raises(asyncio.CancelledError):
            await init

        provider.emit(events.SIGNED_IN, identity('bob'))
        state = await asyncio.wait_for(context.wait_ready(), 1)
        assert state == Snapshot(identity('bob'), profile('bob'), True)
        gate.set()
        await asyncio.sleep(0)
        context.close()
        suppression.uninstall()


class TestProfileLookup:
    """Readiness in the face of slow and failing profile lookups."""

    @pytest.mark.asyncio
    async def test_hanging_lookup(self, provider, store):
        """A lookup that never returns is abandoned at the deadline."""
        context = SessionContext(provider, store, timeout=0.05)
        provider.session = identity('alice')
        store.profiles['alice'] = profile('alice')
        store.gates['alice'] = asyncio.Event()
        await context.init()
        state = await asyncio.wait_for(context.wait_ready(), 1)
        assert state == Snapshot(identity('alice'), None, True)

        store.gates['alice'].set()
        await asyncio.sleep(0.05)
        assert store.completed == ['alice']
        assert context.get() == Snapshot(identity('alice'), None, True)
        context.close()
        suppression.uninstall()

    @pytest.mark.asyncio
    async def test_store_unavailable(self, context, provider, store):
        """A store outage leaves the user signed in without a profile."""
        provider.session = identity('alice')
        store.errors['alice'] = Unavailable('store is down')
        await context.init()
        state = await context.wait_ready()
        assert state == Snapshot(identity('alice'), None, True)
        assert store.calls == ['alice']

    @pytest.mark.asyncio
    async def test_rapid_changes(self, context, provider, store):
        """Bursts of notifications settle on the last one."""
        await context.init()
        await context.wait_ready()
        for user in ('alice', 'bob', 'carol'):
            store.profiles[user] = profile(user)
        store.delays.update(alice=0.03, bob=0.02, carol=0.01)

        for user in ('alice', 'bob', 'carol', 'bob'):
            provider.emit(events.SIGNED_IN, identity(user))
        await settle(context)
        assert context.get() == Snapshot(identity('bob'), profile('bob'),
                                         True)


class TestSignOut:
    """Ending the session."""

    @pytest.mark.asyncio
    async def test_sign_out_is_one_step(self, context, provider, store,
                                        recorder):
        """Signing out publishes exactly one snapshot."""
        provider.session = identity('alice')
        store.profiles['alice'] = profile('alice')
        await context.init()
        await context.wait_ready()
        before = len(recorder.snapshots)

        await context.sign_out()
        await settle(context)
        assert recorder.snapshots[before:] == [Snapshot(None, None, True)]

    @pytest.mark.asyncio
    async def test_sign_out_during_lookup(self, context, provider, store,
                                          recorder):
        """A lookup still in flight at sign-out never resurrects the user."""
        await context.init()
        await context.wait_ready()
        store.profiles['alice'] = profile('alice')
        store.gates['alice'] = asyncio.Event()
        await context.sign_in('alice@example.com', 'secret')
        await asyncio.sleep(0.01)

        await context.sign_out()
        store.gates['alice'].set()
        await settle(context)

        assert store.completed == ['alice']
        assert context.get() == Snapshot(None, None, True)
        assert ('alice', 'alice', True) not in recorder.states()

    @pytest.mark.asyncio
    async def test_sign_out_refused(self, context, provider, store):
        """The session is untouched when the provider refuses."""
        provider.session = identity('alice')
        store.profiles['alice'] = profile('alice')
        await context.init()
        state = await context.wait_ready()

        provider.sign_out_error = SignOutFailed('session is locked')
        with pytest.raises(SignOutFailed):
            await context.sign_out()
        assert context.get() == state

    @pytest.mark.asyncio
    async def test_sign_out_error_is_wrapped(self, context, provider):
        """Unexpected provider errors surface as a failed sign-out."""
        await context.init()
        await context.wait_ready()
        provider.sign_out_error = ConnectionError('reset by peer')
        with pytest.raises(SignOutFailed):
            await context.sign_out()

    @pytest.mark.asyncio
    async def test_repeated_sign_in_and_out(self, context, provider, store):
        """Toggling the session leaves one subscription and a final state."""
        await context.init()
        store.profiles['alice'] = profile('alice')
        for _ in range(5):
            await context.sign_in('alice@example.com', 'secret')
            await context.sign_out()
        await context.sign_in('alice@example.com', 'secret')
        await settle(context)

        assert len(provider.handlers) == 1
        assert context.get() == Snapshot(identity('alice'), profile('alice'),
                                         True)


class TestRefreshProfile:
    """Reconciling the current identity again."""

    @pytest.mark.asyncio
    async def test_refresh_after_create(self, context, provider, store):
        """A profile created after sign-in is picked up on refresh."""
        provider.session = identity('alice')
        await context.init()
        assert (await context.wait_ready()).profile is None

        store.profiles['alice'] = profile('alice')
        result = await context.refresh_profile('alice')
        assert result.outcome == Reconciliation.RESOLVED
        assert result.applied
        assert context.get() == Snapshot(identity('alice'), profile('alice'),
                                         True)

    @pytest.mark.asyncio
    async def test_refresh_keeps_profile_while_pending(self, context,
                                                       provider, store):
        """The profile stays visible while it is being refreshed."""
        provider.session = identity('alice')
        store.profiles['alice'] = profile('alice')
        await context.init()
        await context.wait_ready()

        store.profiles['alice'] = profile('alice', 'alice2')
        task = asyncio.ensure_future(context.refresh_profile('alice'))
        await asyncio.sleep(0)
        assert context.get().profile == profile('alice')
        await task
        assert context.get().profile == profile('alice', 'alice2')

    @pytest.mark.asyncio
    async def test_refresh_other_user(self, context, provider):
        """Refreshing anyone but the current user does nothing."""
        provider.session = identity('alice')
        await context.init()
        await context.wait_ready()
        await settle(context)
        assert await context.refresh_profile('bob') is None
        assert context.listener.pending == 0


class TestClose:
    """Tearing the context down."""

    @pytest.mark.asyncio
    async def test_close_detaches(self, context, provider):
        """No notifications are received after closing."""
        await context.init()
        context.close()
        assert provider.handlers == {}

    @pytest.mark.asyncio
    async def test_close_drops_in_flight_results(self, context, provider,
                                                 store):
        """A lookup that completes after teardown is not applied."""
        provider.session = identity('alice')
        store.profiles['alice'] = profile('alice')
        store.gates['alice'] = asyncio.Event()
        await context.init()
        await asyncio.sleep(0.01)

        context.close()
        store.gates['alice'].set()
        await settle(context)
        assert context.get() == Snapshot(identity('alice'), None, False)
