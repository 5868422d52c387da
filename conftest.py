"""Special pytest fixture configuration file.

This file automatically provides all fixtures defined in it to all
pytest tests in this directory and sub directories.

See https://docs.pytest.org/en/6.2.x/fixture.html#conftest-py-sharing-fixtures-across-multiple-files
"""
import pytest

from authstate import suppression
from authstate.context import SessionContext
from authstate.lifecycle import MountGuard
from authstate.reconciler import ProfileReconciler
from authstate.services.profiles import SQLProfileStore
from authstate.state import SessionState
from authstate.tests.util import FakeIdentityProvider, FakeProfileStore, \
    Recorder

TIMEOUT = 0.5
"""Lookup deadline for tests that do not exercise the deadline itself."""


@pytest.fixture
def provider():
    return FakeIdentityProvider()


@pytest.fixture
def store():
    return FakeProfileStore()


@pytest.fixture
def state():
    return SessionState()


@pytest.fixture
def guard():
    return MountGuard('test')


@pytest.fixture
def reconciler(state, store, guard):
    return ProfileReconciler(state, store, timeout=TIMEOUT, guard=guard)


@pytest.fixture
def context(provider, store):
    """A session context that is torn down after the test."""
    context = SessionContext(provider, store, timeout=TIMEOUT)
    yield context
    context.close()
    suppression.uninstall()


@pytest.fixture
def recorder(context):
    """Records every snapshot the context publishes."""
    recorder = Recorder()
    subscription = context.subscribe(recorder)
    yield recorder
    subscription.unsubscribe()


@pytest.fixture
def sql_store():
    """A profile store backed by an in-memory SQLite database."""
    sql_store = SQLProfileStore('sqlite://')
    sql_store.create_all()
    yield sql_store
    sql_store.drop_all()
