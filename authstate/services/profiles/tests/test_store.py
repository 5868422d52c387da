"""Tests for :mod:`authstate.services.profiles.store`."""

import uuid
from unittest import mock

import pytest
from mimesis import Person, Internet
from sqlalchemy.exc import OperationalError

from ..store import SQLProfileStore
from .... import domain
from ....exceptions import ProfileNotFound, Unavailable


@pytest.fixture
def new_profile():
    person, internet = Person(), Internet()
    return domain.Profile(
        user_id=str(uuid.uuid4()),
        username=person.username(),
        full_name=person.full_name(),
        bio='Likes long walks on the beach.',
        location='Ithaca, NY',
        website=internet.url(),
        avatar_url=internet.url()
    )


def test_missing_profile(sql_store):
    """There is no row for a new principal."""
    with pytest.raises(ProfileNotFound):
        sql_store.get_profile(str(uuid.uuid4()))


def test_save_and_get(sql_store, new_profile):
    """A saved profile can be loaded again."""
    saved = sql_store.save_profile(new_profile)
    assert saved.updated_at is not None
    assert saved._replace(updated_at=None) == new_profile

    loaded = sql_store.get_profile(new_profile.user_id)
    assert loaded._replace(updated_at=None) == new_profile


def test_save_replaces(sql_store, new_profile):
    """Saving again replaces the row for the same principal."""
    sql_store.save_profile(new_profile)
    sql_store.save_profile(new_profile._replace(bio='', location='Paris'))

    loaded = sql_store.get_profile(new_profile.user_id)
    assert loaded.bio == ''
    assert loaded.location == 'Paris'
    assert loaded.username == new_profile.username


def test_store_unavailable(sql_store):
    """Connection failures are reported as the store being unavailable."""
    error = OperationalError('SELECT 1', {}, Exception('server has gone'))
    with mock.patch.object(sql_store, '_sessionmaker', side_effect=error):
        with pytest.raises(Unavailable):
            sql_store.get_profile('u-1')
        with pytest.raises(Unavailable):
            sql_store.save_profile(domain.Profile(user_id='u-1'))


def test_is_available(sql_store, tmp_path):
    assert sql_store.is_available()
    broken = SQLProfileStore(f'sqlite:///{tmp_path}/missing/profiles.db')
    assert not broken.is_available()


@pytest.mark.asyncio
async def test_fetch_and_upsert(sql_store, new_profile):
    """The async interface runs the blocking calls off the event loop."""
    with pytest.raises(ProfileNotFound):
        await sql_store.fetch_profile_row(new_profile.user_id)

    saved = await sql_store.upsert_profile_row(new_profile)
    fetched = await sql_store.fetch_profile_row(new_profile.user_id)
    assert fetched.user_id == saved.user_id
    assert fetched.full_name == new_profile.full_name
