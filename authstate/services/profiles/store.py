"""
Profile store clients.

:class:`ProfileStore` is the contract the reconciler and consumers consume.
:class:`SQLProfileStore` implements it over SQLAlchemy. Its blocking calls run
in the event loop's default executor, and driver-level connection failures are
classified once, here, as :class:`.Unavailable`.
"""

import asyncio
import logging
from abc import ABC, abstractmethod
from contextlib import contextmanager
from datetime import datetime
from typing import Generator, Optional

from pytz import UTC
from sqlalchemy import create_engine, text
from sqlalchemy import exc as sa_exc
from sqlalchemy.engine import Engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.orm.session import Session
from sqlalchemy.pool import StaticPool

from ... import domain
from ...exceptions import ProfileNotFound, Unavailable
from .models import Base, DBProfile

logger = logging.getLogger(__name__)

_FIELDS = ('username', 'full_name', 'bio', 'location', 'website',
           'avatar_url')

_UNAVAILABLE = (sa_exc.OperationalError, sa_exc.InterfaceError,
                sa_exc.DisconnectionError, sa_exc.TimeoutError)


class ProfileStore(ABC):
    """Capabilities of the profile data store."""

    @abstractmethod
    async def fetch_profile_row(self, user_id: str) -> domain.Profile:
        """
        Get the profile row for ``user_id``.

        Raises
        ------
        :class:`.ProfileNotFound`
            If there is no row for ``user_id``.
        :class:`.Unavailable`
            If the store could not be reached.

        """

    @abstractmethod
    async def upsert_profile_row(self, profile: domain.Profile) \
            -> domain.Profile:
        """Create or replace the row for ``profile.user_id``."""


class SQLProfileStore(ProfileStore):
    """Profiles in a relational database."""

    def __init__(self, uri: str = 'sqlite://',
                 engine: Optional[Engine] = None) -> None:
        if engine is None:
            engine = _create_engine(uri)
        self.engine = engine
        self._sessionmaker = sessionmaker(bind=engine)

    @contextmanager
    def transaction(self) -> Generator[Session, None, None]:
        """Context manager for database transaction."""
        session = self._sessionmaker()
        try:
            yield session
            session.commit()
        except Exception as e:
            logger.error('Commit failed, rolling back: %s', str(e))
            session.rollback()
            raise
        finally:
            session.close()

    def create_all(self) -> None:
        """Create all tables in the database."""
        Base.metadata.create_all(self.engine)

    def drop_all(self) -> None:
        """Drop all tables in the database."""
        Base.metadata.drop_all(self.engine)

    def is_available(self) -> bool:
        """Check our connection to the database."""
        try:
            with self.engine.connect() as connection:
                connection.execute(text('SELECT 1'))
        except Exception as e:
            logger.error('Encountered an error talking to database: %s', e)
            return False
        return True

    async def fetch_profile_row(self, user_id: str) -> domain.Profile:
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(None, self.get_profile, user_id)

    async def upsert_profile_row(self, profile: domain.Profile) \
            -> domain.Profile:
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(None, self.save_profile, profile)

    def get_profile(self, user_id: str) -> domain.Profile:
        """Load a profile row (blocking)."""
        try:
            with self.transaction() as session:
                db_profile = session.get(DBProfile, user_id)
                profile = _to_domain(db_profile) if db_profile else None
        except _UNAVAILABLE as e:
            raise Unavailable(f'Profile store unavailable: {e}') from e
        if profile is None:
            raise ProfileNotFound(f'No profile for {user_id}')
        return profile

    def save_profile(self, profile: domain.Profile) -> domain.Profile:
        """Create or replace a profile row (blocking)."""
        try:
            with self.transaction() as session:
                db_profile = session.get(DBProfile, profile.user_id)
                if db_profile is None:
                    db_profile = DBProfile(id=profile.user_id)
                    session.add(db_profile)
                for field in _FIELDS:
                    setattr(db_profile, field, getattr(profile, field))
                db_profile.updated_at = datetime.now(tz=UTC)
                session.flush()
                saved = _to_domain(db_profile)
        except _UNAVAILABLE as e:
            raise Unavailable(f'Profile store unavailable: {e}') from e
        logger.debug('Saved profile for %s', profile.user_id)
        return saved


def _create_engine(uri: str) -> Engine:
    if uri.startswith('sqlite'):
        kwargs: dict = {'connect_args': {'check_same_thread': False}}
        if uri in ('sqlite://', 'sqlite:///:memory:'):
            # One shared connection, so that executor threads see the same
            # in-memory database.
            kwargs['poolclass'] = StaticPool
        return create_engine(uri, **kwargs)
    return create_engine(uri, pool_pre_ping=True)


def _to_domain(db_profile: DBProfile) -> domain.Profile:
    return domain.Profile(
        user_id=db_profile.id,
        username=db_profile.username or '',
        full_name=db_profile.full_name or '',
        bio=db_profile.bio or '',
        location=db_profile.location or '',
        website=db_profile.website or '',
        avatar_url=db_profile.avatar_url or '',
        updated_at=db_profile.updated_at
    )
