"""Session context factory."""

from typing import Any, Mapping, Optional

from . import config as default_config
from .app_logging import setup_logger
from .context import SessionContext
from .services.identity import IdentityProvider, LocalIdentityProvider
from .services.profiles import ProfileStore, SQLProfileStore


def get_config(config: Optional[Mapping[str, Any]] = None) -> dict:
    """Overlay ``config`` on the settings in :mod:`authstate.config`."""
    settings = {key: getattr(default_config, key)
                for key in dir(default_config) if key.isupper()}
    if config:
        settings.update(config)
    return settings


def create_context(config: Optional[Mapping[str, Any]] = None,
                   provider: Optional[IdentityProvider] = None,
                   store: Optional[ProfileStore] = None,
                   configure_logging: bool = False) -> SessionContext:
    """
    Create a :class:`.SessionContext`.

    Collaborators that are not passed in are built from configuration: a
    :class:`.LocalIdentityProvider` and a :class:`.SQLProfileStore` whose
    tables are created if they do not exist.
    """
    settings = get_config(config)
    if configure_logging:
        setup_logger(settings.get('LOG_LEVEL', 'INFO'),
                     json=bool(settings.get('LOG_JSON', True)))
    if provider is None:
        provider = LocalIdentityProvider(
            settings['JWT_SECRET'],
            duration=int(settings.get('SESSION_DURATION', '7200'))
        )
    if store is None:
        store = SQLProfileStore(settings.get('PROFILE_DATABASE_URI',
                                             'sqlite://'))
        store.create_all()
    timeout = float(settings.get('PROFILE_FETCH_TIMEOUT', '5'))
    return SessionContext(provider, store, timeout=timeout)
