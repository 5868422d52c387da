"""Integration with the profile data store. See :mod:`.store`."""

from .store import ProfileStore, SQLProfileStore
