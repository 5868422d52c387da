"""
Consumers bound to the session context.

:class:`ProfileView` backs a profile-editing page: it mirrors the signed-in
user's profile into form values, and saves edits through the profile store
before asking the context to refresh. It never writes the session state.
"""

import logging
from typing import Dict, Optional

from . import domain
from .context import SessionContext
from .exceptions import NotSignedIn
from .lifecycle import MountGuard
from .services.profiles import ProfileStore

logger = logging.getLogger(__name__)

FORM_FIELDS = ('username', 'full_name', 'bio', 'location', 'website',
               'avatar_url')


def form_values(profile: Optional[domain.Profile]) -> Dict[str, str]:
    """Form values for ``profile``; blank if there is no profile."""
    if profile is None:
        return {field: '' for field in FORM_FIELDS}
    return {field: getattr(profile, field) or '' for field in FORM_FIELDS}


class ProfileView(object):
    """Profile page state. Mounted on creation, until :meth:`unmount`."""

    def __init__(self, context: SessionContext, store: ProfileStore) -> None:
        self.context = context
        self.store = store
        self.guard = MountGuard('profile view')
        self.form = form_values(None)
        self._user_id: Optional[str] = None
        self.error = ''
        self.success = ''
        self._subscription = context.subscribe(self._on_change)
        self._on_change(context.get())

    @property
    def loading(self) -> bool:
        """Whether the session is still settling."""
        return not self.context.get().ready

    @property
    def signed_in(self) -> bool:
        return self.context.get().signed_in

    def _on_change(self, snapshot: domain.SessionState) -> None:
        user_id = snapshot.identity.user_id if snapshot.identity else None
        # The form never carries one principal's values over to another.
        if user_id != self._user_id or snapshot.ready:
            self._user_id = user_id
            self.form = form_values(snapshot.profile)

    async def save(self, **changes: str) -> Optional[domain.Profile]:
        """
        Save edited profile fields for the signed-in user.

        Returns the saved profile, or ``None`` if saving failed (see
        :attr:`error`) or the view unmounted in the meantime.

        Raises
        ------
        :class:`.NotSignedIn`
        ValueError
            If ``changes`` names a field that is not editable.

        """
        identity = self.context.get().identity
        if identity is None:
            raise NotSignedIn('Sign in to edit your profile')
        unknown = set(changes) - set(FORM_FIELDS)
        if unknown:
            raise ValueError(f'Not editable: {", ".join(sorted(unknown))}')

        self.error = ''
        self.success = ''
        values = dict(self.form)
        values.update({key: value.strip() for key, value in changes.items()})
        profile = domain.Profile(user_id=identity.user_id, **values)
        try:
            saved = await self.guard.run(
                self.store.upsert_profile_row(profile)
            )
        except Exception as e:
            logger.warning('Could not save profile for %s: %s',
                           identity.user_id, e)
            self.error = 'Could not save profile; please try again'
            return None
        if saved is None:
            return None
        self.success = 'Profile updated successfully!'
        await self.guard.run(self.context.refresh_profile(identity.user_id))
        return saved

    def unmount(self) -> None:
        """Tear down: stop observing the session, drop in-flight results."""
        self.guard.unmount()
        self._subscription.unsubscribe()
