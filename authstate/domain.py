"""Defines session and profile concepts for client applications."""

from typing import Any, Optional, NamedTuple, Callable, Union, \
    get_type_hints, get_origin, get_args
from datetime import datetime
from functools import partial
import logging

import dateutil.parser

logger = logging.getLogger(__name__)


class Identity(NamedTuple):
    """An authenticated principal, as issued by the identity provider."""

    user_id: str
    """Stable unique identifier for the principal."""

    email: str
    """The principal's primary e-mail address."""

    metadata: Optional[dict] = None
    """
    Attributes supplied at sign-up (e.g. the requested ``username``).

    ``None`` if none were supplied; see :attr:`attributes`.
    """

    created_at: Optional[datetime] = None
    """When the principal was created at the provider."""

    @property
    def attributes(self) -> dict:
        """A copy of :attr:`metadata`, empty if there is none."""
        return dict(self.metadata or {})

    def same_principal(self, other: Optional['Identity']) -> bool:
        """Whether ``other`` refers to the same principal as this identity."""
        return other is not None and other.user_id == self.user_id


class Profile(NamedTuple):
    """Application-level user record, keyed by :attr:`Identity.user_id`."""

    user_id: str
    """Same as the owning :attr:`Identity.user_id`."""

    username: str = ''
    """Slug-like public username."""

    full_name: str = ''
    """Display name."""

    bio: str = ''
    """Free-text biography."""

    location: str = ''
    """Free-text location."""

    website: str = ''
    """Homepage or external profile URL."""

    avatar_url: str = ''
    """Reference to the avatar image."""

    updated_at: Optional[datetime] = None
    """When the profile row was last written."""

    @property
    def display_name(self) -> str:
        """The full name if set, otherwise the username."""
        return self.full_name or self.username


class SessionState(NamedTuple):
    """Immutable snapshot of the current session."""

    identity: Optional[Identity] = None
    """The signed-in principal. ``None`` if there is no session."""

    profile: Optional[Profile] = None
    """
    Profile of :attr:`identity`.

    ``None`` if there is no identity, if its profile does not exist (yet), or
    if the profile could not be resolved.
    """

    ready: bool = False
    """Whether the current identity's reconciliation has settled."""

    @property
    def signed_in(self) -> bool:
        """Whether there is a signed-in principal."""
        return self.identity is not None


class events:
    """Session change notifications delivered by the identity provider."""

    INITIAL_SESSION = 'INITIAL_SESSION'
    SIGNED_IN = 'SIGNED_IN'
    SIGNED_OUT = 'SIGNED_OUT'
    TOKEN_REFRESHED = 'TOKEN_REFRESHED'
    USER_UPDATED = 'USER_UPDATED'


SessionHandler = Callable[[str, Optional[Identity]], None]
"""Signature of a session change handler: ``(event, identity)``."""


class Subscription(object):
    """Handle for a registered callback; :meth:`unsubscribe` stops delivery."""

    def __init__(self, cancel: Callable[[], Any]) -> None:
        self._cancel: Optional[Callable[[], Any]] = cancel

    @property
    def active(self) -> bool:
        """Whether the callback is still registered."""
        return self._cancel is not None

    def unsubscribe(self) -> None:
        """Stop delivery. Calling this more than once has no effect."""
        if self._cancel is not None:
            cancel, self._cancel = self._cancel, None
            cancel()


# Helpers and private functions.


def to_dict(obj: tuple) -> dict:
    """
    Generate a dict representation of a NamedTuple instance.

    This just uses the built-in ``_asdict`` method on the intance, but also
    calls this on any child NamedTuple instances (recursively) so that the
    entire tree is cast to ``dict``.

    Parameters
    ----------
    obj : tuple
        A NamedTuple instance.

    Returns
    -------
    dict

    """
    if not hasattr(obj, '_asdict'):  # NamedTuple-generated classes have this.
        return {}
    data = obj._asdict()  # type: ignore
    _data = {}

    def _cast(obj: Any) -> Any:
        if hasattr(obj, '_asdict'):
            obj = to_dict(obj)
        elif isinstance(obj, datetime):
            obj = obj.isoformat()
        elif isinstance(obj, list):
            obj = [_cast(o) for o in obj]
        elif isinstance(obj, dict):
            obj = {k: _cast(v) for k, v in obj.items()}
        return obj

    for key, value in data.items():
        _data[key] = _cast(value)
    return _data


def from_dict(cls: type, data: dict) -> Any:
    """
    Generate a NamedTuple instance from a dict, with recursion.

    This is the inverse of :func:`to_dict`. Keys in ``data`` that are not
    fields of ``cls`` are ignored, so that rows and token claims carrying
    extra columns can be loaded directly.

    Parameters
    ----------
    cls: type
        Any NamedTuple class.

    data: dict
        Data with which to instantiate ``cls`` and its children.

    Returns
    -------
    NamedTuple
        An instance of ``cls``.
    """
    _data = {}
    for field, field_type in get_type_hints(cls).items():
        if field not in cls._fields:  # type: ignore
            continue
        if field not in data:
            continue
        value = data[field]
        target_type = _get_cast_type(field_type, value)
        if target_type:
            value = target_type(value)
        _data[field] = value
    return cls(**_data)


def _is_a_namedtuple(field_type: Any) -> bool:
    """Determine whether or not a field type is a NamedTuple class."""
    return hasattr(field_type, '_fields')


def _is_nested_type(field_type: Any) -> bool:
    """Determine whether a typing class is nested (e.g. Optional[str])."""
    return get_origin(field_type) is Union


def _get_cast_type_for_str(field_type: Any) -> Optional[Callable]:
    """
    Determine the target type for a ``str`` value.

    Returns ``None`` if a suitable target cannot be determined.
    """
    if (field_type is datetime or
            (_is_nested_type(field_type)
             and datetime in get_args(field_type))):
        return dateutil.parser.parse
    return None


def _get_cast_type_for_dict(field_type: Any) -> Optional[Callable]:
    """
    Determine the NamedTuple target type for a ``dict`` value.

    Returns ``None`` if a suitable target cannot be determined.
    """
    if _is_a_namedtuple(field_type):
        return partial(from_dict, field_type)

    # There may be a NamedTuple hiding in an Optional.
    if _is_nested_type(field_type):
        for s_type in get_args(field_type):
            if s_type is dict:
                return None
            if _is_a_namedtuple(s_type):
                return partial(from_dict, s_type)
    return None


def _get_cast_type(field_type: Any, value: Any) -> Optional[Callable]:
    """Get a casting callable for a field type/value."""
    if type(value) is dict:
        return _get_cast_type_for_dict(field_type)
    if type(value) is str:
        return _get_cast_type_for_str(field_type)
    return None
