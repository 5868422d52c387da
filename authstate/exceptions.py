"""
Exceptions, and their classification.

Errors raised by collaborators are classified exactly once, by
:func:`classify`, at the point where the external call returns. Callers
branch on the classification rather than inspecting error messages.
"""

import asyncio


class AuthenticationFailed(RuntimeError):
    """Failed to authenticate user with provided credentials."""


class PasswordAuthenticationFailed(RuntimeError):
    """Password is not correct."""


class RegistrationFailed(RuntimeError):
    """Failed to register a new principal with the identity provider."""


class SignOutFailed(RuntimeError):
    """The identity provider refused or failed to end the session."""


class InvalidToken(RuntimeError):
    """A session token is malformed, forged or expired."""


class ProfileNotFound(RuntimeError):
    """No profile row exists for a valid identity."""


class Unavailable(RuntimeError):
    """A remote collaborator could not be reached."""


class Cancelled(RuntimeError):
    """An operation was abandoned (superseded, aborted, or torn down)."""


class NotSignedIn(RuntimeError):
    """An operation requires a signed-in principal and there is none."""


NOT_FOUND = 'not_found'
CANCELLED = 'cancelled'
TRANSIENT = 'transient'
UNEXPECTED = 'unexpected'


def classify(exc: BaseException) -> str:
    """
    Classify an error raised by a collaborator.

    Parameters
    ----------
    exc : :class:`BaseException`

    Returns
    -------
    str
        One of :const:`NOT_FOUND`, :const:`CANCELLED`, :const:`TRANSIENT`, or
        :const:`UNEXPECTED`.

    """
    if isinstance(exc, ProfileNotFound):
        return NOT_FOUND
    if isinstance(exc, (Cancelled, asyncio.CancelledError)):
        return CANCELLED
    if isinstance(exc, (Unavailable, ConnectionError, TimeoutError,
                        asyncio.TimeoutError, OSError)):
        return TRANSIENT
    return UNEXPECTED


def is_cancellation(exc: BaseException) -> bool:
    """Whether ``exc`` is an expected artifact of a teardown race."""
    return classify(exc) == CANCELLED
