"""Session context configuration."""
import secrets
import os

#################### Profile reconciliation ####################
PROFILE_FETCH_TIMEOUT = os.environ.get('PROFILE_FETCH_TIMEOUT', '5')
"""Deadline, in seconds, for a single profile lookup.

When the deadline passes first the profile is treated as absent and the
session is marked ready; the slow lookup is left to finish and its result is
ignored. The only retry path is an explicit ``refresh_profile``.
"""

PROFILE_DATABASE_URI = os.environ.get('PROFILE_DATABASE_URI',
                                      'sqlite:///profiles.db')
"""SQLAlchemy URI of the database holding the ``profiles`` table."""


#################### Identity provider ####################
JWT_SECRET = os.environ.get('JWT_SECRET', secrets.token_urlsafe(16))
"""Secret used to sign session access tokens."""

SESSION_DURATION = os.environ.get('SESSION_DURATION', '7200')
"""Lifetime of an access token, in seconds."""


#################### Logging ####################
LOG_LEVEL = os.environ.get('LOG_LEVEL', 'INFO')
LOG_JSON = bool(int(os.environ.get('LOG_JSON', '1')))
"""Emit structured JSON log records; set to ``0`` for plain text."""
