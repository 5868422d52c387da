"""Functions for working with session access tokens."""

from datetime import datetime, timedelta

import jwt
from pytz import UTC

from . import domain
from .exceptions import InvalidToken


def encode(identity: domain.Identity, secret: str,
           duration: int = 7200) -> str:
    """Encode an identity as a signed JWT that expires after ``duration``."""
    claims = domain.to_dict(identity)
    now = datetime.now(tz=UTC)
    claims['iat'] = int(now.timestamp())
    claims['exp'] = int((now + timedelta(seconds=duration)).timestamp())
    return jwt.encode(claims, secret, algorithm='HS256')


def decode(token: str, secret: str) -> domain.Identity:
    """Decode an access token to get the identity it was issued for."""
    try:
        data: dict = jwt.decode(token, secret, algorithms=['HS256'])
    except jwt.exceptions.ExpiredSignatureError as e:
        raise InvalidToken('Token has expired') from e
    except jwt.exceptions.InvalidTokenError as e:
        raise InvalidToken('Not a valid token') from e

    return domain.from_dict(domain.Identity, data)
