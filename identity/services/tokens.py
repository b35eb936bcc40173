"""
Short-lived signed tokens for out-of-band flows.

Tokens are HMAC-signed JWTs that carry a single payload string (the email
address of the recipient) in the ``value`` claim, together with ``iat`` and
``exp``. Verify-account and change-password tokens are issued with
different secrets and lifetimes; see :class:`TokenPolicy`.
"""

from datetime import datetime, timedelta
from typing import NamedTuple, Optional

import jwt
from pytz import UTC

from ..context import get_application_config
from ..exceptions import ExpiredToken, InvalidToken

ALGORITHM = 'HS256'
ACCEPTED_ALGORITHMS = ['HS256', 'HS384', 'HS512']
PAYLOAD_CLAIM = 'value'


class TokenPolicy(NamedTuple):
    """The secret and lifetime for one kind of token."""

    secret: str
    ttl: int
    """Seconds."""


def issue(payload: str, secret: str, ttl: int,
          now: Optional[datetime] = None) -> str:
    """
    Issue a signed token carrying ``payload``.

    Parameters
    ----------
    payload : str
    secret : str
        HMAC signing secret.
    ttl : int
        Seconds until the token expires.
    now : datetime
        Issue time; defaults to the current time.

    Returns
    -------
    str
    """
    if now is None:
        now = datetime.now(tz=UTC)
    claims = {
        PAYLOAD_CLAIM: payload,
        'iat': now,
        'exp': now + timedelta(seconds=ttl)
    }
    return jwt.encode(claims, secret, algorithm=ALGORITHM)


def parse(token: str, secret: str) -> str:
    """
    Verify a token and get its payload.

    Raises
    ------
    :class:`.ExpiredToken`
        If the token has expired.
    :class:`.InvalidToken`
        If the signature does not match, the token is malformed, or it was
        signed with anything but an HMAC algorithm.
    """
    try:
        claims = jwt.decode(token, secret, algorithms=ACCEPTED_ALGORITHMS,
                            options={'require': ['exp', 'iat',
                                                 PAYLOAD_CLAIM]})
    except jwt.exceptions.ExpiredSignatureError as e:
        raise ExpiredToken('Token has expired',
                           'invalid or expired token') from e
    except jwt.exceptions.PyJWTError as e:
        raise InvalidToken(f'Not a valid token: {e}',
                           'invalid or expired token') from e
    payload = claims[PAYLOAD_CLAIM]
    if not isinstance(payload, str):
        raise InvalidToken('Token payload is not a string',
                           'invalid or expired token')
    return payload


def verify_account_policy(app: object = None) -> TokenPolicy:
    """Get the policy for verify-account tokens from the configuration."""
    config = get_application_config(app)
    return TokenPolicy(secret=config['VERIFY_ACCOUNT_TOKEN_SECRET'],
                       ttl=int(config.get('VERIFY_ACCOUNT_TOKEN_TTL', 3600)))


def change_password_policy(app: object = None) -> TokenPolicy:
    """Get the policy for change-password tokens from the configuration."""
    config = get_application_config(app)
    return TokenPolicy(secret=config['CHANGE_PASSWORD_TOKEN_SECRET'],
                       ttl=int(config.get('CHANGE_PASSWORD_TOKEN_TTL', 900)))
