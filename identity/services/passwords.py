"""Adaptive password hashing with bcrypt."""

import bcrypt

from ..context import get_application_config, get_application_global
from ..exceptions import HashingFailed

MAX_PASSWORD_BYTES = 72
"""bcrypt only reads this many bytes of its input."""


def _encode(password: str) -> bytes:
    return password.encode('utf-8')[:MAX_PASSWORD_BYTES]


class PasswordHasher(object):
    """Hashes and checks passwords at a fixed bcrypt cost."""

    def __init__(self, cost: int = 12) -> None:
        if not 4 <= cost <= 31:
            raise ValueError(f'bcrypt cost must be between 4 and 31: {cost}')
        self.cost = cost

    def hash(self, password: str) -> str:
        """
        Generate a salted hash of ``password``.

        Raises
        ------
        :class:`.HashingFailed`
            If bcrypt produces no output.
        """
        try:
            hashed = bcrypt.hashpw(_encode(password),
                                   bcrypt.gensalt(rounds=self.cost))
        except ValueError as e:
            raise HashingFailed(f'Could not hash password: {e}') from e
        if not hashed:
            raise HashingFailed('Hasher returned no output')
        return hashed.decode('utf-8')

    def verify(self, password: str, hashed: str) -> bool:
        """Check ``password`` against a hash made by :meth:`hash`."""
        try:
            return bcrypt.checkpw(_encode(password), hashed.encode('utf-8'))
        except ValueError as e:
            raise HashingFailed(f'Malformed password hash: {e}') from e


def init_app(app: object = None) -> None:
    """Set default configuration parameters for an application instance."""
    config = get_application_config(app)
    config.setdefault('BCRYPT_COST', '12')


def get_hasher(app: object = None) -> PasswordHasher:
    """Get a new :class:`.PasswordHasher` using the app configuration."""
    config = get_application_config(app)
    return PasswordHasher(int(config.get('BCRYPT_COST', '12')))


def current_hasher() -> PasswordHasher:
    """Get/create the :class:`.PasswordHasher` for this context."""
    g = get_application_global()
    if g is None:
        return get_hasher()
    if 'hasher' not in g:
        g.hasher = get_hasher()
    return g.hasher

