"""
Pending-registration store.

Holds ``email -> {username, password_hash}`` for accounts that have been
requested but not yet verified. Entries expire on their own after the
configured TTL; an expired registration is indistinguishable from one that
never existed.
"""

import json
from typing import Optional

import redis

from .. import logging
from ..context import get_application_config, get_application_global
from ..domain import PendingRegistration
from ..exceptions import NoSuchRegistration, StoreUnavailable
from . import fake_server, is_set

logger = logging.getLogger(__name__)


class RegistrationStore(object):
    """
    Manages a connection to the Redis instance that holds registrations.

    The StrictRedis instance is thread safe; connections are attached at the
    time a command is executed.
    """

    def __init__(self, host: str, port: int, database: int,
                 password: Optional[str] = None,
                 socket_timeout: Optional[float] = None,
                 fake: bool = False) -> None:
        """Open the connection to Redis."""
        logger.debug('New registration store at %s, port %s', host, port)
        if fake:
            import fakeredis
            self.r = fakeredis.FakeStrictRedis(server=fake_server(),
                                               db=database,
                                               decode_responses=True)
        else:
            self.r = redis.StrictRedis(host=host, port=port, db=database,
                                       password=password,
                                       socket_timeout=socket_timeout,
                                       decode_responses=True)

    def exists(self, email: str) -> bool:
        """Determine whether a registration is pending for ``email``."""
        try:
            return bool(self.r.exists(email))
        except redis.exceptions.RedisError as e:
            raise StoreUnavailable(f'Registration lookup failed: {e}') from e

    def set(self, email: str, registration: PendingRegistration,
            ttl: int) -> None:
        """
        Hold a registration for ``ttl`` seconds.

        An existing registration for the same email is replaced.
        """
        value = json.dumps({'username': registration.username,
                            'password_hash': registration.password_hash})
        try:
            self.r.set(email, value, ex=ttl)
        except redis.exceptions.RedisError as e:
            raise StoreUnavailable(f'Could not store registration: {e}') \
                from e

    def get(self, email: str) -> PendingRegistration:
        """
        Get the pending registration for ``email``.

        Raises
        ------
        :class:`.NoSuchRegistration`
            If there is none, or it has expired.
        :class:`.StoreUnavailable`
        """
        try:
            raw: Optional[str] = self.r.get(email)
        except redis.exceptions.RedisError as e:
            raise StoreUnavailable(f'Registration lookup failed: {e}') from e
        if raw is None:
            raise NoSuchRegistration(f'No registration for {email}',
                                     'registration not found or expired')
        try:
            data = json.loads(raw)
            return PendingRegistration(username=data['username'],
                                       password_hash=data['password_hash'])
        except (ValueError, KeyError, TypeError) as e:
            raise StoreUnavailable(f'Malformed registration for {email}') \
                from e

    def delete(self, email: str) -> None:
        """Drop the registration for ``email``, if there is one."""
        try:
            self.r.delete(email)
        except redis.exceptions.RedisError as e:
            raise StoreUnavailable(f'Could not delete registration: {e}') \
                from e

    def ping(self) -> None:
        """Check that Redis is reachable."""
        try:
            self.r.ping()
        except redis.exceptions.RedisError as e:
            raise StoreUnavailable(f'Registration store unreachable: {e}') \
                from e


def init_app(app: object = None) -> None:
    """Set default configuration parameters for an application instance."""
    config = get_application_config(app)
    config.setdefault('REGISTRATION_REDIS_HOST', 'localhost')
    config.setdefault('REGISTRATION_REDIS_PORT', '6379')
    config.setdefault('REGISTRATION_REDIS_DATABASE', '1')
    config.setdefault('REDIS_SOCKET_TIMEOUT', '5')
    config.setdefault('REDIS_FAKE', False)


def get_registration_store(app: object = None) -> RegistrationStore:
    """Get a new :class:`.RegistrationStore` using the app configuration."""
    config = get_application_config(app)
    timeout = config.get('REDIS_SOCKET_TIMEOUT')
    return RegistrationStore(
        host=config.get('REGISTRATION_REDIS_HOST', 'localhost'),
        port=int(config.get('REGISTRATION_REDIS_PORT', '6379')),
        database=int(config.get('REGISTRATION_REDIS_DATABASE', '1')),
        password=config.get('REGISTRATION_REDIS_PASSWORD'),
        socket_timeout=float(timeout) if timeout else None,
        fake=is_set(config.get('REDIS_FAKE'))
    )


def current_registration_store() -> RegistrationStore:
    """Get/create the :class:`.RegistrationStore` for this context."""
    g = get_application_global()
    if g is None:
        return get_registration_store()
    if 'registrations' not in g:
        g.registrations = get_registration_store()
    return g.registrations
