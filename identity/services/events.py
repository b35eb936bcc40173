"""
Publishes identity events to downstream consumers.

Each topic is a Redis stream named after the topic. A message carries two
fields: ``key``, which consumers use to deduplicate (delivery is
at-least-once), and ``value``, the JSON-encoded event payload. A call
returns only once Redis has appended the message, so a successful
:meth:`EventEmitter.emit` is an acknowledgement.
"""

import json
from datetime import datetime
from typing import Any, Dict, Optional

import redis

from .. import logging
from ..context import get_application_config, get_application_global
from ..exceptions import EventDeliveryFailed, StoreUnavailable
from . import fake_server, is_set

logger = logging.getLogger(__name__)

ACCOUNT_CREATED = 'account_created'
ACCOUNT_DELETED = 'account_deleted'
EMAIL_VERIFICATION_DELIVERY_REQUEST = 'email_verification_delivery_request'
PASSWORD_CHANGE_DELIVERY_REQUEST = 'password_change_delivery_request'

TOPICS = (ACCOUNT_CREATED, ACCOUNT_DELETED,
          EMAIL_VERIFICATION_DELIVERY_REQUEST,
          PASSWORD_CHANGE_DELIVERY_REQUEST)


class EventEmitter(object):
    """Appends events to per-topic Redis streams."""

    def __init__(self, host: str, port: int, database: int,
                 password: Optional[str] = None,
                 socket_timeout: Optional[float] = None,
                 fake: bool = False, maxlen: Optional[int] = None) -> None:
        """Open the connection to the broker."""
        logger.debug('New event broker connection at %s, port %s', host, port)
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
        self.maxlen = maxlen

    def emit(self, topic: str, key: str, payload: Dict[str, Any]) -> str:
        """
        Publish an event and wait for the broker to accept it.

        Parameters
        ----------
        topic : str
            One of :data:`TOPICS`.
        key : str
            Deduplication key for consumers.
        payload : dict
            Must be JSON-serializable.

        Returns
        -------
        str
            The id the broker assigned to the message.

        Raises
        ------
        :class:`.EventDeliveryFailed`
        """
        if topic not in TOPICS:
            raise ValueError(f'Unknown topic: {topic}')
        fields = {'key': key, 'value': json.dumps(payload)}
        try:
            message_id = self.r.xadd(topic, fields, maxlen=self.maxlen,
                                     approximate=True)
        except redis.exceptions.RedisError as e:
            logger.error('Could not publish %s for %s: %s', topic, key, e)
            raise EventDeliveryFailed(f'Could not publish {topic}: {e}') \
                from e
        logger.debug('Published %s for %s as %s', topic, key, message_id)
        return message_id

    def account_created(self, account_id: str, email: str, username: str,
                        registration_date: datetime) -> str:
        """Announce a newly activated account."""
        return self.emit(ACCOUNT_CREATED, account_id, {
            'id': account_id,
            'email': email,
            'username': username,
            'registration_date': registration_date.isoformat()
        })

    def account_deleted(self, account_id: str, email: str) -> str:
        """Announce that an account is being deleted."""
        return self.emit(ACCOUNT_DELETED, account_id, {
            'email': email,
            'account_id': account_id
        })

    def email_verification_delivery_request(self, email: str, token: str,
                                            callback_url: str,
                                            ttl: int) -> str:
        """Ask for a verification link to be sent to ``email``."""
        return self.emit(EMAIL_VERIFICATION_DELIVERY_REQUEST, email,
                         _delivery_request(email, token, callback_url, ttl))

    def password_change_delivery_request(self, email: str, token: str,
                                         callback_url: str, ttl: int) -> str:
        """Ask for a change-password link to be sent to ``email``."""
        return self.emit(PASSWORD_CHANGE_DELIVERY_REQUEST, email,
                         _delivery_request(email, token, callback_url, ttl))

    def ping(self) -> None:
        """Check that the broker is reachable."""
        try:
            self.r.ping()
        except redis.exceptions.RedisError as e:
            raise StoreUnavailable(f'Event broker unreachable: {e}') from e


def _delivery_request(email: str, token: str, callback_url: str,
                      ttl: int) -> Dict[str, Any]:
    return {
        'email': email,
        'token': token,
        'callback_url': callback_url,
        'callback_url_ttl': ttl
    }


def init_app(app: object = None) -> None:
    """Set default configuration parameters for an application instance."""
    config = get_application_config(app)
    config.setdefault('EVENTS_REDIS_HOST', 'localhost')
    config.setdefault('EVENTS_REDIS_PORT', '6379')
    config.setdefault('EVENTS_REDIS_DATABASE', '3')
    config.setdefault('REDIS_SOCKET_TIMEOUT', '5')
    config.setdefault('REDIS_FAKE', False)


def get_emitter(app: object = None) -> EventEmitter:
    """Get a new :class:`.EventEmitter` using the app configuration."""
    config = get_application_config(app)
    timeout = config.get('REDIS_SOCKET_TIMEOUT')
    maxlen = config.get('EVENTS_STREAM_MAXLEN')
    return EventEmitter(
        host=config.get('EVENTS_REDIS_HOST', 'localhost'),
        port=int(config.get('EVENTS_REDIS_PORT', '6379')),
        database=int(config.get('EVENTS_REDIS_DATABASE', '3')),
        password=config.get('EVENTS_REDIS_PASSWORD'),
        socket_timeout=float(timeout) if timeout else None,
        fake=is_set(config.get('REDIS_FAKE')),
        maxlen=int(maxlen) if maxlen else None
    )


def current_emitter() -> EventEmitter:
    """Get/create the :class:`.EventEmitter` for this context."""
    g = get_application_global()
    if g is None:
        return get_emitter()
    if 'events' not in g:
        g.events = get_emitter()
    return g.events
