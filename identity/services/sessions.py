"""
Provides the distributed session store.

Sessions are kept in Redis under two kinds of key:

- the session id, holding the JSON-serialized :class:`.Session`;
- ``account_<account_id>``, a set of the ids of that account's sessions.

Both expire after the session TTL, but independently of each other, so the
per-account set may still mention sessions that have already expired.
Every read that enumerates a set probes the sessions it mentions and removes
the ones that are gone before returning, so the set never hands out dangling
ids.
"""

import json
from datetime import datetime
from typing import Dict, Iterable, List, Optional

import redis

from .. import logging
from ..context import get_application_config, get_application_global
from ..domain import Session, SessionInfo, session_from_dict, session_info, \
    to_dict
from ..exceptions import SessionCreationFailed, SessionDeletionFailed, \
    StoreUnavailable, UnknownSession
from . import fake_server, is_set

logger = logging.getLogger(__name__)


def account_key(account_id: str) -> str:
    """Get the key of the set of session ids for an account."""
    return f'account_{account_id}'


class SessionStore(object):
    """
    Manages a connection to the Redis instance that holds sessions.

    In fact, the StrictRedis instance is thread safe and connections are
    attached at the time a command is executed. This class simply provides a
    container for configuration.
    """

    def __init__(self, host: str, port: int, database: int,
                 password: Optional[str] = None,
                 socket_timeout: Optional[float] = None,
                 fake: bool = False) -> None:
        """Open the connection to Redis."""
        logger.debug('New session store at %s, port %s', host, port)
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

    def _encode(self, session: Session) -> str:
        return json.dumps(to_dict(session))

    def _decode(self, raw: str) -> Session:
        try:
            return session_from_dict(json.loads(raw))
        except (ValueError, KeyError, TypeError) as e:
            raise StoreUnavailable(f'Malformed session data: {e}') from e

    def set_session(self, session: Session, ttl: int) -> None:
        """
        Store a session and index it under its account.

        Parameters
        ----------
        session : :class:`.Session`
        ttl : int
            Seconds until the session, and the account's session set, expire.

        Raises
        ------
        :class:`.SessionCreationFailed`
        """
        key = account_key(session.account_id)
        try:
            pipe = self.r.pipeline()
            pipe.set(session.session_id, self._encode(session), ex=ttl)
            pipe.sadd(key, session.session_id)
            pipe.expire(key, ttl)
            pipe.execute()
        except redis.exceptions.ConnectionError as e:
            raise SessionCreationFailed(f'Connection failed: {e}') from e
        except redis.exceptions.RedisError as e:
            raise SessionCreationFailed(f'Failed to create: {e}') from e

    def get_session(self, session_id: str) -> Session:
        """
        Get a session by id.

        Raises
        ------
        :class:`.UnknownSession`
            If the session does not exist or has expired.
        :class:`.StoreUnavailable`
        """
        try:
            raw: Optional[str] = self.r.get(session_id)
        except redis.exceptions.RedisError as e:
            raise StoreUnavailable(f'Session lookup failed: {e}') from e
        if raw is None:
            raise UnknownSession(f'Failed to find session {session_id}')
        return self._decode(raw)

    def _live_sessions(self, account_id: str) -> Dict[str, str]:
        """Get the raw values of an account's sessions, pruning stale ids."""
        key = account_key(account_id)
        try:
            session_ids: List[str] = sorted(self.r.smembers(key))
            if not session_ids:
                return {}
            values = self.r.mget(session_ids)
            live = {sid: raw for sid, raw in zip(session_ids, values)
                    if raw is not None}
            stale = [sid for sid in session_ids if sid not in live]
            if stale:
                logger.debug('Pruning %i expired sessions for account %s',
                             len(stale), account_id)
                self.r.srem(key, *stale)
        except redis.exceptions.RedisError as e:
            raise StoreUnavailable(f'Session lookup failed: {e}') from e
        return live

    def get_session_ids(self, account_id: str) -> List[str]:
        """Get the ids of the live sessions of an account."""
        return list(self._live_sessions(account_id))

    def get_sessions_for_account(self, account_id: str) \
            -> Dict[str, SessionInfo]:
        """Get the live sessions of an account, keyed by session id."""
        return {sid: session_info(self._decode(raw))
                for sid, raw in self._live_sessions(account_id).items()}

    def update_last_activity(self, session: Session, now: datetime,
                             ttl: int) -> Session:
        """
        Record activity on a session and extend its lifetime.

        The stored ``last_activity`` never moves backwards, and a session
        that has been deleted in the meantime is not brought back.

        Returns
        -------
        :class:`.Session`
            The session as stored.

        Raises
        ------
        :class:`.UnknownSession`
            If the session no longer exists.
        :class:`.StoreUnavailable`
        """
        key = account_key(session.account_id)

        def _refresh(pipe: redis.client.Pipeline) -> Session:
            raw = pipe.get(session.session_id)
            if raw is None:
                raise UnknownSession(
                    f'Failed to find session {session.session_id}'
                )
            current = self._decode(raw)
            refreshed = current._replace(
                last_activity=max(current.last_activity, now)
            )
            pipe.multi()
            pipe.set(session.session_id, self._encode(refreshed), ex=ttl,
                     xx=True)
            pipe.sadd(key, session.session_id)
            pipe.expire(key, ttl)
            return refreshed

        try:
            return self.r.transaction(_refresh, session.session_id,
                                      value_from_callable=True)
        except redis.exceptions.RedisError as e:
            raise StoreUnavailable(f'Could not refresh session: {e}') from e

    def terminate_sessions(self, session_ids: Iterable[str],
                           account_id: str) -> List[str]:
        """
        Delete those of ``session_ids`` that belong to the account.

        Ids that are not in the account's session set are ignored.

        Returns
        -------
        list
            The ids that were deleted.
        """
        key = account_key(account_id)
        requested = list(dict.fromkeys(session_ids))

        def _terminate(pipe: redis.client.Pipeline) -> List[str]:
            owned = pipe.smembers(key)
            targets = [sid for sid in requested if sid in owned]
            if targets:
                pipe.multi()
                pipe.delete(*targets)
                pipe.srem(key, *targets)
            return targets

        try:
            return self.r.transaction(_terminate, key,
                                      value_from_callable=True)
        except redis.exceptions.ConnectionError as e:
            raise SessionDeletionFailed(f'Connection failed: {e}') from e
        except redis.exceptions.RedisError as e:
            raise SessionDeletionFailed(f'Failed to delete: {e}') from e

    def terminate_all_sessions(self, account_id: str) -> List[str]:
        """
        Delete every session of an account, and its session set.

        Raises
        ------
        :class:`.UnknownSession`
            If the account has no sessions.
        :class:`.SessionDeletionFailed`
        """
        key = account_key(account_id)

        def _terminate(pipe: redis.client.Pipeline) -> List[str]:
            session_ids = sorted(pipe.smembers(key))
            if not session_ids:
                raise UnknownSession(f'No sessions for account {account_id}')
            pipe.multi()
            pipe.delete(*session_ids, key)
            return session_ids

        try:
            return self.r.transaction(_terminate, key,
                                      value_from_callable=True)
        except redis.exceptions.ConnectionError as e:
            raise SessionDeletionFailed(f'Connection failed: {e}') from e
        except redis.exceptions.RedisError as e:
            raise SessionDeletionFailed(f'Failed to delete: {e}') from e

    def ping(self) -> None:
        """Check that Redis is reachable."""
        try:
            self.r.ping()
        except redis.exceptions.RedisError as e:
            raise StoreUnavailable(f'Session store unreachable: {e}') from e


def init_app(app: object = None) -> None:
    """Set default configuration parameters for an application instance."""
    config = get_application_config(app)
    config.setdefault('SESSIONS_REDIS_HOST', 'localhost')
    config.setdefault('SESSIONS_REDIS_PORT', '6379')
    config.setdefault('SESSIONS_REDIS_DATABASE', '2')
    config.setdefault('SESSION_TTL', '36000')
    config.setdefault('REDIS_SOCKET_TIMEOUT', '5')
    config.setdefault('REDIS_FAKE', False)


def get_session_store(app: object = None) -> SessionStore:
    """Get a new :class:`.SessionStore` using the app configuration."""
    config = get_application_config(app)
    timeout = config.get('REDIS_SOCKET_TIMEOUT')
    return SessionStore(
        host=config.get('SESSIONS_REDIS_HOST', 'localhost'),
        port=int(config.get('SESSIONS_REDIS_PORT', '6379')),
        database=int(config.get('SESSIONS_REDIS_DATABASE', '2')),
        password=config.get('SESSIONS_REDIS_PASSWORD'),
        socket_timeout=float(timeout) if timeout else None,
        fake=is_set(config.get('REDIS_FAKE'))
    )


def current_session_store() -> SessionStore:
    """Get/create the :class:`.SessionStore` for this context."""
    g = get_application_global()
    if g is None:
        return get_session_store()
    if 'sessions' not in g:
        g.sessions = get_session_store()
    return g.sessions
