"""Asynchronous tasks."""

from datetime import datetime
from typing import List

import dateutil.parser
from celery import shared_task
from kombu.exceptions import OperationalError
from retry.api import retry_call

from . import logging
from .context import get_application_config
from .domain import Session, session_from_dict, to_dict
from .exceptions import IdentityError, Internal, NotFound
from .services import events
from .services.events import EventEmitter, current_emitter
from .services.sessions import current_session_store

logger = logging.getLogger(__name__)


@shared_task
def refresh_last_activity(session: dict, now: str) -> None:
    """
    Record activity on a session and extend its lifetime.

    Failures are logged and otherwise ignored; an idle session simply
    expires sooner.

    Parameters
    ----------
    session : dict
        A :class:`.Session` as produced by :func:`.domain.to_dict`.
    now : str
        ISO 8601 time of the activity.
    """
    ttl = int(get_application_config().get('SESSION_TTL', 36000))
    try:
        current_session_store().update_last_activity(
            session_from_dict(session), dateutil.parser.parse(now), ttl
        )
    except IdentityError as e:
        logger.error('Could not refresh session %s: %s',
                     session.get('session_id'), e)


@shared_task
def terminate_all_sessions(account_id: str) -> None:
    """
    Remove every session of a deleted account, retrying on failure.

    Attempts are made up to ``NUM_RETRIES_FOR_TERMINATE_SESSIONS`` times,
    ``RETRY_SLEEP_FOR_TERMINATE_SESSIONS`` seconds apart. An account without
    sessions counts as done. If every attempt fails the sessions are left to
    expire.
    """
    config = get_application_config()
    tries = max(1, int(config.get('NUM_RETRIES_FOR_TERMINATE_SESSIONS', 3)))
    delay = float(config.get('RETRY_SLEEP_FOR_TERMINATE_SESSIONS', 5))
    sessions = current_session_store()
    try:
        terminated: List[str] = retry_call(
            sessions.terminate_all_sessions, fargs=[account_id],
            exceptions=Internal, tries=tries, delay=delay, logger=logger
        )
    except NotFound:
        logger.debug('No sessions left for account %s', account_id)
        return
    except Internal as e:
        logger.error('Gave up terminating sessions of account %s after %i '
                     'attempts: %s', account_id, tries, e)
        return
    logger.info('Terminated %i sessions of account %s', len(terminated),
                account_id)


def publish_delivery_request(emitter: EventEmitter, topic: str, email: str,
                             token: str, callback_url: str, ttl: int) -> None:
    """
    Ask for a verification or change-password link to be sent.

    Broker failures are logged; the caller can always request another link.

    Raises
    ------
    ValueError
        If ``topic`` is not a token delivery topic.
    """
    publishers = {
        events.EMAIL_VERIFICATION_DELIVERY_REQUEST:
            emitter.email_verification_delivery_request,
        events.PASSWORD_CHANGE_DELIVERY_REQUEST:
            emitter.password_change_delivery_request
    }
    if topic not in publishers:
        raise ValueError(f'Not a token delivery topic: {topic}')
    try:
        publishers[topic](email, token, callback_url, ttl)
    except Internal as e:
        logger.error('Token delivery request for %s not published: %s',
                     email, e)


@shared_task
def deliver_token(topic: str, email: str, token: str, callback_url: str,
                  ttl: int) -> None:
    """Publish a token delivery request from a worker."""
    publish_delivery_request(current_emitter(), topic, email, token,
                             callback_url, ttl)


class CelerySchedule(object):
    """Hands coordinator follow-up work to the Celery workers."""

    def refresh_last_activity(self, session: Session, now: datetime) -> None:
        """Queue :func:`refresh_last_activity`."""
        try:
            refresh_last_activity.delay(to_dict(session), now.isoformat())
        except OperationalError as e:
            logger.error('Could not queue refresh of session %s: %s',
                         session.session_id, e)

    def terminate_all_sessions(self, account_id: str) -> None:
        """Queue :func:`terminate_all_sessions`."""
        try:
            terminate_all_sessions.delay(account_id)
        except OperationalError as e:
            logger.error('Could not queue session cleanup for account %s: %s',
                         account_id, e)

    def deliver_token(self, topic: str, email: str, token: str,
                      callback_url: str, ttl: int) -> None:
        """Queue :func:`deliver_token`."""
        try:
            deliver_token.delay(topic, email, token, callback_url, ttl)
        except OperationalError as e:
            logger.error('Could not queue token delivery for %s: %s', email,
                         e)
