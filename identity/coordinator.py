"""
The identity state machine.

:class:`IdentityCoordinator` composes the password hasher, the token codec,
the three stores and the event emitter into the operations offered by the
service. Within an operation, calls happen in a fixed order, and that order
matters:

- Account creation and deletion are emitted **before** they are committed.
  The accounts store hands back a :class:`.PendingTransaction`; the event is
  published while it is open, and the transaction is committed only once
  the broker has accepted the event. If publishing fails, the transaction
  is rolled back, so a consumer never observes an account (or its absence)
  without having been told about it first.
- Cleanup that is not needed for correctness (dropping the pending
  registration after activation, refreshing session activity, removing the
  sessions of a deleted account) is logged on failure and never reported to
  the caller. Expiry in the stores is the backstop.

Every operation takes an optional :class:`.Deadline`, which is checked
before each call to a collaborator. When the deadline has a time limit, each
call runs on a worker thread and is abandoned once the limit passes; a
two-phase handle returned by an abandoned call is rolled back as soon as it
arrives.
"""

import ipaddress
import uuid
from concurrent import futures
from datetime import datetime
from typing import Any, Callable, Dict, List, NamedTuple, Optional

from . import logging
from .context import get_application_config
from .deadline import Deadline
from .domain import Account, PendingRegistration, Session, SessionInfo, now
from .exceptions import Canceled, Conflict, DeadlineExceeded, Internal, \
    InvalidArgument, NoSuchAccount, NoSuchRegistration, Unauthenticated, \
    UnknownSession
from .services import is_set, tokens
from .services.database import AccountsStore, PendingTransaction
from .services.events import EMAIL_VERIFICATION_DELIVERY_REQUEST, \
    EventEmitter, PASSWORD_CHANGE_DELIVERY_REQUEST
from .services.passwords import PasswordHasher
from .services.registrations import RegistrationStore
from .services.sessions import SessionStore
from .services.tokens import TokenPolicy

logger = logging.getLogger(__name__)

PASSWORD_LENGTH = (6, 32)
USERNAME_LENGTH = (3, 32)
EMAIL_LENGTH = (4, 100)

INVALID_CREDENTIALS = 'invalid login or password'
INVALID_SESSION = 'invalid session or machine id'

POLL_INTERVAL = 0.05
"""Seconds between cancellation checks while a call is in flight."""

_executor = futures.ThreadPoolExecutor(max_workers=32,
                                       thread_name_prefix='identity-call')


class Settings(NamedTuple):
    """Lifetimes, secrets and switches used by the coordinator."""

    session_ttl: int
    nonactivated_account_ttl: int
    verify_account: TokenPolicy
    change_password: TokenPolicy
    terminate_sessions_on_password_change: bool = False


def get_settings(app: object = None) -> Settings:
    """Read :class:`.Settings` from the application configuration."""
    config = get_application_config(app)
    return Settings(
        session_ttl=int(config.get('SESSION_TTL', 36000)),
        nonactivated_account_ttl=int(
            config.get('NONACTIVATED_ACCOUNT_TTL', 86400)
        ),
        verify_account=tokens.verify_account_policy(app),
        change_password=tokens.change_password_policy(app),
        terminate_sessions_on_password_change=is_set(
            config.get('TERMINATE_SESSIONS_ON_PASSWORD_CHANGE', False)
        )
    )


def _check_length(name: str, value: str, bounds: tuple) -> None:
    low, high = bounds
    if not low <= len(value) <= high:
        message = f'{name} must be between {low} and {high} characters'
        raise InvalidArgument(message, message)


class IdentityCoordinator(object):
    """
    Runs account and session operations against the backing stores.

    ``scheduler`` runs work after an operation has returned. It must provide
    ``refresh_last_activity(session, now)``,
    ``terminate_all_sessions(account_id)`` and
    ``deliver_token(topic, email, token, callback_url, ttl)``, and must not
    raise; see :class:`identity.tasks.CelerySchedule`.
    """

    def __init__(self, accounts: AccountsStore,
                 registrations: RegistrationStore, sessions: SessionStore,
                 events: EventEmitter, hasher: PasswordHasher,
                 scheduler: Any, settings: Settings,
                 clock: Callable[[], datetime] = now,
                 executor: Optional[futures.Executor] = None) -> None:
        self.accounts = accounts
        self.registrations = registrations
        self.sessions = sessions
        self.events = events
        self.hasher = hasher
        self.scheduler = scheduler
        self.settings = settings
        self.clock = clock
        self.executor = executor or _executor

    def _call(self, deadline: Deadline, func: Callable, *args: Any) -> Any:
        """Call a collaborator, giving up when the deadline passes."""
        deadline.check()
        try:
            if deadline.remaining() is None:
                return func(*args)
            return self._bounded(deadline, func, *args)
        except Internal as e:
            if deadline.canceled:
                raise Canceled('context canceled') from e
            if deadline.expired:
                raise DeadlineExceeded('context deadline exceeded') from e
            raise

    def _bounded(self, deadline: Deadline, func: Callable, *args: Any) -> Any:
        future = self.executor.submit(func, *args)
        while True:
            remaining = deadline.remaining() or 0.0
            try:
                return future.result(timeout=min(remaining, POLL_INTERVAL))
            except futures.TimeoutError:
                if deadline.canceled or deadline.expired:
                    future.cancel()
                    future.add_done_callback(_abandon)
                    deadline.check()

    def create_account(self, email: str, username: str, password: str,
                       repeat_password: Optional[str] = None,
                       deadline: Optional[Deadline] = None) -> None:
        """
        Hold a new registration until its email address is verified.

        Raises
        ------
        :class:`.InvalidArgument`
            If the inputs are out of bounds or the passwords do not match.
        :class:`.Conflict`
            If the email address is already activated or pending.
        """
        deadline = deadline or Deadline()
        _check_length('email', email, EMAIL_LENGTH)
        _check_length('username', username, USERNAME_LENGTH)
        _check_length('password', password, PASSWORD_LENGTH)
        if repeat_password is not None and repeat_password != password:
            raise InvalidArgument('passwords do not match',
                                  'passwords do not match')

        if self._call(deadline, self.accounts.exists_by_email, email):
            raise Conflict('Email already activated: %s' % email,
                           'a user with this email address already exists')
        if self._call(deadline, self.registrations.exists, email):
            raise Conflict('Email already pending: %s' % email,
                           'a user with this email address already exists')

        password_hash = self._call(deadline, self.hasher.hash, password)
        registration = PendingRegistration(username=username,
                                           password_hash=password_hash)
        self._call(deadline, self.registrations.set, email, registration,
                   self.settings.nonactivated_account_ttl)
        logger.info('Registration pending for %s', email)

    def request_account_verification_token(
            self, email: str, url: str,
            deadline: Optional[Deadline] = None) -> None:
        """
        Ask for a verification link to be sent to a pending registration.

        Raises
        ------
        :class:`.InvalidArgument`
            If the account is already activated.
        :class:`.NoSuchRegistration`
            If nothing is pending for ``email``.
        """
        deadline = deadline or Deadline()
        if self._call(deadline, self.accounts.exists_by_email, email):
            raise InvalidArgument('Account already activated: %s' % email,
                                  'account already activated')
        if not self._call(deadline, self.registrations.exists, email):
            raise NoSuchRegistration(f'No registration for {email}',
                                     'registration not found or expired')

        policy = self.settings.verify_account
        token = tokens.issue(email, policy.secret, policy.ttl)
        deadline.check()
        self._deliver(EMAIL_VERIFICATION_DELIVERY_REQUEST,
                      email, token, url, policy.ttl)

    def verify_account(self, token: str,
                       deadline: Optional[Deadline] = None) -> None:
        """
        Activate the pending registration named by a verification token.

        Raises
        ------
        :class:`.InvalidToken`
        :class:`.NoSuchRegistration`
        :class:`.Internal`
            If the account could not be created or announced; nothing is
            committed in that case.
        """
        deadline = deadline or Deadline()
        email = tokens.parse(token, self.settings.verify_account.secret)
        registration = self._call(deadline, self.registrations.get, email)

        registration_date = self.clock()
        account = Account(email=email,
                          password_hash=registration.password_hash,
                          registration_date=registration_date)
        handle, account_id = self._call(deadline,
                                        self.accounts.create_account,
                                        account)
        with handle:
            self._call(deadline, self.events.account_created, account_id,
                       email, registration.username, registration_date)
            deadline.check()
            handle.commit()
        logger.info('Activated account %s', account_id)

        try:
            self.registrations.delete(email)
        except Internal as e:
            logger.error('Could not drop registration for activated '
                         'account %s: %s', account_id, e)

    def sign_in(self, email: str, password: str, client_ip: str,
                machine_id: str, deadline: Optional[Deadline] = None) -> str:
        """
        Start a session for an activated account.

        Returns
        -------
        str
            The new session id.

        Raises
        ------
        :class:`.InvalidArgument`
            If ``client_ip`` is not an IP address, or the password is wrong.
        :class:`.NoSuchAccount`
        :class:`.Unauthenticated`
            If no machine id is given.
        """
        deadline = deadline or Deadline()
        if not machine_id:
            raise Unauthenticated('no machine id provided',
                                  'no machine id provided')
        try:
            ipaddress.ip_address(client_ip)
        except ValueError as e:
            raise InvalidArgument(f'Not an IP address: {client_ip!r}',
                                  'invalid client ip') from e

        account = self._call(deadline, self.accounts.get_by_email, email)
        if not self._call(deadline, self.hasher.verify, password,
                          account.password_hash):
            raise InvalidArgument(INVALID_CREDENTIALS, INVALID_CREDENTIALS)

        session = Session(session_id=str(uuid.uuid4()),
                          account_id=account.id,
                          machine_id=machine_id,
                          client_ip=client_ip,
                          last_activity=self.clock())
        self._call(deadline, self.sessions.set_session, session,
                   self.settings.session_ttl)
        logger.info('Started session for account %s', account.id)
        return session.session_id

    def check_session(self, session_id: str, machine_id: str,
                      deadline: Optional[Deadline] = None) -> Session:
        """
        Get the session for a request, bound to the caller's machine.

        Raises
        ------
        :class:`.Unauthenticated`
            If either id is missing, the session does not exist, or it was
            started on another machine.
        """
        deadline = deadline or Deadline()
        if not session_id:
            raise Unauthenticated('no session id provided',
                                  'no session id provided')
        if not machine_id:
            raise Unauthenticated('no machine id provided',
                                  'no machine id provided')
        try:
            session: Session = self._call(deadline, self.sessions.get_session,
                                          session_id)
        except UnknownSession as e:
            raise Unauthenticated(f'No such session: {session_id}',
                                  INVALID_SESSION) from e
        if session.machine_id != machine_id:
            raise Unauthenticated(f'Machine mismatch for {session_id}',
                                  INVALID_SESSION)
        return session

    def _refresh_later(self, session: Session) -> None:
        self.scheduler.refresh_last_activity(session, self.clock())

    def get_account_id(self, session_id: str, machine_id: str,
                       deadline: Optional[Deadline] = None) -> str:
        """Get the account that owns the session."""
        session = self.check_session(session_id, machine_id, deadline)
        self._refresh_later(session)
        return session.account_id

    def logout(self, session_id: str, machine_id: str,
               deadline: Optional[Deadline] = None) -> None:
        """End the caller's session."""
        deadline = deadline or Deadline()
        session = self.check_session(session_id, machine_id, deadline)
        self._call(deadline, self.sessions.terminate_sessions, [session_id],
                   session.account_id)
        logger.info('Logged out session of account %s', session.account_id)

    def request_change_password_token(
            self, email: str, url: str,
            deadline: Optional[Deadline] = None) -> None:
        """
        Ask for a change-password link to be sent to an activated account.

        Raises
        ------
        :class:`.NoSuchAccount`
        """
        deadline = deadline or Deadline()
        if not self._call(deadline, self.accounts.exists_by_email, email):
            raise NoSuchAccount(f'No account with email {email}',
                                'account not found')
        policy = self.settings.change_password
        token = tokens.issue(email, policy.secret, policy.ttl)
        deadline.check()
        self._deliver(PASSWORD_CHANGE_DELIVERY_REQUEST,
                      email, token, url, policy.ttl)

    def change_password(self, token: str, new_password: str,
                        deadline: Optional[Deadline] = None) -> None:
        """
        Set a new password for the account named by a change-password token.

        Existing sessions stay valid unless
        ``TERMINATE_SESSIONS_ON_PASSWORD_CHANGE`` is set.

        Raises
        ------
        :class:`.InvalidArgument`
            If the password is out of bounds.
        :class:`.InvalidToken`
        :class:`.NoSuchAccount`
        """
        deadline = deadline or Deadline()
        _check_length('password', new_password, PASSWORD_LENGTH)
        email = tokens.parse(token, self.settings.change_password.secret)
        if not self._call(deadline, self.accounts.exists_by_email, email):
            raise NoSuchAccount(f'No account with email {email}',
                                'account not found')
        password_hash = self._call(deadline, self.hasher.hash, new_password)
        self._call(deadline, self.accounts.change_password, email,
                   password_hash)
        logger.info('Changed password for %s', email)

        if self.settings.terminate_sessions_on_password_change:
            account = self._call(deadline, self.accounts.get_by_email, email)
            self.scheduler.terminate_all_sessions(account.id)

    def get_all_sessions(self, session_id: str, machine_id: str,
                         deadline: Optional[Deadline] = None) \
            -> Dict[str, SessionInfo]:
        """Get the live sessions of the caller's account."""
        deadline = deadline or Deadline()
        session = self.check_session(session_id, machine_id, deadline)
        self._refresh_later(session)
        return self._call(deadline, self.sessions.get_sessions_for_account,
                          session.account_id)

    def terminate_sessions(self, session_id: str, machine_id: str,
                           target_ids: List[str],
                           deadline: Optional[Deadline] = None) -> None:
        """
        End some of the caller's sessions.

        Ids that are not sessions of the caller's account are ignored.

        Raises
        ------
        :class:`.InvalidArgument`
            If ``target_ids`` is empty.
        """
        deadline = deadline or Deadline()
        if not target_ids:
            raise InvalidArgument('no sessions to terminate',
                                  'no sessions to terminate')
        session = self.check_session(session_id, machine_id, deadline)
        if session_id not in target_ids:
            self._refresh_later(session)
        self._call(deadline, self.sessions.terminate_sessions, target_ids,
                   session.account_id)

    def delete_account(self, session_id: str, machine_id: str,
                       deadline: Optional[Deadline] = None) -> None:
        """
        Delete the caller's account and, eventually, all of its sessions.

        Raises
        ------
        :class:`.Internal`
            If the deletion could not be announced or committed; the account
            is left in place in that case.
        """
        deadline = deadline or Deadline()
        session = self.check_session(session_id, machine_id, deadline)
        account_id = session.account_id
        email = self._call(deadline, self.accounts.get_email, account_id)

        handle = self._call(deadline, self.accounts.delete_account,
                            account_id)
        with handle:
            self._call(deadline, self.events.account_deleted, account_id,
                       email)
            deadline.check()
            handle.commit()
        logger.info('Deleted account %s', account_id)
        self.scheduler.terminate_all_sessions(account_id)

        try:
            self.registrations.delete(email)
        except Internal as e:
            logger.error('Could not drop registration for deleted account '
                         '%s: %s', account_id, e)

    def _deliver(self, topic: str, email: str, token: str, url: str,
                 ttl: int) -> None:
        self.scheduler.deliver_token(topic, email, token, f'{url}/{token}',
                                     ttl)


def _abandon(future: futures.Future) -> None:
    """Clean up after a call whose caller stopped waiting for it."""
    if future.cancelled():
        return
    error = future.exception()
    if error is not None:
        logger.error('Abandoned call failed: %s', error)
        return
    result = future.result()
    for item in result if isinstance(result, tuple) else (result,):
        if isinstance(item, PendingTransaction):
            logger.info('Rolling back an abandoned accounts change')
            item.rollback()
