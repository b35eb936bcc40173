"""
Provides access to the accounts table.

The accounts table is the authority for activated identity. Creating and
deleting an account are two-phase: :meth:`AccountsStore.create_account` and
:meth:`AccountsStore.delete_account` flush their change inside an open
transaction and hand back a :class:`PendingTransaction`. Nothing is visible
to other readers until :meth:`PendingTransaction.commit` is called, and a
handle that leaves its ``with`` block uncommitted is rolled back.
"""

from contextlib import contextmanager
from datetime import datetime
from typing import Generator, Optional, Tuple

from flask import Flask, has_app_context
from pytz import UTC
from sqlalchemy import create_engine, text
from sqlalchemy.engine import Engine
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker

from ... import logging
from ...context import get_application_config, get_application_global
from ...domain import Account
from ...exceptions import Conflict, NoSuchAccount, StoreUnavailable
from .models import db, DBAccount

logger = logging.getLogger(__name__)

DUPLICATE_EMAIL = 'a user with this email address already exists'


def _to_domain(row: DBAccount) -> Account:
    registration_date: datetime = row.registration_date
    if registration_date.tzinfo is None:
        registration_date = registration_date.replace(tzinfo=UTC)
    return Account(id=row.id, email=row.email,
                   password_hash=row.password_hash,
                   registration_date=registration_date)


class PendingTransaction(object):
    """
    A flushed but uncommitted change to the accounts table.

    Use as a context manager: if the block exits without :meth:`commit`
    having been called, the change is rolled back.
    """

    def __init__(self, session: Session, description: str) -> None:
        self._session = session
        self._description = description
        self.closed = False
        self.committed = False

    def commit(self) -> None:
        """
        Make the change visible.

        Raises
        ------
        :class:`.StoreUnavailable`
            If the commit fails; the change is rolled back.
        """
        if self.closed:
            raise RuntimeError(f'Transaction already closed: '
                               f'{self._description}')
        try:
            self._session.commit()
        except SQLAlchemyError as e:
            logger.error('Commit failed, rolling back %s: %s',
                         self._description, e)
            self._session.rollback()
            raise StoreUnavailable(f'Could not commit: {e}') from e
        finally:
            self._close()
        self.committed = True

    def rollback(self) -> None:
        """Abandon the change. Does nothing once the handle is closed."""
        if self.closed:
            return
        try:
            self._session.rollback()
            logger.debug('Rolled back %s', self._description)
        finally:
            self._close()

    def _close(self) -> None:
        self._session.close()
        self.closed = True

    def __enter__(self) -> 'PendingTransaction':
        return self

    def __exit__(self, *exc_info) -> None:
        self.rollback()


class AccountsStore(object):
    """Reads and writes activated accounts."""

    def __init__(self, engine: Engine) -> None:
        self.engine = engine
        self._sessionmaker = sessionmaker(bind=engine)

    @contextmanager
    def _transaction(self) -> Generator[Session, None, None]:
        session = self._sessionmaker()
        try:
            yield session
            session.commit()
        except SQLAlchemyError as e:
            logger.error('Database error, rolling back: %s', e)
            session.rollback()
            raise StoreUnavailable(f'Database error: {e}') from e
        except Exception:
            session.rollback()
            raise
        finally:
            session.close()

    def exists_by_email(self, email: str) -> bool:
        """Determine whether an activated account uses ``email``."""
        with self._transaction() as session:
            query = session.query(DBAccount.id) \
                .filter(DBAccount.email == email)
            return session.query(query.exists()).scalar()

    def get_by_email(self, email: str) -> Account:
        """
        Get the account registered with ``email``.

        Raises
        ------
        :class:`.NoSuchAccount`
        :class:`.StoreUnavailable`
        """
        with self._transaction() as session:
            row = session.query(DBAccount) \
                .filter(DBAccount.email == email) \
                .first()
            if row is None:
                raise NoSuchAccount(f'No account with email {email}',
                                    'a account with this email address '
                                    'not exist')
            return _to_domain(row)

    def get_email(self, account_id: str) -> str:
        """Get the email address of an account."""
        with self._transaction() as session:
            email: Optional[str] = session.query(DBAccount.email) \
                .filter(DBAccount.id == account_id) \
                .scalar()
            if email is None:
                raise NoSuchAccount(f'No account with id {account_id}',
                                    'account not found')
            return email

    def change_password(self, email: str, password_hash: str) -> None:
        """
        Replace the password hash for the account with ``email``.

        Raises
        ------
        :class:`.NoSuchAccount`
            If no row was updated.
        """
        with self._transaction() as session:
            updated = session.query(DBAccount) \
                .filter(DBAccount.email == email) \
                .update({DBAccount.password_hash: password_hash},
                        synchronize_session=False)
            if updated == 0:
                raise NoSuchAccount(f'No account with email {email}',
                                    'account not found')

    def create_account(self, account: Account) \
            -> Tuple[PendingTransaction, str]:
        """
        Insert an account without committing it.

        Parameters
        ----------
        account : :class:`.Account`
            Its ``id`` is ignored; a new one is generated.

        Returns
        -------
        :class:`.PendingTransaction`
            Commit it to make the account visible.
        str
            The id of the new account.

        Raises
        ------
        :class:`.Conflict`
            If an account with the same email exists.
        :class:`.StoreUnavailable`
        """
        session = self._sessionmaker()
        row = DBAccount(email=account.email,
                        password_hash=account.password_hash,
                        registration_date=account.registration_date)
        try:
            session.add(row)
            session.flush()
        except IntegrityError as e:
            session.rollback()
            session.close()
            raise Conflict(f'Email already in use: {account.email}',
                           DUPLICATE_EMAIL) from e
        except SQLAlchemyError as e:
            session.rollback()
            session.close()
            raise StoreUnavailable(f'Could not create account: {e}') from e
        return PendingTransaction(session, f'create account {row.id}'), row.id

    def delete_account(self, account_id: str) -> PendingTransaction:
        """
        Delete an account without committing the deletion.

        Raises
        ------
        :class:`.NoSuchAccount`
            If there is no account with ``account_id``.
        :class:`.StoreUnavailable`
        """
        session = self._sessionmaker()
        try:
            deleted = session.query(DBAccount) \
                .filter(DBAccount.id == account_id) \
                .delete(synchronize_session=False)
        except SQLAlchemyError as e:
            session.rollback()
            session.close()
            raise StoreUnavailable(f'Could not delete account: {e}') from e
        if deleted == 0:
            session.rollback()
            session.close()
            raise NoSuchAccount(f'No account with id {account_id}',
                                'account not found')
        return PendingTransaction(session, f'delete account {account_id}')

    def ping(self) -> None:
        """Check that the database is reachable."""
        try:
            with self.engine.connect() as connection:
                connection.execute(text('SELECT 1'))
        except SQLAlchemyError as e:
            raise StoreUnavailable(f'Database unreachable: {e}') from e


def create_all(engine: Engine) -> None:
    """Create all tables in the database."""
    db.metadata.create_all(engine)


def drop_all(engine: Engine) -> None:
    """Drop all tables in the database."""
    db.metadata.drop_all(engine)


def engine_options(uri: str) -> dict:
    """
    Get engine arguments for a database URI.

    Store calls may run on worker threads, so SQLite connections must be
    usable from a thread other than the one that opened them.
    """
    if uri.startswith('sqlite'):
        return {'connect_args': {'check_same_thread': False}}
    return {}


def init_app(app: object = None) -> None:
    """Set configuration defaults and attach the database to the app."""
    config = get_application_config(app)
    config.setdefault('SQLALCHEMY_DATABASE_URI', 'sqlite:///identity.db')
    config.setdefault('SQLALCHEMY_TRACK_MODIFICATIONS', False)
    if app is not None:
        config.setdefault('SQLALCHEMY_ENGINE_OPTIONS',
                          engine_options(config['SQLALCHEMY_DATABASE_URI']))
        db.init_app(app)


def get_accounts_store(app: Optional[Flask] = None) -> AccountsStore:
    """Get a new :class:`.AccountsStore` for the configured database."""
    if app is not None:
        with app.app_context():
            return AccountsStore(db.engine)
    if has_app_context():
        return AccountsStore(db.engine)
    uri = get_application_config(app)['SQLALCHEMY_DATABASE_URI']
    return AccountsStore(create_engine(uri, **engine_options(uri)))


def current_accounts_store() -> AccountsStore:
    """Get/create the :class:`.AccountsStore` for this context."""
    g = get_application_global()
    if g is None:
        return get_accounts_store()
    if 'accounts' not in g:
        g.accounts = get_accounts_store()
    return g.accounts

