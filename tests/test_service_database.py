"""Tests for :mod:`identity.services.database`."""

import os
import tempfile
from datetime import datetime
from unittest import TestCase, mock

from pytz import UTC
from sqlalchemy import create_engine
from sqlalchemy.exc import OperationalError

from identity.domain import Account
from identity.exceptions import Conflict, NoSuchAccount, StoreUnavailable
from identity.services import database


class DatabaseTestCase(TestCase):
    """Each test gets a fresh SQLite database file."""

    def setUp(self):
        """Create the accounts table."""
        self.workdir = tempfile.TemporaryDirectory()
        path = os.path.join(self.workdir.name, 'identity.db')
        self.engine = create_engine(f'sqlite:///{path}')
        database.create_all(self.engine)
        self.store = database.AccountsStore(self.engine)
        self.account = Account(email='a@b.c', password_hash='hash',
                               registration_date=datetime.now(tz=UTC))

    def tearDown(self):
        """Dispose of the database."""
        self.engine.dispose()
        self.workdir.cleanup()

    def _create(self, account=None):
        handle, account_id = self.store.create_account(account or self.account)
        handle.commit()
        return account_id


class TestCreateAccount(DatabaseTestCase):
    """Accounts are created through a two-phase handle."""

    def test_invisible_until_commit(self):
        """The new row is not visible until the handle is committed."""
        handle, account_id = self.store.create_account(self.account)
        self.assertTrue(account_id)
        self.assertFalse(self.store.exists_by_email('a@b.c'))
        handle.commit()
        self.assertTrue(handle.committed)
        self.assertTrue(self.store.exists_by_email('a@b.c'))
        self.assertEqual(self.store.get_email(account_id), 'a@b.c')

    def test_abandoned_handle_rolls_back(self):
        """Leaving the ``with`` block without committing discards the row."""
        handle, _ = self.store.create_account(self.account)
        with handle:
            pass
        self.assertTrue(handle.closed)
        self.assertFalse(handle.committed)
        self.assertFalse(self.store.exists_by_email('a@b.c'))

    def test_rollback_on_error(self):
        """An exception inside the ``with`` block discards the row."""
        handle, _ = self.store.create_account(self.account)
        with self.assertRaises(RuntimeError):
            with handle:
                raise RuntimeError('broker is down')
        self.assertFalse(self.store.exists_by_email('a@b.c'))

    def test_commit_twice(self):
        """A handle can only be committed once."""
        handle, _ = self.store.create_account(self.account)
        handle.commit()
        with self.assertRaises(RuntimeError):
            handle.commit()

    def test_rollback_after_commit(self):
        """Rolling back a committed handle does nothing."""
        handle, _ = self.store.create_account(self.account)
        with handle:
            handle.commit()
        self.assertTrue(self.store.exists_by_email('a@b.c'))

    def test_ids_are_unique(self):
        """Each account gets its own id."""
        first = self._create()
        second = self._create(self.account._replace(email='d@e.f'))
        self.assertNotEqual(first, second)

    def test_duplicate_email(self):
        """:class:`.Conflict` is raised for an email that is in use."""
        self._create()
        with self.assertRaises(Conflict):
            self.store.create_account(self.account)


class TestReadAccount(DatabaseTestCase):
    """Accounts can be looked up by email and id."""

    def test_get_by_email(self):
        """The stored account is returned, with a UTC registration date."""
        account_id = self._create()
        account = self.store.get_by_email('a@b.c')
        self.assertEqual(account.id, account_id)
        self.assertEqual(account.password_hash, 'hash')
        self.assertEqual(account.registration_date.tzinfo, UTC)
        self.assertEqual(
            account.registration_date.replace(microsecond=0),
            self.account.registration_date.replace(microsecond=0)
        )

    def test_get_by_email_missing(self):
        """:class:`.NoSuchAccount` is raised for an unknown email."""
        with self.assertRaises(NoSuchAccount):
            self.store.get_by_email('nobody@b.c')

    def test_get_email_missing(self):
        """:class:`.NoSuchAccount` is raised for an unknown id."""
        with self.assertRaises(NoSuchAccount):
            self.store.get_email('no-such-id')

    def test_exists_by_email(self):
        """Only activated emails exist."""
        self.assertFalse(self.store.exists_by_email('a@b.c'))
        self._create()
        self.assertTrue(self.store.exists_by_email('a@b.c'))


class TestChangePassword(DatabaseTestCase):
    """The password hash of an account can be replaced."""

    def test_change_password(self):
        """The new hash is stored."""
        self._create()
        self.store.change_password('a@b.c', 'newhash')
        self.assertEqual(self.store.get_by_email('a@b.c').password_hash,
                         'newhash')

    def test_no_such_account(self):
        """:class:`.NoSuchAccount` is raised if no row is updated."""
        with self.assertRaises(NoSuchAccount):
            self.store.change_password('a@b.c', 'newhash')


class TestDeleteAccount(DatabaseTestCase):
    """Accounts are deleted through a two-phase handle."""

    def test_provisional_until_commit(self):
        """The row stays visible until the handle is committed."""
        account_id = self._create()
        handle = self.store.delete_account(account_id)
        self.assertTrue(self.store.exists_by_email('a@b.c'))
        handle.commit()
        self.assertFalse(self.store.exists_by_email('a@b.c'))

    def test_abandoned_handle_keeps_row(self):
        """An uncommitted deletion is rolled back."""
        account_id = self._create()
        with self.store.delete_account(account_id):
            pass
        self.assertTrue(self.store.exists_by_email('a@b.c'))

    def test_no_such_account(self):
        """:class:`.NoSuchAccount` is raised for an unknown id."""
        with self.assertRaises(NoSuchAccount):
            self.store.delete_account('no-such-id')


class TestDatabaseUnavailable(TestCase):
    """Database errors are raised as :class:`.StoreUnavailable`."""

    def setUp(self):
        """Make every query fail."""
        self.session = mock.MagicMock()
        self.session.query.side_effect = OperationalError('SELECT', {}, None)
        self.store = database.AccountsStore(mock.MagicMock())
        self.store._sessionmaker = mock.MagicMock(return_value=self.session)

    def test_exists_by_email(self):
        """The session is rolled back and closed."""
        with self.assertRaises(StoreUnavailable):
            self.store.exists_by_email('a@b.c')
        self.assertEqual(self.session.rollback.call_count, 1)
        self.assertEqual(self.session.close.call_count, 1)

    def test_delete_account(self):
        """No handle is returned."""
        with self.assertRaises(StoreUnavailable):
            self.store.delete_account('some-id')
        self.assertEqual(self.session.close.call_count, 1)

    def test_ping(self):
        """:meth:`.AccountsStore.ping` raises when the database is down."""
        self.store.engine.connect.side_effect = \
            OperationalError('SELECT 1', {}, None)
        with self.assertRaises(StoreUnavailable):
            self.store.ping()
