"""Tests for :mod:`identity.controllers`."""

from datetime import datetime
from unittest import TestCase, mock

from pytz import UTC
from werkzeug.datastructures import MultiDict

from identity import status
from identity.controllers import accounts, health, sessions
from identity.deadline import Deadline
from identity.domain import SessionInfo
from identity.exceptions import InvalidArgument, StoreUnavailable


class TestCreateAccount(TestCase):
    """:func:`.accounts.create_account` validates, then registers."""

    def setUp(self):
        """A valid request."""
        self.params = MultiDict({'email': 'a@b.c', 'username': 'alice',
                                 'password': 'secret1',
                                 'repeat_password': 'secret1'})
        self.deadline = Deadline()

    @mock.patch('identity.controllers.accounts.current_coordinator')
    def test_create(self, mock_current):
        """The coordinator is called with the form data."""
        data, code, headers = accounts.create_account(self.params,
                                                      self.deadline)
        self.assertEqual(code, status.HTTP_201_CREATED)
        mock_current.return_value.create_account.assert_called_once_with(
            'a@b.c', 'alice', 'secret1', repeat_password='secret1',
            deadline=self.deadline
        )

    @mock.patch('identity.controllers.accounts.current_coordinator')
    def test_invalid_email(self, mock_current):
        """Addresses that don't parse are refused."""
        self.params['email'] = 'not-an-email'
        with self.assertRaises(InvalidArgument) as ctx:
            accounts.create_account(self.params, self.deadline)
        self.assertIn('email', ctx.exception.user_message)
        self.assertEqual(mock_current.return_value.create_account.call_count,
                         0)

    @mock.patch('identity.controllers.accounts.current_coordinator')
    def test_mismatched_passwords(self, mock_current):
        """The repeated password has to match."""
        self.params['repeat_password'] = 'secret2'
        with self.assertRaises(InvalidArgument) as ctx:
            accounts.create_account(self.params, self.deadline)
        self.assertIn('passwords do not match', ctx.exception.user_message)

    @mock.patch('identity.controllers.accounts.current_coordinator')
    def test_bounds(self, mock_current):
        """Short usernames and long passwords are refused."""
        for field, value in (('username', 'al'), ('password', 'x' * 33)):
            params = self.params.copy()
            params[field] = value
            with self.assertRaises(InvalidArgument):
                accounts.create_account(params, self.deadline)

    @mock.patch('identity.controllers.accounts.current_coordinator')
    def test_missing_fields(self, mock_current):
        """Every field is required."""
        with self.assertRaises(InvalidArgument):
            accounts.create_account(MultiDict(), self.deadline)


class TestTokenRequests(TestCase):
    """Verification and change-password links need an email and a URL."""

    @mock.patch('identity.controllers.accounts.current_coordinator')
    def test_verification(self, mock_current):
        """The coordinator is asked for a verification link."""
        params = MultiDict({'email': 'a@b.c', 'url': 'https://x/verify'})
        deadline = Deadline()
        _, code, _ = accounts.request_verification_token(params, deadline)
        self.assertEqual(code, status.HTTP_200_OK)
        mock_current.return_value.request_account_verification_token \
            .assert_called_once_with('a@b.c', 'https://x/verify',
                                     deadline=deadline)

    @mock.patch('identity.controllers.accounts.current_coordinator')
    def test_bad_url(self, mock_current):
        """The callback URL must be a URL."""
        params = MultiDict({'email': 'a@b.c', 'url': 'nope'})
        with self.assertRaises(InvalidArgument):
            accounts.request_change_password_token(params, Deadline())

    @mock.patch('identity.controllers.accounts.current_coordinator')
    def test_change_password(self, mock_current):
        """A token and a new password are required."""
        params = MultiDict({'change_password_token': 'tok',
                            'new_password': 'secret2'})
        deadline = Deadline()
        accounts.change_password(params, deadline)
        mock_current.return_value.change_password.assert_called_once_with(
            'tok', 'secret2', deadline=deadline
        )
        with self.assertRaises(InvalidArgument):
            accounts.change_password(MultiDict({'new_password': 'secret2'}),
                                     deadline)


class TestGetAccountID(TestCase):
    """:func:`.accounts.get_account_id` returns the id in a header."""

    @mock.patch('identity.controllers.accounts.current_coordinator')
    def test_header(self, mock_current):
        """The account id is in ``X-Account-Id``."""
        mock_current.return_value.get_account_id.return_value = 'acct1'
        data, code, headers = accounts.get_account_id('S1', 'M1', Deadline())
        self.assertEqual(data, {})
        self.assertEqual(headers, {'X-Account-Id': 'acct1'})


class TestSignIn(TestCase):
    """:func:`.sessions.sign_in` validates credentials and the client IP."""

    @mock.patch('identity.controllers.sessions.current_coordinator')
    def test_sign_in(self, mock_current):
        """The new session id is returned."""
        mock_current.return_value.sign_in.return_value = 'S1'
        params = MultiDict({'email': 'a@b.c', 'password': 'secret1',
                            'client_ip': '192.0.2.1'})
        data, code, _ = sessions.sign_in(params, 'M1', Deadline())
        self.assertEqual(data, {'session_id': 'S1'})
        self.assertEqual(code, status.HTTP_201_CREATED)

    @mock.patch('identity.controllers.sessions.current_coordinator')
    def test_bad_ip(self, mock_current):
        """Client addresses must be IP literals."""
        params = MultiDict({'email': 'a@b.c', 'password': 'secret1',
                            'client_ip': '999.1.1.1'})
        with self.assertRaises(InvalidArgument):
            sessions.sign_in(params, 'M1', Deadline())


class TestSessionControllers(TestCase):
    """Listing and terminating sessions."""

    @mock.patch('identity.controllers.sessions.current_coordinator')
    def test_get_all_sessions(self, mock_current):
        """Sessions are returned as a map of session id to details."""
        seen = datetime(2026, 1, 1, tzinfo=UTC)
        mock_current.return_value.get_all_sessions.return_value = {
            'S1': SessionInfo('192.0.2.1', 'M1', seen)
        }
        data, code, _ = sessions.get_all_sessions('S1', 'M1', Deadline())
        self.assertEqual(data, {'sessions': {'S1': {
            'client_ip': '192.0.2.1',
            'machine_id': 'M1',
            'last_activity': seen.isoformat()
        }}})

    @mock.patch('identity.controllers.sessions.current_coordinator')
    def test_terminate(self, mock_current):
        """The listed session ids are passed on."""
        params = MultiDict([('sessions_to_terminate', 'S2'),
                            ('sessions_to_terminate', 'S3')])
        deadline = Deadline()
        sessions.terminate_sessions(params, 'S1', 'M1', deadline)
        mock_current.return_value.terminate_sessions.assert_called_once_with(
            'S1', 'M1', ['S2', 'S3'], deadline=deadline
        )

    @mock.patch('identity.controllers.sessions.current_coordinator')
    def test_terminate_nothing(self, mock_current):
        """At least one session id is required."""
        with self.assertRaises(InvalidArgument):
            sessions.terminate_sessions(MultiDict(), 'S1', 'M1', Deadline())


class TestHealth(TestCase):
    """:func:`.health.get_status` pings every dependency."""

    @mock.patch('identity.controllers.health.current_emitter')
    @mock.patch('identity.controllers.health.current_session_store')
    @mock.patch('identity.controllers.health.current_registration_store')
    @mock.patch('identity.controllers.health.current_accounts_store')
    def test_ok(self, *mocks):
        """All dependencies respond."""
        data, code, _ = health.get_status()
        self.assertEqual(code, status.HTTP_200_OK)
        self.assertEqual(data, {'status': 'ok'})

    @mock.patch('identity.controllers.health.current_emitter')
    @mock.patch('identity.controllers.health.current_session_store')
    @mock.patch('identity.controllers.health.current_registration_store')
    @mock.patch('identity.controllers.health.current_accounts_store')
    def test_unavailable(self, mock_accounts, *mocks):
        """Failing dependencies are named."""
        mock_accounts.return_value.ping.side_effect = \
            StoreUnavailable('down')
        data, code, _ = health.get_status()
        self.assertEqual(code, status.HTTP_503_SERVICE_UNAVAILABLE)
        self.assertEqual(list(data['failing']), ['database'])
