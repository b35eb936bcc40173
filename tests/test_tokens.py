"""Tests for :mod:`identity.services.tokens`."""

from datetime import datetime, timedelta
from unittest import TestCase

import jwt
from pytz import UTC

from identity.exceptions import ExpiredToken, InvalidToken
from identity.services import tokens


class TestIssueAndParse(TestCase):
    """Tokens carry a payload string until they expire."""

    def test_round_trip(self):
        """The payload comes back out of a fresh token."""
        token = tokens.issue('a@b.c', 'foosecret', 60)
        self.assertEqual(tokens.parse(token, 'foosecret'), 'a@b.c')

    def test_claims(self):
        """Tokens carry ``iat``, ``exp`` and ``value`` claims."""
        now = datetime(2026, 1, 1, tzinfo=UTC)
        token = tokens.issue('a@b.c', 'foosecret', 60, now=now)
        claims = jwt.decode(token, 'foosecret', algorithms=['HS256'],
                            options={'verify_exp': False})
        self.assertEqual(claims['value'], 'a@b.c')
        self.assertEqual(claims['exp'] - claims['iat'], 60)

    def test_wrong_secret(self):
        """A token signed with another secret is invalid."""
        token = tokens.issue('a@b.c', 'foosecret', 60)
        with self.assertRaises(InvalidToken):
            tokens.parse(token, 'barsecret')

    def test_expired(self):
        """An expired token raises :class:`.ExpiredToken`."""
        past = datetime.now(tz=UTC) - timedelta(hours=1)
        token = tokens.issue('a@b.c', 'foosecret', 60, now=past)
        with self.assertRaises(ExpiredToken):
            tokens.parse(token, 'foosecret')

    def test_expired_is_invalid_argument(self):
        """Expiry is reported as an invalid argument, like other failures."""
        self.assertTrue(issubclass(ExpiredToken, InvalidToken))

    def test_malformed(self):
        """Garbage is not a token."""
        with self.assertRaises(InvalidToken):
            tokens.parse('not.a.token', 'foosecret')

    def test_unsigned_token_rejected(self):
        """Tokens using the ``none`` algorithm are rejected."""
        now = datetime.now(tz=UTC)
        token = jwt.encode({'value': 'a@b.c', 'iat': now,
                            'exp': now + timedelta(minutes=1)},
                           None, algorithm='none')
        with self.assertRaises(InvalidToken):
            tokens.parse(token, 'foosecret')

    def test_missing_payload(self):
        """A correctly signed token without a payload is invalid."""
        now = datetime.now(tz=UTC)
        token = jwt.encode({'iat': now, 'exp': now + timedelta(minutes=1)},
                           'foosecret', algorithm='HS256')
        with self.assertRaises(InvalidToken):
            tokens.parse(token, 'foosecret')

    def test_missing_expiry(self):
        """A token without ``exp`` is invalid."""
        token = jwt.encode({'value': 'a@b.c',
                            'iat': datetime.now(tz=UTC)},
                           'foosecret', algorithm='HS256')
        with self.assertRaises(InvalidToken):
            tokens.parse(token, 'foosecret')

    def test_other_hmac_variants(self):
        """Tokens signed with another HMAC variant are accepted."""
        now = datetime.now(tz=UTC)
        token = jwt.encode({'value': 'a@b.c', 'iat': now,
                            'exp': now + timedelta(minutes=1)},
                           'foosecret', algorithm='HS512')
        self.assertEqual(tokens.parse(token, 'foosecret'), 'a@b.c')


class TestPolicies(TestCase):
    """Token policies are read from the configuration."""

    def test_policies_from_config(self):
        """Each kind of token has its own secret and lifetime."""
        from flask import Flask
        app = Flask('test')
        app.config.update(VERIFY_ACCOUNT_TOKEN_SECRET='v',
                          VERIFY_ACCOUNT_TOKEN_TTL='10',
                          CHANGE_PASSWORD_TOKEN_SECRET='c',
                          CHANGE_PASSWORD_TOKEN_TTL='20')
        self.assertEqual(tokens.verify_account_policy(app),
                         tokens.TokenPolicy('v', 10))
        self.assertEqual(tokens.change_password_policy(app),
                         tokens.TokenPolicy('c', 20))
