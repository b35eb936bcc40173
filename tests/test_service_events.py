"""Tests for :mod:`identity.services.events`."""

import json
from datetime import datetime
from unittest import TestCase, mock

import fakeredis
from pytz import UTC
from redis.exceptions import ConnectionError, RedisError

from identity.exceptions import EventDeliveryFailed
from identity.services import events


class TestEventEmitter(TestCase):
    """Events are appended to one Redis stream per topic."""

    def setUp(self):
        """Use an isolated fake Redis."""
        self.emitter = events.EventEmitter('localhost', 6379, 0, fake=True)
        self.r = fakeredis.FakeStrictRedis(server=fakeredis.FakeServer(),
                                           decode_responses=True)
        self.emitter.r = self.r

    def _messages(self, topic):
        return [fields for _, fields in self.r.xrange(topic)]

    def test_account_created(self):
        """The event is keyed by account id."""
        registered = datetime(2026, 1, 1, tzinfo=UTC)
        self.emitter.account_created('acct1', 'a@b.c', 'alice', registered)
        messages = self._messages(events.ACCOUNT_CREATED)
        self.assertEqual(len(messages), 1)
        self.assertEqual(messages[0]['key'], 'acct1')
        self.assertEqual(json.loads(messages[0]['value']), {
            'id': 'acct1',
            'email': 'a@b.c',
            'username': 'alice',
            'registration_date': '2026-01-01T00:00:00+00:00'
        })

    def test_account_deleted(self):
        """The event is keyed by account id."""
        self.emitter.account_deleted('acct1', 'a@b.c')
        message, = self._messages(events.ACCOUNT_DELETED)
        self.assertEqual(message['key'], 'acct1')
        self.assertEqual(json.loads(message['value']),
                         {'email': 'a@b.c', 'account_id': 'acct1'})

    def test_delivery_requests(self):
        """Delivery requests are keyed by email, on separate topics."""
        self.emitter.email_verification_delivery_request(
            'a@b.c', 'tok', 'https://x/verify/tok', 3600
        )
        self.emitter.password_change_delivery_request(
            'a@b.c', 'tok2', 'https://x/change/tok2', 900
        )
        verify, = self._messages(events.EMAIL_VERIFICATION_DELIVERY_REQUEST)
        change, = self._messages(events.PASSWORD_CHANGE_DELIVERY_REQUEST)
        self.assertEqual(verify['key'], 'a@b.c')
        self.assertEqual(json.loads(verify['value']), {
            'email': 'a@b.c',
            'token': 'tok',
            'callback_url': 'https://x/verify/tok',
            'callback_url_ttl': 3600
        })
        self.assertEqual(json.loads(change['value'])['callback_url_ttl'], 900)

    def test_unknown_topic(self):
        """Only the known topics can be published to."""
        with self.assertRaises(ValueError):
            self.emitter.emit('something_else', 'key', {})

    def test_message_id_returned(self):
        """The broker's message id is the acknowledgement."""
        message_id = self.emitter.account_deleted('acct1', 'a@b.c')
        self.assertTrue(message_id)


class TestEmitterUnavailable(TestCase):
    """Broker failures are raised as :class:`.EventDeliveryFailed`."""

    @mock.patch('identity.services.events.redis')
    def test_connection_failed(self, mock_redis):
        """The failure is reported to the caller."""
        mock_redis.exceptions.RedisError = RedisError
        mock_redis_connection = mock.MagicMock()
        mock_redis_connection.xadd.side_effect = ConnectionError
        mock_redis.StrictRedis.return_value = mock_redis_connection

        emitter = events.EventEmitter('localhost', 6379, 0)
        with self.assertRaises(EventDeliveryFailed):
            emitter.account_deleted('acct1', 'a@b.c')

    @mock.patch('identity.services.events.redis')
    def test_maxlen(self, mock_redis):
        """Streams are capped when a maximum length is configured."""
        mock_redis_connection = mock.MagicMock()
        mock_redis.StrictRedis.return_value = mock_redis_connection

        emitter = events.EventEmitter('localhost', 6379, 0, maxlen=1000)
        emitter.account_deleted('acct1', 'a@b.c')
        _, kwargs = mock_redis_connection.xadd.call_args
        self.assertEqual(kwargs['maxlen'], 1000)
        self.assertTrue(kwargs['approximate'])
