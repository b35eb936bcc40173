"""Flask configuration."""

import os

VERSION = '0.1'

SERVER_HOST = os.environ.get('SERVER_HOST', '0.0.0.0')
SERVER_PORT = os.environ.get('SERVER_PORT', '8000')
SERVER_MODE = os.environ.get('SERVER_MODE', 'production')

LOGFILE = os.environ.get('LOGFILE')
LOGLEVEL = os.environ.get('LOGLEVEL', 20)

SESSION_TTL = os.environ.get('SESSION_TTL', '36000')
NONACTIVATED_ACCOUNT_TTL = os.environ.get('NONACTIVATED_ACCOUNT_TTL', '86400')

BCRYPT_COST = os.environ.get('BCRYPT_COST', '12')

VERIFY_ACCOUNT_TOKEN_SECRET = os.environ.get('VERIFY_ACCOUNT_TOKEN_SECRET',
                                             'verifysecret')
VERIFY_ACCOUNT_TOKEN_TTL = os.environ.get('VERIFY_ACCOUNT_TOKEN_TTL', '3600')
CHANGE_PASSWORD_TOKEN_SECRET = os.environ.get('CHANGE_PASSWORD_TOKEN_SECRET',
                                              'changesecret')
CHANGE_PASSWORD_TOKEN_TTL = os.environ.get('CHANGE_PASSWORD_TOKEN_TTL', '900')

REGISTRATION_REDIS_HOST = os.environ.get('REGISTRATION_REDIS_HOST', 'localhost')
REGISTRATION_REDIS_PORT = os.environ.get('REGISTRATION_REDIS_PORT', '6379')
REGISTRATION_REDIS_DATABASE = os.environ.get('REGISTRATION_REDIS_DATABASE', '1')
REGISTRATION_REDIS_PASSWORD = os.environ.get('REGISTRATION_REDIS_PASSWORD')

SESSIONS_REDIS_HOST = os.environ.get('SESSIONS_REDIS_HOST', 'localhost')
SESSIONS_REDIS_PORT = os.environ.get('SESSIONS_REDIS_PORT', '6379')
SESSIONS_REDIS_DATABASE = os.environ.get('SESSIONS_REDIS_DATABASE', '2')
SESSIONS_REDIS_PASSWORD = os.environ.get('SESSIONS_REDIS_PASSWORD')

EVENTS_REDIS_HOST = os.environ.get('EVENTS_REDIS_HOST', 'localhost')
EVENTS_REDIS_PORT = os.environ.get('EVENTS_REDIS_PORT', '6379')
EVENTS_REDIS_DATABASE = os.environ.get('EVENTS_REDIS_DATABASE', '3')
EVENTS_REDIS_PASSWORD = os.environ.get('EVENTS_REDIS_PASSWORD')
EVENTS_STREAM_MAXLEN = os.environ.get('EVENTS_STREAM_MAXLEN')

REDIS_SOCKET_TIMEOUT = os.environ.get('REDIS_SOCKET_TIMEOUT', '5')
REDIS_FAKE = os.environ.get('REDIS_FAKE', False)

SQLALCHEMY_DATABASE_URI = os.environ.get('SQLALCHEMY_DATABASE_URI',
                                         'sqlite:///identity.db')

NUM_RETRIES_FOR_TERMINATE_SESSIONS = os.environ.get(
    'NUM_RETRIES_FOR_TERMINATE_SESSIONS', '3')
RETRY_SLEEP_FOR_TERMINATE_SESSIONS = os.environ.get(
    'RETRY_SLEEP_FOR_TERMINATE_SESSIONS', '5')

TERMINATE_SESSIONS_ON_PASSWORD_CHANGE = os.environ.get(
    'TERMINATE_SESSIONS_ON_PASSWORD_CHANGE', '0')

REQUEST_TIMEOUT = os.environ.get('REQUEST_TIMEOUT', '10')

CELERY_ALWAYS_EAGER = os.environ.get('CELERY_ALWAYS_EAGER', '0')
