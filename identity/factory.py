"""Application factories for the identity service."""

from celery import Celery
from flask import Flask, jsonify, Response
from werkzeug.exceptions import HTTPException

from . import celeryconfig, logging, status
from .encode import ISO8601JSONProvider
from .exceptions import ErrorKind
from .routes import rpc
from .services import database, events, is_set, passwords, registrations, \
    sessions

logger = logging.getLogger(__name__)

celery_app = Celery('identity')
celery_app.config_from_object(celeryconfig)
celery_app.autodiscover_tasks(['identity'], related_name='tasks', force=True)
celery_app.conf.task_default_queue = 'identity-worker'


def jsonify_exception(error: HTTPException) -> Response:
    """Render a werkzeug HTTP exception as JSON."""
    exc_resp = error.get_response()
    response: Response = jsonify(reason=error.description)
    response.status_code = exc_resp.status_code
    return response


def jsonify_unexpected(error: Exception) -> Response:
    """Render an unhandled exception as an ``UNKNOWN`` failure."""
    logger.exception('Unhandled exception: %s', error)
    response: Response = jsonify(reason='internal error',
                                 message=None,
                                 code=ErrorKind.UNKNOWN.value)
    response.status_code = status.HTTP_500_INTERNAL_SERVER_ERROR
    return response


def _init_services(app: Flask) -> None:
    database.init_app(app)
    registrations.init_app(app)
    sessions.init_app(app)
    events.init_app(app)
    passwords.init_app(app)


def create_web_app() -> Flask:
    """Initialize and configure the identity application."""
    app = Flask('identity')
    app.config.from_pyfile('config.py')
    app.json = ISO8601JSONProvider(app)

    _init_services(app)
    if is_set(app.config.get('CELERY_ALWAYS_EAGER')):
        celery_app.conf.task_always_eager = True

    app.register_blueprint(rpc.blueprint)
    app.errorhandler(HTTPException)(jsonify_exception)
    app.errorhandler(Exception)(jsonify_unexpected)
    return app


def create_worker_app() -> Flask:
    """Initialize the identity application for the Celery workers."""
    app = Flask('identity')
    app.config.from_pyfile('config.py')
    _init_services(app)
    return app
