"""
Provides the RPC surface of the identity service.

Request bodies are JSON objects. Authenticated operations read the session
and machine ids from the ``X-Session-Id`` and ``X-Machine-Id`` headers. An
optional ``X-Request-Timeout`` header (seconds) bounds the time spent on a
request; it defaults to ``REQUEST_TIMEOUT``.
"""

from typing import Dict, Tuple

from flask import Blueprint, current_app, jsonify, request, Response
from werkzeug.datastructures import MultiDict
from werkzeug.exceptions import BadRequest

from .. import logging, status
from ..controllers import accounts, health, sessions
from ..deadline import Deadline
from ..exceptions import ErrorKind, IdentityError, InvalidArgument

logger = logging.getLogger(__name__)

blueprint = Blueprint('rpc', __name__, url_prefix='/v1')

SESSION_ID_HEADER = 'X-Session-Id'
MACHINE_ID_HEADER = 'X-Machine-Id'
TIMEOUT_HEADER = 'X-Request-Timeout'

STATUS_CODES: Dict[ErrorKind, int] = {
    ErrorKind.UNKNOWN: status.HTTP_500_INTERNAL_SERVER_ERROR,
    ErrorKind.INTERNAL: status.HTTP_500_INTERNAL_SERVER_ERROR,
    ErrorKind.INVALID_ARGUMENT: status.HTTP_400_BAD_REQUEST,
    ErrorKind.UNAUTHENTICATED: status.HTTP_401_UNAUTHORIZED,
    ErrorKind.CONFLICT: status.HTTP_409_CONFLICT,
    ErrorKind.NOT_FOUND: status.HTTP_404_NOT_FOUND,
    ErrorKind.CANCELED: status.HTTP_499_CLIENT_CLOSED_REQUEST,
    ErrorKind.DEADLINE_EXCEEDED: status.HTTP_504_GATEWAY_TIMEOUT,
    ErrorKind.PERMISSION_DENIED: status.HTTP_403_FORBIDDEN
}


def _params() -> MultiDict:
    """Get the JSON request body as a :class:`MultiDict` of strings."""
    if not request.get_data():
        return MultiDict()
    payload = request.get_json(force=True)
    if not isinstance(payload, dict):
        raise BadRequest('Request body must be a JSON object')
    items = []
    for key, value in payload.items():
        values = value if isinstance(value, list) else [value]
        items.extend((key, item) for item in values if isinstance(item, str))
    return MultiDict(items)


def _metadata() -> Tuple[str, str]:
    return (request.headers.get(SESSION_ID_HEADER, ''),
            request.headers.get(MACHINE_ID_HEADER, ''))


def _deadline() -> Deadline:
    timeout = request.headers.get(TIMEOUT_HEADER,
                                  current_app.config.get('REQUEST_TIMEOUT'))
    if not timeout:
        return Deadline()
    try:
        return Deadline(float(timeout))
    except ValueError as e:
        raise InvalidArgument(f'Invalid {TIMEOUT_HEADER}: {timeout}',
                              'invalid request timeout') from e


def _respond(data: dict, code: int, headers: dict) -> Response:
    response: Response = jsonify(data)
    response.status_code = code
    response.headers.extend(headers)
    return response


@blueprint.route('/accounts', methods=['POST'])
def create_account() -> Response:
    """Register a new account (CreateAccount)."""
    return _respond(*accounts.create_account(_params(), _deadline()))


@blueprint.route('/accounts/verification', methods=['POST'])
def request_verification_token() -> Response:
    """Send a verification link (RequestAccountVerificationToken)."""
    return _respond(*accounts.request_verification_token(_params(),
                                                         _deadline()))


@blueprint.route('/accounts/verify', methods=['POST'])
def verify_account() -> Response:
    """Activate an account (VerifyAccount)."""
    return _respond(*accounts.verify_account(_params(), _deadline()))


@blueprint.route('/sessions', methods=['POST'])
def sign_in() -> Response:
    """Start a session (SignIn)."""
    _, machine_id = _metadata()
    return _respond(*sessions.sign_in(_params(), machine_id, _deadline()))


@blueprint.route('/accounts/me', methods=['GET'])
def get_account_id() -> Response:
    """Identify the caller (GetAccountID)."""
    return _respond(*accounts.get_account_id(*_metadata(), _deadline()))


@blueprint.route('/sessions/logout', methods=['POST'])
def logout() -> Response:
    """End the current session (Logout)."""
    return _respond(*sessions.logout(*_metadata(), _deadline()))


@blueprint.route('/accounts/password/token', methods=['POST'])
def request_change_password_token() -> Response:
    """Send a change-password link (RequestChangePasswordToken)."""
    return _respond(*accounts.request_change_password_token(_params(),
                                                            _deadline()))


@blueprint.route('/accounts/password', methods=['POST'])
def change_password() -> Response:
    """Set a new password (ChangePassword)."""
    return _respond(*accounts.change_password(_params(), _deadline()))


@blueprint.route('/sessions', methods=['GET'])
def get_all_sessions() -> Response:
    """List the caller's sessions (GetAllSessions)."""
    return _respond(*sessions.get_all_sessions(*_metadata(), _deadline()))


@blueprint.route('/sessions/terminate', methods=['POST'])
def terminate_sessions() -> Response:
    """End some of the caller's sessions (TerminateSessions)."""
    return _respond(*sessions.terminate_sessions(_params(), *_metadata(),
                                                 _deadline()))


@blueprint.route('/accounts/me', methods=['DELETE'])
def delete_account() -> Response:
    """Delete the caller's account (DeleteAccount)."""
    return _respond(*accounts.delete_account(*_metadata(), _deadline()))


@blueprint.route('/status', methods=['GET'])
def get_status() -> Response:
    """Report whether the service can reach its dependencies."""
    return _respond(*health.get_status())


@blueprint.app_errorhandler(IdentityError)
def handle_identity_error(error: IdentityError) -> Response:
    """Render an :class:`.IdentityError` as JSON."""
    code = STATUS_CODES.get(error.kind,
                            status.HTTP_500_INTERNAL_SERVER_ERROR)
    if code >= 500:
        logger.error('%s: %s', error.kind.value, error)
    else:
        logger.debug('%s: %s', error.kind.value, error)
    response: Response = jsonify(reason=str(error),
                                 message=error.user_message,
                                 code=error.kind.value)
    response.status_code = code
    return response
