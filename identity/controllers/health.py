"""Health check for the service and its dependencies."""

from typing import Callable, Dict

from .. import logging, status
from ..exceptions import IdentityError
from ..services.database import current_accounts_store
from ..services.events import current_emitter
from ..services.registrations import current_registration_store
from ..services.sessions import current_session_store
from . import Response

logger = logging.getLogger(__name__)


def get_status() -> Response:
    """Ping every backing store and the event broker."""
    probes: Dict[str, Callable[[], None]] = {
        'database': current_accounts_store().ping,
        'registrations': current_registration_store().ping,
        'sessions': current_session_store().ping,
        'events': current_emitter().ping
    }
    failing = {}
    for name, ping in probes.items():
        try:
            ping()
        except IdentityError as e:
            logger.error('Health check failed for %s: %s', name, e)
            failing[name] = str(e)
    if failing:
        return ({'status': 'unavailable', 'failing': failing},
                status.HTTP_503_SERVICE_UNAVAILABLE, {})
    return {'status': 'ok'}, status.HTTP_200_OK, {}
