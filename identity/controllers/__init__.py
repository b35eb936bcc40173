"""
Request controllers for the identity RPC surface.

Controllers validate request parameters, call the
:class:`.IdentityCoordinator`, and return ``(data, status, headers)``.
Failures are raised as :class:`.IdentityError` and rendered by
:mod:`identity.routes.rpc`.
"""

from typing import Optional, Tuple

from ..context import get_application_global
from ..coordinator import IdentityCoordinator, get_settings
from ..services.database import current_accounts_store
from ..services.events import current_emitter
from ..services.passwords import current_hasher
from ..services.registrations import current_registration_store
from ..services.sessions import current_session_store
from ..tasks import CelerySchedule

Response = Tuple[Optional[dict], int, dict]


def get_coordinator() -> IdentityCoordinator:
    """Build a coordinator from the stores configured for this context."""
    return IdentityCoordinator(
        accounts=current_accounts_store(),
        registrations=current_registration_store(),
        sessions=current_session_store(),
        events=current_emitter(),
        hasher=current_hasher(),
        scheduler=CelerySchedule(),
        settings=get_settings()
    )


def current_coordinator() -> IdentityCoordinator:
    """Get/create the :class:`.IdentityCoordinator` for this context."""
    g = get_application_global()
    if g is None:
        return get_coordinator()
    if 'coordinator' not in g:
        g.coordinator = get_coordinator()
    return g.coordinator
