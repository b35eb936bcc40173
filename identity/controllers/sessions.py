"""Controllers for signing in and managing sessions."""

from werkzeug.datastructures import MultiDict

from .. import status
from ..deadline import Deadline
from ..domain import to_dict
from ..exceptions import InvalidArgument
from . import Response, current_coordinator
from .forms import SignInForm, validate


def sign_in(params: MultiDict, machine_id: str,
            deadline: Deadline) -> Response:
    """
    Start a session.

    Parameters
    ----------
    params : :class:`MultiDict`
        Must contain ``email``, ``password`` and ``client_ip``.
    machine_id : str
        From the ``X-Machine-Id`` header.
    deadline : :class:`.Deadline`

    Returns
    -------
    dict
        The new ``session_id``.
    int
        201 Created.
    dict
        Extra headers; none.
    """
    form = SignInForm(params)
    validate(form)
    session_id = current_coordinator().sign_in(
        form.email.data, form.password.data, form.client_ip.data, machine_id,
        deadline=deadline
    )
    return {'session_id': session_id}, status.HTTP_201_CREATED, {}


def logout(session_id: str, machine_id: str, deadline: Deadline) -> Response:
    """End the current session."""
    current_coordinator().logout(session_id, machine_id, deadline=deadline)
    return {}, status.HTTP_200_OK, {}


def get_all_sessions(session_id: str, machine_id: str,
                     deadline: Deadline) -> Response:
    """List the live sessions of the account behind the current session."""
    sessions = current_coordinator().get_all_sessions(session_id, machine_id,
                                                      deadline=deadline)
    data = {'sessions': {sid: to_dict(info)
                         for sid, info in sessions.items()}}
    return data, status.HTTP_200_OK, {}


def terminate_sessions(params: MultiDict, session_id: str, machine_id: str,
                       deadline: Deadline) -> Response:
    """End some sessions of the account behind the current session."""
    targets = [sid for sid in params.getlist('sessions_to_terminate') if sid]
    if not targets:
        raise InvalidArgument('No sessions to terminate',
                              'sessions_to_terminate: This field is required.')
    current_coordinator().terminate_sessions(session_id, machine_id, targets,
                                             deadline=deadline)
    return {}, status.HTTP_200_OK, {}
