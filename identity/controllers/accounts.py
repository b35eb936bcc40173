"""Controllers for account registration, verification and management."""

from werkzeug.datastructures import MultiDict

from .. import status
from ..deadline import Deadline
from . import Response, current_coordinator
from .forms import ChangePasswordForm, CreateAccountForm, TokenRequestForm, \
    VerifyAccountForm, validate


def create_account(params: MultiDict, deadline: Deadline) -> Response:
    """
    Register a new account, pending verification of its email address.

    Parameters
    ----------
    params : :class:`MultiDict`
        Must contain ``email``, ``username``, ``password`` and
        ``repeat_password``.
    deadline : :class:`.Deadline`

    Returns
    -------
    dict
        Empty.
    int
        201 Created.
    dict
        Extra headers; none.
    """
    form = CreateAccountForm(params)
    validate(form)
    current_coordinator().create_account(
        form.email.data, form.username.data, form.password.data,
        repeat_password=form.repeat_password.data, deadline=deadline
    )
    return {}, status.HTTP_201_CREATED, {}


def request_verification_token(params: MultiDict,
                               deadline: Deadline) -> Response:
    """Send a verification link for a pending registration."""
    form = TokenRequestForm(params)
    validate(form)
    current_coordinator().request_account_verification_token(
        form.email.data, form.url.data, deadline=deadline
    )
    return {}, status.HTTP_200_OK, {}


def verify_account(params: MultiDict, deadline: Deadline) -> Response:
    """Activate an account from its verification token."""
    form = VerifyAccountForm(params)
    validate(form)
    current_coordinator().verify_account(form.verification_token.data,
                                         deadline=deadline)
    return {}, status.HTTP_200_OK, {}


def get_account_id(session_id: str, machine_id: str,
                   deadline: Deadline) -> Response:
    """Identify the account behind a session, via ``X-Account-Id``."""
    account_id = current_coordinator().get_account_id(session_id, machine_id,
                                                      deadline=deadline)
    return {}, status.HTTP_200_OK, {'X-Account-Id': account_id}


def request_change_password_token(params: MultiDict,
                                  deadline: Deadline) -> Response:
    """Send a change-password link for an activated account."""
    form = TokenRequestForm(params)
    validate(form)
    current_coordinator().request_change_password_token(
        form.email.data, form.url.data, deadline=deadline
    )
    return {}, status.HTTP_200_OK, {}


def change_password(params: MultiDict, deadline: Deadline) -> Response:
    """Set a new password using a change-password token."""
    form = ChangePasswordForm(params)
    validate(form)
    current_coordinator().change_password(form.change_password_token.data,
                                          form.new_password.data,
                                          deadline=deadline)
    return {}, status.HTTP_200_OK, {}


def delete_account(session_id: str, machine_id: str,
                   deadline: Deadline) -> Response:
    """Delete the account behind a session."""
    current_coordinator().delete_account(session_id, machine_id,
                                         deadline=deadline)
    return {}, status.HTTP_200_OK, {}
