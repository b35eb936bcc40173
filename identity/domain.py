"""Defines the core data structures for the identity service."""

from datetime import datetime
from typing import Any, NamedTuple, Optional

import dateutil.parser
from pytz import UTC


class Account(NamedTuple):
    """An activated account, as held in the accounts table."""

    email: str
    password_hash: str
    registration_date: datetime
    id: Optional[str] = None


class PendingRegistration(NamedTuple):
    """Credentials held for an email address awaiting verification."""

    username: str
    password_hash: str


class Session(NamedTuple):
    """An authenticated session bound to an account and a machine."""

    session_id: str
    account_id: str
    machine_id: str
    client_ip: str
    last_activity: datetime


class SessionInfo(NamedTuple):
    """The part of a :class:`.Session` that is shown to its owner."""

    client_ip: str
    machine_id: str
    last_activity: datetime


def now() -> datetime:
    """Get the current time as an aware UTC datetime."""
    return datetime.now(tz=UTC)


def to_dict(obj: tuple) -> dict:
    """
    Generate a dict representation of a NamedTuple instance.

    Datetimes are cast to ISO 8601 strings so that the result can be passed
    directly to :func:`json.dumps`.
    """
    if not hasattr(obj, '_asdict'):  # NamedTuple-generated classes have this.
        return {}

    def _cast(value: Any) -> Any:
        if isinstance(value, datetime):
            return value.isoformat()
        return value
    return {key: _cast(value) for key, value in obj._asdict().items()}


def session_from_dict(data: dict) -> Session:
    """Instantiate a :class:`.Session` from its dict representation."""
    last_activity = data['last_activity']
    if isinstance(last_activity, str):
        last_activity = dateutil.parser.parse(last_activity)
    if last_activity.tzinfo is None:
        last_activity = last_activity.replace(tzinfo=UTC)
    return Session(
        session_id=data['session_id'],
        account_id=data['account_id'],
        machine_id=data['machine_id'],
        client_ip=data['client_ip'],
        last_activity=last_activity
    )


def session_info(session: Session) -> SessionInfo:
    """Project a :class:`.Session` onto a :class:`.SessionInfo`."""
    return SessionInfo(client_ip=session.client_ip,
                       machine_id=session.machine_id,
                       last_activity=session.last_activity)
