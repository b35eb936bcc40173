"""
Error taxonomy for the identity service.

Every failure raised by a store, the token codec, the event emitter or the
coordinator is an :class:`IdentityError`. Its :attr:`IdentityError.kind`
decides how the failure is reported to callers (see
:mod:`identity.routes.rpc`). The string form of an error is meant for
developers and logs; :attr:`IdentityError.user_message` is safe to show to
the person making the request.
"""

from enum import Enum
from typing import Optional


class ErrorKind(Enum):
    """Kinds of failure that the service reports."""

    UNKNOWN = 'UNKNOWN'
    INTERNAL = 'INTERNAL'
    INVALID_ARGUMENT = 'INVALID_ARGUMENT'
    UNAUTHENTICATED = 'UNAUTHENTICATED'
    CONFLICT = 'CONFLICT'
    NOT_FOUND = 'NOT_FOUND'
    CANCELED = 'CANCELED'
    DEADLINE_EXCEEDED = 'DEADLINE_EXCEEDED'
    PERMISSION_DENIED = 'PERMISSION_DENIED'


class IdentityError(RuntimeError):
    """Base class for all identity service failures."""

    kind = ErrorKind.UNKNOWN

    def __init__(self, message: str = '',
                 user_message: Optional[str] = None) -> None:
        super(IdentityError, self).__init__(message)
        self.user_message = user_message

    @property
    def message(self) -> str:
        return str(self)


class Internal(IdentityError):
    """A store, codec or broker failed."""

    kind = ErrorKind.INTERNAL


class InvalidArgument(IdentityError):
    """The request is not acceptable as given."""

    kind = ErrorKind.INVALID_ARGUMENT


class Unauthenticated(IdentityError):
    """The request does not carry a valid session."""

    kind = ErrorKind.UNAUTHENTICATED


class Conflict(IdentityError):
    """The request collides with existing state."""

    kind = ErrorKind.CONFLICT


class NotFound(IdentityError):
    """The requested object does not exist."""

    kind = ErrorKind.NOT_FOUND


class Canceled(IdentityError):
    """The request was cancelled before it completed."""

    kind = ErrorKind.CANCELED


class DeadlineExceeded(IdentityError):
    """The request ran past its deadline."""

    kind = ErrorKind.DEADLINE_EXCEEDED


class PermissionDenied(IdentityError):
    """The caller may not do this."""

    kind = ErrorKind.PERMISSION_DENIED


class StoreUnavailable(Internal):
    """A backing store could not be reached or returned an error."""


class SessionCreationFailed(Internal):
    """Failed to create a session in the session store."""


class SessionDeletionFailed(Internal):
    """Failed to delete a session in the session store."""


class UnknownSession(NotFound):
    """No session exists with the requested id."""


class NoSuchAccount(NotFound):
    """No activated account matches the request."""


class NoSuchRegistration(NotFound):
    """No pending registration exists for the email address."""


class InvalidToken(InvalidArgument):
    """A token failed signature or structural validation."""


class ExpiredToken(InvalidToken):
    """A token is past its expiry."""


class EventDeliveryFailed(Internal):
    """The event broker did not acknowledge a message."""


class HashingFailed(Internal):
    """The password hasher produced no usable output."""
