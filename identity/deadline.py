"""
Per-request deadlines and cancellation.

A :class:`Deadline` travels with a single coordinator operation. The
coordinator calls :meth:`Deadline.check` before every call to a store, the
hasher or the event emitter, so an operation stops at the next suspension
point once its deadline has passed or it has been cancelled.
"""

import threading
import time
from typing import Optional

from .exceptions import Canceled, DeadlineExceeded


class Deadline(object):
    """A point in time after which an operation should give up."""

    def __init__(self, timeout: Optional[float] = None) -> None:
        """
        Start the clock.

        Parameters
        ----------
        timeout : float or None
            Seconds from now. ``None`` means the operation never times out,
            although it can still be cancelled.
        """
        if timeout is not None and timeout <= 0:
            raise ValueError('timeout must be positive')
        self._expires_at: Optional[float] = None
        if timeout is not None:
            self._expires_at = time.monotonic() + timeout
        self._canceled = threading.Event()

    def cancel(self) -> None:
        """Cancel the operation that holds this deadline."""
        self._canceled.set()

    @property
    def canceled(self) -> bool:
        return self._canceled.is_set()

    @property
    def expired(self) -> bool:
        return (self._expires_at is not None
                and time.monotonic() >= self._expires_at)

    def remaining(self) -> Optional[float]:
        """Seconds left before expiry, or ``None`` if there is no limit."""
        if self._expires_at is None:
            return None
        return max(0.0, self._expires_at - time.monotonic())

    def check(self) -> None:
        """
        Raise if the operation should stop.

        Raises
        ------
        :class:`.Canceled`
            If :meth:`cancel` has been called.
        :class:`.DeadlineExceeded`
            If the deadline has passed.
        """
        if self.canceled:
            raise Canceled('context canceled')
        if self.expired:
            raise DeadlineExceeded('context deadline exceeded')
