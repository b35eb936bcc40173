"""Stores and external services used by the identity coordinator."""

from typing import Any, Optional

_fake_server: Optional[Any] = None


def fake_server() -> Any:
    """
    Get the in-process Redis server shared by all fake clients.

    Only used when ``REDIS_FAKE`` is set, so that the registration, session
    and event clients of one process see the same data as they would on a
    real Redis deployment.
    """
    global _fake_server
    if _fake_server is None:
        import fakeredis
        _fake_server = fakeredis.FakeServer()
    return _fake_server


def is_set(value: Any) -> bool:
    """Interpret a configuration flag that may be a string."""
    if isinstance(value, str):
        return value.strip().lower() in ('1', 'true', 'yes', 'on')
    return bool(value)
