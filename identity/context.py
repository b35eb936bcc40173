"""Helpers for resolving configuration and per-context globals."""

import os
from typing import Any, Mapping, Optional

from flask import Flask, current_app, g, has_app_context


def get_application_config(app: Optional[Flask] = None) -> Mapping:
    """
    Get a configuration from the current app, or fall back to env.

    Parameters
    ----------
    app : :class:`flask.Flask`

    Returns
    -------
    dict-like
        This is either the current Flask application configuration, or
        ``os.environ``. Either of these should support the ``get()`` method.
    """
    if app is not None:
        return app.config
    if has_app_context():
        return current_app.config
    return os.environ


def get_application_global() -> Optional[Any]:
    """
    Get the current global object for the application context.

    Returns
    -------
    object or None
        :data:`flask.g` inside an application context, else ``None``.
    """
    if has_app_context():
        return g
    return None
