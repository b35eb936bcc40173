"""Logging for the identity service, as single-line JSON records."""

import logging
import sys
from typing import Optional, Union

from pythonjsonlogger.json import JsonFormatter

from .context import get_application_config

FORMAT = '%(asctime)s %(levelname)s %(name)s %(message)s'
RENAME_FIELDS = {
    'asctime': 'timestamp',
    'levelname': 'level',
    'name': 'logger'
}


def get_level(value: Union[int, str]) -> int:
    """
    Interpret a log level given as a number or a name.

    Raises
    ------
    ValueError
        If ``value`` is neither a number nor a known level name.
    """
    if isinstance(value, int):
        return value
    value = value.strip()
    if value.isdigit():
        return int(value)
    level = logging.getLevelName(value.upper())
    if not isinstance(level, int):
        raise ValueError(f'Unknown log level: {value}')
    return level


def getLogger(name: str, stream=sys.stderr,
              logfile: Optional[str] = None) -> logging.Logger:
    """
    Get a logger with JSON formatting and the configured level.

    Parameters
    ----------
    name : str
        Usually ``__name__`` of the calling module.
    stream : file-like
        Where records are written. Defaults to stderr.
    logfile : str
        If set (here or as ``LOGFILE`` in the config), records are also
        appended to this file.

    Returns
    -------
    :class:`logging.Logger`
    """
    config = get_application_config()
    logger = logging.getLogger(name)
    if getattr(logger, '_identity_configured', False):
        return logger

    formatter = JsonFormatter(FORMAT, rename_fields=RENAME_FIELDS)
    handler = logging.StreamHandler(stream)
    handler.setFormatter(formatter)
    logger.addHandler(handler)

    logfile = logfile or config.get('LOGFILE')
    if logfile:
        file_handler = logging.FileHandler(logfile)
        file_handler.setFormatter(formatter)
        logger.addHandler(file_handler)

    logger.setLevel(get_level(config.get('LOGLEVEL', logging.INFO)))
    logger.propagate = False
    logger._identity_configured = True    # type: ignore
    return logger
