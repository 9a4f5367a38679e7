from __future__ import annotations

import logging
from enum import IntEnum
from typing import Any


class Severity(IntEnum):
    """
    Cloud Logging LogSeverity, with its numeric values (ordering is meaningful).
    """

    DEFAULT = 0
    DEBUG = 100
    INFO = 200
    NOTICE = 300
    WARNING = 400
    ERROR = 500
    CRITICAL = 600
    ALERT = 700
    EMERGENCY = 800


_ALIASES: dict[str, Severity] = {
    "WARN": Severity.WARNING,
    "FATAL": Severity.CRITICAL,
    "ERR": Severity.ERROR,
    "TRACE": Severity.DEBUG,
}

_STDLIB_LEVELS: dict[int, Severity] = {
    logging.DEBUG: Severity.DEBUG,
    logging.INFO: Severity.INFO,
    logging.WARNING: Severity.WARNING,
    logging.ERROR: Severity.ERROR,
    logging.CRITICAL: Severity.CRITICAL,
}


def parse_severity(value: Any, *, default: Severity = Severity.DEFAULT) -> Severity:
    """
    Map free-text (or stdlib int level) severities onto `Severity`.

    Unknown values fall back to `default` (the neutral DEFAULT severity).
    """
    if isinstance(value, Severity):
        return value
    if isinstance(value, int) and not isinstance(value, bool):
        if value in _STDLIB_LEVELS:
            return _STDLIB_LEVELS[value]
        try:
            return Severity(value)
        except ValueError:
            return default
    if value is None:
        return default
    s = str(value).strip().upper()
    if not s:
        return default
    if s in Severity.__members__:
        return Severity[s]
    return _ALIASES.get(s, default)
