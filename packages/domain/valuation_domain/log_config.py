"""Shared logging configuration.

Call ``setup()`` once at the top of an entry point to get ISO-8601 timestamps
on every log line. Library modules only ever call ``logging.getLogger(__name__)``.
"""

from __future__ import annotations

import logging
from typing import Optional

_LOG_FORMAT = "%(asctime)s | %(name)s | %(levelname)s | %(message)s"
_DATE_FORMAT = "%Y-%m-%dT%H:%M:%S%z"


def setup(*, verbose: bool = False, level: Optional[str] = None) -> None:
    """Configure the root logger with timestamped output.

    Args:
        verbose: If True, set level to DEBUG; otherwise use ``level``.
        level: Level name (e.g. "WARNING"). Defaults to INFO.
    """
    if verbose:
        resolved = logging.DEBUG
    else:
        resolved = logging.getLevelName((level or "INFO").upper())
        if not isinstance(resolved, int):
            resolved = logging.INFO

    logging.basicConfig(
        level=resolved,
        format=_LOG_FORMAT,
        datefmt=_DATE_FORMAT,
    )
