from __future__ import annotations

import logging
from typing import Optional

LOG_FORMAT = "%(asctime)s %(levelname)-7s %(name)s: %(message)s"
LOG_DATEFMT = "%H:%M:%S"

# urllib3 chatter: header parse warnings always, pool/retry notes unless debugging
_QUIET_ALWAYS = ("urllib3.connection",)
_QUIET_UNLESS_DEBUG = ("urllib3.connectionpool",)


def level_for_verbosity(verbosity: int) -> int:
    """Map the count of ``-v`` flags to a level: none WARNING, -v INFO, -vv DEBUG."""
    if verbosity <= 0:
        return logging.WARNING
    if verbosity == 1:
        return logging.INFO
    return logging.DEBUG


def configure_logging(level: Optional[int] = None) -> int:
    """Attach one stderr handler to the root logger and set its level.

    Calling again only changes the level. Returns the level applied.
    """
    lvl = logging.WARNING if level is None else level
    root = logging.getLogger()
    if not root.handlers:
        handler = logging.StreamHandler()
        handler.setFormatter(logging.Formatter(LOG_FORMAT, LOG_DATEFMT))
        root.addHandler(handler)
    root.setLevel(lvl)

    for name in _QUIET_ALWAYS:
        logging.getLogger(name).setLevel(logging.ERROR)
    for name in _QUIET_UNLESS_DEBUG:
        logging.getLogger(name).setLevel(logging.DEBUG if lvl <= logging.DEBUG else logging.WARNING)
    return lvl
