# Copyright (c) 2022-present, FriendliAI Inc. All rights reserved.

"""Object Transfer Logger."""

from __future__ import annotations

import logging
import os

LOGGER_NAME = "objtransfer"
LOG_LEVEL_ENV = "OBJTRANSFER_LOG_LEVEL"

_RESET = "\x1b[0m"
_LEVEL_COLORS = {
    logging.DEBUG: "\x1b[38;20m",
    logging.INFO: "\x1b[38;20m",
    logging.WARNING: "\x1b[33;20m",
    logging.ERROR: "\x1b[31;20m",
    logging.CRITICAL: "\x1b[31;1m",
}


class ColorFormatter(logging.Formatter):
    """Formatter that colors each record by its level.

    Colors are left out when ``use_color`` is off, e.g. when stderr is redirected to
    a file.
    """

    def __init__(self, use_color: bool = True) -> None:
        """Initialize ColorFormatter."""
        super().__init__(
            fmt="%(asctime)s.%(msecs)03d: %(name)s %(levelname)s: %(message)s",
            datefmt="%Y-%m-%d %H:%M:%S",
        )
        self.use_color = use_color

    def format(self, record: logging.LogRecord) -> str:
        """Format the record and wrap it in the color of its level."""
        text = super().format(record)
        if not self.use_color:
            return text
        color = _LEVEL_COLORS.get(record.levelno, _LEVEL_COLORS[logging.INFO])
        return f"{color}{text}{_RESET}"


def get_logger(name: str = LOGGER_NAME) -> logging.Logger:
    """Get a logger in the ``objtransfer`` hierarchy.

    Names outside the hierarchy are nested under it. The first call installs a
    stderr handler on the hierarchy root, with the level taken from
    ``OBJTRANSFER_LOG_LEVEL``.
    """
    if name != LOGGER_NAME and not name.startswith(f"{LOGGER_NAME}."):
        name = f"{LOGGER_NAME}.{name}"

    root = logging.getLogger(LOGGER_NAME)
    if not root.handlers:
        handler = logging.StreamHandler()
        handler.setFormatter(ColorFormatter(use_color=handler.stream.isatty()))
        root.addHandler(handler)
        root.setLevel(os.environ.get(LOG_LEVEL_ENV, "INFO").upper())

    return logging.getLogger(name)


logger = get_logger()
