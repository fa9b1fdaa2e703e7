"""Logging setup for the kindex CLI.

Library modules only call ``logging.getLogger(__name__)``; handlers are
installed here, once, by the process entry point.
"""

from __future__ import annotations

import logging

from rich.console import Console
from rich.logging import RichHandler

_LOGGER_NAME = "kindex"


def setup_logging(level: int | str = logging.INFO, console: Console | None = None) -> logging.Logger:
    """Attach a RichHandler to the ``kindex`` logger and return it.

    Idempotent: repeated calls only change the level.
    """
    logger = logging.getLogger(_LOGGER_NAME)
    logger.setLevel(level)

    if not any(isinstance(h, RichHandler) for h in logger.handlers):
        handler = RichHandler(
            console=console or Console(stderr=True),
            show_path=False,
            rich_tracebacks=True,
            markup=False,
        )
        handler.setFormatter(logging.Formatter("%(name)s: %(message)s"))
        logger.addHandler(handler)
        logger.propagate = False

    # LiteLLM logs every request at INFO; keep it quiet unless debugging.
    logging.getLogger("LiteLLM").setLevel(
        logging.DEBUG if logger.level <= logging.DEBUG else logging.WARNING
    )
    return logger
