"""Logging setup for the CLI.

Library modules only call ``logging.getLogger(__name__)``; handlers are
installed once here by the CLI entry point.  Records go to stderr via
Rich when it is installed, else through a plain stream handler.
"""

from __future__ import annotations

import logging

LOGGER_NAME = "reposwarm"


def configure_logging(verbose: bool = False) -> logging.Logger:
    """Attach a single handler to the ``reposwarm`` logger.

    Parameters
    ----------
    verbose:
        ``True`` logs at DEBUG (commands run, health polls, file writes);
        otherwise only warnings and errors are shown.
    """
    logger = logging.getLogger(LOGGER_NAME)
    logger.setLevel(logging.DEBUG if verbose else logging.WARNING)
    logger.handlers = []
    logger.propagate = False

    try:
        from rich.console import Console
        from rich.logging import RichHandler
    except ModuleNotFoundError:
        handler: logging.Handler = logging.StreamHandler()
        handler.setFormatter(logging.Formatter("%(levelname)s: %(message)s"))
    else:
        handler = RichHandler(
            console=Console(stderr=True),
            show_time=False,
            show_path=verbose,
            rich_tracebacks=True,
        )

    logger.addHandler(handler)
    return logger
