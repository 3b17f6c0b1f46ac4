"""Logging setup for stor.

Log events go through structlog and are rendered to stderr, keeping stdout
free for dry-run diagrams and command output. The default level is WARNING.
Debug output is enabled with ``--verbose`` or the STOR_DEBUG environment
variable:

    $ STOR_DEBUG=1 stor track ~/.vimrc
"""

import logging
import os
import sys
from typing import Any

import structlog

from stor.core.constants import ENV_DEBUG, TRUTHY_VALUES


def debug_enabled() -> bool:
    """Check whether STOR_DEBUG asks for debug logging."""
    return os.environ.get(ENV_DEBUG, "").lower() in TRUTHY_VALUES


def _stderr_logger(*args: Any) -> structlog.PrintLogger:
    # Look sys.stderr up per logger so redirected streams are honoured.
    return structlog.PrintLogger(file=sys.stderr)


def configure_logging(verbose: bool = False) -> None:
    """Configure structlog for CLI use.

    Args:
        verbose: Force debug level regardless of the environment
    """
    level = logging.DEBUG if verbose or debug_enabled() else logging.WARNING

    structlog.configure(
        processors=[
            structlog.processors.add_log_level,
            structlog.processors.TimeStamper(fmt="iso", utc=True),
            structlog.dev.ConsoleRenderer(colors=False),
        ],
        wrapper_class=structlog.make_filtering_bound_logger(level),
        logger_factory=_stderr_logger,
        cache_logger_on_first_use=False,
    )
