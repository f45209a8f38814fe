"""
Package-level logging configuration.

* Rich console output (colourised, nicely formatted).
* Rotating log file under ``$MILVUE_BATCH_LOG_DIR`` when that
  variable is set.
* Optional plain-text mirror controlled via ``--save-logfile`` on the CLI.

The public helper :func:`setup_logging` wires everything and is only called
by the CLI; library code receives or creates structlog loggers and never
configures handlers itself.
"""

from __future__ import annotations

import atexit
import logging
import logging.handlers
import os
from pathlib import Path
from typing import Optional

import structlog
from rich.logging import RichHandler
from structlog.dev import ConsoleRenderer as StructlogConsoleRenderer
from structlog.stdlib import LoggerFactory

__all__ = ["setup_logging", "console_level"]

LOG_DIR_ENV = "MILVUE_BATCH_LOG_DIR"


# --------------------------------------------------------------------------- #
# Internal helpers – file-based handlers                                      #
# --------------------------------------------------------------------------- #
def _rotating_file_handler(level: int) -> logging.Handler | None:
    """Return a rotating file handler when ``$MILVUE_BATCH_LOG_DIR`` is set."""
    env_dir = os.environ.get(LOG_DIR_ENV)
    if not env_dir:
        return None

    logdir = Path(env_dir).expanduser()
    logdir.mkdir(parents=True, exist_ok=True)
    handler = logging.handlers.RotatingFileHandler(
        filename=logdir / "milvue-batch.log",
        maxBytes=5_000_000,  # ~5 MB before rollover
        backupCount=3,
        encoding="utf-8",
    )
    handler.setLevel(level)
    return handler


def _plain_text_file_handler(
    path: Optional[Path], level: int
) -> logging.Handler | None:
    """Return a plain-text file handler or *None* when *path* is *None*.

    Args:
        path: Destination file.
        level: Log-level for the handler.
    """
    if path is None:
        return None

    path = path.expanduser().resolve()
    path.parent.mkdir(parents=True, exist_ok=True)

    handler = logging.FileHandler(path, encoding="utf-8", mode="a")
    handler.setLevel(level)
    handler.setFormatter(logging.Formatter("%(asctime)s [%(levelname)s] %(message)s"))
    atexit.register(handler.close)
    return handler


def console_level(*, verbose: bool = False, debug: bool = False, quiet: bool = False) -> int:
    """Map the CLI verbosity flags to a :mod:`logging` level.

    ``--debug`` wins over ``--verbose`` which wins over ``--quiet``.  Without
    any flag only warnings and errors reach the console.
    """
    if debug:
        return logging.DEBUG
    if verbose:
        return logging.INFO
    if quiet:
        return logging.ERROR
    return logging.WARNING


# --------------------------------------------------------------------------- #
# Public API – main entry-point                                               #
# --------------------------------------------------------------------------- #
def setup_logging(
    *,
    verbose: bool = False,
    debug: bool = False,
    quiet: bool = False,
    extra_text_log: Optional[Path] = None,
) -> None:
    """Configure rich console logging and optional file mirrors.

    Args:
        verbose: Emit INFO-level messages to the console.
        debug: Emit DEBUG-level messages plus rich tracebacks with request
            details.
        quiet: Only show errors on the console.
        extra_text_log: Optional path for a plain-text mirror of console output.
    """
    console_lvl = console_level(verbose=verbose, debug=debug, quiet=quiet)
    file_lvl = logging.DEBUG if debug else logging.INFO

    handlers: list[logging.Handler] = [
        RichHandler(
            level=console_lvl,
            rich_tracebacks=True,
            tracebacks_show_locals=False,
            markup=False,
            show_path=debug,
        )
    ]

    file_handler = _rotating_file_handler(file_lvl)
    if file_handler:
        handlers.append(file_handler)

    txt_handler = _plain_text_file_handler(extra_text_log, console_lvl)
    if txt_handler:
        handlers.append(txt_handler)

    logging.basicConfig(
        level=min(console_lvl, file_lvl),
        handlers=handlers,
        format="%(message)s",  # Rich/structlog handle formatting
        force=True,
    )
    # urllib3 logs every connection at DEBUG; keep it out of normal runs.
    logging.getLogger("urllib3").setLevel(logging.DEBUG if debug else logging.WARNING)

    structlog.configure(
        processors=[
            structlog.stdlib.add_logger_name,
            structlog.processors.add_log_level,
            structlog.processors.TimeStamper(fmt="iso"),
            StructlogConsoleRenderer(colors=False),
        ],
        wrapper_class=structlog.make_filtering_bound_logger(min(console_lvl, file_lvl)),
        logger_factory=LoggerFactory(),
        cache_logger_on_first_use=False,
    )
