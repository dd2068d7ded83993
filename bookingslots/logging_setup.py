"""
Logging configuration for the CLI and the HTTP server.
"""

import logging

from rich.console import Console
from rich.logging import RichHandler

NOISY_LOGGERS = (
    "sqlalchemy",
    "sqlalchemy.engine",
    "sqlalchemy.pool",
    "uvicorn.access",
    "httpx",
)


def configure_logging(level: str = "INFO", console: Console | None = None) -> None:
    """
    Route application logs through Rich.

    Third-party loggers are kept at WARNING unless running at DEBUG.
    """
    numeric_level = getattr(logging, level.upper(), logging.INFO)

    logging.basicConfig(
        level=numeric_level,
        format="%(name)s: %(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=console or Console(stderr=True), rich_tracebacks=True, show_path=False)],
        force=True,
    )

    if numeric_level > logging.DEBUG:
        for name in NOISY_LOGGERS:
            logging.getLogger(name).setLevel(logging.WARNING)
