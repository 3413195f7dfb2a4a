"""
Logging configuration for the command line.
"""

import logging

from rich.console import Console
from rich.logging import RichHandler


def configure_logging(level: str = "WARNING", console: Console | None = None) -> None:
    """
    Route log records through Rich on stderr.

    Calling it again replaces the previous Rich handler, so repeated CLI
    invocations in one process do not duplicate output.

    Args:
        level: Logging level name (DEBUG, INFO, WARNING, ERROR)
        console: Console to write to; a stderr console by default
    """
    root = logging.getLogger()

    for handler in [h for h in root.handlers if isinstance(h, RichHandler)]:
        root.removeHandler(handler)

    handler = RichHandler(
        console=console or Console(stderr=True),
        show_path=False,
        log_time_format="[%X]",
    )
    handler.setFormatter(logging.Formatter("%(message)s"))

    root.addHandler(handler)
    root.setLevel(getattr(logging, level.upper(), logging.WARNING))
