"""Rich console output and logging setup for the roar CLI."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from collections.abc import MutableMapping

from rich.console import Console
from rich.logging import RichHandler
from rich.theme import Theme

ROAR_THEME = Theme(
    {
        "info": "cyan",
        "success": "green",
        "warning": "yellow",
        "error": "bold red",
        "heading": "bold magenta",
        "muted": "dim",
        "app": "bold green",
        "path": "dim cyan",
    }
)


console = Console(theme=ROAR_THEME)
err_console = Console(theme=ROAR_THEME, stderr=True)

LOG_LEVELS: dict[str, int] = {
    "debug": logging.DEBUG,
    "info": logging.INFO,
    "warn": logging.WARNING,
    "warning": logging.WARNING,
    "error": logging.ERROR,
}


def configure_logging(level: str = "warn") -> logging.Logger:
    """Route the ``roar`` logger hierarchy through a RichHandler on stderr.

    Unknown level names fall back to ``warn``. Calling this again replaces the
    previously installed handler.
    """
    logger = logging.getLogger("roar")
    logger.setLevel(LOG_LEVELS.get(level.lower(), logging.WARNING))

    for handler in list(logger.handlers):
        if isinstance(handler, RichHandler):
            logger.removeHandler(handler)

    handler = RichHandler(
        console=err_console,
        show_path=False,
        markup=False,
        rich_tracebacks=True,
    )
    handler.setFormatter(logging.Formatter("%(message)s"))
    logger.addHandler(handler)
    logger.propagate = False
    return logger


class ApplicationLogger(logging.LoggerAdapter):
    """Logger adapter that tags every record with an application name."""

    def __init__(self, logger: logging.Logger | logging.LoggerAdapter, application: str):
        super().__init__(logger, {"application": application})

    def process(
        self, msg: Any, kwargs: MutableMapping[str, Any]
    ) -> tuple[Any, MutableMapping[str, Any]]:
        kwargs.setdefault("extra", {}).update(self.extra)
        return f"[{self.extra['application']}] {msg}", kwargs


def print_success(message: str, prefix: str = "✓") -> None:
    """Print a success message."""
    console.print(f"[success]{prefix}[/success] {message}")


def print_error(message: str, prefix: str = "✗") -> None:
    """Print an error message to stderr."""
    err_console.print(f"[error]{prefix}[/error] {message}")


def print_header(title: str) -> None:
    """Print a section header."""
    console.print(f"\n[heading]{title}[/heading]")
    console.print(f"[muted]{'─' * len(title)}[/muted]")


def print_key_value(key: str, value: str, indent: int = 0) -> None:
    """Print a key-value pair."""
    spaces = "  " * indent
    console.print(f"{spaces}[muted]{key}:[/muted] {value}")


def format_app(name: str) -> str:
    """Format an application name for display."""
    return f"[app]{name}[/app]"


def format_path(path: str) -> str:
    """Format a path for display."""
    return f"[path]{path}[/path]"


def print_summary(success: int, errors: int) -> None:
    """Print a summary of the run."""
    console.print()
    if errors == 0:
        console.print(f"[success]✓ All done![/success] {success} rendered")
    else:
        console.print(
            f"[warning]Complete[/warning]: "
            f"[success]{success} rendered[/success], "
            f"[error]{errors} failed[/error]"
        )
