"""Pre-configured Loguru logger with Rich output."""

from loguru import logger
from rich.console import Console
from rich.logging import RichHandler
from rich.traceback import install

# beautify tracebacks with Rich
install()

console = Console()

# remove default handler
logger.remove()

_handler_id = logger.add(
    RichHandler(
        console=console,
        markup=False,
        show_time=True,
        show_level=True,
        show_path=True,
    ),
    level="DEBUG",
    format="{message}",
)


def set_level(level: str) -> None:
    """Re-register the Rich handler at ``level``."""
    global _handler_id
    logger.remove(_handler_id)
    _handler_id = logger.add(
        RichHandler(
            console=console,
            markup=False,
            show_time=True,
            show_level=True,
            show_path=True,
        ),
        level=level.upper(),
        format="{message}",
    )


__all__ = ["logger", "console", "set_level"]
