import logging

from rich.console import Console
from rich.logging import RichHandler


def setup_logging(log_level: str = "INFO", console: Console | None = None) -> logging.Logger:
    """Route vidstage logs to a rich console handler.

    Safe to call more than once; earlier handlers are replaced.
    """
    logger = logging.getLogger("vidstage")
    logger.setLevel(getattr(logging, log_level.upper(), logging.INFO))

    for handler in logger.handlers[:]:
        logger.removeHandler(handler)

    handler = RichHandler(
        console=console or Console(stderr=True),
        show_path=False,
        rich_tracebacks=True,
    )
    handler.setFormatter(logging.Formatter("%(name)s: %(message)s"))
    logger.addHandler(handler)
    logger.propagate = False
    return logger
