"""Loguru setup shared by the engine and the shell."""

import sys

from loguru import logger

logger.configure(extra={"component": "playground"})


def setup_logger(level: str = "INFO") -> None:
    """Setup colored logging for the playground with specified level.

    Raises ValueError for an unknown level, leaving the current sinks alone.
    """
    level = level.upper()
    logger.level(level)
    logger.remove()
    logger.add(
        sys.stderr,
        format="<green>{time:YYYY-MM-DD HH:mm:ss.SSS}</green> | "
        + "<level>{level: <8}</level> | "
        + "<cyan>{extra[component]}</cyan> | "
        + "<level>{message}</level>",
        level=level,
        colorize=True,
    )


def get_logger(component: str):
    """Return a logger bound to a component name."""
    return logger.bind(component=component)
