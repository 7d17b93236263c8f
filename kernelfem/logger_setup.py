"""Package-wide logger configuration."""

import logging
import sys


def setup_logger(name: str, level: int = logging.INFO) -> logging.Logger:
    """Create the logger used across the package.

    Repeated calls (e.g. on module reload) replace the existing handlers
    instead of stacking new ones.

    Args:
        name (str): Logger name, normally the package ``__name__``.
        level (int, optional): Logging level. Defaults to ``logging.INFO``.

    Returns:
        logging.Logger: Configured logger.
    """
    logger = logging.getLogger(name)
    logger.setLevel(level)

    if logger.hasHandlers():
        logger.handlers.clear()

    handler = logging.StreamHandler(sys.stdout)
    handler.setLevel(level)
    formatter = logging.Formatter(
        '[%(asctime)s][%(levelname)s] %(name)s: %(message)s',
        datefmt='%m-%d %H:%M:%S'
    )
    handler.setFormatter(formatter)
    logger.addHandler(handler)

    return logger
