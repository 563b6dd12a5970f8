"""Centralized logging setup for the field-extraction pipeline.

Configures one stdout handler on the root logger and keeps the HTTP
client chatter of the model SDK out of the pipeline's own log stream.
"""

import logging
import sys

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"

_NOISY_LOGGERS = ("openai", "httpx", "httpcore")


def setup_logging(level: str = "INFO", fmt: str = LOG_FORMAT) -> None:
    """Configure the root logger once.

    Repeated calls are no-ops while the root logger has handlers.

    Args:
        level: Logging level name. Unknown names fall back to INFO.
        fmt: Record format string.
    """
    numeric_level = getattr(logging, level.upper(), None)
    if not isinstance(numeric_level, int):
        numeric_level = logging.INFO
    root = logging.getLogger()

    if root.handlers:
        return

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(logging.Formatter(fmt, datefmt="%Y-%m-%d %H:%M:%S"))
    root.addHandler(handler)
    root.setLevel(numeric_level)

    for name in _NOISY_LOGGERS:
        logging.getLogger(name).setLevel(max(numeric_level, logging.WARNING))


def get_logger(name: str) -> logging.Logger:
    """Get a named logger, typically for ``__name__``."""
    return logging.getLogger(name)
