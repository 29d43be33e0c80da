"""
Logging setup for the tippool namespace.
"""
import logging
import sys

__all__ = ["get_logger", "setup_logging"]

ROOT_LOGGER = "tippool"


def get_logger(name=None):
    if not name:
        return logging.getLogger(ROOT_LOGGER)
    if name != ROOT_LOGGER and not name.startswith(ROOT_LOGGER + "."):
        name = f"{ROOT_LOGGER}.{name}"
    return logging.getLogger(name)


def setup_logging(level="INFO"):
    """Attach a single stdout handler to the tippool logger."""
    logger = logging.getLogger(ROOT_LOGGER)
    logger.setLevel(str(level or "INFO").upper())
    if logger.handlers:
        return logger

    handler = logging.StreamHandler(sys.stdout)
    formatter = logging.Formatter(
        "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
    )
    handler.setFormatter(formatter)
    logger.addHandler(handler)
    logger.propagate = False
    return logger
