"""
Logging setup shared by the API and the monitor client.
"""
import logging
import sys

LOG_FORMAT = "%(asctime)s | %(levelname)-8s | %(name)-20s | %(message)s"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"

_configured = False


def setup_logging(level: str = "INFO") -> logging.Logger:
    """
    Configure the root logger once.

    Args:
        level: Log level name (DEBUG, INFO, WARNING, ERROR)

    Returns:
        The root logger
    """
    global _configured
    root_logger = logging.getLogger()
    root_logger.setLevel(getattr(logging, level.upper(), logging.INFO))
    if _configured:
        return root_logger

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(logging.Formatter(LOG_FORMAT, DATE_FORMAT))
    root_logger.addHandler(handler)

    # uvicorn access lines duplicate our request logging
    logging.getLogger("uvicorn.access").setLevel(logging.WARNING)
    _configured = True
    return root_logger
