import logging
import sys

LOGGER_NAME = "hunkstage"
LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"


def setup_logging(level: int | str = logging.WARNING) -> logging.Logger:
    """
    Attach a stderr handler to the package logger.

    Calling it again only updates the level; propagation is disabled so host
    applications with their own root handler do not print records twice.
    """
    logger = logging.getLogger(LOGGER_NAME)
    logger.setLevel(level)
    logger.propagate = False

    if not any(getattr(h, "_hunkstage_handler", False) for h in logger.handlers):
        handler = logging.StreamHandler(sys.stderr)
        handler.setFormatter(logging.Formatter(LOG_FORMAT))
        handler._hunkstage_handler = True
        logger.addHandler(handler)

    return logger


def get_logger(name: str) -> logging.Logger:
    return logging.getLogger(name)
