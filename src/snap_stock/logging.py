import logging
import os
from typing import List, Optional

NAMESPACE = "snap_stock"
LOG_FORMAT = "%(asctime)s [%(name)s] %(levelname)s: %(message)s"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"

_LEVELS = {
    "CRITICAL": logging.CRITICAL,
    "ERROR": logging.ERROR,
    "WARN": logging.WARNING,
    "WARNING": logging.WARNING,
    "INFO": logging.INFO,
    "DEBUG": logging.DEBUG,
}


def level_from_env(value: Optional[str] = None) -> int:
    """Map LOG_LEVEL (or ``value``) to a logging level; unknown names mean INFO."""
    raw = value if value is not None else os.environ.get("LOG_LEVEL", "INFO")
    return _LEVELS.get(str(raw).upper().strip(), logging.INFO)


def _handlers(level: int) -> List[logging.Handler]:
    formatter = logging.Formatter(fmt=LOG_FORMAT, datefmt=DATE_FORMAT)
    handlers: List[logging.Handler] = [logging.StreamHandler()]
    log_file = os.environ.get("LOG_FILE")
    if log_file:
        try:
            handlers.append(logging.FileHandler(log_file, encoding="utf-8"))
        except OSError as exc:
            logging.getLogger(NAMESPACE).warning("LOG_FILE %s could not be opened: %s", log_file, exc)
    for handler in handlers:
        handler.setLevel(level)
        handler.setFormatter(formatter)
    return handlers


def get_logger(name: str) -> logging.Logger:
    """Return the ``snap_stock.<name>`` logger, configured once.

    Writes to stderr and, when LOG_FILE is set, appends to that file.
    Records do not propagate to the root logger.
    """
    logger = logging.getLogger(f"{NAMESPACE}.{name}")
    if getattr(logger, "_snapstock_configured", False):
        return logger

    level = level_from_env()
    logger.setLevel(level)
    for handler in _handlers(level):
        logger.addHandler(handler)
    logger.propagate = False
    setattr(logger, "_snapstock_configured", True)
    return logger
