"""
Logging for the storefront.

Every module logs through a child of the "storefront" logger, e.g.
``get_logger("data.product_store")`` -> ``storefront.data.product_store``.
Level comes from LOG_LEVEL (default INFO); an unknown level name falls back
to INFO instead of failing at import.
"""
import logging
import os
import sys
from typing import Optional, TextIO

ROOT_LOGGER_NAME = "storefront"
LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"

logger = logging.getLogger(ROOT_LOGGER_NAME)


def _resolve_level(level: Optional[str]) -> int:
    name = (level or os.getenv("LOG_LEVEL", "INFO")).upper()
    resolved = logging.getLevelName(name)
    return resolved if isinstance(resolved, int) else logging.INFO


def configure_logging(level: Optional[str] = None, stream: Optional[TextIO] = None) -> logging.Logger:
    """
    Set the storefront log level and make sure exactly one stream handler is
    attached. Safe to call repeatedly (e.g. from the server entry point after
    the module-level call at import).
    """
    resolved = _resolve_level(level)
    logger.setLevel(resolved)

    handler = next((h for h in logger.handlers if getattr(h, "_storefront", False)), None)
    if handler is None:
        handler = logging.StreamHandler(stream or sys.stdout)
        handler._storefront = True
        handler.setFormatter(logging.Formatter(fmt=LOG_FORMAT, datefmt=DATE_FORMAT))
        logger.addHandler(handler)
    handler.setLevel(resolved)

    # Keep storefront records out of the root logger (uvicorn configures it too)
    logger.propagate = False
    return logger


def get_logger(name: Optional[str] = None) -> logging.Logger:
    """Component logger under "storefront", or the root storefront logger."""
    if name:
        return logging.getLogger(f"{ROOT_LOGGER_NAME}.{name}")
    return logger


configure_logging()
