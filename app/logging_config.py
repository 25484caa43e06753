# =======================================================================================
# app/logging_config.py - Logging Setup
# =======================================================================================
import logging
from .config import config

_configured = False


def setup_logging() -> logging.Logger:
    """Install a single console handler on the ``app`` logger."""
    global _configured
    logger = logging.getLogger("app")
    if _configured:
        return logger

    level = logging.DEBUG if config.API_DEBUG else getattr(logging, config.LOG_LEVEL, logging.INFO)
    logger.setLevel(level)

    console_handler = logging.StreamHandler()
    console_handler.setFormatter(logging.Formatter(
        "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
    ))
    logger.addHandler(console_handler)

    _configured = True
    return logger
