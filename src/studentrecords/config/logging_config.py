import logging
from typing import Optional

from studentrecords.config.settings import settings

LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"
BASE_LOGGER = "studentrecords"


def setup_logging(level: Optional[str] = None) -> logging.Logger:
    resolved = getattr(logging, (level or settings.log_level).upper(), logging.INFO)

    logger = logging.getLogger(BASE_LOGGER)
    logger.setLevel(resolved)

    # Avoid duplicate console handlers
    if not any(isinstance(h, logging.StreamHandler) for h in logger.handlers):
        handler = logging.StreamHandler()
        handler.setFormatter(logging.Formatter(LOG_FORMAT))
        logger.addHandler(handler)

    logger.propagate = False
    return logger


def get_logger(name: Optional[str] = None) -> logging.Logger:
    base = logging.getLogger(BASE_LOGGER)
    return base.getChild(name) if name else base
