"""Process-wide logging setup."""

import logging
from typing import Optional
from pythonjsonlogger.json import JsonFormatter

FORMAT = '%(asctime)s %(levelname)s %(name)s %(message)s'

_handler: Optional[logging.Handler] = None


def setup_logger(level: str = 'INFO', json: bool = True) -> None:
    """Install the service's stream handler on the root logger."""
    global _handler
    logger = logging.getLogger()
    if _handler is not None:
        logger.removeHandler(_handler)

    logHandler = logging.StreamHandler()
    if json:
        formatter = JsonFormatter(
            FORMAT,
            rename_fields={'levelname': 'level', 'asctime': 'timestamp'}
        )
    else:
        formatter = logging.Formatter(FORMAT)
    logHandler.setFormatter(formatter)
    logger.addHandler(logHandler)
    logger.setLevel(level.upper())
    _handler = logHandler
