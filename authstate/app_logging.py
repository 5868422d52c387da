"""Log configuration for applications embedding the session context."""

import logging
from typing import Optional

from pythonjsonlogger import jsonlogger

from .suppression import CancellationFilter


def setup_logger(level: str = 'INFO', json: bool = True,
                 logger: Optional[logging.Logger] = None) -> logging.Handler:
    """
    Attach a stream handler to ``logger`` (the root logger by default).

    Cancellation-class errors are filtered from the handler, as they are
    expected artifacts of teardown races rather than failures.
    """
    logHandler = logging.StreamHandler()
    if json:
        formatter: logging.Formatter = jsonlogger.JsonFormatter(
            '%(asctime)s %(levelname)s %(name)s %(message)s',
            rename_fields={'levelname': 'level', 'asctime': 'timestamp'}
        )
    else:
        formatter = logging.Formatter(
            '%(asctime)s %(levelname)s %(name)s: %(message)s'
        )
    logHandler.setFormatter(formatter)
    logHandler.addFilter(CancellationFilter())
    if logger is None:
        logger = logging.getLogger()
    logger.addHandler(logHandler)
    logger.setLevel(level)
    return logHandler
