"""
Process-wide guard against cancellation-class errors.

Superseded lookups, lost deadline races and torn-down consumers all leave
behind errors that are expected artifacts of teardown, not failures. Most are
handled where they occur (see :mod:`.reconciler`), but some escape through
unrelated code paths: an abandoned task whose exception is never retrieved, a
callback raising on a dead consumer, a worker thread. :func:`install` hooks
the places those errors surface (the event loop's exception handler,
``sys.excepthook``, ``threading.excepthook``) and drops them before they reach
logging or the :class:`.boundary.ErrorBoundary`. Anything else is passed on to
the previously installed handler untouched.
"""

import asyncio
import logging
import sys
import threading
from typing import Any, Dict, Optional

from .exceptions import is_cancellation

logger = logging.getLogger(__name__)

_previous: Dict[str, Any] = {}


class CancellationFilter(logging.Filter):
    """Drop log records whose attached exception is cancellation-class."""

    def filter(self, record: logging.LogRecord) -> bool:
        if record.exc_info and record.exc_info[1] is not None \
                and is_cancellation(record.exc_info[1]):
            return False
        return True


def _loop_exception_handler(loop: asyncio.AbstractEventLoop,
                            context: dict) -> None:
    exc = context.get('exception')
    if exc is not None and is_cancellation(exc):
        logger.debug('Suppressed cancellation in event loop: %s',
                     context.get('message'))
        return
    previous = _previous.get('loop_handler')
    if previous is not None:
        previous(loop, context)
    else:
        loop.default_exception_handler(context)


def _excepthook(exc_type: type, exc: BaseException, tb: Any) -> None:
    if is_cancellation(exc):
        logger.debug('Suppressed uncaught cancellation: %s', exc)
        return
    _previous['excepthook'](exc_type, exc, tb)


def _threading_excepthook(args: Any) -> None:
    if args.exc_value is not None and is_cancellation(args.exc_value):
        logger.debug('Suppressed cancellation in thread %s', args.thread)
        return
    _previous['threading_excepthook'](args)


def install(loop: Optional[asyncio.AbstractEventLoop] = None) -> None:
    """
    Install the guard.

    Safe to call more than once. The event loop handler is installed on
    ``loop``, or on the running loop if there is one.
    """
    if 'excepthook' not in _previous:
        _previous['excepthook'] = sys.excepthook
        sys.excepthook = _excepthook
        _previous['threading_excepthook'] = threading.excepthook
        threading.excepthook = _threading_excepthook
        logger.debug('Installed cancellation guard')

    if loop is None:
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            return
    if loop.get_exception_handler() is not _loop_exception_handler:
        _previous['loop_handler'] = loop.get_exception_handler()
        loop.set_exception_handler(_loop_exception_handler)


def uninstall(loop: Optional[asyncio.AbstractEventLoop] = None) -> None:
    """Restore the handlers that were in place before :func:`install`."""
    if 'excepthook' in _previous:
        sys.excepthook = _previous.pop('excepthook')
        threading.excepthook = _previous.pop('threading_excepthook')
    if loop is None:
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            loop = None
    if loop is not None \
            and loop.get_exception_handler() is _loop_exception_handler:
        loop.set_exception_handler(_previous.pop('loop_handler', None))
