"""Top-level boundary for unexpected errors raised by consumers."""

import asyncio
import logging
from types import TracebackType
from typing import Any, Awaitable, Callable, Optional, Type

from .exceptions import is_cancellation

logger = logging.getLogger(__name__)


class ErrorBoundary(object):
    """
    Captures unexpected errors so that they can be rendered as a recovery
    affordance instead of crashing the application.

    Use as a context manager around consumer code, or wrap a coroutine with
    :meth:`run`:

    .. code-block:: python

       boundary = ErrorBoundary(on_error=show_reload_prompt)
       with boundary:
           view.render()
       if boundary.has_error:
           ...   # boundary.recovery() describes what to show

    Cancellation-class errors never reach the boundary: :class:`.Cancelled`
    is dropped, and :class:`asyncio.CancelledError` is re-raised so that task
    cancellation keeps working.
    """

    def __init__(self, on_error: Optional[Callable[[BaseException], Any]]
                 = None) -> None:
        self.on_error = on_error
        self.error: Optional[BaseException] = None

    @property
    def has_error(self) -> bool:
        """Whether an unexpected error has been captured."""
        return self.error is not None

    def capture(self, exc: BaseException) -> bool:
        """
        Capture ``exc`` if it is unexpected.

        Returns
        -------
        bool
            ``True`` if the error was handled by the boundary (captured or
            dropped), ``False`` if it must propagate.

        """
        if isinstance(exc, asyncio.CancelledError):
            return False
        if is_cancellation(exc):
            logger.debug('Cancellation ignored by error boundary: %s', exc)
            return True
        if not isinstance(exc, Exception):
            return False     # KeyboardInterrupt, SystemExit.
        logger.error('Error boundary caught an error: %s', exc,
                     exc_info=(type(exc), exc, exc.__traceback__))
        self.error = exc
        if self.on_error is not None:
            self.on_error(exc)
        return True

    def recovery(self) -> Optional[dict]:
        """Describe the recovery affordance for the captured error."""
        if self.error is None:
            return None
        return {
            'title': 'Something went wrong.',
            'message': str(self.error),
            'action': 'reload'
        }

    def reset(self) -> None:
        """Clear the captured error, e.g. after the user chose to reload."""
        self.error = None

    async def run(self, awaitable: Awaitable) -> Any:
        """Await ``awaitable`` inside the boundary."""
        try:
            return await awaitable
        except BaseException as e:
            if not self.capture(e):
                raise
        return None

    def __enter__(self) -> 'ErrorBoundary':
        return self

    def __exit__(self, exc_type: Optional[Type[BaseException]],
                 exc: Optional[BaseException],
                 tb: Optional[TracebackType]) -> bool:
        if exc is None:
            return False
        return self.capture(exc)
