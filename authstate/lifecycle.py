"""
Mount guard for consumer-scoped asynchronous work.

A consumer creates a :class:`MountGuard` when it mounts and unmounts it when
it tears down. Every asynchronous read it performs goes through
:meth:`MountGuard.run`, which checks liveness after the read completes and
drops results (and errors) that arrive after teardown. The underlying
operation is never interrupted: it runs to completion and is ignored.
"""

import logging
from typing import Any, Awaitable, Callable, Optional, TypeVar

from .exceptions import is_cancellation

logger = logging.getLogger(__name__)

T = TypeVar('T')


class MountGuard(object):
    """Liveness flag recorded at mount time."""

    def __init__(self, name: str = 'consumer') -> None:
        self.name = name
        self._mounted = True

    @property
    def mounted(self) -> bool:
        """Whether the owner is still mounted."""
        return self._mounted

    def unmount(self) -> None:
        """Mark the owner as torn down. Pending results will be dropped."""
        if self._mounted:
            logger.debug('%s unmounted', self.name)
        self._mounted = False

    async def run(self, awaitable: Awaitable[T],
                  apply: Optional[Callable[[T], Any]] = None) -> Optional[T]:
        """
        Await ``awaitable`` and hand its result to ``apply`` if still mounted.

        Parameters
        ----------
        awaitable : Awaitable
        apply : callable
            Receives the result. Not called if the owner unmounted while the
            operation was in flight.

        Returns
        -------
        object or None
            The result, or ``None`` if it was dropped.

        Raises
        ------
        Exception
            Errors raised by ``awaitable`` propagate while the owner is
            mounted, except for cancellation-class errors, which are dropped.

        """
        try:
            result = await awaitable
        except Exception as e:
            if not self._mounted or is_cancellation(e):
                logger.debug('%s: dropped error (mounted=%s): %s',
                             self.name, self._mounted, e)
                return None
            raise
        if not self._mounted:
            logger.debug('%s: dropped result that arrived after teardown',
                         self.name)
            return None
        if apply is not None:
            apply(result)
        return result
