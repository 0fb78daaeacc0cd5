"""Cancellable request slot: one outstanding call per logical channel.

Starting a call on a slot cancels the call still running there. Cancellation
is cooperative: the running task is cancelled (aborting the aiohttp request)
and its token is flagged, and whatever the superseded call eventually
produces, success or failure, is discarded as SyncResult.cancelled().
"""

import asyncio
from typing import Any, Awaitable, Callable, Optional

from recipe_client.models.models import SyncResult
from recipe_client.utils.errors import RecipeClientError
from recipe_client.utils.logger import logger


class CancellationToken:
    """Flag handed to an operation so it can observe its own cancellation."""

    def __init__(self) -> None:
        self._cancelled = False

    @property
    def is_cancelled(self) -> bool:
        return self._cancelled

    def cancel(self) -> None:
        self._cancelled = True


Operation = Callable[[CancellationToken], Awaitable[Any]]


class CancellableRequestSlot:
    """Owns at most one in-flight request task; newer requests win."""

    def __init__(self, name: str = "request") -> None:
        self.name = name
        self._task: Optional[asyncio.Task] = None
        self._token: Optional[CancellationToken] = None

    @property
    def busy(self) -> bool:
        return self._task is not None and not self._task.done()

    def cancel(self) -> bool:
        """Signal the in-flight call, if any. Returns True if one was running."""
        if self._token is not None:
            self._token.cancel()
        if self._task is not None and not self._task.done():
            logger.debug(f"Cancelling superseded request on slot '{self.name}'")
            self._task.cancel()
            return True
        return False

    async def run(self, operation: Operation) -> SyncResult:
        """Run `operation(token)` after cancelling whatever this slot was running.

        Returns:
            SyncResult.ok(value) when the call completed and was not superseded,
            SyncResult.failed(error) for a genuine failure,
            SyncResult.cancelled() when a newer call (or cancel()) superseded it.

        Raises:
            asyncio.CancelledError: If the task awaiting run() is itself cancelled.
        """
        self.cancel()

        token = CancellationToken()
        task = asyncio.ensure_future(operation(token))
        self._token, self._task = token, task

        try:
            value = await task
        except asyncio.CancelledError:
            if token.is_cancelled:
                return SyncResult.cancelled()
            # The caller was cancelled, not superseded: let it propagate
            token.cancel()
            raise
        except Exception as e:
            if token.is_cancelled:
                logger.debug(f"Ignoring failure of superseded request on slot '{self.name}': {e}")
                return SyncResult.cancelled()
            if isinstance(e, RecipeClientError):
                logger.warning(f"Request on slot '{self.name}' failed: {e}")
            else:
                logger.error(f"Request on slot '{self.name}' raised unexpectedly: {e}", exc_info=True)
            return SyncResult.failed(e)
        finally:
            if self._task is task:
                self._task = None
                self._token = None

        if token.is_cancelled:
            logger.debug(f"Discarding result of superseded request on slot '{self.name}'")
            return SyncResult.cancelled()
        return SyncResult.ok(value)
