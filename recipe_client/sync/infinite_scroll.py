"""Infinite-scroll trigger driven by a sentinel's visibility.

The trigger is armed when the sentinel goes from hidden to visible, and again
when a load cycle finishes successfully while it is still visible (new content
may not have pushed it off-screen). A failed load does not re-arm it: retrying
takes a fresh hidden -> visible transition or an explicit load_more(). An
armed trigger fires once, only if the collection has more pages and nothing
is loading, and then disarms. A sentinel that simply stays visible never
causes back-to-back fetches.
"""

import asyncio
import inspect
from typing import Any, Callable, Optional

from recipe_client.models.models import CollectionState
from recipe_client.utils.logger import logger


class InfiniteScrollTrigger:
    """Calls `on_load_more` at most once per arming."""

    def __init__(self, on_load_more: Callable[[], Any], name: str = "sentinel") -> None:
        self._on_load_more = on_load_more
        self.name = name
        self._visible = False
        self._armed = False
        self._has_more = False
        self._loading = False
        self._tasks: set[asyncio.Task] = set()

    @property
    def visible(self) -> bool:
        return self._visible

    def bind(self, store) -> Callable[[], None]:
        """Follow a PaginatedCollectionStore's state. Returns the unsubscribe callable."""
        self.observe_state(store.state)
        return store.subscribe(self.observe_state)

    def set_visible(self, visible: bool) -> bool:
        """Report the sentinel's visibility. Returns True if load-more fired."""
        if visible and not self._visible:
            self._armed = True
        self._visible = visible
        if not visible:
            # Re-armed by the next hidden -> visible transition
            self._armed = False
        return self._evaluate()

    def observe_state(self, state: CollectionState) -> bool:
        """Report the collection's flags. Returns True if load-more fired."""
        loading = state.is_initial_loading or state.is_loading_more
        if self._loading and not loading and self._visible and state.error is None:
            self._armed = True
        self._loading = loading
        self._has_more = state.has_more
        return self._evaluate()

    def _evaluate(self) -> bool:
        if not (self._visible and self._armed and self._has_more and not self._loading):
            return False

        self._armed = False
        logger.debug(f"Sentinel '{self.name}' visible, requesting next page")
        result = self._on_load_more()
        if inspect.isawaitable(result):
            task = asyncio.ensure_future(result)
            self._tasks.add(task)
            task.add_done_callback(self._tasks.discard)
        return True

    def close(self) -> None:
        for task in list(self._tasks):
            task.cancel()
        self._tasks.clear()
