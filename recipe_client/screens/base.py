"""Shared plumbing for screens that show a paginated recipe grid.

A collection screen wires one PaginatedCollectionStore to the screen's
filters, an InfiniteScrollTrigger bound to that store, and the optimistic
mutation coordinator for favorite toggles. User-facing outcomes are reported
through a `notify(message, level)` callback, with level one of "success",
"info" or "error".
"""

import asyncio
from typing import Any, Callable, Coroutine, Optional

from recipe_client.api.client import RecipeApiClient
from recipe_client.models.models import CollectionState, MutationKind, Page, QuerySignature, SyncResult, SyncStatus
from recipe_client.sync.collection import PaginatedCollectionStore
from recipe_client.sync.debounce import DebouncedValue
from recipe_client.sync.infinite_scroll import InfiniteScrollTrigger
from recipe_client.sync.mutations import OptimisticMutationCoordinator
from recipe_client.sync.request_slot import CancellationToken
from recipe_client.utils.logger import logger


Notifier = Callable[[str, str], None]


def log_notification(message: str, level: str) -> None:
    """Default notifier: toasts go to the log."""
    if level == "error":
        logger.warning(message)
    else:
        logger.info(message)


def report_favorite(notify: Notifier, result: SyncResult) -> None:
    if result.succeeded:
        notify("Added to favorites" if result.value else "Removed from favorites", "success")
    elif result.status is SyncStatus.REJECTED:
        notify(result.message, "info")
    elif result.status is SyncStatus.FAILED:
        notify("Failed to update favorites", "error")


class TaskTracker:
    """Owns the background tasks a screen spawns so close() can cancel them."""

    def __init__(self) -> None:
        self._tasks: set[asyncio.Task] = set()
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    def _spawn(self, coro: Coroutine[Any, Any, Any]) -> Optional[asyncio.Task]:
        if self._closed:
            coro.close()
            return None
        task = asyncio.ensure_future(coro)
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    async def settle(self) -> None:
        """Wait until every task spawned so far, and any they spawn, has finished."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    def _cancel_tasks(self) -> None:
        self._closed = True
        for task in list(self._tasks):
            task.cancel()
        self._tasks.clear()


class CollectionScreen(TaskTracker):
    """Base for Browse, Search and Favorites."""

    name = "collection"
    load_error_message = "Failed to load recipes"

    def __init__(
        self,
        api: RecipeApiClient,
        coordinator: Optional[OptimisticMutationCoordinator] = None,
        notify: Optional[Notifier] = None,
        page_size: Optional[int] = None,
        debounce_ms: Optional[int] = None,
    ) -> None:
        super().__init__()
        self.api = api
        self.coordinator = coordinator or OptimisticMutationCoordinator(api)
        self._notify = notify or log_notification
        self._debounce_ms = debounce_ms
        self._debouncers: list[DebouncedValue] = []
        self.store = PaginatedCollectionStore(self.fetch_page, page_size=page_size, name=self.name)
        self.trigger = InfiniteScrollTrigger(lambda: self._spawn(self.load_more()), name=self.name)
        self._unbind_trigger = self.trigger.bind(self.store)

    @property
    def state(self) -> CollectionState:
        return self.store.state

    def subscribe(self, listener: Callable[[CollectionState], None]) -> Callable[[], None]:
        return self.store.subscribe(listener)

    def signature(self) -> QuerySignature:
        """The query the screen's current filters describe."""
        raise NotImplementedError

    async def fetch_page(self, signature: QuerySignature, page: int, page_size: int, token: CancellationToken) -> Page:
        raise NotImplementedError

    def _debounced(self, initial: Any, name: str) -> DebouncedValue:
        value = DebouncedValue(initial, delay_ms=self._debounce_ms, name=f"{self.name}.{name}")
        value.subscribe(lambda _: self._spawn(self.refresh()))
        self._debouncers.append(value)
        return value

    def _report(self, result: SyncResult) -> None:
        if result.status is SyncStatus.FAILED:
            self._notify(self.load_error_message, "error")
        elif result.status is SyncStatus.REJECTED:
            self._notify(result.message, "info")

    async def start(self) -> SyncResult:
        return await self.refresh()

    async def refresh(self) -> SyncResult:
        """Load page 1 for the current filters, discarding what was loaded before."""
        if self.closed:
            return SyncResult.skipped()
        result = await self.store.load_initial(self.signature())
        self._report(result)
        return result

    async def load_more(self) -> SyncResult:
        result = await self.store.load_more()
        self._report(result)
        return result

    def set_sentinel_visible(self, visible: bool) -> bool:
        """Report the bottom sentinel's visibility. Returns True if a page load was started."""
        return self.trigger.set_visible(visible)

    async def toggle_favorite(self, recipe_id: str) -> SyncResult:
        result = await self.coordinator.toggle_favorite(self.store, recipe_id)
        report_favorite(self._notify, result)
        return result

    def is_favorite_pending(self, recipe_id: str) -> bool:
        return self.coordinator.is_pending(recipe_id, MutationKind.FAVORITE)

    def close(self) -> None:
        """Tear down: pending debounced input is dropped, in-flight fetches are cancelled."""
        if self.closed:
            return
        logger.debug(f"Closing screen '{self.name}'")
        for debouncer in self._debouncers:
            debouncer.close()
        self._unbind_trigger()
        self.trigger.close()
        self.store.close()
        self._cancel_tasks()
