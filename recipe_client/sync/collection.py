"""Paginated collection store.

Accumulates pages of recipes for one QuerySignature at a time:

    idle -> initial_loading -> ready <-> loading_more -> ready (exhausted when has_more is False)

Every page fetch runs through a single CancellableRequestSlot, so a newer
fetch always supersedes an older one. Independently of the slot, each fetch
remembers the generation it was issued under, and a response that comes back
after the signature changed is dropped as stale.

has_more policy: with a server total, `fetched_count < total`; without one, a
full page (`received == requested_size`) means there may be more. That
inference is wrong by one empty extra page when the true count is an exact
multiple of the page size, which is accepted.
"""

from typing import Awaitable, Callable, Iterable, Optional

from recipe_client.models.models import (
    CollectionState,
    CollectionStatus,
    Page,
    QuerySignature,
    Recipe,
    SyncResult,
    SyncStatus,
)
from recipe_client.sync.request_slot import CancellableRequestSlot, CancellationToken
from recipe_client.utils.config import config
from recipe_client.utils.logger import logger


PageFetcher = Callable[[QuerySignature, int, int, CancellationToken], Awaitable[Page]]
StateListener = Callable[[CollectionState], None]


def merge_unique(existing: Iterable[Recipe], incoming: Iterable[Recipe]) -> tuple[Recipe, ...]:
    """Concatenate, keeping the first occurrence of every id."""
    seen: set[str] = set()
    merged = []
    for recipe in (*existing, *incoming):
        if recipe.id in seen:
            continue
        seen.add(recipe.id)
        merged.append(recipe)
    return tuple(merged)


def infer_has_more(page: Page, fetched_count: int) -> bool:
    """Decide whether another page may exist, from the most recent page only."""
    if page.total is not None:
        return fetched_count < page.total
    return page.received == page.requested_size


class PaginatedCollectionStore:
    """Owns one CollectionState and the request slot that feeds it."""

    def __init__(self, fetch_page: PageFetcher, page_size: Optional[int] = None, name: str = "collection") -> None:
        """Initialize the store.

        Args:
            fetch_page: `fetch_page(signature, page, page_size, token)` returning a Page.
            page_size: Requested page size; defaults to config.PAGE_SIZE.
            name: Label used in logs and for the request slot.
        """
        self._fetch_page = fetch_page
        self.page_size = page_size or config.PAGE_SIZE
        self.name = name
        self._slot = CancellableRequestSlot(name)
        self._state = CollectionState()
        self._generation = 0
        self._listeners: list[StateListener] = []

    @property
    def state(self) -> CollectionState:
        return self._state

    def subscribe(self, listener: StateListener) -> Callable[[], None]:
        """Observe every state replacement. Returns an unsubscribe callable."""
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def _set_state(self, state: CollectionState) -> None:
        self._state = state
        for listener in list(self._listeners):
            listener(state)

    def _fetch(self, signature: QuerySignature, page: int):
        async def operation(token: CancellationToken) -> Page:
            return await self._fetch_page(signature, page, self.page_size, token)

        return operation

    def _is_current(self, generation: int, signature: QuerySignature) -> bool:
        return generation == self._generation and self._state.signature == signature

    async def load_initial(self, signature: QuerySignature) -> SyncResult:
        """Reset to `signature` and fetch page 1.

        Items and page count are cleared before the fetch is issued. Calling this
        again with the same signature acts as a refresh.
        """
        self._generation += 1
        generation = self._generation
        self._set_state(CollectionState(signature=signature, status=CollectionStatus.INITIAL_LOADING))
        logger.info("Loading first page", extra={"screen": self.name, "signature": signature})

        result = await self._slot.run(self._fetch(signature, 1))

        if not self._is_current(generation, signature):
            logger.debug("Dropping first page for a superseded query", extra={"screen": self.name})
            return result if result.status is SyncStatus.CANCELLED else SyncResult.stale()

        if result.status is SyncStatus.CANCELLED:
            self._set_state(self._state.model_copy(update={"status": CollectionStatus.IDLE}))
            return result

        if not result.succeeded:
            self._set_state(self._state.model_copy(update={"status": CollectionStatus.IDLE, "error": result.message}))
            return result

        page: Page = result.value
        self._set_state(
            CollectionState(
                signature=signature,
                items=merge_unique((), page.items),
                loaded_page_count=1,
                fetched_count=page.received,
                has_more=infer_has_more(page, page.received),
                status=CollectionStatus.READY,
            )
        )
        logger.info(
            f"Loaded page 1: {len(self._state.items)} items, has_more={self._state.has_more}",
            extra={"screen": self.name},
        )
        return SyncResult.ok(self._state)

    async def load_more(self) -> SyncResult:
        """Fetch the next page. A no-op unless ready with has_more."""
        state = self._state
        if state.status is not CollectionStatus.READY or not state.has_more:
            return SyncResult.skipped()

        generation = self._generation
        signature = state.signature
        page_number = state.loaded_page_count + 1
        self._set_state(state.model_copy(update={"status": CollectionStatus.LOADING_MORE, "error": None}))
        logger.info(f"Loading page {page_number}", extra={"screen": self.name, "page": page_number})

        result = await self._slot.run(self._fetch(signature, page_number))

        if not self._is_current(generation, signature):
            logger.debug(f"Dropping page {page_number} for a superseded query", extra={"screen": self.name})
            return result if result.status is SyncStatus.CANCELLED else SyncResult.stale()

        if result.status is SyncStatus.CANCELLED:
            self._set_state(self._state.model_copy(update={"status": CollectionStatus.READY}))
            return result

        if not result.succeeded:
            # Accumulated items stay; has_more is untouched so the user can retry
            self._set_state(self._state.model_copy(update={"status": CollectionStatus.READY, "error": result.message}))
            return result

        page: Page = result.value
        current = self._state
        fetched_count = current.fetched_count + page.received
        self._set_state(
            current.model_copy(
                update={
                    "items": merge_unique(current.items, page.items),
                    "loaded_page_count": page_number,
                    "fetched_count": fetched_count,
                    "has_more": infer_has_more(page, fetched_count),
                    "status": CollectionStatus.READY,
                    "error": None,
                }
            )
        )
        logger.info(
            f"Loaded page {page_number}: {len(self._state.items)} items total, has_more={self._state.has_more}",
            extra={"screen": self.name},
        )
        return SyncResult.ok(self._state)

    def get_item(self, item_id: str) -> Optional[Recipe]:
        for item in self._state.items:
            if item.id == item_id:
                return item
        return None

    def update_item(self, item_id: str, **changes) -> bool:
        """Replace one item's fields in place (position kept). Returns False if absent."""
        if self.get_item(item_id) is None:
            return False
        items = tuple(item.model_copy(update=changes) if item.id == item_id else item for item in self._state.items)
        self._set_state(self._state.model_copy(update={"items": items}))
        return True

    def close(self) -> None:
        """Cancel any in-flight fetch and stop notifying listeners."""
        self._generation += 1
        self._slot.cancel()
        self._listeners.clear()
