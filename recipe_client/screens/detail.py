"""Recipe detail screen: one recipe, its favorite flag and its notes.

The recipe and its notes load through separate request slots, so reopening the
notes panel never cancels the recipe fetch and vice versa. Note edits go
through the optimistic mutation coordinator.
"""

from typing import Callable, Optional

from recipe_client.api.client import RecipeApiClient
from recipe_client.models.models import MutationKind, Note, Recipe, SyncResult, SyncStatus
from recipe_client.screens.base import Notifier, TaskTracker, log_notification, report_favorite
from recipe_client.sync.mutations import OptimisticMutationCoordinator
from recipe_client.sync.notes import NoteList
from recipe_client.sync.request_slot import CancellableRequestSlot, CancellationToken
from recipe_client.utils.errors import RecipeClientError
from recipe_client.utils.logger import logger


class RecipeDetailScreen(TaskTracker):
    name = "detail"

    def __init__(
        self,
        api: RecipeApiClient,
        recipe_id: str,
        coordinator: Optional[OptimisticMutationCoordinator] = None,
        notify: Optional[Notifier] = None,
    ) -> None:
        super().__init__()
        self.api = api
        self.recipe_id = recipe_id
        self.coordinator = coordinator or OptimisticMutationCoordinator(api)
        self._notify = notify or log_notification
        self.recipe: Optional[Recipe] = None
        self.notes = NoteList()
        self.recipe_error: Optional[str] = None
        self.notes_error: Optional[str] = None
        self._recipe_slot = CancellableRequestSlot(f"{self.name}.recipe")
        self._notes_slot = CancellableRequestSlot(f"{self.name}.notes")
        self._listeners: list[Callable[[Optional[Recipe]], None]] = []

    @property
    def recipe_loading(self) -> bool:
        return self._recipe_slot.busy

    @property
    def notes_loading(self) -> bool:
        return self._notes_slot.busy

    def subscribe(self, listener: Callable[[Optional[Recipe]], None]) -> Callable[[], None]:
        """Observe recipe changes. Note changes are observed through `notes.subscribe`."""
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def _set_recipe(self, recipe: Optional[Recipe]) -> None:
        self.recipe = recipe
        for listener in list(self._listeners):
            listener(recipe)

    # -------------------------Loading------------------------- #

    async def start(self) -> SyncResult:
        return await self.load_recipe()

    async def _fetch_recipe(self, token: CancellationToken) -> Recipe:
        recipe = await self.api.get_recipe(self.recipe_id)
        if self.api.credentials.is_authenticated:
            try:
                favorite = await self.api.get_favorite_status(self.recipe_id)
                recipe = recipe.model_copy(update={"is_favorite": favorite})
            except RecipeClientError as e:
                logger.warning(f"Could not read favorite status for recipe {self.recipe_id}: {e}")
        return recipe

    async def load_recipe(self) -> SyncResult:
        if self.closed:
            return SyncResult.skipped()
        result = await self._recipe_slot.run(self._fetch_recipe)
        if result.succeeded:
            self.recipe_error = None
            self._set_recipe(result.value)
        elif result.status is SyncStatus.FAILED:
            self.recipe_error = result.message
            self._notify("Failed to load recipe", "error")
        return result

    async def load_notes(self) -> SyncResult:
        """Fetch the notes fresh, replacing the local list."""
        if self.closed:
            return SyncResult.skipped()

        async def fetch(token: CancellationToken) -> list[Note]:
            return await self.api.list_notes(self.recipe_id)

        self.notes_error = None
        result = await self._notes_slot.run(fetch)
        if result.succeeded:
            self.notes.replace_all(result.value)
        elif result.status is SyncStatus.FAILED:
            self.notes_error = "Failed to load notes"
            self._notify("Failed to load notes", "error")
        return result

    # -------------------------Favorite------------------------- #

    def get_item(self, item_id: str) -> Optional[Recipe]:
        if self.recipe is not None and self.recipe.id == item_id:
            return self.recipe
        return None

    def update_item(self, item_id: str, **changes) -> bool:
        if self.get_item(item_id) is None:
            return False
        self._set_recipe(self.recipe.model_copy(update=changes))
        return True

    async def toggle_favorite(self) -> SyncResult:
        if self.recipe is None:
            return SyncResult.skipped()
        result = await self.coordinator.toggle_favorite(self, self.recipe.id)
        report_favorite(self._notify, result)
        return result

    # -------------------------Notes------------------------- #

    def _report_note(self, result: SyncResult, success: str, failure: str) -> None:
        if result.succeeded:
            self._notify(success, "success")
        elif result.status is SyncStatus.REJECTED:
            self._notify(result.message, "info")
        elif result.status is SyncStatus.FAILED:
            self._notify(failure, "error")

    async def add_note(self, content: str) -> SyncResult:
        result = await self.coordinator.create_note(self.notes, self.recipe_id, content)
        self._report_note(result, "Note added", "Failed to add note")
        return result

    async def edit_note(self, note_id: str, content: str) -> SyncResult:
        result = await self.coordinator.update_note(self.notes, self.recipe_id, note_id, content)
        self._report_note(result, "Note updated", "Failed to update note")
        return result

    async def delete_note(self, note_id: str) -> SyncResult:
        result = await self.coordinator.delete_note(self.notes, self.recipe_id, note_id)
        self._report_note(result, "Note deleted", "Failed to delete note")
        return result

    @property
    def favorite_pending(self) -> bool:
        return self.recipe is not None and self.coordinator.is_pending(self.recipe.id, MutationKind.FAVORITE)

    def is_note_pending(self, note_id: str) -> bool:
        return self.coordinator.is_pending(note_id)

    def close(self) -> None:
        if self.closed:
            return
        logger.debug(f"Closing detail screen for recipe {self.recipe_id}")
        self._recipe_slot.cancel()
        self._notes_slot.cancel()
        self._listeners.clear()
        self._cancel_tasks()
