"""Favorites screen: the signed-in user's saved recipes."""

from recipe_client.models.models import Page, QuerySignature, SyncResult
from recipe_client.screens.base import CollectionScreen
from recipe_client.sync.request_slot import CancellationToken
from recipe_client.utils.errors import AuthenticationRequiredError


class FavoritesScreen(CollectionScreen):
    """Unfavoriting here flips the card's flag; the card stays until the next refresh."""

    name = "favorites"
    load_error_message = "Failed to load favorites"

    def signature(self) -> QuerySignature:
        return QuerySignature()

    async def fetch_page(self, signature: QuerySignature, page: int, page_size: int, token: CancellationToken) -> Page:
        return await self.api.list_user_favorites(page, page_size)

    async def refresh(self) -> SyncResult:
        if not self.api.credentials.is_authenticated:
            result = SyncResult.rejected(AuthenticationRequiredError("view favorites"))
            self._report(result)
            return result
        return await super().refresh()
