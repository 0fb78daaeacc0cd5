"""Browse screen: the full recipe listing filtered by category, keyword and ingredients."""

from typing import Optional

from recipe_client.models.models import Page, QuerySignature, SyncResult
from recipe_client.screens.base import CollectionScreen
from recipe_client.sync.request_slot import CancellationToken
from recipe_client.utils.errors import RecipeClientError
from recipe_client.utils.logger import logger


def ingredient_set(raw) -> tuple[str, ...]:
    """Normalize "chicken, Tomato" (or a list) to the form a QuerySignature stores."""
    return QuerySignature(ingredients=raw).ingredients


class BrowseScreen(CollectionScreen):
    """Category changes apply immediately; keyword and ingredient typing is debounced."""

    name = "browse"
    load_error_message = "Failed to load recipes"

    def __init__(self, api, category: str = "", term: str = "", ingredients: str = "", **kwargs) -> None:
        super().__init__(api, **kwargs)
        self.category = (category or "").strip()
        self.categories: list[str] = []
        self._term = self._debounced((term or "").strip(), "term")
        self._ingredients = self._debounced(ingredient_set(ingredients), "ingredients")

    def signature(self) -> QuerySignature:
        return QuerySignature(term=self._term.value, category=self.category, ingredients=self._ingredients.value)

    async def fetch_page(self, signature: QuerySignature, page: int, page_size: int, token: CancellationToken) -> Page:
        return await self.api.list_recipes(signature, page, page_size)

    async def start(self) -> SyncResult:
        await self.load_categories()
        return await self.refresh()

    async def load_categories(self) -> list[str]:
        """Fetch the sidebar categories. A failure leaves the previous list in place."""
        try:
            self.categories = await self.api.list_categories()
        except RecipeClientError as e:
            logger.warning(f"Could not load categories: {e}")
        return self.categories

    def set_term(self, raw: str) -> None:
        self._term.observe((raw or "").strip())

    def set_ingredients_text(self, raw: str) -> None:
        self._ingredients.observe(ingredient_set(raw))

    async def set_category(self, category: Optional[str]) -> SyncResult:
        category = (category or "").strip()
        if category == self.category:
            return SyncResult.skipped()
        self.category = category
        return await self.refresh()
