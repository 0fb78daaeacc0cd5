"""Search screen: keyword plus ingredient chips against /recipes/search."""

from typing import Iterable, Optional

from recipe_client.models.models import Page, QuerySignature, normalize_ingredients
from recipe_client.screens.base import CollectionScreen
from recipe_client.screens.browse import ingredient_set
from recipe_client.sync.request_slot import CancellationToken


class SearchScreen(CollectionScreen):
    name = "search"
    load_error_message = "Failed to load search results"

    def __init__(self, api, term: str = "", ingredients: Iterable[str] = (), **kwargs) -> None:
        super().__init__(api, **kwargs)
        # Chips keep the order the user typed them; the query uses the normalized set
        self._chips: list[str] = normalize_ingredients(ingredients)
        self._term = self._debounced((term or "").strip(), "term")
        self._ingredients = self._debounced(ingredient_set(self._chips), "ingredients")

    @property
    def ingredients(self) -> tuple[str, ...]:
        return tuple(self._chips)

    def signature(self) -> QuerySignature:
        return QuerySignature(term=self._term.value, ingredients=self._ingredients.value)

    async def fetch_page(self, signature: QuerySignature, page: int, page_size: int, token: CancellationToken) -> Page:
        return await self.api.search_recipes(signature, page, page_size)

    def set_term(self, raw: str) -> None:
        self._term.observe((raw or "").strip())

    def add_ingredients(self, raw: str) -> list[str]:
        """Add comma-separated chips. Returns the ones that were not already present."""
        merged = normalize_ingredients([*self._chips, *(raw or "").split(",")])
        added = merged[len(self._chips):]
        if added:
            self._chips = merged
            self._chips_changed()
        return added

    def remove_ingredient(self, ingredient: str) -> bool:
        wanted = " ".join((ingredient or "").split()).lower()
        remaining = [chip for chip in self._chips if chip.lower() != wanted]
        if len(remaining) == len(self._chips):
            return False
        self._chips = remaining
        self._chips_changed()
        return True

    def remove_last_ingredient(self) -> Optional[str]:
        """Backspace on an empty chip input."""
        if not self._chips:
            return None
        removed = self._chips.pop()
        self._chips_changed()
        return removed

    def _chips_changed(self) -> None:
        self._ingredients.observe(ingredient_set(self._chips))
