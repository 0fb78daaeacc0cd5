"""Async HTTP client for the recipe resource server.

Wraps one aiohttp.ClientSession and exposes one coroutine per server
operation. Every response is normalized through recipe_client.models.models
before it is returned, so callers only ever see Recipe/Note/Page objects.

Endpoints:
- GET    /recipes                         list (page, pageSize, q, category, ingredients[], sort)
- GET    /recipes/search                  search (same parameters)
- GET    /recipes/{id}                    detail
- GET    /categories                      categories
- GET    /recipes/{id}/favorites          favorite status
- POST   /recipes/{id}/favorites          mark favorite
- DELETE /recipes/{id}/favorites          unmark favorite
- GET    /users/me/favorites              the current user's favorites (page, pageSize)
- GET    /recipes/{id}/notes              list notes
- POST   /recipes/{id}/notes              create note {content}
- PUT    /recipes/{id}/notes/{noteId}     update note {content}
- DELETE /recipes/{id}/notes/{noteId}     delete note
"""

import asyncio
import json
from typing import Any, Optional
from urllib.parse import quote

import aiohttp

from recipe_client.api.credentials import CredentialProvider
from recipe_client.models.models import (
    Note,
    Page,
    QuerySignature,
    Recipe,
    parse_categories,
    parse_favorite_status,
    parse_note,
    parse_notes,
    parse_page,
    parse_recipe,
)
from recipe_client.utils.config import config
from recipe_client.utils.errors import RequestFailedError, describe_http_error
from recipe_client.utils.logger import logger


def _segment(value: Any) -> str:
    return quote(str(value), safe="")


class RecipeApiClient:
    """Resource server client. Use as an async context manager or call close()."""

    def __init__(
        self,
        credentials: CredentialProvider,
        base_url: Optional[str] = None,
        timeout_seconds: Optional[float] = None,
        session: Optional[aiohttp.ClientSession] = None,
    ) -> None:
        """Initialize the client.

        Args:
            credentials: Provider read for the bearer token on every request.
            base_url: Server root; defaults to config.API_BASE_URL.
            timeout_seconds: Total per-request timeout; defaults to config.REQUEST_TIMEOUT_SECONDS.
            session: Existing aiohttp session to reuse. The client only closes sessions it created.
        """
        self.credentials = credentials
        self.base_url = (base_url or config.API_BASE_URL).rstrip("/")
        self.timeout_seconds = timeout_seconds or config.REQUEST_TIMEOUT_SECONDS
        self._session = session
        self._owns_session = session is None

    async def __aenter__(self) -> "RecipeApiClient":
        self._get_session()
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.close()

    async def close(self) -> None:
        if self._owns_session and self._session is not None:
            await self._session.close()
            self._session = None

    def _get_session(self) -> aiohttp.ClientSession:
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession()
            self._owns_session = True
        return self._session

    async def request(
        self,
        method: str,
        path: str,
        params: Optional[list[tuple[str, str]]] = None,
        body: Optional[dict] = None,
    ) -> Any:
        """Issue one request and return the decoded body (None when empty).

        Raises:
            RequestFailedError: On transport errors, timeouts and HTTP statuses >= 400.
        """
        url = f"{self.base_url}{path}"
        logger.debug(f"{method} {url} params={params or []}")

        try:
            async with self._get_session().request(
                method,
                url,
                params=params,
                json=body,
                headers=self.credentials.authorization_headers(),
                timeout=aiohttp.ClientTimeout(total=self.timeout_seconds),
            ) as response:
                payload = await self._read_payload(response)
                if response.status >= 400:
                    raise RequestFailedError(
                        f"{method} {path} failed with status {response.status}",
                        status=response.status,
                        user_message=describe_http_error(response.status, payload),
                    )
                return payload
        except asyncio.TimeoutError as e:
            # Checked first: aiohttp's ServerTimeoutError is also a ClientError
            raise RequestFailedError(
                f"{method} {path} timed out after {self.timeout_seconds}s",
                user_message="The server took too long to respond.",
            ) from e
        except aiohttp.ClientError as e:
            raise RequestFailedError(
                f"{method} {path} failed: {e}",
                user_message="Network error. Please check your connection.",
            ) from e

    @staticmethod
    async def _read_payload(response: aiohttp.ClientResponse) -> Any:
        text = await response.text()
        if not text.strip():
            return None
        try:
            return json.loads(text)
        except ValueError:
            return text

    # -------------------------Recipes------------------------- #

    async def list_recipes(self, signature: QuerySignature, page: int, page_size: int) -> Page:
        payload = await self.request("GET", "/recipes", params=signature.to_params(page, page_size))
        return parse_page(payload, page, page_size)

    async def search_recipes(self, signature: QuerySignature, page: int, page_size: int) -> Page:
        payload = await self.request("GET", "/recipes/search", params=signature.to_params(page, page_size))
        return parse_page(payload, page, page_size)

    async def get_recipe(self, recipe_id: str) -> Recipe:
        """Fetch one recipe. A record without its own id is keyed by the requested id.

        Raises:
            RequestFailedError: Also when the server answers with something that is not a record.
        """
        payload = await self.request("GET", f"/recipes/{_segment(recipe_id)}")
        if isinstance(payload, dict) and payload.get("id") is None and payload.get("_id") is None:
            payload = {**payload, "id": recipe_id}
        recipe = parse_recipe(payload)
        if recipe is None:
            raise RequestFailedError(
                f"Recipe {recipe_id} response had no id",
                user_message="Failed to load recipe",
            )
        return recipe

    async def list_categories(self) -> list[str]:
        payload = await self.request("GET", "/categories")
        return parse_categories(payload)

    # -------------------------Favorites------------------------- #

    async def get_favorite_status(self, recipe_id: str) -> bool:
        payload = await self.request("GET", f"/recipes/{_segment(recipe_id)}/favorites")
        return parse_favorite_status(payload)

    async def add_favorite(self, recipe_id: str) -> None:
        await self.request("POST", f"/recipes/{_segment(recipe_id)}/favorites")

    async def remove_favorite(self, recipe_id: str) -> None:
        await self.request("DELETE", f"/recipes/{_segment(recipe_id)}/favorites")

    async def set_favorite(self, recipe_id: str, favorite: bool) -> bool:
        """Mark or unmark a favorite. Returns the flag the server now holds."""
        if favorite:
            await self.add_favorite(recipe_id)
        else:
            await self.remove_favorite(recipe_id)
        return favorite

    async def list_user_favorites(self, page: int, page_size: int) -> Page:
        params = [("page", str(page)), ("pageSize", str(page_size))]
        payload = await self.request("GET", "/users/me/favorites", params=params)
        return parse_page(payload, page, page_size, favorite=True)

    # -------------------------Notes------------------------- #

    async def list_notes(self, recipe_id: str) -> list[Note]:
        payload = await self.request("GET", f"/recipes/{_segment(recipe_id)}/notes")
        return parse_notes(payload)

    async def create_note(self, recipe_id: str, content: str) -> Optional[Note]:
        """Create a note. Returns None if the server's answer carries no note id."""
        payload = await self.request("POST", f"/recipes/{_segment(recipe_id)}/notes", body={"content": content})
        return parse_note(payload)

    async def update_note(self, recipe_id: str, note_id: str, content: str) -> Optional[Note]:
        """Update a note. Returns the server's version, or None if it echoed nothing usable."""
        payload = await self.request(
            "PUT",
            f"/recipes/{_segment(recipe_id)}/notes/{_segment(note_id)}",
            body={"content": content},
        )
        return parse_note(payload)

    async def delete_note(self, recipe_id: str, note_id: str) -> None:
        await self.request("DELETE", f"/recipes/{_segment(recipe_id)}/notes/{_segment(note_id)}")
