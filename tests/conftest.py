"""Shared fixtures: an in-process fake of the recipe resource server.

The fake is a small aiohttp.web application served by aiohttp's TestServer.
It keeps its data in memory, records every request, and can hold or fail
individual routes so tests can script latency and errors.
"""

import asyncio
from typing import Optional

import pytest
import pytest_asyncio
from aiohttp import web
from aiohttp.test_utils import TestServer

from recipe_client.api.client import RecipeApiClient
from recipe_client.api.credentials import CredentialProvider


VALID_TOKEN = "valid-token"
USER = {"id": "u1", "email": "cook@example.com", "name": "Cook"}
PASSWORD = "secret"


def sample_recipes() -> list[dict]:
    """17 dinner recipes (12 + 5 across two pages) and 3 lunch recipes, in mixed server shapes."""
    recipes = []
    for i in range(1, 18):
        recipe = {
            "id": f"d{i}",
            "category": "dinner",
            "ingredients": ["chicken"] if i % 2 else ["tomato", "basil"],
        }
        if i % 5 == 0:
            recipe.update(name=f"Dinner {i}", description=f"Dinner number {i}")
        else:
            recipe.update(title=f"Dinner {i}", summary=f"Dinner number {i}", image=f"http://img/d{i}.png")
        recipes.append(recipe)
    for i in range(1, 4):
        recipes.append(
            {"_id": f"l{i}", "title": f"Lunch {i}", "category": "lunch", "ingredients": ["tomato"]}
        )
    return recipes


class FakeRecipeServer:
    """In-memory resource server with request recording and fault injection."""

    def __init__(self) -> None:
        self.recipes = sample_recipes()
        self.categories = ["Dinner", "Lunch"]
        self.favorites: set[str] = set()
        self.notes: dict[str, list[dict]] = {}
        self.next_note_id = 42
        # When False, listings are bare arrays and clients must infer has_more
        self.include_total = False
        self.requests: list[tuple[str, str, list, Optional[str]]] = []
        self.failures: dict[tuple[str, str], list] = {}
        self.gates: dict[tuple[str, str], asyncio.Event] = {}
        self.base_url = ""

        self.app = web.Application(middlewares=[self._middleware])
        self.app.router.add_get("/recipes", self.list_recipes)
        self.app.router.add_get("/recipes/search", self.search_recipes)
        self.app.router.add_get("/recipes/{recipe_id}", self.get_recipe)
        self.app.router.add_get("/categories", self.list_categories)
        self.app.router.add_get("/recipes/{recipe_id}/favorites", self.favorite_status)
        self.app.router.add_post("/recipes/{recipe_id}/favorites", self.add_favorite)
        self.app.router.add_delete("/recipes/{recipe_id}/favorites", self.remove_favorite)
        self.app.router.add_get("/users/me/favorites", self.user_favorites)
        self.app.router.add_get("/recipes/{recipe_id}/notes", self.list_notes)
        self.app.router.add_post("/recipes/{recipe_id}/notes", self.create_note)
        self.app.router.add_put("/recipes/{recipe_id}/notes/{note_id}", self.update_note)
        self.app.router.add_delete("/recipes/{recipe_id}/notes/{note_id}", self.delete_note)
        self.app.router.add_post("/auth/login", self.login)
        self.app.router.add_post("/auth/register", self.register)
        self.app.router.add_post("/auth/refresh", self.refresh)
        self.app.router.add_post("/auth/logout", self.logout)
        self.app.router.add_get("/auth/me", self.me)

    # -------------------------Test controls------------------------- #

    def fail(self, method: str, path: str, status: int = 500, times: int = 1, body: Optional[dict] = None) -> None:
        """Answer the next `times` matching requests with `status`."""
        self.failures[(method, path)] = [status, times, body or {"message": "Injected failure"}]

    def hold(self, method: str, path: str) -> asyncio.Event:
        """Block matching requests until the returned event is set."""
        gate = asyncio.Event()
        self.gates[(method, path)] = gate
        return gate

    def calls(self, method: str, path: str) -> list:
        return [r for r in self.requests if r[0] == method and r[1] == path]

    @web.middleware
    async def _middleware(self, request: web.Request, handler):
        self.requests.append(
            (request.method, request.path, list(request.query.items()), request.headers.get("Authorization"))
        )
        gate = self.gates.get((request.method, request.path))
        if gate is not None:
            await gate.wait()
        failure = self.failures.get((request.method, request.path))
        if failure and failure[1] > 0:
            failure[1] -= 1
            return web.json_response(failure[2], status=failure[0])
        return await handler(request)

    # -------------------------Helpers------------------------- #

    def _authorized(self, request: web.Request) -> bool:
        return request.headers.get("Authorization") == f"Bearer {VALID_TOKEN}"

    def _unauthorized(self) -> web.Response:
        return web.json_response({"message": "Unauthorized"}, status=401)

    def _find(self, recipe_id: str) -> Optional[dict]:
        for recipe in self.recipes:
            if recipe.get("id", recipe.get("_id")) == recipe_id:
                return recipe
        return None

    def _present(self, request: web.Request, recipe: dict) -> dict:
        shown = {k: v for k, v in recipe.items() if k not in ("category", "ingredients")}
        if self._authorized(request):
            shown["isFavorite"] = recipe.get("id", recipe.get("_id")) in self.favorites
        return shown

    def _paginate(self, request: web.Request, matches: list[dict]) -> web.Response:
        page = int(request.query.get("page", "1"))
        size = int(request.query.get("pageSize", "12"))
        start = (page - 1) * size
        items = [self._present(request, r) for r in matches[start:start + size]]
        if self.include_total:
            return web.json_response({"items": items, "total": len(matches), "page": page, "pageSize": size})
        return web.json_response(items)

    def _filter(self, request: web.Request) -> list[dict]:
        term = request.query.get("q", "").lower()
        category = request.query.get("category", "").lower()
        wanted = [i.lower() for i in request.query.getall("ingredients", [])]
        matches = []
        for recipe in self.recipes:
            title = (recipe.get("title") or recipe.get("name") or "").lower()
            if term and term not in title:
                continue
            if category and recipe.get("category") != category:
                continue
            if any(i not in recipe.get("ingredients", []) for i in wanted):
                continue
            matches.append(recipe)
        return matches

    # -------------------------Recipes------------------------- #

    async def list_recipes(self, request: web.Request) -> web.Response:
        return self._paginate(request, self._filter(request))

    async def search_recipes(self, request: web.Request) -> web.Response:
        return self._paginate(request, self._filter(request))

    async def get_recipe(self, request: web.Request) -> web.Response:
        recipe = self._find(request.match_info["recipe_id"])
        if recipe is None:
            return web.json_response({"message": "Recipe not found"}, status=404)
        return web.json_response(self._present(request, recipe))

    async def list_categories(self, request: web.Request) -> web.Response:
        return web.json_response([{"name": name} for name in self.categories])

    # -------------------------Favorites------------------------- #

    async def favorite_status(self, request: web.Request) -> web.Response:
        if not self._authorized(request):
            return self._unauthorized()
        return web.json_response({"isFavorite": request.match_info["recipe_id"] in self.favorites})

    async def add_favorite(self, request: web.Request) -> web.Response:
        if not self._authorized(request):
            return self._unauthorized()
        self.favorites.add(request.match_info["recipe_id"])
        return web.json_response({"ok": True}, status=201)

    async def remove_favorite(self, request: web.Request) -> web.Response:
        if not self._authorized(request):
            return self._unauthorized()
        self.favorites.discard(request.match_info["recipe_id"])
        return web.Response(status=204)

    async def user_favorites(self, request: web.Request) -> web.Response:
        if not self._authorized(request):
            return self._unauthorized()
        matches = [r for r in self.recipes if r.get("id", r.get("_id")) in self.favorites]
        return self._paginate(request, matches)

    # -------------------------Notes------------------------- #

    async def list_notes(self, request: web.Request) -> web.Response:
        return web.json_response({"items": self.notes.get(request.match_info["recipe_id"], [])})

    async def create_note(self, request: web.Request) -> web.Response:
        if not self._authorized(request):
            return self._unauthorized()
        body = await request.json()
        note = {"id": f"n{self.next_note_id}", "content": body["content"], "createdAt": "2024-05-01T12:00:00Z"}
        self.next_note_id += 1
        self.notes.setdefault(request.match_info["recipe_id"], []).insert(0, note)
        return web.json_response(note, status=201)

    async def update_note(self, request: web.Request) -> web.Response:
        if not self._authorized(request):
            return self._unauthorized()
        body = await request.json()
        for note in self.notes.get(request.match_info["recipe_id"], []):
            if note["id"] == request.match_info["note_id"]:
                note.update(content=body["content"], updatedAt="2024-05-02T12:00:00Z")
                return web.json_response(note)
        return web.json_response({"message": "Note not found"}, status=404)

    async def delete_note(self, request: web.Request) -> web.Response:
        if not self._authorized(request):
            return self._unauthorized()
        notes = self.notes.get(request.match_info["recipe_id"], [])
        for note in notes:
            if note["id"] == request.match_info["note_id"]:
                notes.remove(note)
                return web.Response(status=204)
        return web.json_response({"message": "Note not found"}, status=404)

    # -------------------------Auth------------------------- #

    async def login(self, request: web.Request) -> web.Response:
        body = await request.json()
        if body.get("email") != USER["email"] or body.get("password") != PASSWORD:
            return web.json_response({"message": "Invalid credentials"}, status=401)
        return web.json_response({"token": VALID_TOKEN, "user": USER})

    async def register(self, request: web.Request) -> web.Response:
        body = await request.json()
        return web.json_response({"token": VALID_TOKEN, "user": {**USER, "email": body.get("email")}}, status=201)

    async def refresh(self, request: web.Request) -> web.Response:
        if not self._authorized(request):
            return self._unauthorized()
        return web.json_response({"token": VALID_TOKEN})

    async def logout(self, request: web.Request) -> web.Response:
        return web.Response(status=204)

    async def me(self, request: web.Request) -> web.Response:
        if not self._authorized(request):
            return self._unauthorized()
        return web.json_response(USER)


@pytest_asyncio.fixture
async def recipe_server():
    fake = FakeRecipeServer()
    server = TestServer(fake.app)
    await server.start_server()
    fake.base_url = str(server.make_url("/")).rstrip("/")
    yield fake
    await server.close()


@pytest.fixture
def credentials():
    return CredentialProvider(VALID_TOKEN)


@pytest_asyncio.fixture
async def live_api(recipe_server, credentials):
    async with RecipeApiClient(credentials, base_url=recipe_server.base_url, timeout_seconds=5) as client:
        yield client
