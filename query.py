#!/usr/bin/env python3
"""Ad hoc query runner for the recipe client.

Drive the same screens the UI uses against a live resource server and print
what they end up holding.

Usage:
    python query.py chicken                                   # Browse, keyword "chicken"
    python query.py --category dinner --pages 2               # Browse a category, two pages
    python query.py --search --ingredient tomato --ingredient basil pasta
    python query.py --favorites                               # Needs RECIPE_API_TOKEN
    python query.py --recipe r1                               # One recipe and its notes
    python query.py --debug --category dinner                 # Also dump the raw state as JSON

Features:
- Browse, search, favorites and detail screens
- Follows pagination up to --pages pages, stopping when the collection is exhausted
- Toasts the screens raise are printed inline
- Debug mode dumps the final collection state
"""

import asyncio
import sys
from typing import Optional

from rich.console import Console
from rich.table import Table

from recipe_client.api.client import RecipeApiClient
from recipe_client.api.credentials import CredentialProvider
from recipe_client.models.models import CollectionState
from recipe_client.screens.base import CollectionScreen
from recipe_client.screens.browse import BrowseScreen
from recipe_client.screens.detail import RecipeDetailScreen
from recipe_client.screens.favorites import FavoritesScreen
from recipe_client.screens.search import SearchScreen
from recipe_client.utils.config import config
from recipe_client.utils.logger import logger

console = Console()

LEVEL_STYLES = {"success": "green", "info": "cyan", "error": "red"}

USAGE = (
    'Usage: python query.py [--search | --favorites | --recipe ID] [--category NAME] '
    '[--ingredient NAME]... [--pages N] [--debug] ["<keyword>"]'
)


def notify(message: str, level: str) -> None:
    style = LEVEL_STYLES.get(level, "white")
    console.print(f"[{style}]• {message}[/{style}]")


def render_collection(state: CollectionState, title: str, debug: bool = False) -> None:
    if debug:
        console.print("[bold cyan]Debug Mode: Collection State[/bold cyan]")
        console.print_json(data=state.model_dump(mode="json"))
        console.print()

    if state.load_failed:
        console.print(f"[red]✗ {state.error}[/red]")
        return
    if state.is_empty:
        console.print("[yellow]No recipes found[/yellow]")
        return

    table = Table(title=title)
    table.add_column("#", justify="right", style="dim")
    table.add_column("ID", style="cyan")
    table.add_column("Title", style="bold")
    table.add_column("Fav", justify="center")
    table.add_column("Summary")
    for index, recipe in enumerate(state.items, start=1):
        table.add_row(str(index), recipe.id, recipe.title, "★" if recipe.is_favorite else "", recipe.summary)
    console.print(table)

    more = "more available" if state.has_more else "end of results"
    console.print(f"[dim]{len(state.items)} recipes, {state.loaded_page_count} page(s), {more}[/dim]")


def render_detail(screen: RecipeDetailScreen) -> None:
    recipe = screen.recipe
    if recipe is None:
        console.print(f"[red]✗ {screen.recipe_error or 'Recipe not found'}[/red]")
        return

    star = " ★" if recipe.is_favorite else ""
    console.print(f"[bold]{recipe.title}[/bold]{star}  [dim]({recipe.id})[/dim]")
    console.print(recipe.summary)
    console.print(f"[dim]{recipe.image}[/dim]")
    console.print()

    if screen.notes_error:
        console.print(f"[red]✗ {screen.notes_error}[/red]")
        return
    if not len(screen.notes):
        console.print("[dim]No notes[/dim]")
        return
    for note in screen.notes.notes:
        stamp = note.updated_at or note.created_at
        when = f" [dim]{stamp:%Y-%m-%d %H:%M}[/dim]" if stamp else ""
        console.print(f"- {note.content}{when}")


async def run_collection(screen: CollectionScreen, pages: int, title: str, debug: bool) -> None:
    try:
        result = await screen.start()
        loaded = 1 if result.succeeded else 0
        while loaded and loaded < pages and screen.state.has_more:
            result = await screen.load_more()
            if not result.succeeded:
                break
            loaded += 1
        render_collection(screen.state, title, debug=debug)
    finally:
        screen.close()


async def run_query(
    term: str = "",
    search: bool = False,
    favorites: bool = False,
    category: str = "",
    ingredients: Optional[list[str]] = None,
    pages: int = 1,
    recipe_id: Optional[str] = None,
    debug: bool = False,
) -> None:
    """Execute one ad hoc query and print the result.

    Args:
        term: Free-text keyword.
        search: Use the search endpoint instead of the browse listing.
        favorites: List the current user's favorites (needs RECIPE_API_TOKEN).
        category: Browse category filter.
        ingredients: Ingredient filters.
        pages: Maximum number of pages to load.
        recipe_id: Show one recipe and its notes instead of a listing.
        debug: Also dump the final state as JSON.
    """
    credentials = CredentialProvider(config.API_TOKEN)
    logger.info(f"Querying {config.API_BASE_URL} (authenticated={credentials.is_authenticated})")

    async with RecipeApiClient(credentials) as api:
        if recipe_id:
            screen = RecipeDetailScreen(api, recipe_id, notify=notify)
            try:
                await screen.start()
                if screen.recipe is not None:
                    await screen.load_notes()
                render_detail(screen)
            finally:
                screen.close()
            return

        if favorites:
            screen = FavoritesScreen(api, notify=notify)
            title = "Favorites"
        elif search:
            screen = SearchScreen(api, term=term, ingredients=ingredients or [], notify=notify)
            title = f"Search: {term or '*'}"
        else:
            screen = BrowseScreen(
                api, category=category, term=term, ingredients=",".join(ingredients or []), notify=notify
            )
            title = f"Browse: {category or 'all'}"
        await run_collection(screen, pages, title, debug)


def parse_args(argv: list[str]) -> dict:
    options = {"search": False, "favorites": False, "category": "", "ingredients": [], "pages": 1,
               "recipe_id": None, "debug": False}
    index = 0

    def value_for(flag: str) -> str:
        nonlocal index
        index += 1
        if index >= len(argv):
            print(f"Error: {flag} flag requires a value")
            sys.exit(1)
        return argv[index]

    while index < len(argv) and argv[index].startswith("--"):
        flag = argv[index]
        if flag == "--debug":
            options["debug"] = True
        elif flag == "--search":
            options["search"] = True
        elif flag == "--favorites":
            options["favorites"] = True
        elif flag == "--category":
            options["category"] = value_for(flag)
        elif flag == "--ingredient":
            options["ingredients"].append(value_for(flag))
        elif flag == "--recipe":
            options["recipe_id"] = value_for(flag)
        elif flag == "--pages":
            raw = value_for(flag)
            if not raw.isdigit() or int(raw) < 1:
                print("Error: --pages must be a positive integer")
                sys.exit(1)
            options["pages"] = int(raw)
        else:
            print(f"Unknown flag: {flag}")
            print(USAGE)
            sys.exit(1)
        index += 1

    # Everything after the flags is the keyword (handles keywords with spaces)
    options["term"] = " ".join(argv[index:])
    return options


if __name__ == "__main__":
    if len(sys.argv) > 1 and sys.argv[1] in ("-h", "--help"):
        print(USAGE)
        sys.exit(0)

    try:
        asyncio.run(run_query(**parse_args(sys.argv[1:])))
    except KeyboardInterrupt:
        logger.info("\nQuery interrupted by user.")
        sys.exit(0)
    except Exception as e:
        logger.error(f"Query execution failed: {e}", exc_info=True)
        sys.exit(1)
