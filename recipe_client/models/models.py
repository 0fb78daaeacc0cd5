"""Data models for the recipe client sync core.

Defines Pydantic models for query signatures, recipes, notes, pages and the
collection state observed by screens, plus the normalization functions that
turn loosely-shaped server payloads into those models.
All models use Pydantic v2. Raw server shapes never travel past the parse_*
functions at the bottom of this module.
"""

from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Annotated, Any, Iterable, Optional

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    ValidationError,
    field_validator,
    model_validator,
)

from recipe_client.utils.config import config
from recipe_client.utils.errors import RecipeClientError
from recipe_client.utils.logger import logger


TEMP_ID_PREFIX = "tmp_"


def _first_present(data: dict, *keys: str) -> Any:
    """Return the first value under `keys` that is neither None nor an empty string."""
    for key in keys:
        value = data.get(key)
        if value is None:
            continue
        if isinstance(value, str) and not value.strip():
            continue
        return value
    return None


def _coerce_id(value: Any) -> Optional[str]:
    # bool is an int subclass; a True id is a malformed record, not id "True"
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, (int, str)):
        text = str(value).strip()
        return text or None
    return None


def normalize_ingredients(values: Iterable[Any]) -> list[str]:
    """Trim, collapse inner whitespace and de-duplicate ingredients case-insensitively.

    The first spelling of each ingredient wins and input order is preserved.
    """
    seen: set[str] = set()
    result: list[str] = []
    for value in values:
        if value is None:
            continue
        text = " ".join(str(value).split())
        if not text or text.lower() in seen:
            continue
        seen.add(text.lower())
        result.append(text)
    return result


class QuerySignature(BaseModel):
    """Normalized identity of a list/search query.

    Two signatures compare equal iff every field is equal after normalization:
    strings are trimmed (case preserved) and ingredients form an order-insensitive,
    case-insensitively de-duplicated set.
    """

    model_config = ConfigDict(frozen=True, str_strip_whitespace=True)

    term: str = ""
    category: str = ""
    ingredients: tuple[str, ...] = ()
    sort: str = ""

    @field_validator("term", "category", "sort", mode="before")
    @classmethod
    def none_as_empty(cls, value: Any) -> Any:
        return "" if value is None else value

    @field_validator("ingredients", mode="before")
    @classmethod
    def normalize_ingredient_set(cls, value: Any) -> tuple[str, ...]:
        """Accept a comma-separated string or any iterable; store a sorted, de-duplicated tuple."""
        if value is None:
            return ()
        if isinstance(value, str):
            value = value.split(",")
        return tuple(sorted(normalize_ingredients(value), key=str.lower))

    def to_params(self, page: int, page_size: int) -> list[tuple[str, str]]:
        """Render list/search query parameters, omitting empty filters.

        Ingredients are sent as repeated `ingredients` keys.
        """
        params = [("page", str(page)), ("pageSize", str(page_size))]
        if self.term:
            params.append(("q", self.term))
        if self.category:
            params.append(("category", self.category))
        params.extend(("ingredients", ingredient) for ingredient in self.ingredients)
        if self.sort:
            params.append(("sort", self.sort))
        return params


class Recipe(BaseModel):
    """A recipe as shown in grids and on the detail screen.

    Only `id` is required from the server. Every display field falls back to a
    default when the raw payload omits it, and alternative server field names
    (`_id`, `name`, `cover`, `description`) are accepted.
    """

    model_config = ConfigDict(str_strip_whitespace=True)

    id: Annotated[str, Field(min_length=1, description="Stable recipe identifier")]
    title: Annotated[str, Field(description="Recipe title, 'Recipe <id>' when missing")]
    image: Annotated[str, Field(description="Image URL, placeholder when missing")]
    summary: Annotated[str, Field(description="Short description")]
    is_favorite: Annotated[bool, Field(False, description="Whether the current user favorited it")]

    @model_validator(mode="before")
    @classmethod
    def normalize_raw(cls, data: Any) -> Any:
        """Map the server's loose field names onto the strict internal shape."""
        if not isinstance(data, dict):
            return data

        recipe_id = _coerce_id(_first_present(data, "id", "_id"))
        favorite = _first_present(data, "is_favorite", "isFavorite", "favorite")

        return {
            "id": recipe_id,
            "title": _first_present(data, "title", "name") or f"Recipe {recipe_id}",
            "image": _first_present(data, "image", "cover") or config.PLACEHOLDER_IMAGE_URL,
            "summary": _first_present(data, "summary", "description") or "No description available.",
            "is_favorite": bool(favorite),
        }


class Note(BaseModel):
    """A free-text note a user attached to one recipe.

    `id` is a temporary `tmp_<n>` value while creation is unconfirmed.
    """

    model_config = ConfigDict(str_strip_whitespace=True)

    id: Annotated[str, Field(min_length=1)]
    content: str = ""
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    @model_validator(mode="before")
    @classmethod
    def normalize_raw(cls, data: Any) -> Any:
        if not isinstance(data, dict):
            return data
        return {
            "id": _coerce_id(_first_present(data, "id", "_id", "noteId", "uuid")),
            "content": _first_present(data, "content", "text") or "",
            "created_at": _first_present(data, "created_at", "createdAt", "created"),
            "updated_at": _first_present(data, "updated_at", "updatedAt", "updated"),
        }

    @field_validator("created_at", "updated_at", mode="wrap")
    @classmethod
    def tolerate_bad_timestamp(cls, value: Any, handler) -> Optional[datetime]:
        """An unparsable timestamp becomes None instead of discarding the note."""
        try:
            return handler(value)
        except ValidationError:
            return None

    @property
    def is_temporary(self) -> bool:
        return self.id.startswith(TEMP_ID_PREFIX)


class Page(BaseModel):
    """One page of recipes as returned for a list/search request."""

    items: list[Recipe] = Field(default_factory=list)
    page_number: Annotated[int, Field(ge=1)]
    requested_size: Annotated[int, Field(ge=1)]
    total: Annotated[Optional[int], Field(None, ge=0, description="Server-reported total, if any")]
    received: Annotated[int, Field(0, ge=0, description="Raw records in the payload, before discarding id-less ones")]


class CollectionStatus(str, Enum):
    IDLE = "idle"
    INITIAL_LOADING = "initial_loading"
    READY = "ready"
    LOADING_MORE = "loading_more"


class CollectionState(BaseModel):
    """Snapshot of a paginated collection. Replaced wholesale on every change."""

    model_config = ConfigDict(frozen=True)

    signature: QuerySignature = Field(default_factory=QuerySignature)
    items: tuple[Recipe, ...] = ()
    loaded_page_count: Annotated[int, Field(0, ge=0)]
    fetched_count: Annotated[int, Field(0, ge=0)]
    has_more: bool = False
    status: CollectionStatus = CollectionStatus.IDLE
    error: Optional[str] = None

    @property
    def is_initial_loading(self) -> bool:
        return self.status is CollectionStatus.INITIAL_LOADING

    @property
    def is_loading_more(self) -> bool:
        return self.status is CollectionStatus.LOADING_MORE

    @property
    def is_exhausted(self) -> bool:
        """Terminal state: ready and the last page said there is nothing more."""
        return self.status is CollectionStatus.READY and not self.has_more

    @property
    def load_failed(self) -> bool:
        """Initial load failed; distinct from a legitimately empty result set."""
        return self.status is CollectionStatus.IDLE and self.error is not None

    @property
    def is_empty(self) -> bool:
        return self.status is CollectionStatus.READY and not self.items


class MutationKind(str, Enum):
    FAVORITE = "favorite"
    CREATE_NOTE = "create_note"
    UPDATE_NOTE = "update_note"
    DELETE_NOTE = "delete_note"


class MutationIntent(BaseModel):
    """A user action applied optimistically.

    Created when the user acts, discarded on success, reverted from
    `previous_state` on failure.
    """

    model_config = ConfigDict(arbitrary_types_allowed=True)

    target_id: Annotated[str, Field(min_length=1)]
    kind: MutationKind
    desired_state: Any = None
    previous_state: Any = None

    @property
    def key(self) -> tuple[MutationKind, str]:
        return (self.kind, self.target_id)


class SyncStatus(str, Enum):
    OK = "ok"
    FAILED = "failed"
    REJECTED = "rejected"
    SKIPPED = "skipped"
    CANCELLED = "cancelled"
    STALE = "stale"


@dataclass(frozen=True)
class SyncResult:
    """Outcome of a public sync operation.

    Operations never raise; callers inspect `status`. Only FAILED and REJECTED
    carry an error worth showing to the user.
    """

    status: SyncStatus
    value: Any = None
    error: Optional[BaseException] = None

    @classmethod
    def ok(cls, value: Any = None) -> "SyncResult":
        return cls(SyncStatus.OK, value=value)

    @classmethod
    def failed(cls, error: BaseException) -> "SyncResult":
        return cls(SyncStatus.FAILED, error=error)

    @classmethod
    def rejected(cls, error: BaseException) -> "SyncResult":
        return cls(SyncStatus.REJECTED, error=error)

    @classmethod
    def skipped(cls) -> "SyncResult":
        return cls(SyncStatus.SKIPPED)

    @classmethod
    def cancelled(cls) -> "SyncResult":
        return cls(SyncStatus.CANCELLED)

    @classmethod
    def stale(cls) -> "SyncResult":
        return cls(SyncStatus.STALE)

    @property
    def succeeded(self) -> bool:
        return self.status is SyncStatus.OK

    @property
    def message(self) -> Optional[str]:
        if self.error is None:
            return None
        if isinstance(self.error, RecipeClientError):
            return self.error.user_message
        return str(self.error) or type(self.error).__name__


# ============================================================================
# Normalization boundary: raw server payloads -> models
# ============================================================================


def _extract_list(payload: Any) -> list:
    """Accept a bare array or an `{items: [...]}` envelope."""
    if isinstance(payload, list):
        return payload
    if isinstance(payload, dict):
        items = payload.get("items")
        if isinstance(items, list):
            return items
    return []


def parse_recipe(raw: Any) -> Optional[Recipe]:
    """Normalize one raw recipe. Returns None (record discarded) when it has no id."""
    try:
        return Recipe.model_validate(raw)
    except ValidationError as e:
        logger.debug(f"Discarding recipe record without usable id: {e.error_count()} error(s)")
        return None


def parse_note(raw: Any) -> Optional[Note]:
    """Normalize one raw note. Returns None (record discarded) when it has no id."""
    try:
        return Note.model_validate(raw)
    except ValidationError as e:
        logger.debug(f"Discarding note record without usable id: {e.error_count()} error(s)")
        return None


def parse_notes(payload: Any) -> list[Note]:
    notes = (parse_note(raw) for raw in _extract_list(payload))
    return [note for note in notes if note is not None]


def parse_page(
    payload: Any,
    page_number: int,
    requested_size: int,
    favorite: Optional[bool] = None,
) -> Page:
    """Normalize a list/search response into a Page.

    Args:
        payload: Bare array of recipes or `{items, total?}`.
        page_number: Page that was requested.
        requested_size: Page size that was requested.
        favorite: When set, overrides every item's favorite flag (the favorites
            listing only ever contains favorites).

    Returns:
        Page whose `received` counts raw records, including discarded ones.
    """
    raw_items = _extract_list(payload)

    total = payload.get("total") if isinstance(payload, dict) else None
    if isinstance(total, bool) or not isinstance(total, int) or total < 0:
        total = None

    items = []
    for raw in raw_items:
        recipe = parse_recipe(raw)
        if recipe is None:
            continue
        if favorite is not None:
            recipe = recipe.model_copy(update={"is_favorite": favorite})
        items.append(recipe)

    return Page(
        items=items,
        page_number=page_number,
        requested_size=requested_size,
        total=total,
        received=len(raw_items),
    )


def parse_categories(payload: Any) -> list[str]:
    """Normalize a categories response: strings or objects with name/slug/title."""
    categories = []
    for raw in _extract_list(payload):
        if isinstance(raw, dict):
            raw = _first_present(raw, "name", "slug", "title")
        if isinstance(raw, str) and raw.strip():
            categories.append(raw.strip())
    return categories


def parse_favorite_status(payload: Any) -> bool:
    """Normalize a favorite-status response: a bare boolean or an object flag."""
    if isinstance(payload, bool):
        return payload
    if isinstance(payload, dict):
        return bool(_first_present(payload, "isFavorite", "is_favorite", "favorite"))
    return False
