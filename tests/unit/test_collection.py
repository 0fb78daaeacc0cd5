"""Unit tests for the paginated collection store."""

import asyncio

import pytest

from recipe_client.models.models import CollectionStatus, Page, QuerySignature, Recipe, SyncStatus
from recipe_client.sync.collection import PaginatedCollectionStore, infer_has_more, merge_unique
from recipe_client.utils.errors import RequestFailedError


def recipes(*ids):
    return [Recipe(id=str(i), title=f"Recipe {i}", image="", summary="") for i in ids]


def page_of(ids, page_number=1, size=12, total=None, received=None):
    items = recipes(*ids)
    return Page(
        items=items,
        page_number=page_number,
        requested_size=size,
        total=total,
        received=len(items) if received is None else received,
    )


class FakeFetcher:
    """Serves scripted pages keyed by (category, page) and records calls."""

    def __init__(self, pages=None):
        self.pages = pages or {}
        self.calls = []
        self.gates = {}

    def gate(self, category, page):
        event = asyncio.Event()
        self.gates[(category, page)] = event
        return event

    async def __call__(self, signature, page, page_size, token):
        self.calls.append((signature.category, page, page_size))
        gate = self.gates.get((signature.category, page))
        if gate is not None:
            await gate.wait()
        result = self.pages[(signature.category, page)]
        if isinstance(result, Exception):
            raise result
        return result


DINNER = QuerySignature(category="dinner")
LUNCH = QuerySignature(category="lunch")


class TestHelpers:
    def test_merge_unique_keeps_first_occurrence(self):
        merged = merge_unique(recipes(1, 2), recipes(2, 3))

        assert [r.id for r in merged] == ["1", "2", "3"]

    def test_has_more_from_total(self):
        assert infer_has_more(page_of(range(12), total=20), fetched_count=12)
        assert not infer_has_more(page_of(range(8), total=20), fetched_count=20)

    def test_has_more_inferred_from_page_size(self):
        assert infer_has_more(page_of(range(12)), fetched_count=12)
        assert not infer_has_more(page_of(range(5)), fetched_count=17)

    def test_has_more_uses_raw_received_count(self):
        """Test that records discarded during normalization still count toward a full page."""
        page = page_of(range(11), received=12)

        assert infer_has_more(page, fetched_count=12)


class TestPaginatedCollectionStore:
    """Test state transitions and stale-response protection."""

    @pytest.mark.asyncio
    async def test_load_initial_then_more_until_exhausted(self):
        fetcher = FakeFetcher(
            {("dinner", 1): page_of(range(1, 13)), ("dinner", 2): page_of(range(13, 18), page_number=2)}
        )
        store = PaginatedCollectionStore(fetcher, page_size=12)

        await store.load_initial(DINNER)
        assert store.state.status is CollectionStatus.READY
        assert len(store.state.items) == 12
        assert store.state.has_more

        await store.load_more()
        state = store.state
        assert len(state.items) == 17
        assert state.loaded_page_count == 2
        assert not state.has_more
        assert state.is_exhausted
        assert fetcher.calls == [("dinner", 1, 12), ("dinner", 2, 12)]

    @pytest.mark.asyncio
    async def test_load_more_when_exhausted_is_noop(self):
        fetcher = FakeFetcher({("dinner", 1): page_of(range(3))})
        store = PaginatedCollectionStore(fetcher, page_size=12)
        await store.load_initial(DINNER)

        result = await store.load_more()

        assert result.status is SyncStatus.SKIPPED
        assert len(fetcher.calls) == 1

    @pytest.mark.asyncio
    async def test_load_more_while_loading_is_noop(self):
        fetcher = FakeFetcher({("dinner", 1): page_of(range(12))})
        gate = fetcher.gate("dinner", 1)
        store = PaginatedCollectionStore(fetcher, page_size=12)

        pending = asyncio.ensure_future(store.load_initial(DINNER))
        await asyncio.sleep(0)
        assert store.state.is_initial_loading

        assert (await store.load_more()).status is SyncStatus.SKIPPED
        gate.set()
        await pending
        assert fetcher.calls == [("dinner", 1, 12)]

    @pytest.mark.asyncio
    async def test_duplicates_across_pages_are_dropped(self):
        fetcher = FakeFetcher(
            {("dinner", 1): page_of(range(1, 4), size=3), ("dinner", 2): page_of([3, 4], page_number=2, size=3)}
        )
        store = PaginatedCollectionStore(fetcher, page_size=3)

        await store.load_initial(DINNER)
        await store.load_more()

        assert [r.id for r in store.state.items] == ["1", "2", "3", "4"]
        assert store.state.fetched_count == 5
        assert not store.state.has_more

    @pytest.mark.asyncio
    async def test_signature_change_drops_stale_page(self):
        """Test that a slow response for an old query never overwrites the new one."""
        fetcher = FakeFetcher({("dinner", 1): page_of(["d1"]), ("lunch", 1): page_of(["l1"])})
        gate = fetcher.gate("dinner", 1)
        store = PaginatedCollectionStore(fetcher, page_size=12)

        old = asyncio.ensure_future(store.load_initial(DINNER))
        await asyncio.sleep(0)
        new = await store.load_initial(LUNCH)
        gate.set()
        old_result = await old

        assert new.succeeded
        assert old_result.status in (SyncStatus.CANCELLED, SyncStatus.STALE)
        assert store.state.signature == LUNCH
        assert [r.id for r in store.state.items] == ["l1"]

    @pytest.mark.asyncio
    async def test_stale_load_more_is_dropped(self):
        fetcher = FakeFetcher(
            {
                ("dinner", 1): page_of(range(12)),
                ("dinner", 2): page_of(range(100, 112), page_number=2),
                ("lunch", 1): page_of(["l1"]),
            }
        )
        store = PaginatedCollectionStore(fetcher, page_size=12)
        await store.load_initial(DINNER)
        gate = fetcher.gate("dinner", 2)

        more = asyncio.ensure_future(store.load_more())
        await asyncio.sleep(0)
        await store.load_initial(LUNCH)
        gate.set()
        await more

        assert [r.id for r in store.state.items] == ["l1"]
        assert store.state.loaded_page_count == 1

    @pytest.mark.asyncio
    async def test_initial_failure_returns_to_idle_with_error(self):
        fetcher = FakeFetcher({("dinner", 1): RequestFailedError("boom", status=500, user_message="Server error")})
        store = PaginatedCollectionStore(fetcher, page_size=12)

        result = await store.load_initial(DINNER)

        assert result.status is SyncStatus.FAILED
        assert store.state.status is CollectionStatus.IDLE
        assert store.state.load_failed
        assert store.state.error == "Server error"
        assert store.state.items == ()

    @pytest.mark.asyncio
    async def test_load_more_failure_keeps_items_and_allows_retry(self):
        fetcher = FakeFetcher(
            {("dinner", 1): page_of(range(12)), ("dinner", 2): RequestFailedError("boom", user_message="Network")}
        )
        store = PaginatedCollectionStore(fetcher, page_size=12)
        await store.load_initial(DINNER)

        result = await store.load_more()

        assert result.status is SyncStatus.FAILED
        assert store.state.status is CollectionStatus.READY
        assert len(store.state.items) == 12
        assert store.state.has_more
        assert store.state.error == "Network"

        fetcher.pages[("dinner", 2)] = page_of(range(12, 15), page_number=2)
        assert (await store.load_more()).succeeded
        assert len(store.state.items) == 15
        assert store.state.error is None

    @pytest.mark.asyncio
    async def test_load_initial_with_same_signature_retries(self):
        fetcher = FakeFetcher({("dinner", 1): RequestFailedError("boom")})
        store = PaginatedCollectionStore(fetcher, page_size=12)
        await store.load_initial(DINNER)

        fetcher.pages[("dinner", 1)] = page_of(["a"])
        result = await store.load_initial(DINNER)

        assert result.succeeded
        assert [r.id for r in store.state.items] == ["a"]

    @pytest.mark.asyncio
    async def test_subscribers_see_every_transition(self):
        fetcher = FakeFetcher({("dinner", 1): page_of(["a"])})
        store = PaginatedCollectionStore(fetcher, page_size=12)
        statuses = []
        store.subscribe(lambda state: statuses.append(state.status))

        await store.load_initial(DINNER)

        assert statuses == [CollectionStatus.INITIAL_LOADING, CollectionStatus.READY]

    @pytest.mark.asyncio
    async def test_update_item_keeps_position(self):
        fetcher = FakeFetcher({("dinner", 1): page_of(["a", "b", "c"])})
        store = PaginatedCollectionStore(fetcher, page_size=12)
        await store.load_initial(DINNER)

        assert store.update_item("b", is_favorite=True)
        assert not store.update_item("zzz", is_favorite=True)

        assert [r.id for r in store.state.items] == ["a", "b", "c"]
        assert store.get_item("b").is_favorite

    @pytest.mark.asyncio
    async def test_close_cancels_in_flight_fetch(self):
        fetcher = FakeFetcher({("dinner", 1): page_of(["a"])})
        fetcher.gate("dinner", 1)
        store = PaginatedCollectionStore(fetcher, page_size=12)
        seen = []
        store.subscribe(seen.append)

        pending = asyncio.ensure_future(store.load_initial(DINNER))
        await asyncio.sleep(0)
        seen.clear()
        store.close()
        result = await pending

        assert result.status is SyncStatus.CANCELLED
        assert seen == []
