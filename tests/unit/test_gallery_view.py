"""
Unit tests for GalleryView

Covers pagination bounds, the read-failure state and discarding of
superseded responses.
"""
import asyncio
import pytest
from unittest.mock import AsyncMock, Mock

from core.models import GalleryPage
from services.gallery_service import GalleryService
from services.gallery_view import GalleryView


def make_page(number: int, total_pages: int = 5) -> GalleryPage:
    return GalleryPage(
        page=number,
        page_size=2,
        total_count=total_pages * 2,
        total_pages=total_pages,
        has_previous=number > 1,
        has_next=number < total_pages,
        captions=[],
    )


class TestGalleryViewLoading:
    """Test loading and state snapshots"""

    @pytest.mark.asyncio
    async def test_initial_load(self, worked_example_store):
        view = GalleryView(GalleryService(worked_example_store, page_size=2))

        applied = await view.load()

        assert applied is True
        state = view.snapshot()
        assert state.page == 1
        assert state.total_pages == 2
        assert state.loading is False
        assert state.error is None
        assert [card.id for card in state.captions] == ["C4", "C3"]

    @pytest.mark.asyncio
    async def test_next_and_previous_stay_in_bounds(self, worked_example_store):
        view = GalleryView(GalleryService(worked_example_store, page_size=2))
        await view.load()

        assert await view.previous_page() is False
        assert view.current_page == 1

        assert await view.next_page() is True
        assert view.current_page == 2
        assert [card.id for card in view.captions] == ["C1"]

        assert await view.next_page() is False
        assert view.current_page == 2

        assert await view.previous_page() is True
        assert view.current_page == 1

    @pytest.mark.asyncio
    async def test_read_failure_leaves_empty_state(self, worked_example_store):
        view = GalleryView(GalleryService(worked_example_store, page_size=2))
        await view.load()
        worked_example_store.fail_reads = True

        applied = await view.load(2)

        assert applied is True
        assert view.captions == []
        assert view.loading is False
        assert "connection refused" in view.error

    @pytest.mark.asyncio
    async def test_successful_load_clears_error(self, worked_example_store):
        view = GalleryView(GalleryService(worked_example_store, page_size=2))
        worked_example_store.fail_reads = True
        await view.load()
        worked_example_store.fail_reads = False

        await view.load()

        assert view.error is None
        assert len(view.captions) == 2

    @pytest.mark.asyncio
    async def test_unexpected_error_is_raised(self):
        service = Mock()
        service.get_page = AsyncMock(side_effect=RuntimeError("boom"))
        view = GalleryView(service)

        with pytest.raises(RuntimeError):
            await view.load()

        assert view.loading is False


class TestStaleResponses:
    """Test that a superseded request never overwrites a newer one"""

    @pytest.mark.asyncio
    async def test_slow_first_request_is_discarded(self):
        release_page_one = asyncio.Event()

        async def get_page(number):
            if number == 1:
                await release_page_one.wait()
            return make_page(number, total_pages=5 if number == 1 else 7)

        service = Mock()
        service.get_page = get_page
        view = GalleryView(service)

        slow = asyncio.create_task(view.load(1))
        await asyncio.sleep(0)
        fast_applied = await view.load(2)
        release_page_one.set()
        slow_applied = await slow

        assert fast_applied is True
        assert slow_applied is False
        assert view.current_page == 2
        assert view.total_pages == 7
        assert view.loading is False

    @pytest.mark.asyncio
    async def test_loading_flag_while_in_flight(self):
        release = asyncio.Event()

        async def get_page(number):
            await release.wait()
            return make_page(number)

        service = Mock()
        service.get_page = get_page
        view = GalleryView(service)

        task = asyncio.create_task(view.load(3))
        await asyncio.sleep(0)

        assert view.loading is True
        assert view.snapshot().page == 3

        release.set()
        await task

        assert view.loading is False
