"""
Gallery view state.

A `GalleryView` owns the state of one gallery listing: the current page, the
page count, the loaded captions and the loading/error flags. Each view is an
independent object; nothing here is process-wide.

Every `load` is tagged with a generation number and the page it was issued
for. When an older request finishes after a newer one was issued, its result
is dropped, so a fast page flip never lets a stale response overwrite the page
the user asked for last.
"""

import logging
from typing import List, Optional
from core.exceptions import StoreReadError
from core.models import CaptionCard, GalleryState
from services.gallery_service import GalleryService

logger = logging.getLogger(__name__)


class GalleryView:
    """Per-view pagination state over a `GalleryService`"""

    def __init__(self, service: GalleryService, page: int = 1):
        self.service = service
        self.current_page = page
        self.total_pages = 0
        self.captions: List[CaptionCard] = []
        self.loading = False
        self.error: Optional[str] = None
        self._generation = 0

    @property
    def has_previous(self) -> bool:
        return self.current_page > 1

    @property
    def has_next(self) -> bool:
        return self.current_page < self.total_pages

    async def load(self, page: Optional[int] = None) -> bool:
        """
        Load `page` (or the current page) and apply the result.

        Returns False when the response was superseded by a newer request and
        discarded. Store read failures leave an empty, not-loading view with
        `error` set; they are never raised or retried.
        """
        if page is not None:
            self.current_page = page
        requested_page = self.current_page

        self._generation += 1
        generation = self._generation
        self.loading = True

        try:
            result = await self.service.get_page(requested_page)
        except StoreReadError as e:
            if generation != self._generation:
                logger.debug(
                    f"Ignoring failed response for superseded page {requested_page}"
                )
                return False
            logger.error(
                f"Gallery read failed for page {requested_page}: {e.message}",
                extra={"page": requested_page, "error_code": e.error_code},
            )
            self.captions = []
            self.error = e.message
            self.loading = False
            return True
        except Exception:
            if generation == self._generation:
                self.loading = False
            raise

        if generation != self._generation:
            logger.debug(
                f"Discarding stale response for page {requested_page}",
                extra={"page": requested_page, "generation": generation},
            )
            return False

        self.captions = result.captions
        self.total_pages = result.total_pages
        self.error = None
        self.loading = False
        return True

    async def next_page(self) -> bool:
        if self.current_page >= self.total_pages:
            return False
        return await self.load(self.current_page + 1)

    async def previous_page(self) -> bool:
        if self.current_page <= 1:
            return False
        return await self.load(self.current_page - 1)

    def snapshot(self) -> GalleryState:
        return GalleryState(
            page=self.current_page,
            total_pages=self.total_pages,
            loading=self.loading,
            error=self.error,
            has_previous=self.has_previous,
            has_next=self.has_next,
            captions=list(self.captions),
        )
