"""
Gallery Service.

This module defines the `GalleryService`, which assembles one page of the
caption gallery from the caption store.

Key Components:
- `GalleryService.get_page`: validates the page number, issues the exact count
  query and the page query concurrently, and returns a `GalleryPage` with exact
  pagination totals.

Architectural Design:
- Join at the Source: the store applies the caption/image inner join and the
  empty-URL filter, so a page is filled exactly and the page count is exact.
  There is no over-fetching and no client-side discard step.
- Two Round Trips: count and data are separate queries issued together with
  `asyncio.gather`.
- No Recovery: a failed read is raised as `StoreReadError` to the caller, which
  owns the decision of how to present it.
"""

import asyncio
import logging
import math
import os
from core.models import GalleryPage
from core.validation import InputValidator
from providers.caption_store import CaptionStore

logger = logging.getLogger(__name__)

DEFAULT_PAGE_SIZE = int(os.getenv("GALLERY_PAGE_SIZE", "36"))


def total_pages_for(total_count: int, page_size: int) -> int:
    """Number of pages needed to show `total_count` items"""
    if total_count <= 0:
        return 0
    return math.ceil(total_count / page_size)


class GalleryService:
    """Assembles gallery pages from the caption store"""

    def __init__(self, store: CaptionStore, page_size: int = DEFAULT_PAGE_SIZE):
        if page_size < 1:
            raise ValueError("page_size must be at least 1")
        self.store = store
        self.page_size = page_size

    async def get_page(self, page: int) -> GalleryPage:
        page = InputValidator.validate_integer(page, field="page", min_val=1)
        offset = (page - 1) * self.page_size

        logger.info(
            f"Fetching gallery page {page}",
            extra={"page": page, "offset": offset, "page_size": self.page_size},
        )

        total_count, captions = await asyncio.gather(
            self.store.count_displayable(),
            self.store.fetch_displayable(offset, self.page_size),
        )

        total_pages = total_pages_for(total_count, self.page_size)
        captions = captions[: self.page_size]

        logger.info(
            f"Gallery page {page}: {len(captions)} captions, {total_pages} pages total"
        )

        return GalleryPage(
            page=page,
            page_size=self.page_size,
            total_count=total_count,
            total_pages=total_pages,
            has_previous=page > 1,
            has_next=page < total_pages,
            captions=captions,
        )
