"""
Caption Store Providers

The tabular store behind the gallery: two tables, `captions` and `images`.
`CaptionStore` is the boundary the services talk to; `SQLCaptionStore` answers
it with SQLModel queries over an async session factory.

Displayable captions are selected with an inner join on
`images.id = captions.image_id` that drops null and blank URLs at the source,
so every row returned already satisfies the gallery's "has an image" rule and
the count matches the rows exactly.
"""

import logging
from abc import ABC, abstractmethod
from datetime import datetime
from typing import List, Optional
from sqlalchemy import func
from sqlalchemy.exc import SQLAlchemyError
from sqlmodel import select, col
from core.exceptions import StoreReadError, StoreWriteError
from core.models import Caption, CaptionCard, Image

logger = logging.getLogger(__name__)

# Largest value a SQL INTEGER/BIGINT bind parameter accepts
MAX_SQL_INTEGER = 2**63 - 1


class CaptionStore(ABC):
    """Abstract base class for caption stores"""

    @abstractmethod
    async def count_displayable(self) -> int:
        """Exact number of captions whose image has a non-empty URL"""
        pass

    @abstractmethod
    async def fetch_displayable(self, offset: int, limit: int) -> List[CaptionCard]:
        """Displayable captions, newest first, sliced by offset/limit"""
        pass

    @abstractmethod
    async def insert_image(self, url: str) -> Image:
        """Insert an image row and return it"""
        pass

    @abstractmethod
    async def insert_caption(
        self,
        content: str,
        image_id: str,
        profile_id: str,
        is_public: bool = True,
        created_at: Optional[datetime] = None,
    ) -> Caption:
        """Insert a caption row and return it"""
        pass


def _displayable_join(statement):
    return statement.join(Image, col(Image.id) == col(Caption.image_id)).where(
        col(Image.url).is_not(None),
        func.trim(col(Image.url)) != "",
    )


class SQLCaptionStore(CaptionStore):
    """Caption store backed by the SQLModel tables"""

    def __init__(self, session_factory=None):
        if session_factory is None:
            from core.database import async_session

            session_factory = async_session
        self._session_factory = session_factory

    async def count_displayable(self) -> int:
        statement = _displayable_join(select(func.count()).select_from(Caption))
        try:
            async with self._session_factory() as session:
                result = await session.execute(statement)
                return int(result.scalar_one())
        except SQLAlchemyError as e:
            logger.error(f"Caption count failed: {e}")
            raise StoreReadError("count_displayable", str(e))

    async def fetch_displayable(self, offset: int, limit: int) -> List[CaptionCard]:
        if offset > MAX_SQL_INTEGER - limit:
            # No table holds this many rows, so the page lies past the end
            logger.debug(f"Offset {offset} is beyond any stored row")
            return []

        statement = (
            _displayable_join(select(Caption, Image.url))
            .order_by(
                col(Caption.created_datetime_utc).desc(), col(Caption.id).desc()
            )
            .offset(offset)
            .limit(limit)
        )
        try:
            async with self._session_factory() as session:
                result = await session.execute(statement)
                rows = result.all()
        except SQLAlchemyError as e:
            logger.error(f"Caption fetch failed (offset={offset}, limit={limit}): {e}")
            raise StoreReadError("fetch_displayable", str(e))

        logger.debug(f"Fetched {len(rows)} captions from offset {offset}")
        return [CaptionCard.from_row(caption, url) for caption, url in rows]

    async def insert_image(self, url: str) -> Image:
        image = Image(url=url)
        try:
            async with self._session_factory() as session:
                session.add(image)
                await session.commit()
                await session.refresh(image)
        except SQLAlchemyError as e:
            logger.error(f"Image insert failed: {e}")
            raise StoreWriteError("insert_image", str(e))

        logger.info(f"Inserted image {image.id}")
        return image

    async def insert_caption(
        self,
        content: str,
        image_id: str,
        profile_id: str,
        is_public: bool = True,
        created_at: Optional[datetime] = None,
    ) -> Caption:
        caption = Caption(
            content=content,
            image_id=image_id,
            profile_id=profile_id,
            is_public=is_public,
        )
        if created_at is not None:
            caption.created_datetime_utc = created_at

        try:
            async with self._session_factory() as session:
                session.add(caption)
                await session.commit()
                await session.refresh(caption)
        except SQLAlchemyError as e:
            logger.error(f"Caption insert failed for image {image_id}: {e}")
            raise StoreWriteError("insert_caption", str(e))

        logger.info(f"Inserted caption {caption.id} for image {image_id}")
        return caption
