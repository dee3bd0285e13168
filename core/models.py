"""
Core data models for the Caption Gallery API

Defines the `images` and `captions` tables and the response models the
gallery endpoints return.
"""

import uuid
from datetime import datetime, timezone
from typing import List, Optional
from sqlalchemy import Column, DateTime
from sqlmodel import SQLModel, Field
from pydantic import BaseModel

ALT_TEXT_PREFIX_LENGTH = 30


def _new_id() -> str:
    return str(uuid.uuid4())


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Image(SQLModel, table=True):
    """
    Image row. A caption is only displayable when its image has a
    non-empty URL.
    """

    __tablename__ = "images"

    id: str = Field(default_factory=_new_id, primary_key=True, max_length=36)
    url: Optional[str] = Field(default=None, max_length=2048)


class Caption(SQLModel, table=True):
    """
    Caption row. Created once by an authenticated user and never edited.
    """

    __tablename__ = "captions"

    id: str = Field(default_factory=_new_id, primary_key=True, max_length=36)
    content: str
    created_datetime_utc: datetime = Field(
        default_factory=_utcnow,
        sa_column=Column(DateTime(timezone=True), nullable=False, index=True),
    )
    is_public: bool = Field(default=True)
    profile_id: str = Field(max_length=255, index=True)
    image_id: Optional[str] = Field(default=None, foreign_key="images.id")


class CaptionCard(BaseModel):
    """
    A caption joined with its image URL, as shown in the gallery.
    Not stored in database - used for API responses only.
    """

    id: str
    content: str
    created_datetime_utc: datetime
    is_public: bool
    profile_id: str
    image_id: Optional[str] = None
    image_url: str
    image_alt: str = ""

    @classmethod
    def from_row(cls, caption: Caption, image_url: str) -> "CaptionCard":
        return cls(
            id=caption.id,
            content=caption.content,
            created_datetime_utc=caption.created_datetime_utc,
            is_public=caption.is_public,
            profile_id=caption.profile_id,
            image_id=caption.image_id,
            image_url=image_url,
            image_alt=f"Image for caption: {caption.content[:ALT_TEXT_PREFIX_LENGTH]}",
        )


class GalleryPage(BaseModel):
    """One page of displayable captions plus pagination totals"""

    page: int
    page_size: int
    total_count: int
    total_pages: int
    has_previous: bool
    has_next: bool
    captions: List[CaptionCard]


class GalleryState(BaseModel):
    """Serialisable snapshot of a gallery view"""

    page: int
    total_pages: int
    loading: bool
    error: Optional[str] = None
    has_previous: bool
    has_next: bool
    captions: List[CaptionCard]
