"""
Caption Creation Service.

Handles the protected "new caption" form. The form is validated locally first;
only valid submissions reach the store, as two sequential writes:

1. insert the image row;
2. insert the caption row referencing the new image and the signed-in user.

If the first write fails nothing is created. If the second write fails the
image row stays behind without a caption. That row is not rolled back; the
failure is logged with the orphaned image id so it can be found later.
"""

import logging
from datetime import datetime, timezone
from core.auth import User
from core.exceptions import CaptionCreationError, StoreWriteError
from core.models import Caption
from core.validation import validate_caption_content, validate_image_url
from providers.caption_store import CaptionStore

logger = logging.getLogger(__name__)


class CaptionService:
    """Creates captions on behalf of signed-in users"""

    def __init__(self, store: CaptionStore):
        self.store = store

    async def create_caption(
        self, user: User, content: str, image_url: str, is_public: bool = True
    ) -> Caption:
        content = validate_caption_content(content)
        image_url = validate_image_url(image_url)

        try:
            image = await self.store.insert_image(image_url)
        except StoreWriteError as e:
            logger.error(
                f"Image insert failed for user {user.id}; caption not created",
                extra={"user_id": user.id, "reason": e.details.get("reason")},
            )
            raise CaptionCreationError("image", e.details.get("reason", e.message))

        try:
            caption = await self.store.insert_caption(
                content=content,
                image_id=image.id,
                profile_id=user.id,
                is_public=is_public,
                created_at=datetime.now(timezone.utc),
            )
        except StoreWriteError as e:
            logger.warning(
                f"Caption insert failed; image {image.id} has no caption",
                extra={
                    "user_id": user.id,
                    "orphaned_image_id": image.id,
                    "reason": e.details.get("reason"),
                },
            )
            raise CaptionCreationError(
                "caption",
                e.details.get("reason", e.message),
                orphaned_image_id=image.id,
            )

        logger.info(f"User {user.id} created caption {caption.id}")
        return caption
