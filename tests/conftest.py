import pytest
import os
import sys
import tempfile
from datetime import datetime, timedelta, timezone
from unittest.mock import Mock
from urllib.parse import urlencode
from fastapi.testclient import TestClient
from typing import Generator, List, Optional

# Add the parent directory to the path so we can import our modules
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

# The engine is built from DATABASE_URL at import time
_TEST_DB_DIR = tempfile.mkdtemp(prefix="caption_gallery_tests_")
os.environ.setdefault(
    "DATABASE_URL",
    f"sqlite+aiosqlite:///{os.path.join(_TEST_DB_DIR, 'test.db')}",
)
os.environ.setdefault("JWT_SECRET_KEY", "test-secret-key-for-caption-gallery-tests")
os.environ.setdefault("ENVIRONMENT", "test")

from main import app
from api.dependencies import (
    get_caption_service,
    get_gallery_service,
    get_identity_provider,
)
from core.auth import get_auth_service
from core.exceptions import IdentityProviderError, StoreReadError, StoreWriteError
from core.models import Caption, CaptionCard, Image
from providers.caption_store import CaptionStore
from providers.identity_provider import IdentityProfile, IdentityProvider
from services.caption_service import CaptionService
from services.gallery_service import GalleryService

BASE_TIME = datetime(2024, 1, 1, tzinfo=timezone.utc)


class InMemoryCaptionStore(CaptionStore):
    """Caption store over plain lists, with switchable failures."""

    def __init__(self):
        self.images: List[Image] = []
        self.captions: List[Caption] = []
        self.fail_reads = False
        self.fail_image_insert = False
        self.fail_caption_insert = False
        self.calls: List[str] = []

    def add(self, caption_id: str, minutes: int, url: Optional[str], content: str = None):
        """Seed a caption created `minutes` after BASE_TIME with an image at `url`."""
        image = Image(id=f"img-{caption_id}", url=url)
        self.images.append(image)
        caption = Caption(
            id=caption_id,
            content=content or f"Caption {caption_id}",
            created_datetime_utc=BASE_TIME + timedelta(minutes=minutes),
            profile_id="seed-user",
            image_id=image.id,
        )
        self.captions.append(caption)
        return caption

    def _displayable(self):
        urls = {image.id: image.url for image in self.images}
        rows = [
            (caption, urls.get(caption.image_id))
            for caption in self.captions
            if urls.get(caption.image_id) and urls[caption.image_id].strip()
        ]
        return sorted(
            rows,
            key=lambda row: (row[0].created_datetime_utc, row[0].id),
            reverse=True,
        )

    async def count_displayable(self) -> int:
        self.calls.append("count_displayable")
        if self.fail_reads:
            raise StoreReadError("count_displayable", "connection refused")
        return len(self._displayable())

    async def fetch_displayable(self, offset: int, limit: int) -> List[CaptionCard]:
        self.calls.append("fetch_displayable")
        if self.fail_reads:
            raise StoreReadError("fetch_displayable", "connection refused")
        rows = self._displayable()[offset : offset + limit]
        return [CaptionCard.from_row(caption, url) for caption, url in rows]

    async def insert_image(self, url: str) -> Image:
        self.calls.append("insert_image")
        if self.fail_image_insert:
            raise StoreWriteError("insert_image", "disk full")
        image = Image(url=url)
        self.images.append(image)
        return image

    async def insert_caption(
        self, content, image_id, profile_id, is_public=True, created_at=None
    ) -> Caption:
        self.calls.append("insert_caption")
        if self.fail_caption_insert:
            raise StoreWriteError("insert_caption", "constraint violated")
        caption = Caption(
            content=content,
            image_id=image_id,
            profile_id=profile_id,
            is_public=is_public,
        )
        if created_at is not None:
            caption.created_datetime_utc = created_at
        self.captions.append(caption)
        return caption


class FakeIdentityProvider(IdentityProvider):
    """Identity provider that never leaves the process."""

    AUTHORIZE_URL = "https://idp.example.com/authorize"

    def __init__(self, profile: IdentityProfile = None, error: Exception = None):
        self.profile = profile or IdentityProfile(
            provider="google",
            subject="google-sub-1",
            email="ada@example.com",
            name="Ada Lovelace",
        )
        self.error = error
        self.exchanged_codes: List[str] = []

    @property
    def name(self) -> str:
        return "google"

    def authorization_url(self, redirect_uri: str, state: str) -> str:
        return f"{self.AUTHORIZE_URL}?{urlencode({'redirect_uri': redirect_uri, 'state': state})}"

    async def exchange_code(self, code: str, redirect_uri: str) -> IdentityProfile:
        self.exchanged_codes.append(code)
        if self.error is not None:
            raise self.error
        return self.profile


@pytest.fixture(autouse=True)
def setup_test_environment(monkeypatch):
    """Set up test environment variables."""
    monkeypatch.setenv("ENVIRONMENT", "test")
    monkeypatch.setenv("LOG_LEVEL", "DEBUG")
    monkeypatch.delenv("PUBLIC_BASE_URL", raising=False)


@pytest.fixture
def caption_store() -> InMemoryCaptionStore:
    """Empty in-memory caption store."""
    return InMemoryCaptionStore()


@pytest.fixture
def worked_example_store(caption_store) -> InMemoryCaptionStore:
    """C1..C4 created at t1 < t2 < t3 < t4; C2's image has no URL."""
    caption_store.add("C1", 1, "https://img.example.com/1.png")
    caption_store.add("C2", 2, None)
    caption_store.add("C3", 3, "https://img.example.com/3.png")
    caption_store.add("C4", 4, "https://img.example.com/4.png")
    return caption_store


@pytest.fixture
def identity_provider() -> FakeIdentityProvider:
    return FakeIdentityProvider()


@pytest.fixture
def failing_identity_provider() -> FakeIdentityProvider:
    return FakeIdentityProvider(error=IdentityProviderError("google", "invalid_grant"))


@pytest.fixture
def sample_profile() -> IdentityProfile:
    return IdentityProfile(
        provider="google",
        subject="google-sub-42",
        email="grace@example.com",
        name="Grace Hopper",
    )


@pytest.fixture
def test_client(caption_store, identity_provider) -> Generator[TestClient, None, None]:
    """Test client wired to the in-memory store and the fake provider."""
    app.dependency_overrides[get_gallery_service] = lambda: GalleryService(
        caption_store, page_size=2
    )
    app.dependency_overrides[get_caption_service] = lambda: CaptionService(caption_store)
    app.dependency_overrides[get_identity_provider] = lambda: identity_provider

    with TestClient(app) as client:
        yield client

    app.dependency_overrides.clear()


@pytest.fixture
def sign_in(test_client, sample_profile):
    """Open a session on the running app's auth service and return it."""

    def _sign_in(profile: IdentityProfile = None, client_id: str = None):
        auth_service = get_auth_service()
        pending = auth_service.begin_sign_in(client_id=client_id)
        return auth_service.complete_sign_in(
            auth_service.consume_sign_in(pending.state), profile or sample_profile
        )

    return _sign_in


@pytest.fixture
def mock_logger():
    """Create a mock logger for testing."""
    logger = Mock()
    logger.info = Mock()
    logger.error = Mock()
    logger.warning = Mock()
    logger.debug = Mock()
    return logger


class AsyncContextManager:
    """Helper class for testing async context managers."""

    def __init__(self, return_value=None):
        self.return_value = return_value

    async def __aenter__(self):
        return self.return_value

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        pass


@pytest.fixture
def async_context_manager():
    """Create an async context manager for testing."""
    return AsyncContextManager
