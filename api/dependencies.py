from typing import Optional
from fastapi import Request
from core.auth import AuthSession, AuthenticationService, User, get_auth_service
from core.exceptions import AuthenticationError
from providers.caption_store import SQLCaptionStore
from providers.identity_provider import IdentityProvider, create_identity_provider
from services.caption_service import CaptionService
from services.gallery_service import GalleryService

caption_store = SQLCaptionStore()
gallery_service = GalleryService(caption_store)
caption_service = CaptionService(caption_store)
_identity_provider: Optional[IdentityProvider] = None


def get_gallery_service() -> GalleryService:
    return gallery_service


def get_caption_service() -> CaptionService:
    return caption_service


def get_identity_provider() -> IdentityProvider:
    global _identity_provider
    if _identity_provider is None:
        _identity_provider = create_identity_provider()
    return _identity_provider


def get_authentication_service() -> AuthenticationService:
    return get_auth_service()


def get_optional_user(request: Request) -> Optional[User]:
    return getattr(request.state, "user", None)


def get_current_user(request: Request) -> User:
    user = get_optional_user(request)
    if user is None:
        raise AuthenticationError("Authentication required")
    return user


def get_current_session(request: Request) -> Optional[AuthSession]:
    return getattr(request.state, "auth_session", None)
