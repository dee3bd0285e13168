"""
API Endpoints for the Caption Gallery.

This module defines the gallery's REST and WebSocket endpoints.

Endpoints Provided:
- `GET /captions`: One page of the public gallery. Every caption returned has a
  displayable image. A store failure yields an empty page with `error` set.
- `POST /captions`: The protected caption creation form.
- `GET /protected`: The gated route; only served to signed-in users.
- `/ws/session`: WebSocket that mirrors the caller's session and pushes
  sign-in, sign-out and token-refresh changes while the socket is open.

Architectural Design:
- View-Owned State: each request builds its own `GalleryView`; each socket
  mounts its own `SessionView` and unmounts it on disconnect.
- Dependency Injection: services are injected with `Depends`, so tests can
  swap the store or the auth service.
- Error Handling: domain errors are raised as `GalleryAPIException` subclasses
  and rendered by `ErrorHandlingMiddleware`.
"""

import logging
import asyncio
from typing import Optional
from fastapi import APIRouter, Depends, Query, WebSocket, WebSocketDisconnect
from pydantic import BaseModel
from core.auth import AuthenticationService, SessionEvent, User
from core.logging_config import log_function_call
from core.models import GalleryState
from services.caption_service import CaptionService
from services.gallery_service import GalleryService
from services.gallery_view import GalleryView
from services.session_view import SessionView
from .dependencies import (
    get_authentication_service,
    get_caption_service,
    get_current_user,
    get_gallery_service,
)

logger = logging.getLogger(__name__)


router = APIRouter(tags=["Caption Gallery"])
websocket_router = APIRouter(tags=["Session Updates"])


# Request/Response Models
class CreateCaptionRequest(BaseModel):
    content: str = ""
    image_url: str = ""
    is_public: bool = True


class CaptionResponse(BaseModel):
    id: str
    content: str
    created_datetime_utc: str
    is_public: bool
    profile_id: str
    image_id: Optional[str]
    image_url: str


class ProtectedResponse(BaseModel):
    message: str
    status_label: str
    user: dict
    protected_content_visible: bool
    create_form_visible: bool


# REST Endpoints
@router.get("/captions", response_model=GalleryState)
@log_function_call(logger)
async def list_captions(
    page: int = Query(1),
    gallery_svc: GalleryService = Depends(get_gallery_service),
):
    """One page of captions that have a displayable image, newest first"""
    view = GalleryView(gallery_svc, page=page)
    await view.load()
    return view.snapshot()


@router.post("/captions", response_model=CaptionResponse, status_code=201)
@log_function_call(logger)
async def create_caption(
    request: CreateCaptionRequest,
    current_user: User = Depends(get_current_user),
    caption_svc: CaptionService = Depends(get_caption_service),
):
    """Create a caption and its image for the signed-in user"""
    caption = await caption_svc.create_caption(
        current_user,
        content=request.content,
        image_url=request.image_url,
        is_public=request.is_public,
    )

    return CaptionResponse(
        id=caption.id,
        content=caption.content,
        created_datetime_utc=caption.created_datetime_utc.isoformat(),
        is_public=caption.is_public,
        profile_id=caption.profile_id,
        image_id=caption.image_id,
        image_url=request.image_url.strip(),
    )


@router.get("/protected", response_model=ProtectedResponse)
async def protected_page(
    current_user: User = Depends(get_current_user),
):
    """The gated route"""
    return ProtectedResponse(
        message="You made it inside.",
        status_label=f"Signed in as {current_user.display_label}",
        user=current_user.to_dict(),
        protected_content_visible=True,
        create_form_visible=True,
    )


# WebSocket Endpoint
@websocket_router.websocket("/ws/session")
async def session_updates(
    websocket: WebSocket,
    client_id: Optional[str] = Query(None),
    token: Optional[str] = Query(None),
    auth_service: AuthenticationService = Depends(get_authentication_service),
):
    """Mirror the caller's session for as long as the socket stays open"""
    await websocket.accept()

    loop = asyncio.get_running_loop()
    outbox: asyncio.Queue = asyncio.Queue()

    def forward_change(event: SessionEvent, view: SessionView):
        payload = {"type": "session_change", "event": event.value, **view.snapshot()}
        # Notifications may be published from another thread
        loop.call_soon_threadsafe(outbox.put_nowait, payload)

    view = SessionView(auth_service, client_id=client_id, access_token=token)
    view.on_change(forward_change)
    view.mount()

    async def drain_outbox():
        while True:
            payload = await outbox.get()
            await websocket.send_json(payload)

    sender = None
    try:
        await websocket.send_json({"type": "session", **view.snapshot()})
        sender = asyncio.create_task(drain_outbox())

        while True:
            data = await websocket.receive_json()
            if data.get("type") == "ping":
                await websocket.send_json({"type": "pong"})
            elif data.get("type") == "status":
                await websocket.send_json({"type": "session", **view.snapshot()})

    except WebSocketDisconnect:
        logger.info(f"Session socket disconnected (client={client_id})")
    except Exception as e:
        logger.error(f"Session socket error (client={client_id}): {e}")
    finally:
        view.unmount()
        if sender is not None:
            sender.cancel()
