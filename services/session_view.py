"""
Session view state.

A `SessionView` mirrors the signed-in user for one view (a page, a socket).
On `mount` it asks for the current session once and subscribes to session
changes; on `unmount` it unsubscribes, after which nothing updates it. The
view decides whether the gated content and the caption form are visible.
"""

import logging
from typing import Callable, List, Optional, Dict, Any
from core.auth import AuthSession, AuthenticationService, SessionEvent, Subscription, User

logger = logging.getLogger(__name__)

SIGNED_OUT_LABEL = "Sign in to access the gated route."

ViewListener = Callable[[SessionEvent, "SessionView"], None]


class SessionView:
    """Per-view mirror of the provider-managed session"""

    def __init__(
        self,
        auth_service: AuthenticationService,
        client_id: Optional[str] = None,
        access_token: Optional[str] = None,
    ):
        self.auth_service = auth_service
        self.client_id = client_id
        self.access_token = access_token
        self.session: Optional[AuthSession] = None
        self.user: Optional[User] = None
        self.mounted = False
        self._subscription: Optional[Subscription] = None
        self._listeners: List[ViewListener] = []

    def mount(self):
        if self.mounted:
            return
        self.session = self.auth_service.get_session(self.access_token)
        self.user = self.session.user if self.session else None
        self._subscription = self.auth_service.on_auth_state_change(self._handle_change)
        self.mounted = True
        logger.debug(f"Session view mounted (client={self.client_id}, signed_in={self.is_signed_in})")

    def unmount(self):
        if self._subscription is not None:
            self._subscription.unsubscribe()
            self._subscription = None
        self.mounted = False
        logger.debug(f"Session view unmounted (client={self.client_id})")

    def on_change(self, listener: ViewListener):
        self._listeners.append(listener)

    def _belongs_to_view(self, session: AuthSession) -> bool:
        if self.session is not None and session.session_id == self.session.session_id:
            return True
        return self.client_id is not None and session.client_id == self.client_id

    def _handle_change(self, event: SessionEvent, session: AuthSession):
        if not self.mounted or not self._belongs_to_view(session):
            return

        if event == SessionEvent.SIGNED_OUT:
            self.session = None
            self.user = None
            self.access_token = None
        else:
            self.session = session
            self.user = session.user
            self.access_token = session.access_token

        for listener in list(self._listeners):
            listener(event, self)

    @property
    def is_signed_in(self) -> bool:
        return self.user is not None

    @property
    def protected_content_visible(self) -> bool:
        return self.is_signed_in

    @property
    def create_form_visible(self) -> bool:
        return self.is_signed_in

    @property
    def status_label(self) -> str:
        if self.user is None:
            return SIGNED_OUT_LABEL
        return f"Signed in as {self.user.display_label}"

    def snapshot(self) -> Dict[str, Any]:
        return {
            "signed_in": self.is_signed_in,
            "user": self.user.to_dict() if self.user else None,
            "status_label": self.status_label,
            "protected_content_visible": self.protected_content_visible,
            "create_form_visible": self.create_form_visible,
        }
