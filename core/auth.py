"""
Core Authentication and Session System.

This module mirrors identities managed by a third-party OAuth provider into
local, signed sessions. Users never register or hold passwords here: they sign
in with the provider, and this module keeps track of who is signed in, issues
the tokens that prove it, and tells interested views when that changes.

Key Components:
- JWTManager: Creates and verifies the access and refresh JSON Web Tokens. Each
  token carries the id of the session it belongs to.
- AuthenticationService: The central orchestrator. It issues the one-time
  `state` for a sign-in redirect, completes the sign-in once the provider calls
  back, refreshes and ends sessions, and publishes session-change events.
- Subscription: Returned by `on_auth_state_change`; calling `unsubscribe()`
  detaches the listener so a torn-down view receives nothing further.
- User, AuthSession and PendingSignIn: In-memory records for identities,
  open sessions and sign-in flows in progress.

Architectural Design:
- Session-Scoped Tokens: Signing out deactivates the session, which invalidates
  every access and refresh token carrying its id at once.
- In-Memory Storage: Users, sessions and pending sign-ins live in memory. The
  identity provider remains the system of record for who a user is. Sessions
  expire with their refresh token and are evicted on the next open or lookup.
- Isolated Listeners: A failing listener is logged and skipped; it never breaks
  the sign-in or sign-out that triggered the notification.
"""

import os
import jwt
import secrets
from datetime import datetime, timedelta, timezone
from typing import Callable, Dict, List, Optional, Any
from dataclasses import dataclass, field
from enum import Enum

from core.logging_config import get_logger
from core.exceptions import AuthenticationError
from providers.identity_provider import IdentityProfile

logger = get_logger(__name__)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class TokenType(Enum):
    """Token types"""

    ACCESS = "access"
    REFRESH = "refresh"


class SessionEvent(Enum):
    """Session change notifications"""

    SIGNED_IN = "SIGNED_IN"
    SIGNED_OUT = "SIGNED_OUT"
    TOKEN_REFRESHED = "TOKEN_REFRESHED"


@dataclass
class User:
    """Identity mirrored from the provider"""

    id: str
    provider: str
    subject: str
    email: Optional[str] = None
    name: Optional[str] = None
    created_at: datetime = None
    last_sign_in: datetime = None

    def __post_init__(self):
        if self.created_at is None:
            self.created_at = _utcnow()

    @property
    def display_label(self) -> str:
        return self.email or f"{self.provider.title()} user"

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "email": self.email,
            "name": self.name,
            "provider": self.provider,
            "display_label": self.display_label,
            "last_sign_in": self.last_sign_in.isoformat() if self.last_sign_in else None,
        }


@dataclass
class AuthSession:
    """An open session for one signed-in client"""

    session_id: str
    user: User
    access_token: str
    refresh_token: str
    expires_in: int
    client_id: Optional[str] = None
    is_active: bool = True
    created_at: datetime = field(default_factory=_utcnow)
    expires_at: Optional[datetime] = None

    def is_expired(self) -> bool:
        return self.expires_at is not None and _utcnow() >= self.expires_at


@dataclass
class PendingSignIn:
    """A sign-in redirect waiting for the provider's callback"""

    state: str
    redirect_to: str
    client_id: Optional[str] = None
    created_at: datetime = field(default_factory=_utcnow)

    def is_expired(self, ttl: timedelta) -> bool:
        return _utcnow() > self.created_at + ttl


SessionListener = Callable[[SessionEvent, AuthSession], None]


class Subscription:
    """Handle for a session-change listener"""

    def __init__(self, service: "AuthenticationService", callback: SessionListener):
        self._service = service
        self.callback = callback
        self.active = True

    def unsubscribe(self):
        if self.active:
            self._service._remove_listener(self)
            self.active = False


class JWTManager:
    """JWT token management"""

    def __init__(self, secret_key: str = None, algorithm: str = "HS256"):
        self.secret_key = secret_key or os.getenv("JWT_SECRET_KEY") or self._generate_secret_key()
        self.algorithm = algorithm
        self.access_token_expire = timedelta(hours=1)
        self.refresh_token_expire = timedelta(days=7)

    def _generate_secret_key(self) -> str:
        """Generate a secure secret key"""
        key = secrets.token_urlsafe(32)
        logger.warning(
            "Generated new JWT secret key. This should be set via JWT_SECRET_KEY environment variable."
        )
        return key

    def _encode(self, user: User, session_id: str, token_type: TokenType, expires_delta: timedelta) -> str:
        now = _utcnow()
        payload = {
            "sub": user.id,
            "sid": session_id,
            "type": token_type.value,
            "exp": now + expires_delta,
            "iat": now,
            "jti": secrets.token_urlsafe(16),
        }
        if token_type == TokenType.ACCESS:
            payload["email"] = user.email
            payload["provider"] = user.provider
        return jwt.encode(payload, self.secret_key, algorithm=self.algorithm)

    def create_access_token(
        self, user: User, session_id: str, expires_delta: timedelta = None
    ) -> str:
        """Create JWT access token"""
        token = self._encode(
            user, session_id, TokenType.ACCESS, expires_delta or self.access_token_expire
        )
        logger.debug(f"Created access token for user {user.id}")
        return token

    def create_refresh_token(
        self, user: User, session_id: str, expires_delta: timedelta = None
    ) -> str:
        """Create JWT refresh token"""
        token = self._encode(
            user, session_id, TokenType.REFRESH, expires_delta or self.refresh_token_expire
        )
        logger.debug(f"Created refresh token for user {user.id}")
        return token

    def verify_token(
        self, token: str, token_type: TokenType = TokenType.ACCESS
    ) -> Dict[str, Any]:
        """Verify and decode JWT token"""
        try:
            payload = jwt.decode(token, self.secret_key, algorithms=[self.algorithm])
        except jwt.ExpiredSignatureError:
            raise AuthenticationError("Token has expired")
        except jwt.InvalidTokenError as e:
            raise AuthenticationError(f"Invalid token: {str(e)}")

        if payload.get("type") != token_type.value:
            raise AuthenticationError(
                f"Invalid token type. Expected {token_type.value}"
            )

        return payload


class AuthenticationService:
    """Mirrors provider identities into local sessions"""

    def __init__(
        self,
        jwt_manager: JWTManager = None,
        state_ttl: timedelta = timedelta(minutes=10),
    ):
        self.jwt_manager = jwt_manager or JWTManager()
        self.state_ttl = state_ttl
        self.users: Dict[str, User] = {}
        self.sessions: Dict[str, AuthSession] = {}
        self.pending_sign_ins: Dict[str, PendingSignIn] = {}
        self._identities: Dict[tuple, str] = {}  # (provider, subject) -> user id
        self._subscriptions: List[Subscription] = []

    # Sign-in flow

    def begin_sign_in(
        self, redirect_to: str = "/", client_id: Optional[str] = None
    ) -> PendingSignIn:
        """Start a sign-in redirect and return its one-time state"""
        self._purge_expired_sign_ins()
        pending = PendingSignIn(
            state=secrets.token_urlsafe(24),
            redirect_to=redirect_to,
            client_id=client_id,
        )
        self.pending_sign_ins[pending.state] = pending
        logger.info(f"Sign-in started (client={client_id}, next={redirect_to})")
        return pending

    def consume_sign_in(self, state: str) -> PendingSignIn:
        """Remove and return the pending sign-in for `state`"""
        pending = self.pending_sign_ins.pop(state or "", None)
        if pending is None:
            raise AuthenticationError("Unknown sign-in state")
        if pending.is_expired(self.state_ttl):
            raise AuthenticationError("Sign-in state has expired")
        return pending

    def complete_sign_in(
        self, pending: PendingSignIn, profile: IdentityProfile
    ) -> AuthSession:
        """Open a session for the provider profile and publish SIGNED_IN"""
        user = self._upsert_user(profile)
        session = self._open_session(user, pending.client_id)
        logger.info(f"User {user.id} signed in via {profile.provider}")
        self._notify(SessionEvent.SIGNED_IN, session)
        return session

    def _upsert_user(self, profile: IdentityProfile) -> User:
        key = (profile.provider, profile.subject)
        user_id = self._identities.get(key)
        user = self.users.get(user_id) if user_id else None

        if user is None:
            user = User(
                id=secrets.token_urlsafe(16),
                provider=profile.provider,
                subject=profile.subject,
                email=profile.email,
                name=profile.name,
            )
            self.users[user.id] = user
            self._identities[key] = user.id
            logger.info(f"Mirrored new {profile.provider} identity as user {user.id}")
        else:
            user.email = profile.email or user.email
            user.name = profile.name or user.name

        user.last_sign_in = _utcnow()
        return user

    def _open_session(self, user: User, client_id: Optional[str]) -> AuthSession:
        self._purge_expired_sessions()
        session_id = secrets.token_urlsafe(16)
        session = AuthSession(
            session_id=session_id,
            user=user,
            access_token=self.jwt_manager.create_access_token(user, session_id),
            refresh_token=self.jwt_manager.create_refresh_token(user, session_id),
            expires_in=int(self.jwt_manager.access_token_expire.total_seconds()),
            client_id=client_id,
            expires_at=_utcnow() + self.jwt_manager.refresh_token_expire,
        )
        self.sessions[session_id] = session
        return session

    def _purge_expired_sign_ins(self):
        expired = [
            state
            for state, pending in self.pending_sign_ins.items()
            if pending.is_expired(self.state_ttl)
        ]
        for state in expired:
            del self.pending_sign_ins[state]

    def _purge_expired_sessions(self):
        """Drop sessions whose refresh token can no longer be used"""
        expired = [
            session_id
            for session_id, session in self.sessions.items()
            if session.is_expired()
        ]
        for session_id in expired:
            del self.sessions[session_id]
        if expired:
            logger.debug(f"Evicted {len(expired)} expired sessions")

    # Session lookup

    def get_session(self, access_token: Optional[str]) -> Optional[AuthSession]:
        """Session for a valid access token, otherwise None"""
        if not access_token:
            return None
        try:
            payload = self.jwt_manager.verify_token(access_token, TokenType.ACCESS)
        except AuthenticationError as e:
            logger.debug(f"Rejected access token: {e.message}")
            return None

        self._purge_expired_sessions()
        session = self.sessions.get(payload.get("sid"))
        if session is None or not session.is_active:
            return None
        return session

    def get_user(self, access_token: Optional[str]) -> Optional[User]:
        session = self.get_session(access_token)
        return session.user if session else None

    def refresh_session(self, refresh_token: str) -> AuthSession:
        """Issue a new access token for an active session"""
        payload = self.jwt_manager.verify_token(refresh_token, TokenType.REFRESH)

        session = self.sessions.get(payload.get("sid"))
        if session is None or not session.is_active:
            raise AuthenticationError("Session has ended")
        if payload["sub"] != session.user.id:
            raise AuthenticationError("Token user mismatch")

        session.access_token = self.jwt_manager.create_access_token(
            session.user, session.session_id
        )
        logger.info(f"Access token refreshed for user {session.user.id}")
        self._notify(SessionEvent.TOKEN_REFRESHED, session)
        return session

    def _session_for_refresh_token(
        self, refresh_token: Optional[str]
    ) -> Optional[AuthSession]:
        if not refresh_token:
            return None
        try:
            payload = self.jwt_manager.verify_token(refresh_token, TokenType.REFRESH)
        except AuthenticationError as e:
            logger.debug(f"Rejected refresh token: {e.message}")
            return None

        session = self.sessions.get(payload.get("sid"))
        if session is None or not session.is_active or payload["sub"] != session.user.id:
            return None
        return session

    def sign_out(
        self, access_token: Optional[str], refresh_token: Optional[str] = None
    ) -> bool:
        """End the session behind either token; unknown tokens are ignored

        The refresh token is consulted when the access token has already
        expired, so the session cannot be revived after sign-out.
        """
        session = self.get_session(access_token) or self._session_for_refresh_token(
            refresh_token
        )
        if session is None:
            return False

        session.is_active = False
        self.sessions.pop(session.session_id, None)
        logger.info(f"User {session.user.id} signed out")
        self._notify(SessionEvent.SIGNED_OUT, session)
        return True

    # Notifications

    def on_auth_state_change(self, callback: SessionListener) -> Subscription:
        subscription = Subscription(self, callback)
        self._subscriptions.append(subscription)
        return subscription

    def _remove_listener(self, subscription: Subscription):
        if subscription in self._subscriptions:
            self._subscriptions.remove(subscription)

    @property
    def listener_count(self) -> int:
        return len(self._subscriptions)

    def _notify(self, event: SessionEvent, session: AuthSession):
        for subscription in list(self._subscriptions):
            try:
                subscription.callback(event, session)
            except Exception as e:
                logger.error(f"Session listener failed on {event.value}: {e}")


# Global authentication service
_auth_service: Optional[AuthenticationService] = None


def get_auth_service() -> AuthenticationService:
    """Get global authentication service"""
    global _auth_service
    if _auth_service is None:
        _auth_service = AuthenticationService()
    return _auth_service


def init_auth_service() -> AuthenticationService:
    """Initialize global authentication service"""
    global _auth_service
    _auth_service = AuthenticationService()
    logger.info("Initialized authentication service")
    return _auth_service
