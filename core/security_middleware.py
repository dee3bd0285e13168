"""Security Middleware

Resolves the caller's session on every request and adds standard security
headers to every response.

- `SessionAuthMiddleware` reads the access token from the `Authorization:
  Bearer` header or the `access_token` cookie, stores the matching session on
  `request.state`, and rejects anonymous requests to protected routes with 401.
  Public routes see `request.state.user = None` for anonymous callers.
- `SecurityHeadersMiddleware` sets the usual hardening headers.
"""

from typing import List, Optional, Tuple
from fastapi import Request
from starlette.middleware.base import BaseHTTPMiddleware

from core.logging_config import get_logger
from core.auth import get_auth_service
from core.middleware import create_error_response

logger = get_logger(__name__)

ACCESS_TOKEN_COOKIE = "access_token"
REFRESH_TOKEN_COOKIE = "refresh_token"

# (method or None for any method, path prefix)
DEFAULT_PROTECTED_ROUTES: List[Tuple[Optional[str], str]] = [
    (None, "/protected"),
    ("POST", "/captions"),
]


def extract_access_token(request: Request) -> Optional[str]:
    """Bearer token from the Authorization header, else the session cookie"""
    auth_header = request.headers.get("Authorization")
    if auth_header and auth_header.startswith("Bearer "):
        return auth_header[7:].strip() or None
    return request.cookies.get(ACCESS_TOKEN_COOKIE)


class SessionAuthMiddleware(BaseHTTPMiddleware):
    """Session resolution and route gating"""

    def __init__(self, app, protected_routes: List[Tuple[Optional[str], str]] = None):
        super().__init__(app)
        self.protected_routes = (
            protected_routes if protected_routes is not None else DEFAULT_PROTECTED_ROUTES
        )

    def is_protected(self, request: Request) -> bool:
        path = request.url.path
        for method, prefix in self.protected_routes:
            if method is not None and request.method != method:
                continue
            if path == prefix or path.startswith(prefix.rstrip("/") + "/"):
                return True
        return False

    async def dispatch(self, request: Request, call_next):
        token = extract_access_token(request)
        session = get_auth_service().get_session(token)

        request.state.access_token = token if session else None
        request.state.auth_session = session
        request.state.user = session.user if session else None

        if request.method != "OPTIONS" and self.is_protected(request) and session is None:
            logger.info(
                f"Anonymous request to protected route: {request.method} {request.url.path}"
            )
            return create_error_response(
                error_type="AuthenticationError",
                error_code="AUTHENTICATION_REQUIRED",
                message="Sign in to access this route",
                status_code=401,
                correlation_id=getattr(request.state, "correlation_id", None),
                details={"sign_in_url": f"/auth/sign-in?next={request.url.path}"},
            )

        return await call_next(request)


class SecurityHeadersMiddleware(BaseHTTPMiddleware):
    """Security headers middleware"""

    DOCS_PATHS = ("/docs", "/redoc", "/openapi.json")

    def __init__(self, app):
        super().__init__(app)
        self.security_headers = {
            "X-Content-Type-Options": "nosniff",
            "X-Frame-Options": "DENY",
            "Strict-Transport-Security": "max-age=31536000; includeSubDomains",
            "Referrer-Policy": "strict-origin-when-cross-origin",
            "Permissions-Policy": "geolocation=(), microphone=(), camera=()",
        }
        self.content_security_policy = "default-src 'self'; img-src * data:"

    async def dispatch(self, request: Request, call_next):
        response = await call_next(request)

        for header, value in self.security_headers.items():
            response.headers[header] = value

        # Swagger UI loads its assets from a CDN
        if not request.url.path.startswith(self.DOCS_PATHS):
            response.headers["Content-Security-Policy"] = self.content_security_policy

        return response
