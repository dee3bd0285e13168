"""
Request middleware for the Caption Gallery API.

Security headers and session resolution live in `core.security_middleware`;
this module covers the plumbing every request goes through.

- `CorrelationMiddleware` tags the request with an ID (taken from
  `X-Correlation-ID` / `X-Request-ID` when the caller sends one) so log lines
  from the store, auth and gallery layers can be tied together.
- `ErrorHandlingMiddleware` renders `GalleryAPIException` subclasses, and
  anything unexpected, as the `{"error": {...}}` envelope.
- `PerformanceMiddleware` records how long each request took in
  `X-Process-Time` (milliseconds).

`CorrelationMiddleware` is registered last so it is the outermost layer.
"""

import time
import uuid
from typing import Callable, Dict, Any
from fastapi import Request, Response
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware

from .logging_config import set_correlation_id, get_logger
from .exceptions import GalleryAPIException

logger = get_logger("core.middleware")

SLOW_REQUEST_SECONDS = 1.0

_CLIENT_IP_HEADERS = ("X-Forwarded-For", "X-Real-IP")


def _route_of(request: Request) -> Dict[str, Any]:
    return {"method": request.method, "path": request.url.path}


class CorrelationMiddleware(BaseHTTPMiddleware):
    """Attach a correlation ID to the request, its log lines and its response"""

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        incoming = request.headers.get("X-Correlation-ID") or request.headers.get(
            "X-Request-ID"
        )
        correlation_id = incoming or uuid.uuid4().hex

        set_correlation_id(correlation_id)
        request.state.correlation_id = correlation_id

        response = await call_next(request)
        response.headers["X-Correlation-ID"] = correlation_id
        return response


class ErrorHandlingMiddleware(BaseHTTPMiddleware):
    """Render raised errors as the JSON error envelope"""

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        try:
            return await call_next(request)
        except GalleryAPIException as e:
            # Client mistakes are warnings; store and provider failures are errors
            level = logger.warning if e.status_code < 500 else logger.error
            level(
                f"{e.error_code} on {request.method} {request.url.path}: {e.message}",
                extra={**_route_of(request), "error_code": e.error_code},
            )
            return create_error_response(
                error_type=type(e).__name__,
                error_code=e.error_code,
                message=e.message,
                status_code=e.status_code,
                correlation_id=getattr(request.state, "correlation_id", None),
                details=e.details,
            )
        except Exception as e:
            logger.error(
                f"Unhandled {type(e).__name__} on {request.method} {request.url.path}",
                extra=_route_of(request),
                exc_info=True,
            )
            return create_error_response(
                error_type="InternalServerError",
                error_code="INTERNAL_ERROR",
                message="An unexpected error occurred",
                status_code=500,
                correlation_id=getattr(request.state, "correlation_id", None),
            )


class PerformanceMiddleware(BaseHTTPMiddleware):
    """Time each request and flag the slow ones"""

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        logger.debug(
            f"-> {request.method} {request.url.path}",
            extra={**_route_of(request), "client_ip": get_client_ip(request)},
        )
        started = time.perf_counter()

        response = await call_next(request)

        elapsed = time.perf_counter() - started
        elapsed_ms = round(elapsed * 1000, 2)
        response.headers["X-Process-Time"] = str(elapsed_ms)

        slow = elapsed > SLOW_REQUEST_SECONDS
        (logger.warning if slow else logger.info)(
            f"<- {request.method} {request.url.path} {response.status_code} "
            f"in {elapsed_ms}ms{' (slow)' if slow else ''}",
            extra={
                **_route_of(request),
                "status_code": response.status_code,
                "process_time_ms": elapsed_ms,
            },
        )
        return response


def get_client_ip(request: Request) -> str:
    """First proxy-reported address, else the socket peer"""
    for header in _CLIENT_IP_HEADERS:
        value = request.headers.get(header)
        if value:
            return value.split(",")[0].strip()

    return request.client.host if request.client else "unknown"


def create_error_response(
    error_type: str,
    error_code: str,
    message: str,
    status_code: int = 400,
    correlation_id: str = None,
    details: Dict[str, Any] = None,
) -> JSONResponse:
    """Build the `{"error": {...}}` body shared by every failing route"""
    error = {"type": error_type, "code": error_code, "message": message}
    if correlation_id:
        error["correlation_id"] = correlation_id
    if details:
        error["details"] = details

    return JSONResponse(status_code=status_code, content={"error": error})
