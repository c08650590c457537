"""Middleware: request timing and body size limits."""

from __future__ import annotations

import time

from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import JSONResponse, Response

_DEFINITION_PATHS = ("/definitions", "/validate")
_MAX_BODY_DEFINITION = 1 * 1024 * 1024  # 1 MB for definition load/validate
_MAX_BODY_DEFAULT = 64 * 1024  # 64 KB for everything else


class RequestTimingMiddleware(BaseHTTPMiddleware):
    """Add X-Request-Duration header with processing time."""

    async def dispatch(self, request: Request, call_next: RequestResponseEndpoint) -> Response:
        start = time.monotonic()
        response = await call_next(request)
        duration_ms = (time.monotonic() - start) * 1000
        response.headers["X-Request-Duration-Ms"] = f"{duration_ms:.1f}"
        return response


class RequestBodyLimitMiddleware(BaseHTTPMiddleware):
    """Reject request bodies that exceed size limits.

    Definition load and validate endpoints allow up to 1 MB; all other
    endpoints are capped at 64 KB.

    The Content-Length header is checked first.  The body is then read via
    ``request.stream()`` and the request aborted as soon as the limit is
    exceeded; consumed bytes are cached on ``request._body`` so downstream
    handlers can still use ``await request.body()``.
    """

    def __init__(
        self,
        app: object,
        definition_limit: int = _MAX_BODY_DEFINITION,
        default_limit: int = _MAX_BODY_DEFAULT,
    ) -> None:
        super().__init__(app)  # type: ignore[arg-type]
        self._definition_limit = definition_limit
        self._default_limit = default_limit

    def _too_large(self, limit: int) -> JSONResponse:
        return JSONResponse(
            status_code=413,
            content={"detail": f"Request body too large (max {limit // 1024} KB)"},
        )

    async def dispatch(self, request: Request, call_next: RequestResponseEndpoint) -> Response:
        path = request.url.path
        limit = (
            self._definition_limit if path.endswith(_DEFINITION_PATHS) else self._default_limit
        )

        content_length = request.headers.get("content-length")
        if content_length is not None and content_length.isdigit() and int(content_length) > limit:
            return self._too_large(limit)

        if request.method in ("POST", "PUT", "PATCH"):
            chunks: list[bytes] = []
            total = 0
            async for chunk in request.stream():
                total += len(chunk)
                if total > limit:
                    return self._too_large(limit)
                chunks.append(chunk)
            request._body = b"".join(chunks)  # noqa: SLF001

        return await call_next(request)
