from __future__ import annotations

import logging
import time
import uuid
from typing import Any, Awaitable, Callable

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import JSONResponse, Response

logger = logging.getLogger(__name__)

DEFAULT_MAX_JSON_BYTES = 200_000


class BodyGuardMiddleware(BaseHTTPMiddleware):
    """Reject oversized JSON bodies on the ``/api/`` routes before they reach a provider."""

    WATCH_PATH_PREFIXES = ("/api/",)

    def __init__(self, app, *, max_bytes: int | None = None, **_: Any) -> None:  # type: ignore[override]
        limit = DEFAULT_MAX_JSON_BYTES if max_bytes is None else max_bytes
        self.max_bytes = limit if limit > 0 else None
        super().__init__(app)

    def _too_large(self, content_length: int | None, body_len: int) -> bool:
        if self.max_bytes is None:
            return False
        if content_length and content_length > self.max_bytes:
            return True
        return body_len > self.max_bytes

    async def dispatch(
        self,
        request: Request,
        call_next: Callable[[Request], Awaitable[Response]],
    ) -> Response:
        if request.method not in {"POST", "PUT", "PATCH"}:
            return await call_next(request)
        path = request.url.path
        if not any(path.startswith(prefix) for prefix in self.WATCH_PATH_PREFIXES):
            return await call_next(request)

        rid = request.headers.get("X-Request-ID") or str(uuid.uuid4())[:8]
        start = time.time()

        content_length_header = request.headers.get("content-length")
        try:
            content_length = int(content_length_header) if content_length_header else None
        except (TypeError, ValueError):
            content_length = None

        body = await request.body()
        if self._too_large(content_length, len(body)):
            logger.warning(
                "[guard] rid=%s path=%s rejected size=%s limit=%s",
                rid,
                path,
                len(body),
                self.max_bytes,
            )
            return JSONResponse(
                status_code=413,
                content={"error": {"message": f"Request body exceeds {self.max_bytes} bytes"}},
            )

        async def receive() -> dict[str, Any]:
            return {"type": "http.request", "body": body, "more_body": False}

        response = await call_next(Request(request.scope, receive))
        logger.info(
            "[guard] rid=%s path=%s status=%s size=%s dur_ms=%s",
            rid,
            path,
            response.status_code,
            len(body),
            int((time.time() - start) * 1000),
        )
        return response


__all__ = ["BodyGuardMiddleware"]
