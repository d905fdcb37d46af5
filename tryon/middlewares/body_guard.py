from __future__ import annotations

import logging
import time
import uuid
from typing import Any, Awaitable, Callable

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import JSONResponse, Response

from tryon.config import UploadLimits

logger = logging.getLogger("tryon-service")


class BodyGuardMiddleware(BaseHTTPMiddleware):
    """Reject multipart uploads larger than any well-formed try-on request."""

    WATCH_PATH_PREFIXES = ("/api/",)

    def __init__(
        self,
        app,
        *,
        max_body_bytes: int | None = None,
        **_: Any,
    ) -> None:  # type: ignore[override]
        self.max_body_bytes = self._normalise_limit(
            max_body_bytes, UploadLimits().max_request_bytes
        )
        super().__init__(app)

    @staticmethod
    def _normalise_limit(candidate: int | None, fallback: int) -> int | None:
        if candidate is None:
            candidate = fallback
        if candidate <= 0:
            return None
        return candidate

    def _too_large(self, content_length: int | None, body_len: int) -> bool:
        if self.max_body_bytes is None:
            return False
        if content_length and content_length > self.max_body_bytes:
            return True
        return body_len > self.max_body_bytes

    def _blocked(self, reason: str) -> JSONResponse:
        return JSONResponse(
            status_code=413,
            content={
                "ok": False,
                "error": "REQUEST_BODY_BLOCKED",
                "code": "REQUEST_BODY_BLOCKED",
                "reason": reason,
            },
        )

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

        # Declared length is enough to refuse without reading the body.
        if self._too_large(content_length, 0):
            logger.info(
                "[guard] rid=%s path=%s cl=%s reason=oversize",
                rid,
                path,
                content_length_header,
            )
            return self._blocked(f"oversize:{content_length}")

        body = await request.body()
        size = len(body)
        if self._too_large(None, size):
            logger.info("[guard] rid=%s path=%s size=%s reason=oversize", rid, path, size)
            return self._blocked(f"oversize:{size}")

        logger.debug(
            "[guard] rid=%s path=%s method=%s cl=%s size=%s",
            rid,
            path,
            request.method,
            content_length_header,
            size,
        )

        async def receive() -> dict[str, Any]:
            return {"type": "http.request", "body": body, "more_body": False}

        response = await call_next(Request(request.scope, receive))
        duration_ms = int((time.time() - start) * 1000)
        logger.info(
            "[guard] rid=%s done status=%s dur_ms=%s",
            rid,
            response.status_code,
            duration_ms,
        )
        return response


__all__ = ["BodyGuardMiddleware"]
