from __future__ import annotations

import logging
import os
from typing import Any

from fastapi import FastAPI, Request, Response
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from tryon import __version__
from tryon.config import get_settings
from tryon.errors import TryOnError, error_payload
from tryon.middlewares.body_guard import BodyGuardMiddleware
from tryon.routes.tryon import router as tryon_router

LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()

logging.basicConfig(
    level=LOG_LEVEL,
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logging.getLogger("uvicorn").setLevel(LOG_LEVEL)
logging.getLogger("uvicorn.error").setLevel(LOG_LEVEL)
logging.getLogger("uvicorn.access").setLevel(LOG_LEVEL)
logging.getLogger("tryon-service").setLevel(LOG_LEVEL)

logger = logging.getLogger("tryon-service")

settings = get_settings()

app = FastAPI(title="Virtual Try-On API", version=__version__)

app.add_middleware(BodyGuardMiddleware, max_body_bytes=settings.uploads.max_request_bytes)
logger.info(
    "BodyGuardMiddleware ready", extra={"max_body_bytes": settings.uploads.max_request_bytes}
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.allowed_origins,
    allow_credentials=settings.allowed_origins != ["*"],
    allow_methods=["*"],
    allow_headers=["*"],
    expose_headers=["X-RateLimit-Limit", "X-RateLimit-Remaining", "X-RateLimit-Reset"],
)


@app.exception_handler(TryOnError)
async def tryon_error_handler(request: Request, exc: TryOnError) -> JSONResponse:
    rid = request.headers.get("X-Request-ID")
    status_code, payload = error_payload(exc, rid)
    return JSONResponse(status_code=status_code, content=payload)


@app.get("/", include_in_schema=False)
def root() -> dict[str, Any]:
    return {"service": "tryon-service", "ok": True, "version": __version__}


@app.head("/", include_in_schema=False)
def root_head() -> Response:
    return Response(status_code=200)


@app.get("/health")
def health() -> dict[str, bool]:
    return {"ok": True}


app.include_router(tryon_router)

logger.info(
    "tryon-service started env=%s origins=%s", settings.environment, settings.allowed_origins
)
