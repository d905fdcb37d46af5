from __future__ import annotations

import logging
import re
from typing import Any, List, Optional

from fastapi import APIRouter, Depends, Request
from fastapi.concurrency import run_in_threadpool
from fastapi.responses import JSONResponse
from starlette.datastructures import FormData, UploadFile

from tryon.dependencies import get_pipeline, get_quota_gate, get_rate_limiter
from tryon.errors import InputValidationError, RateLimitExceeded, TryOnError, error_payload
from tryon.models.upload import UploadedImage
from tryon.schemas import ErrorResponse, TryOnResponse
from tryon.services.pipeline import TryOnPipeline, TryOnRequest, new_request_id
from tryon.services.usage import QuotaGate, RateLimiter, RateLimitResult, client_ip

logger = logging.getLogger("tryon-service")

router = APIRouter(prefix="/api", tags=["try-on"])

TRY_ON_ENDPOINT = "/api/try-on"
_INDEXED_PRODUCT_RE = re.compile(r"^productImage(\d+)$")


def _text(form: FormData, name: str) -> Optional[str]:
    value = form.get(name)
    if value is None or isinstance(value, UploadFile):
        return None
    value = str(value).strip()
    return value or None


async def _read_upload(value: Any) -> Optional[UploadedImage]:
    if not isinstance(value, UploadFile):
        return None
    data = await value.read()
    return UploadedImage(
        filename=value.filename or "",
        content_type=(value.content_type or "").lower(),
        data=data,
    )


def _product_fields(form: FormData) -> List[str]:
    """Field names carrying product images, in upload order."""

    raw_count = _text(form, "productImageCount")
    if raw_count is not None:
        try:
            count = max(int(raw_count), 0)
        except ValueError:
            count = 0
        if count:
            return [f"productImage{i}" for i in range(count)]

    indexed = sorted(
        (int(match.group(1)), key)
        for key in form.keys()
        if (match := _INDEXED_PRODUCT_RE.match(key))
    )
    if indexed:
        return [key for _, key in indexed]
    return ["productImage"]


async def parse_try_on_form(form: FormData, request_id: str) -> TryOnRequest:
    user_photo = await _read_upload(form.get("userPhoto"))
    product_images: List[UploadedImage] = []
    for name in _product_fields(form):
        image = await _read_upload(form.get(name))
        if image is not None:
            product_images.append(image)
    product_name = _text(form, "productName")

    missing = [
        label
        for label, present in (
            ("userPhoto", user_photo is not None),
            ("productImage", bool(product_images)),
            ("productName", bool(product_name)),
        )
        if not present
    ]
    if missing:
        raise InputValidationError(
            "Missing required fields", errors=[f"{name} is required" for name in missing]
        )

    return TryOnRequest(
        user_photo=user_photo,
        product_images=product_images,
        product_name=product_name or "",
        product_category=_text(form, "productCategory"),
        product_url=_text(form, "productUrl"),
        session_id=_text(form, "sessionId"),
        shop_domain=_text(form, "shopDomain"),
        product_id=_text(form, "productId"),
        customer_id=_text(form, "customerId"),
        request_id=request_id,
    )


def _error_response(
    exc: BaseException, request_id: str, rate: Optional[RateLimitResult] = None
) -> JSONResponse:
    status_code, payload = error_payload(exc, request_id)
    headers = rate.headers() if rate is not None else None
    if isinstance(exc, RateLimitExceeded):
        headers = RateLimitResult(False, exc.limit, 0, exc.reset_at).headers()
    return JSONResponse(status_code=status_code, content=payload, headers=headers)


@router.post(
    "/try-on",
    response_model=TryOnResponse,
    responses={
        status: {"model": ErrorResponse} for status in (400, 413, 429, 500, 504)
    },
)
async def try_on(
    request: Request,
    pipeline: TryOnPipeline = Depends(get_pipeline),
    limiter: RateLimiter = Depends(get_rate_limiter),
    quota: QuotaGate = Depends(get_quota_gate),
) -> JSONResponse:
    rid = request.headers.get("X-Request-ID") or new_request_id()
    peer = request.client.host if request.client else None
    rate: Optional[RateLimitResult] = None
    try:
        rate = await run_in_threadpool(
            limiter.check, client_ip(request.headers, peer), TRY_ON_ENDPOINT
        )
        form = await request.form()
        tryon_request = await parse_try_on_form(form, rid)
        await run_in_threadpool(quota.check, tryon_request.shop_domain)

        logger.info(
            "try-on request rid=%s product=%s images=%d shop=%s",
            rid,
            tryon_request.product_name[:100],
            len(tryon_request.product_images),
            tryon_request.shop_domain,
            extra={"request_id": rid},
        )
        response = await run_in_threadpool(pipeline.run, tryon_request)
    except TryOnError as exc:
        logger.warning(
            "try-on failed rid=%s code=%s status=%s",
            rid,
            exc.code,
            exc.status_code,
            extra={"request_id": rid},
        )
        return _error_response(exc, rid, rate)
    except Exception as exc:  # noqa: BLE001 - unknown failures become INTERNAL_ERROR
        logger.exception("try-on crashed rid=%s", rid, extra={"request_id": rid})
        return _error_response(exc, rid, rate)

    headers = rate.headers() if rate is not None else None
    return JSONResponse(content=response.model_dump(mode="json"), headers=headers)


__all__ = ["parse_try_on_form", "router"]
