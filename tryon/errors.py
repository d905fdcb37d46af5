"""Error taxonomy shared by the try-on pipeline and the HTTP layer."""

from __future__ import annotations

import re
from typing import Any

GENERIC_FAILURE_MESSAGE = "An error occurred during image generation. Please try again."
INTERNAL_FAILURE_MESSAGE = "An unexpected error occurred. Please try again later."

_SENSITIVE_RX = re.compile(
    r"api|key|token|secret|credential|password|authorization|bearer",
    re.IGNORECASE,
)


def sanitize_message(message: str | None, fallback: str = GENERIC_FAILURE_MESSAGE) -> str:
    """Return ``message`` unless it mentions anything credential-like."""

    text = (message or "").strip()
    if not text or _SENSITIVE_RX.search(text):
        return fallback
    return text


class TryOnError(Exception):
    """Base class for failures that map onto a stable response code."""

    code = "INTERNAL_ERROR"
    status_code = 500
    user_message = INTERNAL_FAILURE_MESSAGE

    def __init__(
        self,
        message: str | None = None,
        *,
        code: str | None = None,
        user_message: str | None = None,
        detail: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(message or self.user_message)
        if code:
            self.code = code
        if user_message:
            self.user_message = user_message
        self.detail = detail or {}

    def to_payload(self, request_id: str | None = None) -> dict[str, Any]:
        payload: dict[str, Any] = {
            "ok": False,
            "error": sanitize_message(self.user_message, INTERNAL_FAILURE_MESSAGE),
            "code": self.code,
        }
        if request_id:
            payload["request_id"] = request_id
        payload.update(self.detail)
        return payload


class InputValidationError(TryOnError):
    """Inputs or the composed prompt failed the pre-generation gate."""

    code = "VALIDATION_ERROR"
    status_code = 400
    user_message = "Invalid try-on request"

    def __init__(
        self,
        message: str,
        *,
        errors: list[str] | None = None,
        warnings: list[str] | None = None,
        code: str | None = None,
    ) -> None:
        detail: dict[str, Any] = {}
        if errors:
            detail["details"] = "; ".join(errors)
        if warnings:
            detail["warnings"] = list(warnings)
        super().__init__(message, code=code, user_message=message, detail=detail)
        self.errors = list(errors or [])
        self.warnings = list(warnings or [])


class AnalysisError(TryOnError):
    code = "ANALYSIS_ERROR"
    user_message = "Failed to analyze product images. Please try again."


class GenerationError(TryOnError):
    code = "GENERATION_ERROR"
    user_message = GENERIC_FAILURE_MESSAGE


class OutputValidationError(GenerationError):
    code = "OUTPUT_VALIDATION_ERROR"


class RequestTimeoutError(TryOnError):
    code = "REQUEST_TIMEOUT"
    status_code = 504
    user_message = "The request took too long to complete. Please try again."

    def __init__(self, stage: str, message: str | None = None) -> None:
        super().__init__(message or f"deadline exceeded before {stage}")
        self.stage = stage


class StorageError(TryOnError):
    code = "STORAGE_ERROR"
    user_message = "Failed to upload images. Please try again."


class ConfigurationError(TryOnError):
    code = "CONFIGURATION_ERROR"
    user_message = "Configuration error"


class RateLimitExceeded(TryOnError):
    code = "RATE_LIMIT_EXCEEDED"
    status_code = 429
    user_message = "Too many requests. Please try again later."

    def __init__(self, *, limit: int, reset_at: int) -> None:
        super().__init__(self.user_message, detail={"reset_at": reset_at})
        self.limit = limit
        self.reset_at = reset_at


class UsageLimitExceeded(TryOnError):
    code = "USAGE_LIMIT_EXCEEDED"
    status_code = 429
    user_message = (
        "Monthly image generation limit reached. Please upgrade your plan or contact support."
    )


class SideEffectError(Exception):
    """Persistence failure after a successful generation; never surfaced."""


def error_payload(exc: BaseException, request_id: str | None = None) -> tuple[int, dict[str, Any]]:
    """Translate any exception into ``(status_code, body)`` safe for clients."""

    if isinstance(exc, TryOnError):
        return exc.status_code, exc.to_payload(request_id)

    payload: dict[str, Any] = {
        "ok": False,
        "error": INTERNAL_FAILURE_MESSAGE,
        "code": "INTERNAL_ERROR",
    }
    if request_id:
        payload["request_id"] = request_id
    return 500, payload


__all__ = [
    "AnalysisError",
    "ConfigurationError",
    "GENERIC_FAILURE_MESSAGE",
    "GenerationError",
    "InputValidationError",
    "OutputValidationError",
    "RateLimitExceeded",
    "RequestTimeoutError",
    "SideEffectError",
    "StorageError",
    "TryOnError",
    "UsageLimitExceeded",
    "error_payload",
    "sanitize_message",
]
